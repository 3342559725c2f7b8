"""
Base migration orchestrator.

This module provides the MigrationOrchestrator class that every run mode
derives from. It owns the MigrationRun, moves it through its states, and
provides the steps the modes share: the preview/confirm gate, disk-space and
dependency preflight, URL alignment through WP-CLI search-replace, plugin and
theme preservation, and the Redis cache flush.
"""

import logging
import shutil
import sys
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

import psutil
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, Prompt

from wp_migrate.archive.registry import check_tools
from wp_migrate.core.exceptions import PreflightError, UserDeclined, UserInputError
from wp_migrate.models.config import CommonOptions
from wp_migrate.models.run import MigrationRun, RunMode, RunState
from wp_migrate.orchestrator.cleanup import CleanupGuard
from wp_migrate.orchestrator.maintenance import MaintenanceManager
from wp_migrate.utils.runner import CommandRunner, WPCLI

logger = logging.getLogger(__name__)

# Archive, extracted copy, and headroom.
DISK_SPACE_MULTIPLIER = 3

SEARCH_REPLACE_FLAGS = ["--skip-columns=guid", "--report-changed-only"]

NON_INTERACTIVE_HINT = """This migration requires confirmation before it changes anything.

Solutions:
  1. Add --yes to skip confirmation (recommended for automation)
  2. Use --dry-run to preview without confirmation"""


def unique_items(before: Iterable[str], incoming: Iterable[str]) -> List[str]:
    """Items of ``before`` that are not in ``incoming``, in original order."""
    incoming_set = set(incoming)
    return [item for item in before if item not in incoming_set]


def _megabytes(size: int) -> int:
    return size // 1024 // 1024


class MigrationOrchestrator(ABC):
    """
    Base orchestrator for one wp-migrate run.

    Subclasses implement ``_execute``; ``execute`` wraps it in the cleanup
    guard so maintenance mode and SSH sockets are released on every exit.
    """

    mode: RunMode

    def __init__(
        self,
        options: CommonOptions,
        console: Optional[Console] = None,
        runner: Optional[CommandRunner] = None,
        interactive: Optional[bool] = None,
        which: Callable[[str], Optional[str]] = shutil.which
    ):
        self.options = options
        self.console = console or Console()
        self.runner = runner or CommandRunner(trace=options.trace)
        self.which = which
        self._interactive = interactive
        self.run = MigrationRun(mode=self.mode, dry_run=options.dry_run)
        self.maintenance = MaintenanceManager(self.run)
        self.guard = CleanupGuard(self.run, self.maintenance)

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def interactive(self) -> bool:
        if self._interactive is None:
            return sys.stdin.isatty()
        return self._interactive

    async def execute(self) -> MigrationRun:
        """Run the mode inside the cleanup guard and return the finished run."""
        async with self.guard:
            await self._execute()
            if not self.run.is_terminal:
                self.advance(RunState.DONE)
        return self.run

    @abstractmethod
    async def _execute(self):
        """Mode-specific phases."""
        pass

    def advance(self, state: RunState):
        """Move the run forward, skipping states a mode does not use."""
        self.run.transition(state)
        logger.debug(f"State: {state.value}")

    # Preview / confirm

    def show_preview(self, title: str, lines: Sequence[str]):
        self.console.print(Panel("\n".join(lines), title=title, expand=False))

    def confirm(self, prompt: str = "Proceed with migration?", require_word: Optional[str] = None):
        """
        Ask the operator before anything destructive happens.

        Raises:
            UserInputError: If stdin is not a terminal and neither --yes nor
                --dry-run was given
            UserDeclined: If the operator answers no
        """
        if self.dry_run:
            logger.info("[dry-run] Skipping confirmation prompt (dry-run mode)")
            return
        if self.options.yes:
            logger.info("Proceeding with migration (--yes flag set)")
            return
        if not self.interactive:
            raise UserInputError(
                "Interactive confirmation required but stdin is not a terminal.",
                hint=NON_INTERACTIVE_HINT
            )

        if require_word:
            answer = Prompt.ask(f"{prompt} ({require_word}/no)", console=self.console, default="no")
            if answer.strip().lower() != require_word:
                raise UserDeclined("Rollback cancelled by user.")
            return
        if not Confirm.ask(prompt, console=self.console, default=False):
            raise UserDeclined()

    # Preflight

    def check_dependencies(self, tools: Sequence[str]):
        check_tools(list(tools), which=self.which)

    def check_disk_space(self, required_for: Union[str, Path], size: int, where: Union[str, Path] = "."):
        """
        Require DISK_SPACE_MULTIPLIER times ``size`` free bytes at ``where``.

        Raises:
            PreflightError: On a shortfall
        """
        required = size * DISK_SPACE_MULTIPLIER
        available = psutil.disk_usage(str(where)).free
        logger.info("Disk space check:")
        logger.info(f"  Archive size: {_megabytes(size)}MB")
        logger.info(f"  Required: {_megabytes(required)}MB ({DISK_SPACE_MULTIPLIER}x archive size)")
        logger.info(f"  Available: {_megabytes(available)}MB")

        if available < required:
            raise PreflightError(
                "Insufficient disk space for archive extraction.",
                details={"required": required, "available": available, "archive": str(required_for)},
                hint=(
                    f"Shortfall: {_megabytes(required - available)}MB\n"
                    "Free up space (df -h .), move the archive to a larger volume,\n"
                    "or point TMPDIR at a volume with more room."
                )
            )
        logger.info("Disk space check: PASSED")

    async def verify_installed(self, wp: WPCLI, where: str):
        """
        Raises:
            PreflightError: If WordPress is not installed at ``wp.root``
        """
        logger.info(f"Verifying {where} WordPress at: {wp.root}")
        if not await wp.is_installed():
            raise PreflightError(
                f"{where.capitalize()} WordPress not detected at: {wp.root}",
                hint=(
                    "Verify WordPress is installed (wp core version), that wp-config.php has\n"
                    "working database credentials (wp db check), and that the path is the\n"
                    "WordPress root."
                )
            )

    # Shared WP-CLI steps

    async def search_replace_flags(self, wp: WPCLI) -> List[str]:
        flags = list(SEARCH_REPLACE_FLAGS)
        if await wp.is_installed(network=True):
            flags.append("--network")
            logger.debug("Multisite detected (will use --network flag for search-replace)")
        return flags

    async def align_urls(self, wp: WPCLI, home_url: Optional[str], site_url: Optional[str]):
        """
        Run every accumulated search-replace pair, then pin home and siteurl.

        A failed pair is a warning; the option updates are not.
        """
        if not self.run.pairs:
            return
        if not self.options.search_replace:
            logger.info("Skipping URL alignment (--no-search-replace flag set)")
            for pair in self.run.pairs:
                logger.info(f"NOTE: search-replace skipped: {pair.old} -> {pair.new}")
            return

        if self.dry_run:
            for pair in self.run.pairs:
                logger.info(f"[dry-run] Would run wp search-replace '{pair.old}' '{pair.new}'")
            return

        flags = await self.search_replace_flags(wp)
        logger.info(f"Running {len(self.run.pairs)} search-replace operations")
        for pair in self.run.pairs:
            logger.info(f"  Replacing: {pair.old} -> {pair.new}")
            result = await wp.run("search-replace", pair.old, pair.new, *flags, check=False)
            if not result.ok:
                logger.warning(f"search-replace failed for: {pair.old} -> {pair.new}")

        if home_url:
            logger.info(f"Ensuring home option remains: {home_url}")
            await wp.option_update("home", home_url)
        if site_url:
            logger.info(f"Ensuring siteurl option remains: {site_url}")
            await wp.option_update("siteurl", site_url)

    async def flush_redis(self, wp: WPCLI):
        """Flush the object cache when the redis command exists; failures are warnings."""
        if not await wp.has_command("redis"):
            logger.info("Skipping Object Cache Pro cache flush; wp redis command not available.")
            return
        if self.dry_run:
            logger.info("[dry-run] Would flush Object Cache Pro cache via: wp redis flush")
            return
        logger.info("Flushing Object Cache Pro cache...")
        result = await wp.run("redis", "flush", check=False, full=True)
        if not result.ok:
            logger.warning("Failed to flush Object Cache Pro cache via wp redis flush. Cache may be stale.")

    async def collect_unique_destination_items(self, dest: WPCLI, plugins: Iterable[str], themes: Iterable[str]):
        """
        Record destination plugins and themes the incoming content lacks.

        Must run before the destination content is moved aside.
        """
        dest_plugins = await dest.plugin_names()
        dest_themes = await dest.theme_names()
        plugins, themes = list(plugins), list(themes)
        unique_plugins = unique_items(dest_plugins, plugins)
        unique_themes = unique_items(dest_themes, themes)
        logger.info(f"  Destination has {len(dest_plugins)} plugin(s), incoming has {len(plugins)} plugin(s)")
        logger.info(f"  Unique to destination: {len(unique_plugins)} plugin(s)")
        logger.info(f"  Destination has {len(dest_themes)} theme(s), incoming has {len(themes)} theme(s)")
        logger.info(f"  Unique to destination: {len(unique_themes)} theme(s)")
        if unique_plugins:
            logger.info(f"  Plugins to preserve: {' '.join(unique_plugins)}")
        if unique_themes:
            logger.info(f"  Themes to preserve: {' '.join(unique_themes)}")
        self.run.notes["unique_plugins"] = unique_plugins
        self.run.notes["unique_themes"] = unique_themes

    async def deactivate_plugins(self, wp: WPCLI, plugins: Sequence[str]):
        if not plugins:
            return
        logger.info("  Deactivating restored plugins...")
        for plugin in plugins:
            if await wp.succeeds("plugin", "deactivate", plugin):
                logger.info(f"    Deactivated: {plugin}")
            else:
                logger.warning(f"Could not deactivate plugin: {plugin}")

    @contextmanager
    def progress(self, description: str):
        """Spinner around a long step unless --quiet is set."""
        if self.options.quiet or self.dry_run:
            yield
            return
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True
        ) as progress:
            progress.add_task(description, total=None)
            yield
