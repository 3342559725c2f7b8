"""
Backup-creation mode: write a native wp-migrate archive on a source host.

The archive is assembled remotely in a ``mktemp -d`` staging directory and
zipped into BACKUP_OUTPUT_DIR:

    wpmigrate-backup.json   format_version, created_at, site URL, prefix
    database.sql            wp db export --add-drop-table
    wp-content/             the site's WP_CONTENT_DIR

The result is importable with ``wp-migrate archive`` (format ``wpmigrate``).
"""

import json
import logging
import shlex
from datetime import datetime
from typing import List, Optional

from wp_migrate import __version__
from wp_migrate.archive.adapters.wpmigrate import DATABASE_FILE, METADATA_FILE, build_metadata
from wp_migrate.core.exceptions import BackupError, PreflightError
from wp_migrate.models.config import BackupOptions
from wp_migrate.models.run import RunMode, RunState
from wp_migrate.orchestrator.orchestrator import MigrationOrchestrator
from wp_migrate.orchestrator.push import site_tag
from wp_migrate.utils.runner import WPCLI, RemoteShell

logger = logging.getLogger(__name__)


def remote_path(path: str) -> str:
    """Double-quote ``path`` for a remote shell while keeping ``$HOME`` expandable."""
    escaped = path.replace("\\", "\\\\").replace('"', '\\"').replace("`", "\\`")
    return f'"{escaped}"'


class BackupCreation(MigrationOrchestrator):
    """Create ``wpmigrate-backup-<site>-<STAMP>.zip`` on ``source_host``."""

    mode = RunMode.BACKUP

    def __init__(self, options: BackupOptions, **kwargs):
        super().__init__(options, **kwargs)
        self.options: BackupOptions = options
        self.remote = self.guard.track_remote(
            RemoteShell(options.source_host, self.runner, ssh_opts=options.ssh_opts)
        )
        self.source = WPCLI(self.runner, options.source_root, remote=self.remote, label="source")
        self.site_url = ""
        self.prefix = ""
        self.wordpress_version: Optional[str] = None
        self.content_dir = ""

    @property
    def archive_name(self) -> str:
        return f"wpmigrate-backup-{site_tag(self.site_url)}-{self.run.stamp}.zip"

    @property
    def archive_path(self) -> str:
        return f"{self.options.backup_output_dir.rstrip('/')}/{self.archive_name}"

    async def _execute(self):
        self.advance(RunState.VERIFY)
        self.check_dependencies(["ssh"])
        self.remote.open()
        await self.remote.check_connection()
        await self.verify_installed(self.source, "source")
        for tool in ("zip", "mktemp"):
            result = await self.remote.run(f"command -v {tool} >/dev/null 2>&1")
            if not result.ok:
                raise PreflightError(
                    f"Source server is missing the {tool} command.",
                    missing_tools=[tool],
                    hint=f"Install it on {self.remote.host} (e.g. sudo apt-get install {tool})"
                )
        await self.discover()

        self.advance(RunState.PREVIEW)
        self.show_preview("BACKUP PLAN", self.plan_lines())
        if self.dry_run:
            logger.info("[dry-run] Backup plan complete; nothing was written.")
            return

        self.advance(RunState.BACKUP)
        await self.create_archive()

    async def discover(self):
        result = await self.source.run("option", "get", "home", check=False)
        self.site_url = result.stdout.strip() if result.ok else ""
        self.prefix = await self.source.db_prefix()
        result = await self.source.run("core", "version", check=False)
        self.wordpress_version = result.stdout.strip() if result.ok else None
        self.content_dir = await self.source.content_dir()
        logger.info(f"Source site: {self.site_url or 'unknown'} (prefix {self.prefix})")
        logger.info(f"Source WP_CONTENT_DIR: {self.content_dir}")

    def plan_lines(self) -> List[str]:
        return [
            "Mode: BACKUP (create wp-migrate archive on source)",
            "",
            "Source:",
            f"  Location: {self.remote.host}:{self.options.source_root}",
            f"  URL: {self.site_url or 'unknown'}",
            f"  wp-content: {self.content_dir}",
            "",
            "Archive:",
            f"  {self.archive_path}",
            f"  Contents: {METADATA_FILE}, {DATABASE_FILE}, wp-content/",
        ]

    def metadata(self) -> str:
        return json.dumps(
            build_metadata(
                site_url=self.site_url,
                table_prefix=self.prefix,
                tool_version=__version__,
                created_at=datetime.now().astimezone().isoformat(timespec="seconds"),
                wordpress_version=self.wordpress_version
            ),
            indent=2
        )

    async def _remote(self, command: str, what: str) -> str:
        result = await self.remote.run(command)
        if not result.ok:
            raise BackupError(f"Failed to {what} on {self.remote.host}: {result.stderr.strip()}")
        return result.stdout.strip()

    async def create_archive(self):
        output_dir = remote_path(self.options.backup_output_dir)
        await self._remote(f"mkdir -p {output_dir}", "create the backup directory")
        staging = await self._remote("mktemp -d", "create a staging directory")
        quoted_staging = shlex.quote(staging)
        try:
            logger.info("Exporting database on source...")
            with self.progress("Exporting database"):
                result = await self.source.run(
                    "db", "export", f"{staging}/{DATABASE_FILE}", "--add-drop-table", check=False
                )
            if not result.ok:
                raise BackupError(f"Database export failed on source: {result.stderr.strip()}")

            await self._remote(
                f"printf '%s\\n' {shlex.quote(self.metadata())} > {quoted_staging}/{METADATA_FILE}",
                "write backup metadata"
            )
            await self._remote(
                f"ln -s {shlex.quote(self.content_dir)} {quoted_staging}/wp-content",
                "stage wp-content"
            )

            archive = remote_path(self.archive_path)
            logger.info(f"Creating archive: {self.archive_path}")
            with self.progress("Compressing backup"):
                await self._remote(
                    f"cd {quoted_staging} && zip -r -q {archive} {METADATA_FILE} {DATABASE_FILE} wp-content",
                    "create the zip archive"
                )
        finally:
            await self.remote.run(f"rm -rf {quoted_staging}")

        listing = await self._remote(f"ls -lh {remote_path(self.archive_path)}", "inspect the archive")
        size = listing.split()[4] if len(listing.split()) > 4 else "unknown"
        self.run.notes["archive"] = self.archive_path
        logger.info(f"Backup created: {self.remote.host}:{self.archive_path} ({size})")
        logger.info(
            f"Import it with: scp {self.remote.host}:{self.archive_path} . && "
            f"wp-migrate archive --archive {self.archive_name}"
        )
