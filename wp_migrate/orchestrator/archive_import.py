"""
Archive mode: import a backup archive into the local WordPress site.

Runs on the destination WordPress root. The archive is sniffed, matched to
an adapter, extracted into a private temp directory through the path safety
checks, and only then applied: database reset and import, prefix and URL
reconciliation, and a wp-content sync. Everything destructive happens after
a database dump and a rename-aside of wp-content, and a failure after that
point restores both.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from rich.filesize import decimal

from wp_migrate.archive.registry import AdapterRegistry
from wp_migrate.archive.sniffer import describe
from wp_migrate.backup.ledger import BackupLedger, content_backup_path
from wp_migrate.core.exceptions import DatabaseImportError, RollbackError, WPMigrateError
from wp_migrate.database.prefix import TablePrefixReconciler
from wp_migrate.models.config import ArchiveOptions
from wp_migrate.models.run import BackupSnapshot, RunMode, RunState
from wp_migrate.orchestrator.orchestrator import MigrationOrchestrator
from wp_migrate.transfer.rsync import RsyncTransfer
from wp_migrate.utils.runner import WPCLI

logger = logging.getLogger(__name__)

EXTRACT_DIR_PREFIX = "wp-migrate-archive-"


def tree_stats(path: Optional[Path]) -> Tuple[int, int]:
    """Total bytes and file count under ``path``; symlinks are not followed."""
    if path is None or not Path(path).exists():
        return 0, 0
    path = Path(path)
    if path.is_file():
        return path.stat().st_size, 1
    total = count = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for filename in filenames:
            file_path = os.path.join(dirpath, filename)
            if not os.path.islink(file_path):
                total += os.path.getsize(file_path)
                count += 1
    return total, count


def child_dirs(path: Path) -> List[str]:
    """Names of the immediate subdirectories of ``path``, sorted."""
    if not path.is_dir():
        return []
    return sorted(p.name for p in path.iterdir() if p.is_dir())


class ArchiveImport(MigrationOrchestrator):
    """Import ``options.archive`` into the WordPress install at ``options.wp_root``."""

    mode = RunMode.ARCHIVE

    def __init__(self, options: ArchiveOptions, registry: Optional[AdapterRegistry] = None, **kwargs):
        super().__init__(options, **kwargs)
        self.options: ArchiveOptions = options
        self.registry = registry or AdapterRegistry()
        self.wp = WPCLI(self.runner, options.wp_root, label="destination")
        self.ledger = BackupLedger(self.wp, options.wp_root, self.run.stamp)
        self.guard.ledger = self.ledger
        self.reconciler = TablePrefixReconciler(self.wp)
        self.transfer = RsyncTransfer(self.runner)
        self.adapter = None

        self.dest_home = ""
        self.dest_site = ""
        self.dest_prefix = ""
        self.dest_content: Optional[Path] = None
        self.archive_prefix: Optional[str] = None

    async def _execute(self):
        self.advance(RunState.VERIFY)
        await self.verify()
        self.extract()

        self.advance(RunState.PREVIEW)
        self.show_preview("MIGRATION PREVIEW", self.preview_lines())
        self.confirm()

        if self.options.preserve_dest_plugins:
            logger.info("Detecting plugins/themes for preservation...")
            content = self.run.extraction.content_path
            await self.collect_unique_destination_items(
                self.wp, child_dirs(content / "plugins"), child_dirs(content / "themes")
            )

        self.advance(RunState.MAINTENANCE_ON)
        await self.maintenance.enable("destination", self.wp)

        self.advance(RunState.BACKUP)
        await self.backup()

        try:
            if self.options.import_db:
                self.advance(RunState.APPLY_DB)
                await self.reset_database()
                await self.import_database()
                self.advance(RunState.RECONCILE)
                await self.reconcile_prefix()
                await self.reconcile_urls()
            else:
                logger.info("Skipping database import (--no-import-db)")

            self.advance(RunState.APPLY_CONTENT)
            await self.apply_content()
            if self.options.preserve_dest_plugins:
                await self.restore_unique_items()
        except WPMigrateError as e:
            await self.rollback_after_failure(e)
            raise

        await self.flush_redis(self.wp)

        self.advance(RunState.MAINTENANCE_OFF)
        await self.maintenance.disable("destination")
        self.report_completion()

    async def verify(self):
        archive = describe(self.options.archive)
        self.run.archive = archive
        logger.info(f"Archive: {archive.path}")
        await self.verify_installed(self.wp, "destination")

        logger.info("Capturing current destination URLs...")
        self.dest_home = await self.wp.option_get("home")
        self.dest_site = await self.wp.option_get("siteurl")
        logger.info(f"Current site home: {self.dest_home}")
        logger.info(f"Current site URL: {self.dest_site}")

        self.adapter = self.registry.resolve(archive, override=self.options.archive_type)
        self.run.adapter_name = self.adapter.name
        self.registry.check_dependencies(self.adapter, which=self.which)
        self.check_disk_space(archive.path, archive.size, where=tempfile.gettempdir())

        self.dest_prefix = await self.reconciler.configured_prefix()
        self.dest_content = Path(await self.wp.content_dir())
        logger.info(f"Destination WP_CONTENT_DIR: {self.dest_content}")

    def extract(self):
        """Unpack into a private temp dir and locate database and wp-content."""
        extract_dir = self.guard.track_extract_dir(Path(tempfile.mkdtemp(prefix=EXTRACT_DIR_PREFIX)))
        logger.info(f"Extracting {self.adapter.display_name} archive to {extract_dir}")
        with self.progress(f"Extracting {self.run.archive.path.name}"):
            self.adapter.extract(self.run.archive, extract_dir)

        extraction = self.adapter.inspect(extract_dir)
        self.run.extraction = extraction
        logger.info(f"Archive content: {extraction.describe_content()}")

        self.archive_prefix = self.adapter.detect_prefix(extract_dir)
        if self.archive_prefix:
            logger.info(f"Archive reports table prefix: {self.archive_prefix}")

    def preview_lines(self) -> List[str]:
        archive = self.run.archive
        extraction = self.run.extraction
        db_size, _ = tree_stats(extraction.database_path)
        content_size, content_count = tree_stats(extraction.content_path)
        content_name = self.dest_content.name if self.dest_content else "wp-content"

        lines = [
            "Mode: ARCHIVE (import backup to current site)",
            "",
            "Archive:",
            f"  File: {archive.path.name}",
            f"  Format: {self.adapter.display_name}",
            f"  Size: {decimal(archive.size) if archive.size else 'unknown'}",
            "",
            "Archive Contents:",
            f"  Database: {decimal(db_size)}",
            f"  wp-content: {decimal(content_size)} ({content_count} files)",
            f"  {extraction.describe_content()}",
            "",
            "Destination:",
            f"  Location: {self.options.wp_root}",
        ]
        if self.dest_home:
            lines.append(f"  Current URL: {self.dest_home}")
        lines += [
            "",
            "Operations:",
            f"  - Backup current database -> {self.ledger.database_backup_path().relative_to(self.ledger.root)}",
            f"  - Backup current wp-content -> {content_name}.backup-{self.run.stamp}",
        ]
        if self.options.import_db:
            lines.append("  - Import database from archive")
            lines.append("  - Restore original URLs (prevent archive URLs from leaking)")
        else:
            lines.append("  - Skip database import (--no-import-db)")
        lines.append("  - Replace wp-content with archive content")
        if self.options.preserve_dest_plugins:
            lines.append("  - Restore unique destination plugins/themes")
        lines += ["", "Maintenance mode: YES"]
        return lines

    async def backup(self):
        if self.dry_run:
            logger.info(f"[dry-run] Would backup current database to: {self.ledger.database_backup_path()}")
            logger.info(
                f"[dry-run] Would backup current wp-content to: "
                f"{content_backup_path(self.dest_content, self.run.stamp)}"
            )
            return
        self.run.snapshot = BackupSnapshot(stamp=self.run.stamp)
        await self.ledger.snapshot(self.dest_content, self.run.snapshot)

    async def reset_database(self):
        """
        Drop every table so the import starts clean.

        Raises:
            DatabaseImportError: If tables remain after the manual drop
        """
        if self.dry_run:
            logger.info("[dry-run] Would reset database to clean state")
            return

        logger.info("Resetting database to clean state...")
        logger.info(f"  Tables before reset: {len(await self.wp.tables())}")
        result = await self.wp.run("db", "reset", "--yes", check=False)
        if not result.ok:
            logger.warning(f"wp db reset failed (exit code: {result.returncode}); will drop tables manually")

        remaining = await self.wp.tables()
        logger.info(f"  Tables after reset: {len(remaining)}")
        if remaining:
            logger.info(f"Database reset incomplete - {len(remaining)} tables still exist")
            for table in remaining:
                logger.info(f"  Dropping table: {table}")
                dropped = await self.wp.query(f"DROP TABLE IF EXISTS `{table}`", check=False)
                if not dropped.ok:
                    logger.warning(f"Could not drop {table}")
            remaining = await self.wp.tables()
            if remaining:
                raise DatabaseImportError(
                    f"Could not reset database. {len(remaining)} tables remain.",
                    hint="Reset the database manually or check the database user's DROP privilege."
                )
            logger.info("Manual table drop successful")
        logger.info("Database reset complete (all tables dropped)")

    async def import_database(self):
        database = self.run.extraction.database_path
        if self.dry_run:
            logger.info(f"[dry-run] Would import database from: {database.name}")
            return
        logger.info(f"Importing database from: {database.name}")
        with self.progress("Importing database"):
            result = await self.wp.run("db", "import", str(database), check=False)
        if not result.ok:
            raise DatabaseImportError(f"Database import failed: {result.stderr.strip()}")
        logger.info("Database imported successfully")

    async def reconcile_prefix(self):
        if self.dry_run:
            logger.info("[dry-run] Would detect and align table prefix if needed")
            return

        prefix = await self.reconciler.detect_live()
        if prefix is None:
            logger.info(
                f"Could not detect table prefix by scanning tables; "
                f"assuming it matches wp-config.php: {self.dest_prefix}"
            )
            await self.reconciler.verify_assumed(self.dest_prefix)
            logger.info(f"Verified: {self.dest_prefix}options table is accessible")
            return

        if self.archive_prefix and self.archive_prefix != prefix:
            logger.warning(f"Archive metadata reports prefix '{self.archive_prefix}' but tables use '{prefix}'")
        outcome = await self.reconciler.reconcile(prefix)
        if outcome != "unchanged":
            self.run.notes["previous_prefix"] = self.dest_prefix

    async def reconcile_urls(self):
        if self.dry_run:
            logger.info("[dry-run] Would detect imported URLs and replace with destination URLs")
            logger.info(f"[dry-run]   Replace: <imported-home-url> -> {self.dest_home}")
            logger.info(f"[dry-run]   Replace: <imported-site-url> -> {self.dest_site}")
            return

        logger.info("Detecting imported URLs...")
        imported_home = await self.wp.option_get("home")
        imported_site = await self.wp.option_get("siteurl")
        logger.info(f"Imported home URL: {imported_home}")
        logger.info(f"Imported site URL: {imported_site}")

        if imported_home == self.dest_home and imported_site == self.dest_site:
            logger.info("Imported URLs match destination URLs; no replacement needed.")
            return

        self.run.pairs.add_alignment(imported_home, self.dest_home)
        self.run.pairs.add_alignment(imported_site, self.dest_site)
        self.run.pairs.add_host_alignment(imported_home, self.dest_home)
        await self.align_urls(self.wp, self.dest_home, self.dest_site)

    async def apply_content(self):
        source = self.run.extraction.content_path
        if self.dry_run:
            logger.info("[dry-run] Would replace wp-content with archive contents")
            logger.info(f"[dry-run]   Source: {source}")
            logger.info(f"[dry-run]   Destination: {self.dest_content}")
            return

        logger.info("Replacing wp-content with archive contents...")
        logger.info(f"  Source: {source.relative_to(self.run.extraction.extract_dir)}")
        logger.info(f"  Destination: {self.dest_content}")
        if self.options.stellarsites:
            logger.info("StellarSites mode: Preserving destination mu-plugins directory and loader")
        with self.progress("Syncing wp-content"):
            await self.transfer.sync_local(
                str(source), str(self.dest_content), stellarsites=self.options.stellarsites
            )
        logger.info("wp-content synced successfully (object-cache.php excluded to preserve destination caching)")

    async def restore_unique_items(self):
        plugins = self.run.notes.get("unique_plugins", [])
        themes = self.run.notes.get("unique_themes", [])
        if not plugins and not themes:
            return
        logger.info("Restoring destination plugins/themes not in archive...")
        backup = self.run.snapshot.content_path if self.run.snapshot else None
        restored_plugins = []
        for kind, items in (("plugins", plugins), ("themes", themes)):
            for item in items:
                if self.dry_run or backup is None:
                    logger.info(f"[dry-run]   Would restore {kind[:-1]}: {item}")
                    continue
                logger.info(f"    Restoring {kind[:-1]}: {item}")
                if self.ledger.preserve_copy(backup / kind / item, self.dest_content / kind / item):
                    if kind == "plugins":
                        restored_plugins.append(item)
        if not self.dry_run:
            await self.deactivate_plugins(self.wp, restored_plugins)

    async def rollback_after_failure(self, error: Exception):
        """Restore the snapshot after a failure past the backup step."""
        if not self.run.backup_completed:
            logger.error("No backup was taken; the destination cannot be restored automatically")
            return

        logger.error(f"{error}; restoring the pre-run backup")
        try:
            await self.ledger.restore(self.run.snapshot)
        except RollbackError as e:
            logger.error(f"Automatic rollback failed: {e}")
            if e.hint:
                logger.error(e.hint)
            self.run.transition(RunState.ABORTED)
            return

        previous = self.run.notes.get("previous_prefix")
        if previous:
            try:
                await self.reconciler.reconcile(previous)
            except WPMigrateError as e:
                logger.warning(f"Could not restore table prefix '{previous}': {e}")
        self.run.transition(RunState.ROLLED_BACK)
        logger.info("Destination restored to its pre-run state")

    def report_completion(self):
        if self.dry_run:
            logger.info("[dry-run] Archive import preview complete.")
            return
        logger.info("Archive import complete.")
        lines = self.ledger.rollback_instructions(self.run.snapshot)
        previous = self.run.notes.get("previous_prefix")
        if previous:
            lines += ["", "Restore the table prefix in wp-config.php as well:",
                      f"  wp config set table_prefix \"{previous}\" --type=variable"]
        lines += ["", "Backups created:"]
        lines += [f"  {line}" for line in self.ledger.describe(self.run.snapshot)]
        self.show_preview("ROLLBACK INSTRUCTIONS (if needed)", lines)
