"""
Rollback mode: restore the backups an archive import left behind.
"""

import logging
from pathlib import Path
from typing import Optional

from wp_migrate.backup.ledger import BackupLedger
from wp_migrate.core.exceptions import UserInputError
from wp_migrate.models.config import RollbackOptions
from wp_migrate.models.run import BackupSnapshot, RunMode, RunState
from wp_migrate.orchestrator.orchestrator import MigrationOrchestrator
from wp_migrate.utils.runner import WPCLI

logger = logging.getLogger(__name__)


class RollbackRun(MigrationOrchestrator):
    """Restore wp-content and the database from the latest (or a named) backup."""

    mode = RunMode.ROLLBACK

    def __init__(self, options: RollbackOptions, **kwargs):
        super().__init__(options, **kwargs)
        self.options: RollbackOptions = options
        self.wp = WPCLI(self.runner, options.wp_root, label="local")
        self.ledger = BackupLedger(self.wp, options.wp_root, self.run.stamp)

    async def _execute(self):
        self.advance(RunState.VERIFY)
        self.check_dependencies(["wp"])
        content_dir = await self._content_dir()
        snapshot = self.find_snapshot(content_dir)
        self.run.snapshot = snapshot

        self.advance(RunState.PREVIEW)
        self.show_preview("ROLLBACK PLAN", self.ledger.describe(snapshot))
        if self.dry_run:
            logger.info("[dry-run] Would perform rollback (no changes made)")
            return
        self.console.print("[yellow]WARNING: This will replace your current site with the backup.[/yellow]")
        self.confirm("Are you sure you want to proceed with rollback?", require_word="yes")

        await self.ledger.restore(snapshot)
        self.run.transition(RunState.ROLLED_BACK)
        logger.info("Rollback completed successfully")

    async def _content_dir(self) -> Optional[Path]:
        result = await self.wp.run("eval", "echo WP_CONTENT_DIR;", check=False)
        value = result.stdout.strip() if result.ok else ""
        return Path(value) if value else Path(self.options.wp_root) / "wp-content"

    def find_snapshot(self, content_dir: Optional[Path]) -> BackupSnapshot:
        """
        Pick the snapshot to restore.

        An explicit --rollback-backup replaces the database half of the
        latest snapshot; wp-content still comes from the newest
        ``.backup-<STAMP>`` directory.

        Raises:
            UserInputError: If nothing can be restored
        """
        snapshot = self.ledger.find_latest(content_dir)
        backup = self.options.rollback_backup
        if backup is not None:
            backup = Path(backup)
            if not backup.is_file():
                raise UserInputError(f"Specified backup file not found: {backup}")
            snapshot.database_path = backup
        if snapshot.is_empty:
            raise UserInputError(
                "No backups found to restore.",
                hint=(
                    "Rollback looks for db-backups/pre-archive-backup_*.sql.gz and "
                    "wp-content.backup-* next to wp-content.\n"
                    "Pass a database dump explicitly with --rollback-backup PATH."
                )
            )
        return snapshot
