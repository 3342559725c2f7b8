"""
Exit handling for a migration run.

CleanupGuard wraps the whole run in ``async with``. Whatever happens inside,
on the way out it restores the in-flight snapshot if the run died while
replacing the database, releases maintenance mode, closes SSH control
sockets, and decides whether the extraction directory is kept.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from wp_migrate.backup.ledger import BackupLedger
from wp_migrate.core.exceptions import RollbackError, UserDeclined
from wp_migrate.models.run import MigrationRun, RunState
from wp_migrate.orchestrator.maintenance import MaintenanceManager
from wp_migrate.utils.runner import RemoteShell

logger = logging.getLogger(__name__)


class CleanupGuard:
    """Async context manager registered once per run."""

    def __init__(
        self,
        run: MigrationRun,
        maintenance: MaintenanceManager,
        ledger: Optional[BackupLedger] = None
    ):
        self.run = run
        self.maintenance = maintenance
        self.ledger = ledger
        self.remotes: List[RemoteShell] = []
        self.extract_dir: Optional[Path] = None
        self.emergency_restored = False

    def track_remote(self, remote: RemoteShell) -> RemoteShell:
        self.remotes.append(remote)
        return remote

    def track_extract_dir(self, path: Path) -> Path:
        self.extract_dir = Path(path)
        return self.extract_dir

    async def __aenter__(self) -> "CleanupGuard":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        abnormal = exc_type is not None and not issubclass(exc_type, UserDeclined)

        if abnormal and self.run.state == RunState.APPLY_DB:
            await self._emergency_restore()
        if abnormal and not self.run.is_terminal:
            self.run.transition(RunState.ABORTED)

        await self.maintenance.disable_all()

        for remote in self.remotes:
            try:
                await remote.close()
            except OSError as e:
                logger.warning(f"Failed to close SSH control socket for {remote.host}: {e}")

        self._finish_extract_dir(abnormal)
        # Never suppress the exception.
        return False

    async def _emergency_restore(self):
        if self.ledger is None or not self.run.backup_completed:
            logger.error("Interrupted during database import and no backup is available to restore")
            return

        logger.warning("Run interrupted during database import; restoring the pre-run snapshot")
        try:
            await self.ledger.restore(self.run.snapshot)
        except RollbackError as e:
            logger.error(f"Emergency restore failed: {e}")
            if e.hint:
                logger.error(e.hint)
            return
        self.emergency_restored = True
        self.run.transition(RunState.ROLLED_BACK)
        logger.info("Emergency restore complete")

    def _finish_extract_dir(self, abnormal: bool):
        path = self.extract_dir
        if path is None or not path.exists():
            return
        if abnormal:
            logger.info(f"Keeping extracted archive for inspection: {path}")
            return
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Removed temporary directory {path}")
