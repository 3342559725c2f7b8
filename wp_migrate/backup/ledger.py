"""
Backup ledger: pre-destructive snapshots and rollback.

Before a run touches the destination it exports the database to a
timestamped gzip dump and renames the wp-content tree aside. Restoring puts
the content tree back first and re-imports the database second, so a
failure half way leaves the content either fully old or visibly missing.
"""

import gzip
import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from wp_migrate.core.exceptions import BackupError, RollbackError
from wp_migrate.models.run import BackupSnapshot
from wp_migrate.utils.logging import LogCategory, LogEntry, LogLevel

logger = logging.getLogger(__name__)

DB_BACKUP_DIR = "db-backups"
DB_BACKUP_PREFIX = "pre-archive-backup_"
DB_BACKUP_SUFFIX = ".sql.gz"
CONTENT_BACKUP_MARKER = ".backup-"


class RollbackStatus(str, Enum):
    """Rollback operation status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class RestoreStep:
    """One side (content or database) of a restore."""

    def __init__(self, step_id: str, description: str):
        self.step_id = step_id
        self.description = description
        self.status = RollbackStatus.PENDING
        self.error: Optional[str] = None

    def start(self):
        self.status = RollbackStatus.IN_PROGRESS

    def complete(self):
        self.status = RollbackStatus.COMPLETED

    def skip(self):
        self.status = RollbackStatus.SKIPPED

    def fail(self, error: str):
        self.status = RollbackStatus.FAILED
        self.error = error


def content_backup_path(content_path: Union[str, Path], stamp: str) -> Path:
    content_path = Path(content_path)
    return content_path.with_name(f"{content_path.name}{CONTENT_BACKUP_MARKER}{stamp}")


class BackupLedger:
    """Create and restore run snapshots for a local WordPress root."""

    def __init__(self, wp, root: Union[str, Path], stamp: str):
        self.wp = wp
        self.root = Path(root)
        self.stamp = stamp
        self._logs: List[LogEntry] = []

    def _log(self, level: LogLevel, message: str, **kwargs):
        """Add a log entry and forward it to the module logger."""
        entry = LogEntry(
            level=level,
            category=LogCategory.BACKUP,
            message=message,
            component="BackupLedger",
            metadata=kwargs
        )
        self._logs.append(entry)
        logger.log(getattr(logging, level.value), message)

    @property
    def logs(self) -> List[LogEntry]:
        return list(self._logs)

    @property
    def backup_dir(self) -> Path:
        return self.root / DB_BACKUP_DIR

    def database_backup_path(self) -> Path:
        return self.backup_dir / f"{DB_BACKUP_PREFIX}{self.stamp}{DB_BACKUP_SUFFIX}"

    async def snapshot_database(self) -> Path:
        """
        Export the current database to ``db-backups/pre-archive-backup_<STAMP>.sql.gz``.

        Raises:
            BackupError: If the export fails or produces an empty dump
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        target = self.database_backup_path()
        raw = target.with_suffix("")  # .sql
        self._log(LogLevel.INFO, f"Backing up database to {target.relative_to(self.root)}")

        result = await self.wp.run("db", "export", "-", check=False, stdout_path=raw)
        if not result.ok or not raw.exists() or raw.stat().st_size == 0:
            if raw.exists():
                raw.unlink()
            raise BackupError(
                f"Database export failed: {result.stderr.strip() or 'empty dump'}",
                hint="Check database credentials in wp-config.php and that MySQL is reachable."
            )

        try:
            with open(raw, "rb") as src, gzip.open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except OSError as e:
            if target.exists():
                target.unlink()
            raise BackupError(f"Failed to compress database backup: {e}")
        finally:
            if raw.exists():
                raw.unlink()

        self._log(LogLevel.INFO, "Database backup complete", path=str(target), size=target.stat().st_size)
        return target

    def snapshot_content(self, content_path: Union[str, Path]) -> Optional[Path]:
        """
        Rename the content tree aside to ``<path>.backup-<STAMP>``.

        Returns:
            The snapshot path, or None if there was nothing to back up

        Raises:
            BackupError: If the rename fails or the target already exists
        """
        content_path = Path(content_path)
        if not content_path.exists():
            self._log(LogLevel.WARNING, f"No content directory at {content_path}; skipping content backup")
            return None

        target = content_backup_path(content_path, self.stamp)
        if target.exists():
            raise BackupError(f"Backup target already exists: {target}")
        try:
            os.rename(content_path, target)
        except OSError as e:
            raise BackupError(f"Failed to move {content_path} aside: {e}")

        self._log(LogLevel.INFO, f"Moved {content_path.name} aside to {target.name}")
        return target

    async def snapshot(
        self,
        content_path: Optional[Union[str, Path]],
        snap: Optional[BackupSnapshot] = None
    ) -> BackupSnapshot:
        """
        Database first, then content.

        ``snap`` is filled in place, so a caller holding it keeps the
        database half even if the content rename fails.
        """
        if snap is None:
            snap = BackupSnapshot(stamp=self.stamp)
        snap.content_origin = Path(content_path) if content_path else None
        snap.database_path = await self.snapshot_database()
        if content_path:
            snap.content_path = self.snapshot_content(content_path)
        return snap

    def find_latest(self, content_path: Optional[Union[str, Path]]) -> BackupSnapshot:
        """
        Locate the newest database dump and content snapshot on disk.

        Timestamps sort lexicographically, so the last name wins.
        """
        db_backup = None
        if self.backup_dir.is_dir():
            dumps = sorted(self.backup_dir.glob(f"{DB_BACKUP_PREFIX}*{DB_BACKUP_SUFFIX}"))
            db_backup = dumps[-1] if dumps else None

        content_backup = None
        origin = Path(content_path) if content_path else None
        if origin is not None and origin.parent.is_dir():
            candidates = sorted(
                p for p in origin.parent.glob(f"{origin.name}{CONTENT_BACKUP_MARKER}*") if p.is_dir()
            )
            content_backup = candidates[-1] if candidates else None

        stamp = ""
        if db_backup is not None:
            stamp = db_backup.name[len(DB_BACKUP_PREFIX):-len(DB_BACKUP_SUFFIX)]
        elif content_backup is not None:
            stamp = content_backup.name.rsplit(CONTENT_BACKUP_MARKER, 1)[-1]

        return BackupSnapshot(
            stamp=stamp,
            database_path=db_backup,
            content_path=content_backup,
            content_origin=origin
        )

    async def restore(self, snapshot: BackupSnapshot) -> Dict[str, Any]:
        """
        Restore content, then database, from ``snapshot``.

        A side without a snapshot is skipped with a log line.

        Returns:
            Mapping of step id to RollbackStatus

        Raises:
            RollbackError: If a present snapshot cannot be restored
        """
        content_step = RestoreStep("content", "Restore wp-content")
        db_step = RestoreStep("database", "Restore database")

        if snapshot.content_path and Path(snapshot.content_path).is_dir() and snapshot.content_origin:
            content_step.start()
            origin = Path(snapshot.content_origin)
            try:
                if origin.is_symlink() or origin.is_file():
                    origin.unlink()
                elif origin.exists():
                    self._log(LogLevel.INFO, f"Removing current {origin.name}")
                    shutil.rmtree(origin)
                os.rename(snapshot.content_path, origin)
            except OSError as e:
                content_step.fail(str(e))
                raise RollbackError(
                    f"Failed to restore {origin} from {snapshot.content_path}: {e}",
                    hint=f"Restore manually:\n  rm -rf {origin}\n  mv {snapshot.content_path} {origin}"
                )
            content_step.complete()
            self._log(LogLevel.INFO, f"Restored {origin.name} from {Path(snapshot.content_path).name}")
        else:
            content_step.skip()
            self._log(LogLevel.INFO, "wp-content: no backup found (skipping)")

        if snapshot.database_path and Path(snapshot.database_path).is_file():
            db_step.start()
            dump = Path(snapshot.database_path)
            self._log(LogLevel.INFO, f"Restoring database from {dump.name}")
            result = await self.wp.run(
                "db", "import", "-",
                check=False,
                stdin_path=dump,
                stdin_gzip=dump.suffix == ".gz"
            )
            if not result.ok:
                db_step.fail(result.stderr.strip())
                raise RollbackError(
                    f"Failed to restore database from {dump}",
                    hint=f"Try importing manually:\n  gunzip -c {dump} | wp db import -"
                )
            db_step.complete()
            self._log(LogLevel.INFO, "Database restored successfully")
        else:
            db_step.skip()
            self._log(LogLevel.INFO, "Database: no backup found (skipping)")

        return {content_step.step_id: content_step.status, db_step.step_id: db_step.status}

    def preserve_copy(self, source: Union[str, Path], destination: Union[str, Path]) -> bool:
        """
        Copy a plugin or theme directory back from a snapshot.

        Failure is logged as a warning; preservation is optional.
        """
        source, destination = Path(source), Path(destination)
        try:
            if destination.exists():
                shutil.rmtree(destination)
            shutil.copytree(source, destination, symlinks=True)
        except OSError as e:
            self._log(LogLevel.WARNING, f"Could not restore {source.name}: {e}")
            return False
        return True

    def describe(self, snapshot: BackupSnapshot) -> List[str]:
        lines = []
        if snapshot.database_path:
            lines.append(f"Database: restore from {Path(snapshot.database_path).name}")
        else:
            lines.append("Database: no backup found (will skip)")
        if snapshot.content_path:
            lines.append(f"wp-content: restore from {Path(snapshot.content_path).name}")
        else:
            lines.append("wp-content: no backup found (will skip)")
        return lines

    def rollback_instructions(self, snapshot: BackupSnapshot) -> List[str]:
        lines = ["To roll back this migration run: wp-migrate rollback"]
        if snapshot.database_path:
            lines.append(f"  or restore the database manually: gunzip -c {snapshot.database_path} | wp db import -")
        if snapshot.content_path and snapshot.content_origin:
            lines.append(
                f"  and wp-content: rm -rf {snapshot.content_origin} && mv {snapshot.content_path} {snapshot.content_origin}"
            )
        return lines
