"""
Run orchestration for wp-migrate: one orchestrator per mode, plus the
maintenance control and the cleanup guard they share.
"""

from wp_migrate.orchestrator.archive_import import ArchiveImport
from wp_migrate.orchestrator.backup_creation import BackupCreation
from wp_migrate.orchestrator.cleanup import CleanupGuard
from wp_migrate.orchestrator.maintenance import MaintenanceManager
from wp_migrate.orchestrator.orchestrator import MigrationOrchestrator
from wp_migrate.orchestrator.push import PushMigration
from wp_migrate.orchestrator.rollback import RollbackRun
from wp_migrate.utils.runner import WPCLI, CommandResult, CommandRunner, RemoteShell

__all__ = [
    "ArchiveImport",
    "BackupCreation",
    "CleanupGuard",
    "MaintenanceManager",
    "MigrationOrchestrator",
    "PushMigration",
    "RollbackRun",
    "WPCLI",
    "CommandResult",
    "CommandRunner",
    "RemoteShell",
]
