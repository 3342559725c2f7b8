"""
Backup and rollback for wp-migrate runs.
"""

from wp_migrate.backup.ledger import BackupLedger, RollbackStatus, content_backup_path

__all__ = [
    "BackupLedger",
    "RollbackStatus",
    "content_backup_path",
]
