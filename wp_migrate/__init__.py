"""
wp-migrate

Move a WordPress database and wp-content tree between hosts, or restore one
from a third-party backup archive, with a backup-then-rollback safety net.
"""

__version__ = "2.10.0"

from wp_migrate.models.run import MigrationRun, RunMode, RunState

__all__ = [
    "MigrationRun",
    "RunMode",
    "RunState",
]
