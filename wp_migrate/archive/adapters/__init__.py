"""
Backup-tool archive adapters.
"""

from wp_migrate.archive.adapters.base import ArchiveListing, FormatAdapter, list_members
from wp_migrate.archive.adapters.duplicator import DuplicatorAdapter
from wp_migrate.archive.adapters.jetpack import JetpackAdapter
from wp_migrate.archive.adapters.solidbackups import SolidBackupsAdapter, SolidBackupsNextGenAdapter
from wp_migrate.archive.adapters.wpmigrate import WPMigrateAdapter

__all__ = [
    "ArchiveListing",
    "FormatAdapter",
    "list_members",
    "DuplicatorAdapter",
    "JetpackAdapter",
    "SolidBackupsAdapter",
    "SolidBackupsNextGenAdapter",
    "WPMigrateAdapter",
]
