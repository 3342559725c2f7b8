"""
Data models for wp-migrate.
"""

from wp_migrate.models.config import (
    ArchiveOptions,
    BackupOptions,
    CommonOptions,
    PushOptions,
    RollbackOptions,
)
from wp_migrate.models.run import (
    AdapterFailure,
    Archive,
    BackupSnapshot,
    ContainerType,
    ExtractionResult,
    MigrationRun,
    RunMode,
    RunState,
    ValidationOutcome,
)

__all__ = [
    "ArchiveOptions",
    "BackupOptions",
    "CommonOptions",
    "PushOptions",
    "RollbackOptions",
    "AdapterFailure",
    "Archive",
    "BackupSnapshot",
    "ContainerType",
    "ExtractionResult",
    "MigrationRun",
    "RunMode",
    "RunState",
    "ValidationOutcome",
]
