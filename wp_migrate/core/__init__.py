"""
Core module for wp-migrate.

This module contains the exception hierarchy used throughout the
application.
"""

from wp_migrate.core.exceptions import (
    WPMigrateError,
    UserInputError,
    UserDeclined,
    PreflightError,
    FormatDetectionError,
    SecurityValidationError,
    ReconciliationError,
    TransferError,
    DatabaseImportError,
    BackupError,
    RollbackError,
    CommandError,
)

__all__ = [
    "WPMigrateError",
    "UserInputError",
    "UserDeclined",
    "PreflightError",
    "FormatDetectionError",
    "SecurityValidationError",
    "ReconciliationError",
    "TransferError",
    "DatabaseImportError",
    "BackupError",
    "RollbackError",
    "CommandError",
]
