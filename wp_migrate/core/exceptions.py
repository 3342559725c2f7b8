"""
Custom exceptions for wp-migrate.

Every error raised on purpose by the tool derives from WPMigrateError so the
CLI can report it uniformly. The subclasses mirror the phases a run goes
through: bad input, failed preflight, unknown archive format, unsafe
archive, prefix or URL reconciliation, transfer and import failures.
"""

from typing import Any, Dict, List, Optional


class WPMigrateError(Exception):
    """Base exception class for wp-migrate errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.hint = hint


class UserInputError(WPMigrateError):
    """Raised for bad flag combinations or missing required arguments."""
    pass


class UserDeclined(WPMigrateError):
    """Raised when the operator answers no at a confirmation prompt."""

    def __init__(self, message: str = "Migration cancelled by user."):
        super().__init__(message)


class PreflightError(WPMigrateError):
    """Raised when a check that runs before any destructive step fails."""

    def __init__(
        self,
        message: str,
        missing_tools: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.missing_tools = missing_tools or []


class FormatDetectionError(WPMigrateError):
    """Raised when no archive adapter recognises the input."""

    def __init__(self, message: str, failures: Optional[List[Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.failures = failures or []

    def __str__(self) -> str:
        if not self.failures:
            return self.message
        lines = [self.message]
        lines.extend(f"  - {failure}" for failure in self.failures)
        return "\n".join(lines)


class SecurityValidationError(WPMigrateError):
    """Raised when an archive contains paths that would escape the extraction root."""

    def __init__(self, message: str, unsafe_entries: Optional[List[Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.unsafe_entries = unsafe_entries or []


class ReconciliationError(WPMigrateError):
    """Raised when a table prefix or URL update cannot be verified."""
    pass


class TransferError(WPMigrateError):
    """Raised when file transfer fails."""
    pass


class DatabaseImportError(WPMigrateError):
    """Raised when a database dump cannot be located, consolidated or imported."""
    pass


# Name used by the error taxonomy; shadows the builtin only inside this module.
ImportError = DatabaseImportError


class BackupError(WPMigrateError):
    """Raised when backup operations fail."""
    pass


class RollbackError(WPMigrateError):
    """Raised when rollback operations fail."""
    pass


class CommandError(WPMigrateError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        command: List[str],
        returncode: int,
        stderr: str = "",
        message: Optional[str] = None
    ):
        rendered = " ".join(command)
        super().__init__(
            message or f"Command failed with exit code {returncode}: {rendered}",
            details={"command": command, "returncode": returncode, "stderr": stderr}
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
