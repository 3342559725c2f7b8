"""
Logging setup for wp-migrate.

Console output goes through Rich; every non dry-run gets a timestamped log
file under ./logs so an operator can reconstruct what happened after the
fact. Structured JSON output is available for automation.
"""

import json
import logging
import logging.handlers
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "wp_migrate"
LOG_DIR = "logs"
STAMP_FORMAT = "%Y%m%d-%H%M%S"

# Log file prefix per run mode.
LOG_FILE_PREFIXES = {
    "push": "migrate-wpcontent-push",
    "archive": "migrate-archive-import",
    "rollback": "migrate-rollback",
    "backup": "migrate-backup",
}


class LogLevel(str, Enum):
    """Log levels for structured logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(str, Enum):
    """Categories for structured logging."""
    SYSTEM = "system"
    ARCHIVE = "archive"
    SECURITY = "security"
    DATABASE = "database"
    TRANSFER = "transfer"
    BACKUP = "backup"
    MAINTENANCE = "maintenance"
    COMMAND = "command"


@dataclass
class LogEntry:
    """Structured log entry with metadata."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    category: LogCategory = LogCategory.SYSTEM
    message: str = ""
    component: Optional[str] = None
    state: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredFormatter(logging.Formatter):
    """Formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = getattr(record, 'log_entry', None)
        if isinstance(log_entry, LogEntry):
            return log_entry.to_json()

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created),
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            component=record.name,
            metadata={
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }
        )
        return log_entry.to_json()


def make_stamp(now: Optional[datetime] = None) -> str:
    """Return the run timestamp used in backup and log file names."""
    return (now or datetime.now()).strftime(STAMP_FORMAT)


def run_log_path(mode: str, stamp: str, base_dir: Union[str, Path] = ".") -> Path:
    """Return the log file path for a run of the given mode."""
    prefix = LOG_FILE_PREFIXES.get(mode, f"migrate-{mode}")
    return Path(base_dir) / LOG_DIR / f"{prefix}-{stamp}.log"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    rich_console: bool = True,
    structured_logging: bool = False,
    max_log_size: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
    console: Optional[Console] = None
) -> logging.Logger:
    """
    Set up logging for a wp-migrate run.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path; parent directories are created
        rich_console: Whether to use the Rich console handler
        structured_logging: Whether to emit JSON lines instead of text
        max_log_size: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
        console: Rich console to attach the handler to

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()
    logger.propagate = False

    if rich_console and not structured_logging:
        console_handler: logging.Handler = RichHandler(
            console=console or Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        if structured_logging:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_log_size,
            backupCount=backup_count,
            encoding="utf-8"
        )
        if structured_logging:
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
