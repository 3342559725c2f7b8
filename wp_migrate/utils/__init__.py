"""
Utility helpers for wp-migrate: logging setup and external command execution.
"""

from wp_migrate.utils.logging import get_logger, make_stamp, run_log_path, setup_logging
from wp_migrate.utils.runner import WPCLI, CommandResult, CommandRunner, RemoteShell

__all__ = [
    "get_logger",
    "make_stamp",
    "run_log_path",
    "setup_logging",
    "WPCLI",
    "CommandResult",
    "CommandRunner",
    "RemoteShell",
]
