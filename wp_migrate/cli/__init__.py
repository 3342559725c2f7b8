"""
CLI module for wp-migrate.

This module provides the command-line interface using Click and Rich.
"""

from wp_migrate.cli.main import main

__all__ = ["main"]
