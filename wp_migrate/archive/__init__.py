"""
Archive adapter subsystem.

Format detection, safe extraction, wp-content location and multi-file SQL
consolidation for third-party WordPress backup archives.
"""

from wp_migrate.archive.consolidator import SQLConsolidator
from wp_migrate.archive.extractor import SafeExtractor
from wp_migrate.archive.locator import ContentLocator
from wp_migrate.archive.registry import AdapterRegistry
from wp_migrate.archive.safety import PathSafetyValidator, UnsafeEntry
from wp_migrate.archive.sniffer import describe, sniff

__all__ = [
    "SQLConsolidator",
    "SafeExtractor",
    "ContentLocator",
    "AdapterRegistry",
    "PathSafetyValidator",
    "UnsafeEntry",
    "describe",
    "sniff",
]
