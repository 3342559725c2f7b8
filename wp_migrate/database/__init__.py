"""
Database-side reconciliation: URL alignment and table prefix handling.
"""

from wp_migrate.database.prefix import TablePrefixReconciler, detect_prefix
from wp_migrate.database.url_alignment import SearchReplacePair, URLAlignmentEngine, variants_for

__all__ = [
    "TablePrefixReconciler",
    "detect_prefix",
    "SearchReplacePair",
    "URLAlignmentEngine",
    "variants_for",
]
