"""
Native wp-migrate backup adapter.

Archives written by ``wp-migrate backup`` are zips with
``wpmigrate-backup.json`` (which must carry ``format_version``),
``database.sql`` and ``wp-content/`` at the top level.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from wp_migrate.archive.adapters.base import ArchiveListing, FormatAdapter, read_member
from wp_migrate.models.run import Archive

METADATA_FILE = "wpmigrate-backup.json"
DATABASE_FILE = "database.sql"
FORMAT_VERSION = "1.0"


def build_metadata(
    site_url: str,
    table_prefix: str,
    tool_version: str,
    created_at: str,
    wordpress_version: Optional[str] = None
) -> Dict[str, Any]:
    """Metadata document stored as ``wpmigrate-backup.json``."""
    return {
        "format_version": FORMAT_VERSION,
        "created_at": created_at,
        "site_url": site_url,
        "table_prefix": table_prefix,
        "wordpress_version": wordpress_version,
        "wp_migrate_version": tool_version,
        "database_file": DATABASE_FILE,
        "content_dir": "wp-content",
    }


class WPMigrateAdapter(FormatAdapter):
    """Adapter for archives produced by wp-migrate's own backup mode."""

    @property
    def name(self) -> str:
        return "wpmigrate"

    @property
    def display_name(self) -> str:
        return "wp-migrate Backup"

    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        if METADATA_FILE not in listing.entries:
            return [f"Missing {METADATA_FILE} signature file"]
        raw = read_member(archive, METADATA_FILE)
        try:
            metadata = json.loads(raw or b"")
        except ValueError:
            return ["Invalid or missing format_version in metadata"]
        if not isinstance(metadata, dict) or not metadata.get("format_version"):
            return ["Invalid or missing format_version in metadata"]
        return []

    def read_metadata(self, extract_dir: Path) -> Dict[str, Any]:
        path = Path(extract_dir) / METADATA_FILE
        if not path.is_file():
            return {}
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def locate_database(self, extract_dir: Path) -> Path:
        return self._require_database(
            Path(extract_dir) / DATABASE_FILE, f"{DATABASE_FILE} missing from archive"
        )

    def detect_prefix(self, extract_dir: Path) -> Optional[str]:
        return self.read_metadata(extract_dir).get("table_prefix") or None
