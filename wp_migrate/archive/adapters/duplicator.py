"""
Duplicator archive adapter.

Duplicator packages are zip files with the site files at the top level, a
``dup-installer/`` directory and a single database dump named
``dup-installer/dup-database__<hash>.sql``.
"""

from pathlib import Path
from typing import List

from wp_migrate.archive.adapters.base import ArchiveListing, FormatAdapter
from wp_migrate.models.run import Archive


class DuplicatorAdapter(FormatAdapter):
    """Adapter for Duplicator / Duplicator Pro zip packages."""

    @property
    def name(self) -> str:
        return "duplicator"

    @property
    def display_name(self) -> str:
        return "Duplicator"

    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        # installer.php only counts at the top of the package; plugins ship
        # files with that name too.
        if listing.contains(r"^([^/]+/)?installer\.php$"):
            return []
        if listing.contains(r"(^|/)dup-installer/dup-database__"):
            return []
        return ["Missing installer.php and dup-installer/dup-database__ pattern"]

    def locate_database(self, extract_dir: Path) -> Path:
        matches = sorted(
            p for p in Path(extract_dir).rglob("dup-database__*.sql")
            if p.parent.name == "dup-installer" and p.is_file()
        )
        return self._require_database(
            matches[0] if matches else None,
            "no dup-installer/dup-database__*.sql found"
        )
