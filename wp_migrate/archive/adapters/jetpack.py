"""
Jetpack Backup (VaultPress) archive adapter.

Jetpack downloads are zip or tar.gz files, or an already unpacked
directory, holding ``meta.json``, a ``sql/`` directory with one dump per table
and ``wp-content/`` at the top level.
"""

from pathlib import Path
from typing import List, Optional

from wp_migrate.archive.adapters.base import ArchiveListing, FormatAdapter
from wp_migrate.models.run import Archive, ContainerType

MIN_SQL_FILES = 5
CONSOLIDATED_NAME = "jetpack-database-consolidated.sql"


class JetpackAdapter(FormatAdapter):
    """Adapter for Jetpack Backup downloads."""

    supported_containers = (ContainerType.ZIP, ContainerType.TAR_GZ, ContainerType.TAR)
    accepts_directory = True

    @property
    def name(self) -> str:
        return "jetpack"

    @property
    def display_name(self) -> str:
        return "Jetpack Backup"

    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        failed = []
        if not listing.contains(r"(^|/)meta\.json$"):
            failed.append("Missing meta.json")
        if not listing.contains(r"(^|/)sql/[^/]*_options\.sql$"):
            failed.append("Missing sql/*_options.sql table dump")
        return failed

    def _validate_directory(self, path: Path) -> List[str]:
        failed = []
        if not (path / "sql").is_dir():
            failed.append("Missing sql/ directory")
        if not (path / "meta.json").is_file():
            failed.append("Missing meta.json")
        if not (path / "wp-content").is_dir():
            failed.append("Missing wp-content/ directory")
        return failed

    def _find_sql_dir(self, extract_dir: Path) -> Optional[Path]:
        for sql_dir in self._find_dirs(Path(extract_dir), "sql"):
            count = self.consolidator.count(sql_dir, recursive=True)
            if count >= MIN_SQL_FILES:
                return sql_dir
            self.logger.debug(f"Skipping {sql_dir}: only {count} SQL file(s)")
        return None

    def locate_database(self, extract_dir: Path) -> Path:
        sql_dir = self._find_sql_dir(extract_dir)
        if sql_dir is None:
            return self._require_database(
                None, f"no sql/ directory with at least {MIN_SQL_FILES} table dumps"
            )
        output = Path(extract_dir) / CONSOLIDATED_NAME
        self.consolidator.consolidate(sql_dir, output, recursive=True, min_files=MIN_SQL_FILES)
        return self._require_database(output, "consolidation produced no file")

    def locate_content(self, extract_dir: Path) -> Path:
        direct = Path(extract_dir) / "wp-content"
        if direct.is_dir():
            return self._require_content(direct, extract_dir)
        return super().locate_content(extract_dir)

    def detect_prefix(self, extract_dir: Path) -> Optional[str]:
        """Read the table prefix from the ``<prefix>options.sql`` dump name."""
        sql_dir = self._find_sql_dir(extract_dir)
        if sql_dir is None:
            return None
        return self._prefix_from_options_file(sql_dir)
