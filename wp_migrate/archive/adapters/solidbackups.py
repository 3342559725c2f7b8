"""
Solid Backups (formerly BackupBuddy) adapters.

Two layouts exist. The legacy BackupBuddy zip is a full site tree with
the per-table dumps under ``wp-content/uploads/backupbuddy_temp/<backup id>/``
next to ``importbuddy.php`` or ``backupbuddy_dat.php``. The NextGen layout
splits the backup into ``data/`` (per-table dumps), ``files/`` (the site
tree, with multisite subsites under ``files/subdomains/``) and an optional
``meta/``.
"""

from pathlib import Path
from typing import List, Optional

from wp_migrate.archive.adapters.base import ArchiveListing, FormatAdapter
from wp_migrate.models.run import Archive

MIN_SQL_FILES = 5
TEMP_DIR_NAME = "backupbuddy_temp"
LEGACY_CONSOLIDATED_NAME = "solidbackups-database-consolidated.sql"
NEXTGEN_CONSOLIDATED_NAME = "solidbackups-nextgen-database-consolidated.sql"


class SolidBackupsAdapter(FormatAdapter):
    """Adapter for legacy Solid Backups / BackupBuddy full-site zips."""

    accepts_directory = True

    @property
    def name(self) -> str:
        return "solidbackups"

    @property
    def display_name(self) -> str:
        return "Solid Backups"

    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        if listing.contains(rf"(^|/){TEMP_DIR_NAME}/.*importbuddy\.php$"):
            return []
        if listing.contains(rf"(^|/){TEMP_DIR_NAME}/.*backupbuddy_dat\.php$"):
            return []
        return [f"Missing {TEMP_DIR_NAME}/*/importbuddy.php and backupbuddy_dat.php signature"]

    def _validate_directory(self, path: Path) -> List[str]:
        temp_dir = path / "wp-content" / "uploads" / TEMP_DIR_NAME
        if not temp_dir.is_dir():
            return [f"Missing wp-content/uploads/{TEMP_DIR_NAME}/ directory"]
        for signature in ("importbuddy.php", "backupbuddy_dat.php"):
            # Signature files sit at most two levels below the temp dir.
            for depth_glob in (signature, f"*/{signature}"):
                if any(p.is_file() for p in temp_dir.glob(depth_glob)):
                    return []
        return ["Missing importbuddy.php or backupbuddy_dat.php signature"]

    def _find_backup_id_dir(self, extract_dir: Path) -> Optional[Path]:
        for temp_dir in self._find_dirs(Path(extract_dir), TEMP_DIR_NAME):
            if temp_dir.parent.name != "uploads":
                continue
            for candidate in sorted(p for p in temp_dir.iterdir() if p.is_dir()):
                count = self.consolidator.count(candidate)
                if count >= MIN_SQL_FILES:
                    return candidate
                self.logger.debug(f"Skipping {candidate}: only {count} SQL file(s)")
        return None

    def locate_database(self, extract_dir: Path) -> Path:
        id_dir = self._find_backup_id_dir(extract_dir)
        if id_dir is None:
            return self._require_database(
                None, f"no {TEMP_DIR_NAME}/<id>/ directory with at least {MIN_SQL_FILES} table dumps"
            )
        output = Path(extract_dir) / LEGACY_CONSOLIDATED_NAME
        self.consolidator.consolidate(id_dir, output, min_files=MIN_SQL_FILES)
        return self._require_database(output, "consolidation produced no file")

    def locate_content(self, extract_dir: Path) -> Path:
        direct = Path(extract_dir) / "wp-content"
        if direct.is_dir():
            return self._require_content(direct, extract_dir)
        return super().locate_content(extract_dir)


class SolidBackupsNextGenAdapter(FormatAdapter):
    """Adapter for Solid Backups NextGen archives (data/ + files/ layout)."""

    accepts_directory = True

    @property
    def name(self) -> str:
        return "solidbackups_nextgen"

    @property
    def display_name(self) -> str:
        return "Solid Backups NextGen"

    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        failed = []
        if not listing.contains(r"(^|/)data/$"):
            failed.append("Missing data/ directory")
        if not listing.contains(r"(^|/)files/$"):
            failed.append("Missing files/ directory")
        if not listing.contains(r"(^|/)data/[^/]*_options\.sql$"):
            failed.append("Missing database files in data/ directory (expected: *_options.sql)")
        return failed

    def _validate_directory(self, path: Path) -> List[str]:
        failed = []
        data_dir = path / "data"
        if not data_dir.is_dir():
            failed.append("Missing data/ directory")
        elif self.consolidator.count(data_dir) < MIN_SQL_FILES:
            failed.append(f"data/ has fewer than {MIN_SQL_FILES} SQL files")
        if not (path / "files").is_dir():
            failed.append("Missing files/ directory")
        if not failed and (path / "meta").is_dir():
            self.logger.debug("Found meta/ directory with backup metadata")
        return failed

    def _find_data_dir(self, extract_dir: Path) -> Optional[Path]:
        for data_dir in self._find_dirs(Path(extract_dir), "data"):
            if self.consolidator.count(data_dir) >= MIN_SQL_FILES:
                return data_dir
        return None

    def locate_database(self, extract_dir: Path) -> Path:
        data_dir = self._find_data_dir(extract_dir)
        if data_dir is None:
            return self._require_database(
                None, f"no data/ directory with at least {MIN_SQL_FILES} table dumps"
            )
        output = Path(extract_dir) / NEXTGEN_CONSOLIDATED_NAME
        self.consolidator.consolidate(data_dir, output, min_files=MIN_SQL_FILES)
        return self._require_database(output, "consolidation produced no file")

    def locate_content(self, extract_dir: Path) -> Path:
        """
        Check each files/ directory, shallowest first.

        A direct ``files/wp-content`` that scores above zero wins; otherwise
        the best wp-content among multisite ``files/subdomains/**`` trees.
        The generic scored search is the last resort.
        """
        files_dirs = self._find_dirs(Path(extract_dir), "files")
        for files_dir in files_dirs:
            direct = files_dir / "wp-content"
            if direct.is_dir() and self.locator.score(direct) > 0:
                return self._require_content(direct, extract_dir)

            subdomains = files_dir / "subdomains"
            if subdomains.is_dir():
                roots = sorted(p for p in subdomains.iterdir() if p.is_dir())
                nested = self.locator.locate_best_nested(roots)
                if nested is not None:
                    return self._require_content(nested, extract_dir)

        for files_dir in files_dirs:
            found = self.locator.locate_best(files_dir)
            if found is not None:
                return self._require_content(found, extract_dir)
        return super().locate_content(extract_dir)

    def detect_prefix(self, extract_dir: Path) -> Optional[str]:
        data_dir = self._find_data_dir(extract_dir)
        return self._prefix_from_options_file(data_dir) if data_dir else None
