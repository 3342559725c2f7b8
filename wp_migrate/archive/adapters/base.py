"""
Base archive adapter interface and common functionality.
"""

import logging
import re
import shutil
import tarfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from wp_migrate.archive.consolidator import SQLConsolidator
from wp_migrate.archive.extractor import ProgressCallback, SafeExtractor
from wp_migrate.archive.locator import ContentLocator
from wp_migrate.core.exceptions import DatabaseImportError, FormatDetectionError
from wp_migrate.models.run import Archive, ContainerType, ExtractionResult, ValidationOutcome

OPTIONS_SQL_RE = re.compile(r"^(?P<prefix>.+_)options\.sql$")


class ArchiveListing:
    """
    Table of contents of an archive, with implied parent directories.

    Directory entries end in ``/`` so patterns like ``(^|/)data/`` match
    whether or not the archive stored explicit directory records.
    """

    def __init__(self, names: Iterable[str]):
        entries = set()
        for raw in names:
            name = raw.replace("\\", "/")
            while name.startswith("./"):
                name = name[2:]
            if not name or name == ".":
                continue
            entries.add(name)
            parts = name.rstrip("/").split("/")
            for depth in range(1, len(parts)):
                entries.add("/".join(parts[:depth]) + "/")
        self.entries = sorted(entries)

    def contains(self, pattern: str) -> bool:
        return self.first(pattern) is not None

    def first(self, pattern: str) -> Optional[str]:
        regex = re.compile(pattern)
        for entry in self.entries:
            if regex.search(entry):
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)


def list_members(archive: Archive) -> ArchiveListing:
    """Read an archive's table of contents without extracting it."""
    if archive.container == ContainerType.ZIP:
        with zipfile.ZipFile(archive.path) as zf:
            return ArchiveListing(zf.namelist())
    if archive.container in (ContainerType.TAR, ContainerType.TAR_GZ):
        with tarfile.open(archive.path, "r:*") as tf:
            return ArchiveListing(
                m.name + "/" if m.isdir() else m.name for m in tf.getmembers()
            )
    return ArchiveListing([])


def read_member(archive: Archive, name: str) -> Optional[bytes]:
    """Read a single member from a zip archive, or None if it is absent."""
    if archive.container != ContainerType.ZIP:
        return None
    with zipfile.ZipFile(archive.path) as zf:
        try:
            return zf.read(name)
        except KeyError:
            return None


class FormatAdapter(ABC):
    """
    Base class for all backup-tool archive adapters.

    An adapter recognises one backup tool's archive layout, extracts it
    safely, and knows where that tool keeps the database dump and the
    wp-content tree.
    """

    supported_containers: Tuple[ContainerType, ...] = (ContainerType.ZIP,)
    accepts_directory: bool = False
    base_dependencies: List[str] = ["wp", "rsync"]
    extra_dependencies: List[str] = []

    def __init__(
        self,
        locator: Optional[ContentLocator] = None,
        consolidator: Optional[SQLConsolidator] = None,
        extractor: Optional[SafeExtractor] = None
    ):
        self.locator = locator or ContentLocator()
        self.consolidator = consolidator or SQLConsolidator()
        self.extractor = extractor or SafeExtractor()
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the adapter identifier used for --archive-type."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Return the human readable backup tool name."""
        pass

    @property
    def dependencies(self) -> List[str]:
        """External tools a run with this adapter needs."""
        return list(self.base_dependencies) + [
            tool for tool in self.extra_dependencies if tool not in self.base_dependencies
        ]

    def validate(self, archive: Archive) -> ValidationOutcome:
        """
        Check whether ``archive`` looks like this adapter's format.

        Every failed check is collected, not just the first one. Archives are
        only read, never extracted.
        """
        if archive.is_directory:
            if not self.accepts_directory:
                return ValidationOutcome(False, ["Directory input not supported"])
            failed = self._validate_directory(archive.path)
            return ValidationOutcome(not failed, failed)

        if archive.container not in self.supported_containers:
            expected = " or ".join(c.value for c in self.supported_containers)
            return ValidationOutcome(
                False, [f"Not a {expected} archive (found: {archive.container.value})"]
            )

        try:
            listing = list_members(archive)
        except (zipfile.BadZipFile, tarfile.TarError, OSError, EOFError) as e:
            return ValidationOutcome(False, [f"Unreadable archive: {e}"])

        failed = self._validate_listing(archive, listing)
        return ValidationOutcome(not failed, failed)

    @abstractmethod
    def _validate_listing(self, archive: Archive, listing: ArchiveListing) -> List[str]:
        """Return the failed checks for a packed archive (empty when it matches)."""
        pass

    def _validate_directory(self, path: Path) -> List[str]:
        return ["Directory input not supported"]

    def extract(
        self,
        archive: Archive,
        dest: Path,
        progress: Optional[ProgressCallback] = None
    ) -> Path:
        """
        Unpack ``archive`` into ``dest`` through the path safety checks.

        Directory inputs are copied so the original tree is never modified
        by later steps such as SQL consolidation.
        """
        dest = Path(dest)
        if archive.is_directory:
            self.logger.info(f"Copying backup directory {archive.path} into {dest}")
            shutil.copytree(archive.path, dest, symlinks=True, dirs_exist_ok=True)
            self.extractor.validator.ensure_safe(dest, stage="post-copy")
            return dest
        return self.extractor.extract(archive, dest, progress=progress)

    @abstractmethod
    def locate_database(self, extract_dir: Path) -> Path:
        """
        Return the database dump to import.

        Raises:
            DatabaseImportError: If no dump can be found or synthesized
        """
        pass

    def locate_content(self, extract_dir: Path) -> Path:
        """
        Return the wp-content directory to deploy.

        The default is the generic scored search.

        Raises:
            FormatDetectionError: If no wp-content directory exists
        """
        return self._require_content(self.locator.locate_best(extract_dir), extract_dir)

    def detect_prefix(self, extract_dir: Path) -> Optional[str]:
        """Table prefix advertised by the archive itself, if the format has one."""
        return None

    def inspect(self, extract_dir: Path) -> ExtractionResult:
        """Locate database and content and report what the content tree holds."""
        extract_dir = Path(extract_dir)
        database = self.locate_database(extract_dir)
        content = self.locate_content(extract_dir)
        has_plugins, has_themes, has_uploads = self.locator.flags(content)
        return ExtractionResult(
            extract_dir=extract_dir,
            database_path=database,
            content_path=content,
            has_plugins=has_plugins,
            has_themes=has_themes,
            has_uploads=has_uploads
        )

    def _require_content(self, found: Optional[Path], extract_dir: Path) -> Path:
        if found is None:
            raise FormatDetectionError(
                f"{self.display_name}: no wp-content directory found in {extract_dir}"
            )
        self.logger.info(f"Found wp-content: {found}")
        return found

    def _require_database(self, found: Optional[Path], what: str) -> Path:
        if found is None or not found.is_file():
            raise DatabaseImportError(f"{self.display_name}: {what}")
        self.logger.info(f"Found database: {found}")
        return found

    @staticmethod
    def _find_dirs(root: Path, name: str) -> List[Path]:
        """Directories called ``name`` under ``root``, shallowest first."""
        found = [p for p in root.rglob(name) if p.is_dir() and not p.is_symlink()]
        return sorted(found, key=lambda p: (len(p.parts), str(p)))

    @staticmethod
    def _prefix_from_options_file(sql_dir: Path) -> Optional[str]:
        for sql_file in sorted(sql_dir.rglob("*_options.sql")):
            match = OPTIONS_SQL_RE.match(sql_file.name)
            if match:
                return match.group("prefix")
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
