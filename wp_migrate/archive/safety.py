"""
Path safety checks for archive extraction.

Two stages guard every extraction: a scan of the archive's table of contents
before anything is written, and a scan of the resolved real path of every
extracted node afterwards. The second stage catches symlink tricks the first
cannot see. Any unsafe entry is fatal for the run.
"""

import logging
import os
import re
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from wp_migrate.core.exceptions import SecurityValidationError

logger = logging.getLogger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


@dataclass
class UnsafeEntry:
    """An archive member or extracted path that failed a safety check."""
    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path} ({self.reason})"


def check_entry_name(name: str) -> Optional[UnsafeEntry]:
    """
    Check a single archive member name.

    Rejects absolute paths (POSIX, UNC-style and drive-letter) and any
    segment that is exactly ``..`` under either separator. Names that only
    contain dots, such as ``John-Smith-Jr..jpg``, are fine.
    """
    if not name:
        return None
    if name.startswith("/") or name.startswith("\\"):
        return UnsafeEntry(name, "absolute path")
    if _DRIVE_RE.match(name):
        return UnsafeEntry(name, "absolute path (drive letter)")
    segments = re.split(r"[\\/]", name)
    if any(segment == ".." for segment in segments):
        return UnsafeEntry(name, "parent directory traversal")
    return None


def _link_escapes(member_name: str, link_target: str, hardlink: bool = False) -> bool:
    """Return True if a link stored at ``member_name`` pointing at ``link_target`` leaves the root."""
    if link_target.startswith("/") or link_target.startswith("\\") or _DRIVE_RE.match(link_target):
        return True
    # Hardlink targets are archive-relative, symlink targets member-relative.
    base = "" if hardlink else os.path.dirname(member_name.replace("\\", "/"))
    resolved = os.path.normpath(os.path.join("/__root__", base, link_target.replace("\\", "/")))
    return not (resolved == "/__root__" or resolved.startswith("/__root__/"))


class PathSafetyValidator:
    """Pre- and post-extraction path checks."""

    def scan_names(self, names: Iterable[str]) -> List[UnsafeEntry]:
        unsafe = []
        for name in names:
            problem = check_entry_name(name)
            if problem:
                unsafe.append(problem)
        return unsafe

    def scan_zip(self, archive: zipfile.ZipFile) -> List[UnsafeEntry]:
        """Scan a zip file's table of contents."""
        return self.scan_names(info.filename for info in archive.infolist())

    def scan_tar(self, archive: tarfile.TarFile) -> List[UnsafeEntry]:
        """
        Scan a tar file's table of contents.

        Symlink and hardlink members are also rejected when their target is
        absolute or climbs out of the extraction root.
        """
        unsafe = []
        for member in archive.getmembers():
            problem = check_entry_name(member.name)
            if problem:
                unsafe.append(problem)
                continue
            if member.issym() or member.islnk():
                if _link_escapes(member.name, member.linkname, hardlink=member.islnk()):
                    kind = "symlink" if member.issym() else "hardlink"
                    unsafe.append(UnsafeEntry(member.name, f"{kind} target outside root: {member.linkname}"))
            elif not (member.isfile() or member.isdir()):
                unsafe.append(UnsafeEntry(member.name, "special file"))
        return unsafe

    def scan_tree(self, root: Union[str, Path]) -> List[UnsafeEntry]:
        """
        Scan an extracted tree for nodes whose real path is outside ``root``.

        Symlinks are resolved but not followed while walking, so a link to
        ``/`` is reported once instead of walking the host filesystem.
        """
        root_real = os.path.realpath(root)
        prefix = root_real.rstrip(os.sep) + os.sep
        unsafe = []
        for dirpath, dirnames, filenames in os.walk(root_real, followlinks=False):
            for name in dirnames + filenames:
                node = os.path.join(dirpath, name)
                real = os.path.realpath(node)
                if real != root_real and not real.startswith(prefix):
                    rel = os.path.relpath(node, root_real)
                    unsafe.append(UnsafeEntry(rel, f"resolves outside extraction root: {real}"))
        return unsafe

    def is_safe(self, target: Union[str, Path, zipfile.ZipFile, tarfile.TarFile]) -> List[UnsafeEntry]:
        """
        Check an open archive or an extracted directory.

        Returns:
            List of unsafe entries; empty when the target is safe
        """
        if isinstance(target, zipfile.ZipFile):
            return self.scan_zip(target)
        if isinstance(target, tarfile.TarFile):
            return self.scan_tar(target)
        return self.scan_tree(target)

    def ensure_safe(self, target, stage: str = "archive"):
        """
        Raise if ``target`` has unsafe entries.

        Raises:
            SecurityValidationError: Listing every unsafe entry found
        """
        unsafe = self.is_safe(target)
        if unsafe:
            for entry in unsafe:
                logger.error(f"Unsafe {stage} entry: {entry}")
            raise SecurityValidationError(
                f"Refusing to continue: {len(unsafe)} unsafe path(s) found during {stage} scan "
                f"(first: {unsafe[0]})",
                unsafe_entries=unsafe,
                hint="The archive may be malicious or corrupted. Obtain a fresh copy from the backup tool."
            )
