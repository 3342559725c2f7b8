"""
Safe archive extraction.

Members are streamed out one at a time instead of using extractall, after
the table of contents has passed the pre-extraction scan. Once everything is
on disk the resolved tree is scanned again; if that fails the partial output
is removed so nothing unsafe is left behind.
"""

import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Optional, Union

from wp_migrate.archive.safety import PathSafetyValidator, UnsafeEntry
from wp_migrate.core.exceptions import SecurityValidationError, UserInputError
from wp_migrate.models.run import Archive, ContainerType

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int], None]


def _copy_stream(src, out_path: Path):
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with src, open(out_path, "wb") as dst:
        while True:
            chunk = src.read(CHUNK_SIZE)
            if not chunk:
                break
            dst.write(chunk)


class SafeExtractor:
    """Extract zip and tar archives with pre- and post-extraction path checks."""

    def __init__(self, validator: Optional[PathSafetyValidator] = None):
        self.validator = validator or PathSafetyValidator()

    def extract(
        self,
        archive: Archive,
        dest: Union[str, Path],
        progress: Optional[ProgressCallback] = None
    ) -> Path:
        """
        Extract ``archive`` into ``dest``.

        Args:
            archive: Archive to unpack (zip, tar or tar.gz)
            dest: Existing or new directory to extract into
            progress: Optional callback receiving (members_done, members_total)

        Returns:
            The extraction directory

        Raises:
            SecurityValidationError: If either safety scan fails
            UserInputError: If the container type cannot be extracted
        """
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)

        if archive.container == ContainerType.ZIP:
            self._extract_zip(archive.path, dest, progress)
        elif archive.container in (ContainerType.TAR, ContainerType.TAR_GZ):
            self._extract_tar(archive.path, dest, progress)
        else:
            raise UserInputError(
                f"Cannot extract {archive.path}: unsupported container type {archive.container.value}"
            )

        try:
            self.validator.ensure_safe(dest, stage="post-extraction")
        except SecurityValidationError:
            logger.error(f"Removing unsafe extraction output in {dest}")
            self._purge(dest)
            raise

        logger.info(f"Extracted {archive.path.name} into {dest}")
        return dest

    def _extract_zip(self, path: Path, dest: Path, progress: Optional[ProgressCallback]):
        with zipfile.ZipFile(path) as zf:
            self.validator.ensure_safe(zf, stage="pre-extraction")
            members = zf.infolist()
            total = len(members)
            for index, member in enumerate(members, start=1):
                target = dest / member.filename.replace("\\", "/")
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    _copy_stream(zf.open(member), target)
                if progress:
                    progress(index, total)

    def _extract_tar(self, path: Path, dest: Path, progress: Optional[ProgressCallback]):
        with tarfile.open(path, "r:*") as tf:
            self.validator.ensure_safe(tf, stage="pre-extraction")
            members = tf.getmembers()
            total = len(members)
            links = []
            for index, member in enumerate(members, start=1):
                target = dest / member.name
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                elif member.isfile():
                    src = tf.extractfile(member)
                    if src is not None:
                        _copy_stream(src, target)
                elif member.issym() or member.islnk():
                    links.append(member)
                if progress:
                    progress(index, total)

            # Links last so hardlink sources already exist.
            for member in links:
                target = dest / member.name
                target.parent.mkdir(parents=True, exist_ok=True)
                if target.is_dir() and not target.is_symlink():
                    self._purge(dest)
                    unsafe = UnsafeEntry(member.name, "link would replace an extracted directory")
                    raise SecurityValidationError(
                        f"Refusing to continue: unsafe link found during extraction ({unsafe})",
                        unsafe_entries=[unsafe],
                        hint="The archive may be malicious or corrupted. Obtain a fresh copy from the backup tool."
                    )
                if target.exists() or target.is_symlink():
                    target.unlink()
                if member.issym():
                    os.symlink(member.linkname, target)
                else:
                    source = dest / member.linkname
                    if source.is_file():
                        shutil.copy2(source, target)

    @staticmethod
    def _purge(dest: Path):
        for child in dest.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink()
