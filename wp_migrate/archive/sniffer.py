"""
Archive type detection from file content.

The extension of a backup file is not trusted: Jetpack hands out ``.tar.gz``
files named ``.zip`` and users rename things. The sniffer reads magic bytes
instead, checking gzip before zip because a compressed stream can contain a
``PK`` byte sequence that a naive substring check would take for a zip.
"""

import gzip
import logging
import tarfile
from pathlib import Path
from typing import Union

from wp_migrate.core.exceptions import UserInputError
from wp_migrate.models.run import Archive, ContainerType

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
TAR_MAGIC_OFFSET = 257
TAR_MAGIC = b"ustar"


def _is_gzipped_tar(path: Path) -> bool:
    try:
        with gzip.open(path, "rb") as stream:
            header = stream.read(TAR_MAGIC_OFFSET + len(TAR_MAGIC))
    except (OSError, EOFError):
        return False
    if header[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + len(TAR_MAGIC)] == TAR_MAGIC:
        return True
    # Old-style (v7) tar headers have no ustar magic; let tarfile decide.
    try:
        with tarfile.open(path, "r:gz") as archive:
            return archive.next() is not None
    except (tarfile.TarError, OSError, EOFError):
        return False


def sniff(path: Union[str, Path]) -> ContainerType:
    """
    Classify ``path`` as zip, tar, compressed tar, directory or unknown.

    Raises:
        UserInputError: If the path does not exist
    """
    path = Path(path)
    if path.is_dir():
        return ContainerType.DIRECTORY
    if not path.is_file():
        raise UserInputError(f"Archive not found: {path}")

    with open(path, "rb") as f:
        head = f.read(TAR_MAGIC_OFFSET + len(TAR_MAGIC))

    if head.startswith(GZIP_MAGIC):
        if _is_gzipped_tar(path):
            return ContainerType.TAR_GZ
        logger.debug(f"{path.name}: gzip stream that is not a tar archive")
        return ContainerType.UNKNOWN

    if head[:4] in ZIP_MAGICS:
        return ContainerType.ZIP

    if head[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + len(TAR_MAGIC)] == TAR_MAGIC:
        return ContainerType.TAR

    return ContainerType.UNKNOWN


def describe(path: Union[str, Path]) -> Archive:
    """Build an Archive record for ``path``."""
    path = Path(path)
    container = sniff(path)
    size = 0 if container == ContainerType.DIRECTORY else path.stat().st_size
    logger.debug(f"Archive {path} detected as {container.value} ({size} bytes)")
    return Archive(path=path, container=container, size=size)
