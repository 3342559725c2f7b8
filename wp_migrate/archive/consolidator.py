"""
Multi-file SQL dump consolidation.

Jetpack and Solid Backups write one .sql file per table. WP-CLI imports a
single stream, so the files are concatenated in lexicographic order. Table
dependency order is not modelled; the dumps disable foreign key checks, so
any order imports.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from wp_migrate.core.exceptions import DatabaseImportError

logger = logging.getLogger(__name__)

SEPARATOR = b"\n"
CHUNK_SIZE = 1024 * 1024


class SQLConsolidator:
    """Merge per-table SQL dump files into one importable file."""

    def __init__(self, pattern: str = "*.sql"):
        self.pattern = pattern

    def collect(self, sql_dir: Union[str, Path], recursive: bool = False) -> List[Path]:
        """Return matching dump files under ``sql_dir`` in lexicographic order."""
        sql_dir = Path(sql_dir)
        if not sql_dir.is_dir():
            return []
        found = sql_dir.rglob(self.pattern) if recursive else sql_dir.glob(self.pattern)
        files = [p for p in found if p.is_file()]
        return sorted(files, key=lambda p: p.relative_to(sql_dir).as_posix())

    def count(self, sql_dir: Union[str, Path], recursive: bool = False) -> int:
        return len(self.collect(sql_dir, recursive=recursive))

    def consolidate(
        self,
        sql_dir: Union[str, Path],
        output_path: Union[str, Path],
        recursive: bool = False,
        min_files: int = 1
    ) -> Path:
        """
        Concatenate every dump file in ``sql_dir`` into ``output_path``.

        Each file is followed by a single newline. The output is written to a
        temporary file next to the target and renamed into place, so a
        failure never leaves a partial file behind.

        Args:
            sql_dir: Directory holding the per-table dumps
            output_path: Consolidated file to create (replaced if present)
            recursive: Search subdirectories too
            min_files: Fewer matching files than this is an error

        Returns:
            Path of the consolidated file

        Raises:
            DatabaseImportError: If fewer than ``min_files`` (at least one) files are found
        """
        output_path = Path(output_path)
        files = [
            f for f in self.collect(sql_dir, recursive=recursive)
            if f.resolve() != output_path.resolve()
        ]
        required = max(1, min_files)
        if len(files) < required:
            raise DatabaseImportError(
                f"Found {len(files)} SQL file(s) in {sql_dir}; at least {required} required"
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".consolidate-", suffix=".sql", dir=output_path.parent)
        try:
            with os.fdopen(fd, "wb") as out:
                for sql_file in files:
                    with open(sql_file, "rb") as src:
                        while True:
                            chunk = src.read(CHUNK_SIZE)
                            if not chunk:
                                break
                            out.write(chunk)
                    out.write(SEPARATOR)
            os.replace(tmp_name, output_path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise DatabaseImportError(f"Failed to write consolidated SQL file {output_path}: {e}")

        logger.info(f"Consolidated {len(files)} SQL file(s) into {output_path.name}")
        return output_path
