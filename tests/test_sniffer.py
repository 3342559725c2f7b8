"""
Tests for content-based archive type detection.
"""

import gzip

import pytest

from conftest import write_tar, write_zip
from wp_migrate.archive.sniffer import describe, sniff
from wp_migrate.core.exceptions import UserInputError
from wp_migrate.models.run import ContainerType


class TestSniff:
    """Test cases for sniff()."""

    def test_zip(self, temp_dir):
        path = write_zip(temp_dir / "backup.tar.gz", {"a.txt": b"a"})
        assert sniff(path) == ContainerType.ZIP

    def test_gzipped_tar_named_zip(self, temp_dir):
        path = write_tar(temp_dir / "jetpack.zip", {"meta.json": b"{}"})
        assert sniff(path) == ContainerType.TAR_GZ

    def test_plain_tar(self, temp_dir):
        path = write_tar(temp_dir / "backup.bin", {"meta.json": b"{}"}, compressed=False)
        assert sniff(path) == ContainerType.TAR

    def test_gzip_containing_pk_bytes_is_not_zip(self, temp_dir):
        path = temp_dir / "dump.sql.gz"
        with gzip.open(path, "wb") as f:
            f.write(b"PK\x03\x04 not really a zip")
        assert sniff(path) == ContainerType.UNKNOWN

    def test_directory(self, temp_dir):
        assert sniff(temp_dir) == ContainerType.DIRECTORY

    def test_garbage(self, temp_dir):
        path = temp_dir / "random.dat"
        path.write_bytes(b"\x00\x01garbage" * 100)
        assert sniff(path) == ContainerType.UNKNOWN

    def test_missing_path(self, temp_dir):
        with pytest.raises(UserInputError):
            sniff(temp_dir / "missing.zip")


class TestDescribe:
    """Test cases for describe()."""

    def test_file_size_recorded(self, temp_dir):
        path = write_zip(temp_dir / "a.zip", {"a.txt": b"hello"})
        archive = describe(path)
        assert archive.container == ContainerType.ZIP
        assert archive.size == path.stat().st_size
        assert not archive.is_directory

    def test_directory_has_zero_size(self, temp_dir):
        archive = describe(temp_dir)
        assert archive.is_directory
        assert archive.size == 0
