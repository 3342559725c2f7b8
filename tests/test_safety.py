"""
Tests for archive path safety checks and safe extraction.
"""

import io
import os
import tarfile
import zipfile

import pytest

from conftest import write_tar, write_zip
from wp_migrate.archive.extractor import SafeExtractor
from wp_migrate.archive.safety import PathSafetyValidator, check_entry_name
from wp_migrate.archive.sniffer import describe
from wp_migrate.core.exceptions import SecurityValidationError


class TestEntryNames:
    """Test cases for single member name checks."""

    @pytest.mark.parametrize("name", [
        "../etc/passwd",
        "wp-content/../../evil.php",
        "wp-content\\..\\..\\evil.php",
        "/etc/passwd",
        "\\\\server\\share\\file",
        "C:\\Windows\\evil.dll",
        "c:/temp/evil",
    ])
    def test_rejects_unsafe_names(self, name):
        assert check_entry_name(name) is not None

    @pytest.mark.parametrize("name", [
        "wp-content/uploads/John-Smith-Jr..jpg",
        "wp-content/uploads/..hidden",
        "wp-content/plugins/a..b/readme.txt",
        "./wp-content/index.php",
        "",
    ])
    def test_accepts_dotted_names(self, name):
        assert check_entry_name(name) is None

    def test_reason_is_reported(self):
        entry = check_entry_name("../evil.php")
        assert entry.reason == "parent directory traversal"
        assert "../evil.php" in str(entry)


class TestPathSafetyValidator:
    """Test cases for PathSafetyValidator."""

    @pytest.fixture
    def validator(self):
        return PathSafetyValidator()

    def test_zip_slip_detected(self, validator, temp_dir):
        path = write_zip(temp_dir / "evil.zip", {
            "wp-content/index.php": b"<?php\n",
            "../../evil.php": b"<?php system($_GET['c']);\n",
        })
        with zipfile.ZipFile(path) as zf:
            unsafe = validator.is_safe(zf)
        assert [entry.path for entry in unsafe] == ["../../evil.php"]

    def test_clean_zip_passes(self, validator, temp_dir):
        path = write_zip(temp_dir / "ok.zip", {"wp-content/uploads/John-Smith-Jr..jpg": b"x"})
        with zipfile.ZipFile(path) as zf:
            assert validator.is_safe(zf) == []

    def test_tar_symlink_escape_detected(self, validator, temp_dir):
        path = temp_dir / "links.tar"
        with tarfile.open(path, "w") as tf:
            link = tarfile.TarInfo("wp-content/uploads/escape")
            link.type = tarfile.SYMTYPE
            link.linkname = "../../../../etc"
            tf.addfile(link)
            inside = tarfile.TarInfo("wp-content/latest")
            inside.type = tarfile.SYMTYPE
            inside.linkname = "uploads"
            tf.addfile(inside)
        with tarfile.open(path) as tf:
            unsafe = validator.is_safe(tf)
        assert len(unsafe) == 1
        assert unsafe[0].path == "wp-content/uploads/escape"
        assert "symlink" in unsafe[0].reason

    def test_tar_absolute_symlink_detected(self, validator, temp_dir):
        path = temp_dir / "abs.tar"
        with tarfile.open(path, "w") as tf:
            link = tarfile.TarInfo("root-link")
            link.type = tarfile.SYMTYPE
            link.linkname = "/"
            tf.addfile(link)
        with tarfile.open(path) as tf:
            assert len(validator.is_safe(tf)) == 1

    def test_tree_scan_finds_escaping_symlink(self, validator, temp_dir):
        root = temp_dir / "extract"
        (root / "wp-content").mkdir(parents=True)
        os.symlink(str(temp_dir), root / "wp-content" / "outside")
        os.symlink("wp-content", root / "inside")
        unsafe = validator.is_safe(root)
        assert [entry.path for entry in unsafe] == [os.path.join("wp-content", "outside")]

    def test_ensure_safe_raises_with_entries(self, validator, temp_dir):
        path = write_zip(temp_dir / "evil.zip", {"/etc/cron.d/evil": b"* * * * * root sh\n"})
        with zipfile.ZipFile(path) as zf:
            with pytest.raises(SecurityValidationError) as exc_info:
                validator.ensure_safe(zf)
        assert len(exc_info.value.unsafe_entries) == 1


class TestSafeExtractor:
    """Test cases for SafeExtractor."""

    def test_extracts_zip(self, temp_dir):
        path = write_zip(temp_dir / "site.zip", {
            "wp-content/plugins/akismet/akismet.php": b"<?php\n",
            "wp-content/uploads/": b"",
        })
        dest = SafeExtractor().extract(describe(path), temp_dir / "out")
        assert (dest / "wp-content" / "plugins" / "akismet" / "akismet.php").read_bytes() == b"<?php\n"
        assert (dest / "wp-content" / "uploads").is_dir()

    def test_extracts_tar_gz_with_progress(self, temp_dir):
        path = write_tar(temp_dir / "site.tar.gz", {"a.txt": b"a", "b/c.txt": b"c"})
        seen = []
        SafeExtractor().extract(describe(path), temp_dir / "out", progress=lambda done, total: seen.append((done, total)))
        assert seen[-1] == (2, 2)
        assert (temp_dir / "out" / "b" / "c.txt").read_bytes() == b"c"

    def test_nothing_written_for_unsafe_zip(self, temp_dir):
        path = write_zip(temp_dir / "evil.zip", {
            "wp-content/index.php": b"<?php\n",
            "../evil.php": b"<?php\n",
        })
        with pytest.raises(SecurityValidationError):
            SafeExtractor().extract(describe(path), temp_dir / "out")
        assert list((temp_dir / "out").iterdir()) == []
        assert not (temp_dir / "evil.php").exists()

    def test_hardlink_copied_from_archive_member(self, temp_dir):
        path = temp_dir / "hard.tar"
        with tarfile.open(path, "w") as tf:
            data = b"shared"
            info = tarfile.TarInfo("wp-content/a.txt")
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
            link = tarfile.TarInfo("wp-content/b.txt")
            link.type = tarfile.LNKTYPE
            link.linkname = "wp-content/a.txt"
            tf.addfile(link)
        dest = SafeExtractor().extract(describe(path), temp_dir / "out")
        assert (dest / "wp-content" / "b.txt").read_bytes() == b"shared"

    def test_link_over_directory_rejected(self, temp_dir):
        path = temp_dir / "clash.tar"
        with tarfile.open(path, "w") as tf:
            uploads = tarfile.TarInfo("wp-content/uploads")
            uploads.type = tarfile.DIRTYPE
            tf.addfile(uploads)
            link = tarfile.TarInfo("wp-content/uploads")
            link.type = tarfile.SYMTYPE
            link.linkname = "plugins"
            tf.addfile(link)
        with pytest.raises(SecurityValidationError) as exc_info:
            SafeExtractor().extract(describe(path), temp_dir / "out")
        assert exc_info.value.unsafe_entries[0].path == "wp-content/uploads"
        assert list((temp_dir / "out").iterdir()) == []
