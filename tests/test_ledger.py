"""
Tests for the backup ledger: snapshots and rollback.
"""

import gzip
import hashlib
import os

import pytest

from conftest import FakeRunner, gzip_file
from wp_migrate.backup.ledger import BackupLedger, RollbackStatus, content_backup_path
from wp_migrate.core.exceptions import BackupError, RollbackError
from wp_migrate.models.run import BackupSnapshot
from wp_migrate.utils.runner import WPCLI, CommandResult

STAMP = "20240301-101500"


def tree_digest(root):
    digest = hashlib.sha256()
    for dirpath, dirnames, filenames in sorted(os.walk(root)):
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            digest.update(os.path.relpath(path, root).encode())
            with open(path, "rb") as f:
                digest.update(f.read())
    return digest.hexdigest()


class TestBackupLedger:
    """Test cases for BackupLedger."""

    @pytest.fixture
    def ledger(self, fake_runner, wp_root):
        return BackupLedger(WPCLI(fake_runner, wp_root), wp_root, STAMP)

    @pytest.mark.asyncio
    async def test_snapshot_database_and_content(self, ledger, fake_wordpress, wp_root):
        snapshot = await ledger.snapshot(wp_root / "wp-content")

        assert snapshot.database_path == wp_root / "db-backups" / f"pre-archive-backup_{STAMP}.sql.gz"
        with gzip.open(snapshot.database_path, "rb") as f:
            assert f.read() == fake_wordpress.dump
        assert not (wp_root / "db-backups" / f"pre-archive-backup_{STAMP}.sql").exists()
        assert snapshot.content_path == wp_root / f"wp-content.backup-{STAMP}"
        assert not (wp_root / "wp-content").exists()

    @pytest.mark.asyncio
    async def test_snapshot_is_filled_in_place(self, ledger, wp_root):
        snap = BackupSnapshot(stamp=STAMP)
        (wp_root / f"wp-content.backup-{STAMP}").mkdir()
        with pytest.raises(BackupError):
            await ledger.snapshot(wp_root / "wp-content", snap)
        assert snap.database_path is not None
        assert snap.content_path is None

    @pytest.mark.asyncio
    async def test_failed_export_leaves_no_file(self, ledger, fake_wordpress, wp_root):
        fake_wordpress.dump = b""
        with pytest.raises(BackupError):
            await ledger.snapshot_database()
        assert list((wp_root / "db-backups").iterdir()) == []

    @pytest.mark.asyncio
    async def test_restore_is_byte_identical(self, ledger, fake_wordpress, fake_runner, wp_root):
        before = tree_digest(wp_root / "wp-content")
        snapshot = await ledger.snapshot(wp_root / "wp-content")

        # Simulate the import replacing wp-content.
        (wp_root / "wp-content" / "plugins").mkdir(parents=True)
        (wp_root / "wp-content" / "plugins" / "incoming.php").write_text("<?php\n")

        statuses = await ledger.restore(snapshot)
        assert statuses == {"content": RollbackStatus.COMPLETED, "database": RollbackStatus.COMPLETED}
        assert tree_digest(wp_root / "wp-content") == before
        assert not snapshot.content_path.exists()
        assert fake_wordpress.imports == [str(snapshot.database_path)]

        import_call = [c for c in fake_runner.wp_calls() if c[:2] == ["db", "import"]][-1]
        assert import_call == ["db", "import", "-"]

    @pytest.mark.asyncio
    async def test_restore_order_content_before_database(self, ledger, wp_root):
        order = []
        snapshot = await ledger.snapshot(wp_root / "wp-content")
        original_run = ledger.wp.run

        async def recording_run(*args, **kwargs):
            if args[:2] == ("db", "import"):
                order.append(("database", (wp_root / "wp-content").exists()))
            return await original_run(*args, **kwargs)

        ledger.wp.run = recording_run
        await ledger.restore(snapshot)
        assert order == [("database", True)]

    @pytest.mark.asyncio
    async def test_missing_sides_are_skipped(self, ledger, wp_root):
        statuses = await ledger.restore(BackupSnapshot(stamp=STAMP))
        assert statuses == {"content": RollbackStatus.SKIPPED, "database": RollbackStatus.SKIPPED}
        assert (wp_root / "wp-content").exists()

    @pytest.mark.asyncio
    async def test_failed_database_restore(self, ledger, fake_wordpress, wp_root):
        dump = gzip_file(wp_root / "db-backups" / f"pre-archive-backup_{STAMP}.sql.gz", b"-- dump\n")

        async def failing_run(*args, **kwargs):
            return CommandResult(command=list(args), returncode=1, stderr="access denied")

        ledger.wp.run = failing_run
        with pytest.raises(RollbackError) as exc_info:
            await ledger.restore(BackupSnapshot(stamp=STAMP, database_path=dump))
        assert "gunzip -c" in exc_info.value.hint

    def test_find_latest(self, ledger, wp_root):
        for stamp in ("20240101-000000", "20240301-000000", "20240201-000000"):
            gzip_file(wp_root / "db-backups" / f"pre-archive-backup_{stamp}.sql.gz", b"x")
            content_backup_path(wp_root / "wp-content", stamp).mkdir()

        snapshot = ledger.find_latest(wp_root / "wp-content")
        assert snapshot.stamp == "20240301-000000"
        assert snapshot.database_path.name == "pre-archive-backup_20240301-000000.sql.gz"
        assert snapshot.content_path.name == "wp-content.backup-20240301-000000"
        assert snapshot.content_origin == wp_root / "wp-content"

    def test_find_latest_empty(self, ledger, wp_root):
        assert ledger.find_latest(wp_root / "wp-content").is_empty

    def test_preserve_copy(self, ledger, temp_dir):
        source = temp_dir / "backup" / "plugins" / "dest-only"
        source.mkdir(parents=True)
        (source / "dest-only.php").write_text("<?php\n")
        target = temp_dir / "live" / "plugins" / "dest-only"
        target.parent.mkdir(parents=True)
        assert ledger.preserve_copy(source, target)
        assert (target / "dest-only.php").exists()
        assert not ledger.preserve_copy(temp_dir / "missing", temp_dir / "live" / "plugins" / "x")

    def test_describe_and_instructions(self, ledger, wp_root):
        snapshot = BackupSnapshot(
            stamp=STAMP,
            database_path=wp_root / "db-backups" / "pre-archive-backup_x.sql.gz",
            content_path=wp_root / "wp-content.backup-x",
            content_origin=wp_root / "wp-content"
        )
        assert ledger.describe(snapshot) == [
            "Database: restore from pre-archive-backup_x.sql.gz",
            "wp-content: restore from wp-content.backup-x",
        ]
        instructions = ledger.rollback_instructions(snapshot)
        assert instructions[0] == "To roll back this migration run: wp-migrate rollback"
        assert len(instructions) == 3
