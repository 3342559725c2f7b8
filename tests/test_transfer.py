"""
Tests for the rsync transfer wrapper.
"""

import pytest

from conftest import FakeRunner
from wp_migrate.core.exceptions import TransferError
from wp_migrate.transfer.rsync import RsyncTransfer
from wp_migrate.utils.runner import RemoteShell


class TestRsyncCommands:
    """Test cases for rsync command construction."""

    def setup_method(self):
        self.runner = FakeRunner()
        self.remote = RemoteShell("deploy@dest.example.com", self.runner, ssh_opts=["Port=2222"])

    def test_local_command(self):
        transfer = RsyncTransfer(self.runner)
        cmd = transfer.build_local_command("/tmp/x/wp-content", "/var/www/wp-content")
        assert cmd == [
            "rsync", "-a", "--delete", "--exclude=/object-cache.php",
            "/tmp/x/wp-content/", "/var/www/wp-content/",
        ]

    def test_local_dry_run_and_stellarsites(self):
        transfer = RsyncTransfer(self.runner)
        cmd = transfer.build_local_command("/a", "/b", dry_run=True, stellarsites=True)
        assert cmd[3:5] == ["-n", "--itemize-changes"]
        assert "--exclude=/mu-plugins/" in cmd
        assert "--exclude=/mu-plugins.php" in cmd

    def test_push_command_uses_remote_shell(self):
        transfer = RsyncTransfer(self.runner, remote=self.remote, extra_opts=["--bwlimit=1000"])
        cmd = transfer.build_push_command("/srv/site/wp-content", "/var/www/wp-content")
        assert cmd[-1] == "deploy@dest.example.com:/var/www/wp-content/"
        assert cmd[-2] == "/srv/site/wp-content/"
        assert "--bwlimit=1000" in cmd
        shell = cmd[cmd.index("-e") + 1]
        assert shell.startswith("ssh ")
        assert "-oPort=2222" in shell
        assert "--info=progress2" in cmd
        assert "-n" not in cmd

    def test_push_dry_run_has_no_progress(self):
        transfer = RsyncTransfer(self.runner, remote=self.remote)
        cmd = transfer.build_push_command("/a", "/b", dry_run=True)
        assert "-n" in cmd
        assert "--info=progress2" not in cmd

    def test_file_command(self):
        transfer = RsyncTransfer(self.runner, remote=self.remote)
        cmd = transfer.build_file_command("/tmp/db.sql.gz", "/var/www/db-imports")
        assert cmd[-2:] == ["/tmp/db.sql.gz", "deploy@dest.example.com:/var/www/db-imports/"]


class TestRsyncExecution:
    """Test cases for running transfers."""

    @pytest.mark.asyncio
    async def test_sync_local_copies_tree(self, temp_dir):
        source = temp_dir / "extract" / "wp-content"
        (source / "plugins" / "akismet").mkdir(parents=True)
        (source / "plugins" / "akismet" / "akismet.php").write_text("<?php\n")
        destination = temp_dir / "site" / "wp-content"

        result = await RsyncTransfer(FakeRunner()).sync_local(str(source), str(destination))
        assert result.success
        assert (destination / "plugins" / "akismet" / "akismet.php").exists()

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, temp_dir):
        source = temp_dir / "src"
        source.mkdir()
        (source / "file.txt").write_text("x")
        destination = temp_dir / "dst"

        result = await RsyncTransfer(FakeRunner()).sync_local(str(source), str(destination), dry_run=True)
        assert result.dry_run
        assert not destination.exists()

    @pytest.mark.asyncio
    async def test_failure_raises_transfer_error(self, temp_dir):
        runner = FakeRunner()
        runner.rsync_fails = True
        with pytest.raises(TransferError) as exc_info:
            await RsyncTransfer(runner).sync_local(str(temp_dir), str(temp_dir / "out"))
        assert exc_info.value.details["returncode"] == 23

    def test_parse_stats(self):
        output = (
            "Number of files: 10\n"
            "Number of regular files transferred: 1,204\n"
            "Total file size: 52.31M bytes\n"
        )
        assert RsyncTransfer._parse_stats(output) == {"files_transferred": "1,204", "total_size": "52.31M"}
