"""
Rsync transfer for wp-content trees and database dumps.

This module builds the rsync command lines wp-migrate uses for pushing
wp-content to a remote host, deploying an extracted archive locally, and
copying a single dump file, and runs them through the command runner.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

from wp_migrate.core.exceptions import TransferError
from wp_migrate.utils.runner import CommandRunner, RemoteShell

logger = logging.getLogger(__name__)

# Never overwrite the destination's object cache drop-in.
DEFAULT_EXCLUDES = ["/object-cache.php"]
# Host-managed must-use plugins on StellarSites.
STELLARSITES_EXCLUDES = ["/mu-plugins/", "/mu-plugins.php"]

PUSH_OPTIONS = [
    "-a", "-h", "-z",
    "--info=stats2",
    "--partial",
    "--links",
    "--prune-empty-dirs",
    "--no-perms", "--no-owner", "--no-group",
]

_STAT_PATTERNS = {
    "files_transferred": re.compile(r"Number of regular files transferred:\s*([\d,]+)"),
    "total_size": re.compile(r"Total file size:\s*([\d,.]+\w*)"),
}


@dataclass
class TransferResult:
    """Result of one rsync invocation."""
    success: bool
    source: str
    destination: str
    dry_run: bool = False
    duration: float = 0.0
    stats: dict = field(default_factory=dict)
    itemized: List[str] = field(default_factory=list)
    error_message: Optional[str] = None


class RsyncTransfer:
    """
    Rsync transfer implementation using the shared command runner.

    Remote transfers reuse the run's SSH control socket through ``-e``.
    """

    def __init__(
        self,
        runner: CommandRunner,
        remote: Optional[RemoteShell] = None,
        extra_opts: Optional[List[str]] = None,
        rsync_path: str = "rsync"
    ):
        self.runner = runner
        self.remote = remote
        self.extra_opts = list(extra_opts or [])
        self.rsync_path = rsync_path

    def _shell_args(self) -> List[str]:
        return ["-e", self.remote.rsync_shell()] if self.remote else []

    def _remote_target(self, path: str) -> str:
        return f"{self.remote.host}:{path}" if self.remote else path

    def build_push_command(
        self,
        source: str,
        destination: str,
        dry_run: bool = False,
        stellarsites: bool = False
    ) -> List[str]:
        """Command for pushing a wp-content tree to the remote destination."""
        cmd = [self.rsync_path, *PUSH_OPTIONS]
        if dry_run:
            cmd.extend(["-n", "--itemize-changes"])
        else:
            cmd.append("--info=progress2")
        for pattern in self._excludes(stellarsites):
            cmd.append(f"--exclude={pattern}")
        cmd.extend(self.extra_opts)
        cmd.extend(self._shell_args())
        cmd.extend([_with_slash(source), _with_slash(self._remote_target(destination))])
        return cmd

    def build_local_command(
        self,
        source: str,
        destination: str,
        dry_run: bool = False,
        stellarsites: bool = False
    ) -> List[str]:
        """Command for deploying an extracted wp-content into the local install."""
        cmd = [self.rsync_path, "-a", "--delete"]
        if dry_run:
            cmd.extend(["-n", "--itemize-changes"])
        for pattern in self._excludes(stellarsites):
            cmd.append(f"--exclude={pattern}")
        cmd.extend(self.extra_opts)
        cmd.extend([_with_slash(source), _with_slash(destination)])
        return cmd

    def build_file_command(self, source: str, destination_dir: str) -> List[str]:
        """Command for copying a single file (a DB dump) into a remote directory."""
        cmd = [self.rsync_path, "-a", "-h", "--partial"]
        cmd.extend(self._shell_args())
        cmd.extend([source, _with_slash(self._remote_target(destination_dir))])
        return cmd

    @staticmethod
    def _excludes(stellarsites: bool) -> List[str]:
        patterns = list(DEFAULT_EXCLUDES)
        if stellarsites:
            patterns.extend(STELLARSITES_EXCLUDES)
        return patterns

    async def _execute(self, cmd: List[str], source: str, destination: str, dry_run: bool) -> TransferResult:
        start = time.monotonic()
        result = await self.runner.run(cmd)
        transfer = TransferResult(
            success=result.ok,
            source=source,
            destination=destination,
            dry_run=dry_run,
            duration=time.monotonic() - start,
            stats=self._parse_stats(result.stdout),
            itemized=[line for line in result.stdout.splitlines() if _is_itemized(line)] if dry_run else []
        )
        if not result.ok:
            transfer.error_message = result.stderr.strip() or f"rsync exited with code {result.returncode}"
            raise TransferError(
                f"rsync failed: {source} -> {destination}: {transfer.error_message}",
                details={"returncode": result.returncode}
            )
        logger.info(
            f"rsync {'preview' if dry_run else 'transfer'} complete: {source} -> {destination} "
            f"({transfer.duration:.1f}s)"
        )
        return transfer

    async def push_tree(self, source: str, destination: str, dry_run: bool = False,
                        stellarsites: bool = False) -> TransferResult:
        cmd = self.build_push_command(source, destination, dry_run=dry_run, stellarsites=stellarsites)
        return await self._execute(cmd, source, self._remote_target(destination), dry_run)

    async def sync_local(self, source: str, destination: str, dry_run: bool = False,
                         stellarsites: bool = False) -> TransferResult:
        cmd = self.build_local_command(source, destination, dry_run=dry_run, stellarsites=stellarsites)
        return await self._execute(cmd, source, destination, dry_run)

    async def send_file(self, source: str, destination_dir: str) -> TransferResult:
        cmd = self.build_file_command(source, destination_dir)
        return await self._execute(cmd, source, self._remote_target(destination_dir), False)

    @staticmethod
    def _parse_stats(output: str) -> dict:
        stats = {}
        for key, pattern in _STAT_PATTERNS.items():
            match = pattern.search(output)
            if match:
                stats[key] = match.group(1)
        return stats


def _with_slash(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


def _is_itemized(line: str) -> bool:
    # Itemized lines look like ">f+++++++++ path" or "cd+++++++++ dir/".
    return bool(re.match(r"^[<>ch.*][fdLDS]", line))
