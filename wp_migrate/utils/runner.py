"""
External command execution.

Everything wp-migrate does to a WordPress installation goes through WP-CLI,
run either locally or on a remote host over SSH. SSH connections are
multiplexed through a single ControlMaster socket that is opened once per
run and torn down by the cleanup guard.
"""

import asyncio
import gzip
import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from wp_migrate.core.exceptions import CommandError, DatabaseImportError, PreflightError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class CommandResult:
    """Outcome of one external command."""
    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self, message: Optional[str] = None) -> "CommandResult":
        if not self.ok:
            raise CommandError(self.command, self.returncode, self.stderr.strip(), message=message)
        return self


class CommandRunner:
    """Run commands with asyncio subprocesses, one at a time."""

    def __init__(self, trace: bool = False):
        self.trace = trace
        self.history: List[List[str]] = []

    async def run(
        self,
        command: Sequence[str],
        cwd: Optional[Union[str, Path]] = None,
        stdin_path: Optional[Union[str, Path]] = None,
        stdin_gzip: bool = False,
        stdout_path: Optional[Union[str, Path]] = None,
        check: bool = False
    ) -> CommandResult:
        """
        Execute ``command`` and wait for it.

        Args:
            command: Program and arguments
            cwd: Working directory
            stdin_path: File to feed on stdin
            stdin_gzip: Decompress ``stdin_path`` with gzip while feeding it
            stdout_path: Write stdout to this file instead of capturing it
            check: Raise CommandError on a non-zero exit

        Returns:
            CommandResult with decoded output
        """
        command = [str(part) for part in command]
        self.history.append(command)
        if self.trace:
            logger.info(f"+ {shlex.join(command)}")
        else:
            logger.debug(f"Running: {shlex.join(command)}")

        stdout_file = open(stdout_path, "wb") if stdout_path else None
        plain_stdin = open(stdin_path, "rb") if stdin_path and not stdin_gzip else None
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(cwd) if cwd else None,
                    stdin=asyncio.subprocess.PIPE if stdin_gzip else (plain_stdin or asyncio.subprocess.DEVNULL),
                    stdout=stdout_file or asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE
                )
            except FileNotFoundError:
                raise PreflightError(f"Command not found: {command[0]}", missing_tools=[command[0]])

            if stdin_gzip:
                stdout, stderr = await self._feed_gzip(process, Path(stdin_path))
            else:
                stdout, stderr = await process.communicate()
        finally:
            if stdout_file:
                stdout_file.close()
            if plain_stdin:
                plain_stdin.close()

        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace")
        )
        if not result.ok:
            logger.debug(f"Exit {result.returncode}: {result.stderr.strip()}")
        if check:
            result.check()
        return result

    @staticmethod
    async def _feed_gzip(process, path: Path):
        stdout_task = asyncio.ensure_future(process.stdout.read()) if process.stdout else None
        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            with gzip.open(path, "rb") as src:
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    process.stdin.write(chunk)
                    await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Process closed stdin early")
        finally:
            process.stdin.close()
        await process.wait()
        stdout = await stdout_task if stdout_task else b""
        stderr = await stderr_task
        return stdout, stderr


class RemoteShell:
    """
    SSH access to one host through a multiplexed control socket.

    ``open()`` creates a private directory for the ControlPath socket;
    ``close()`` asks the master to exit and removes the directory. Closing is
    idempotent so the cleanup guard can always call it.
    """

    def __init__(self, host: str, runner: CommandRunner, ssh_opts: Optional[List[str]] = None):
        self.host = host
        self.runner = runner
        self.ssh_opts = list(ssh_opts or [])
        self.control_dir: Optional[Path] = None
        self.control_path: Optional[Path] = None

    @property
    def active(self) -> bool:
        return self.control_path is not None

    def open(self) -> "RemoteShell":
        if not self.active:
            self.control_dir = Path(tempfile.mkdtemp(prefix="wp-migrate-ssh-"))
            os.chmod(self.control_dir, 0o700)
            self.control_path = self.control_dir / "ctl"
        return self

    def ssh_args(self) -> List[str]:
        """ssh program and options, without the host."""
        args = ["ssh", "-oStrictHostKeyChecking=accept-new"]
        args.extend(opt if opt.startswith("-") else f"-o{opt}" for opt in self.ssh_opts)
        if self.control_path:
            args.extend([
                "-oControlMaster=auto",
                "-oControlPersist=600",
                f"-oControlPath={self.control_path}",
            ])
        return args

    def rsync_shell(self) -> str:
        """Value for rsync's ``-e`` so transfers reuse the control socket."""
        return shlex.join(self.ssh_args())

    async def run(self, remote_command: str, check: bool = False, **kwargs) -> CommandResult:
        return await self.runner.run(self.ssh_args() + [self.host, remote_command], check=check, **kwargs)

    async def check_connection(self):
        """
        Raises:
            PreflightError: If the host cannot be reached
        """
        result = await self.run("true")
        if not result.ok:
            raise PreflightError(
                f"Cannot connect to {self.host} over SSH",
                hint=f"Test manually with: ssh {self.host} true\n{result.stderr.strip()}"
            )

    async def close(self):
        if not self.active:
            return
        result = await self.runner.run(["ssh", "-S", str(self.control_path), "-O", "exit", self.host])
        if not result.ok:
            logger.debug(f"SSH control master for {self.host} was not running")
        shutil.rmtree(self.control_dir, ignore_errors=True)
        self.control_dir = None
        self.control_path = None


class WPCLI:
    """
    WP-CLI bound to one WordPress root, local or remote.

    Remote invocations run inside ``bash -lc`` so the login environment
    (PATH, PHP version selectors) applies, with every argument shell-quoted.
    """

    def __init__(
        self,
        runner: CommandRunner,
        root: Union[str, Path],
        remote: Optional[RemoteShell] = None,
        label: str = "local"
    ):
        self.runner = runner
        self.root = str(root)
        self.remote = remote
        self.label = label

    @property
    def is_remote(self) -> bool:
        return self.remote is not None

    def build(self, args: Sequence[str], full: bool = False) -> List[str]:
        """Return the local command line for ``wp args``."""
        return ["wp", f"--path={self.root}", *[str(a) for a in args]]

    def build_remote(self, args: Sequence[str], full: bool = False) -> str:
        """Return the remote shell command for ``wp args``."""
        wp = ["wp"] if full else ["wp", "--skip-plugins", "--skip-themes"]
        inner = f"cd {shlex.quote(self.root)} && {shlex.join(wp + [str(a) for a in args])}"
        return f"bash -lc {shlex.quote(inner)}"

    async def run(self, *args, check: bool = True, full: bool = False, **kwargs) -> CommandResult:
        if self.remote:
            return await self.remote.run(self.build_remote(args, full=full), check=check, **kwargs)
        return await self.runner.run(self.build(args, full=full), cwd=self.root, check=check, **kwargs)

    async def output(self, *args, **kwargs) -> str:
        result = await self.run(*args, **kwargs)
        return result.stdout.strip()

    async def succeeds(self, *args, **kwargs) -> bool:
        result = await self.run(*args, check=False, **kwargs)
        return result.ok

    async def shell(self, command: str, check: bool = True) -> CommandResult:
        """Run a plain shell command in the WordPress root (remote only)."""
        if not self.remote:
            raise ValueError("shell() is only available for remote installations")
        inner = f"cd {shlex.quote(self.root)} && {command}"
        return await self.remote.run(f"bash -lc {shlex.quote(inner)}", check=check)

    async def is_installed(self, network: bool = False) -> bool:
        args = ["core", "is-installed"] + (["--network"] if network else [])
        return await self.succeeds(*args)

    async def db_prefix(self) -> str:
        return await self.output("db", "prefix")

    async def option_get(self, name: str) -> str:
        return await self.output("option", "get", name)

    async def option_update(self, name: str, value: str) -> CommandResult:
        return await self.run("option", "update", name, value)

    async def content_dir(self) -> str:
        return await self.output("eval", "echo WP_CONTENT_DIR;")

    async def query(self, sql: str, check: bool = True) -> CommandResult:
        return await self.run("db", "query", sql, "--skip-column-names", check=check)

    async def tables(self) -> List[str]:
        """
        List the tables in the WordPress database.

        Raises:
            DatabaseImportError: If the database cannot be queried
        """
        result = await self.query("SHOW TABLES", check=False)
        if not result.ok:
            raise DatabaseImportError(
                f"Could not list database tables (exit code: {result.returncode})",
                details={"returncode": result.returncode, "stderr": result.stderr.strip()},
                hint="Check the database credentials in wp-config.php and that the server is reachable."
            )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def has_command(self, command: str) -> bool:
        return await self.succeeds("cli", "has-command", command, full=True)

    async def plugin_names(self) -> List[str]:
        result = await self.run("plugin", "list", "--field=name", check=False)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()] if result.ok else []

    async def theme_names(self) -> List[str]:
        result = await self.run("theme", "list", "--field=name", check=False)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()] if result.ok else []

    def __repr__(self) -> str:
        where = f"{self.remote.host}:" if self.remote else ""
        return f"<WPCLI {self.label} {where}{self.root}>"
