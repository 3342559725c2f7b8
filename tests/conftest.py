"""
Pytest configuration and fixtures for the wp-migrate tests.

Provides temporary WordPress roots, on-the-fly archive builders for every
supported backup layout, and a FakeRunner that stands in for the command
runner. The runner answers ``wp`` invocations from a small in-memory
WordPress model, performs ``rsync`` copies with shutil and hands ``ssh``
commands to a per-test handler.
"""

import gzip
import io
import json
import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from rich.console import Console

from wp_migrate.utils.runner import CommandResult

CORE_TABLES = ["wp_options", "wp_posts", "wp_users", "wp_postmeta"]


class FakeWordPress:
    """In-memory WordPress install answering WP-CLI commands."""

    def __init__(
        self,
        root: Path,
        home: str = "https://new.example.com",
        prefix: str = "wp_",
        tables: Optional[List[str]] = None,
        imported_tables: Optional[List[str]] = None,
        imported_home: str = "https://old.example.com",
        plugins: Optional[List[str]] = None,
        themes: Optional[List[str]] = None
    ):
        self.root = Path(root)
        self.options = {"home": home, "siteurl": home}
        self.prefix = prefix
        self.tables = list(tables if tables is not None else CORE_TABLES)
        self.imported_tables = list(imported_tables if imported_tables is not None else CORE_TABLES)
        self.imported_home = imported_home
        self.plugins = list(plugins or [])
        self.themes = list(themes or [])
        self.installed = True
        self.multisite = False
        self.dump = b"-- MySQL dump\nCREATE TABLE wp_options (option_id int);\n"
        self.reset_leaves: List[str] = []
        self.import_error: Optional[BaseException] = None
        self.import_fails = False
        self.imports: List[str] = []
        self.search_replaces: List[Tuple[str, str]] = []
        self.maintenance: List[str] = []
        # Command heads such as ("option", "update") that exit non-zero.
        self.failing: List[Tuple[str, ...]] = []

    @property
    def content_dir(self) -> Path:
        return self.root / "wp-content"

    def handle(
        self,
        args: List[str],
        stdin_path: Optional[Path] = None,
        stdout_path: Optional[Path] = None
    ) -> Tuple[int, str]:
        head = args[:2]
        if tuple(head) in self.failing:
            return 1, ""
        if head == ["core", "is-installed"]:
            if "--network" in args:
                return (0 if self.multisite else 1), ""
            return (0 if self.installed else 1), ""
        if head == ["option", "get"]:
            return 0, self.options.get(args[2], "") + "\n"
        if head == ["option", "update"]:
            self.options[args[2]] = args[3]
            return 0, ""
        if head == ["db", "prefix"]:
            return 0, self.prefix + "\n"
        if args[0] == "eval":
            return 0, str(self.content_dir)
        if head == ["db", "export"]:
            if stdout_path:
                Path(stdout_path).write_bytes(self.dump)
            return 0, ""
        if head == ["db", "import"]:
            return self._import(args[2], stdin_path)
        if head == ["db", "reset"]:
            self.tables = list(self.reset_leaves)
            return 0, ""
        if head == ["db", "query"]:
            return self._query(args[2])
        if args[0] == "maintenance-mode":
            self.maintenance.append(args[1])
            return 0, ""
        if args[0] == "search-replace":
            self.search_replaces.append((args[1], args[2]))
            return 0, ""
        if head == ["cli", "has-command"]:
            return 1, ""
        if head == ["plugin", "list"]:
            return 0, "\n".join(self.plugins)
        if head == ["theme", "list"]:
            return 0, "\n".join(self.themes)
        if head == ["config", "set"]:
            self.prefix = args[3]
            return 0, ""
        return 0, ""

    def _import(self, source: str, stdin_path: Optional[Path]) -> Tuple[int, str]:
        if stdin_path is not None:
            self.imports.append(str(stdin_path))
            return 0, ""
        if self.import_error is not None:
            raise self.import_error
        if self.import_fails:
            return 1, ""
        self.imports.append(source)
        self.tables = list(self.imported_tables)
        self.options = {"home": self.imported_home, "siteurl": self.imported_home}
        return 0, ""

    def _query(self, sql: str) -> Tuple[int, str]:
        if sql == "SHOW TABLES":
            return 0, "\n".join(self.tables)
        if sql.startswith("DROP TABLE IF EXISTS"):
            table = sql.split("`")[1]
            if table in self.tables and table not in self.reset_leaves:
                self.tables.remove(table)
            return 0, ""
        if sql.startswith("SELECT COUNT(*)"):
            table = sql.split("`")[1]
            return (0, "1") if table in self.tables else (1, "")
        return 0, ""


class FakeRunner:
    """
    Drop-in for CommandRunner.

    Records every command in ``history`` like the real runner does.
    """

    def __init__(
        self,
        wordpress: Optional[FakeWordPress] = None,
        remote: Optional[Callable[[str], Tuple[int, str]]] = None
    ):
        self.wordpress = wordpress
        self.remote = remote or (lambda command: (0, ""))
        self.trace = False
        self.history: List[List[str]] = []
        self.rsync_fails = False

    async def run(
        self,
        command,
        cwd=None,
        stdin_path=None,
        stdin_gzip=False,
        stdout_path=None,
        check=False
    ) -> CommandResult:
        command = [str(part) for part in command]
        self.history.append(command)

        if command[0] == "wp":
            returncode, stdout = self.wordpress.handle(command[2:], stdin_path, stdout_path)
        elif command[0] == "rsync":
            returncode, stdout = self._rsync(command)
        elif command[0] == "ssh":
            returncode, stdout = self.remote(command[-1])
        else:
            returncode, stdout = 0, ""

        result = CommandResult(command=command, returncode=returncode, stdout=stdout,
                               stderr="" if returncode == 0 else "simulated failure")
        if check:
            result.check()
        return result

    def _rsync(self, command: List[str]) -> Tuple[int, str]:
        if self.rsync_fails:
            return 23, ""
        if "-n" in command or any(":" in part for part in command[-2:]):
            return 0, ""
        source, destination = command[-2], command[-1]
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
        return 0, ""

    def commands(self, program: str) -> List[List[str]]:
        return [c for c in self.history if c[0] == program]

    def wp_calls(self) -> List[List[str]]:
        return [c[2:] for c in self.commands("wp")]


def always_found(tool: str) -> str:
    return f"/usr/bin/{tool}"


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging so caplog sees records in every test."""
    yield
    logger = logging.getLogger("wp_migrate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def quiet_console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def wp_root(temp_dir):
    """A destination WordPress root with a populated wp-content."""
    root = temp_dir / "site"
    content = root / "wp-content"
    for child in ("plugins/hello-dolly", "plugins/dest-only", "themes/twentytwenty", "uploads/2023"):
        (content / child).mkdir(parents=True)
    (content / "plugins" / "dest-only" / "dest-only.php").write_text("<?php // destination plugin\n")
    (content / "object-cache.php").write_text("<?php // drop-in\n")
    (root / "wp-config.php").write_text("<?php\n$table_prefix = 'wp_';\n")
    return root


@pytest.fixture
def fake_wordpress(wp_root):
    return FakeWordPress(wp_root, plugins=["hello-dolly", "dest-only"], themes=["twentytwenty"])


@pytest.fixture
def fake_runner(fake_wordpress):
    return FakeRunner(fake_wordpress)


# Archive builders

def write_zip(path: Path, files: Dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return path


def write_tar(path: Path, files: Dict[str, bytes], compressed: bool = True) -> Path:
    with tarfile.open(path, "w:gz" if compressed else "w") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


def site_files(prefix: str = "") -> Dict[str, bytes]:
    """A minimal wp-content tree under ``prefix``."""
    return {
        f"{prefix}wp-content/plugins/akismet/akismet.php": b"<?php // akismet\n",
        f"{prefix}wp-content/themes/astra/style.css": b"/* Theme Name: Astra */\n",
        f"{prefix}wp-content/uploads/2024/01/photo.jpg": b"\xff\xd8\xff",
    }


def table_dumps(directory: str, prefix: str = "wp_", count: int = 5) -> Dict[str, bytes]:
    names = ["options", "posts", "users", "postmeta", "usermeta", "terms", "comments"][:count]
    return {
        f"{directory}{prefix}{name}.sql": f"INSERT INTO {prefix}{name} VALUES (1);\n".encode()
        for name in names
    }


@pytest.fixture
def duplicator_zip(temp_dir):
    files = {
        "installer.php": b"<?php // duplicator installer\n",
        "dup-installer/dup-database__7f3a.sql": b"CREATE TABLE wp_options (id int);\n",
        "wp-config.php": b"<?php\n",
    }
    files.update(site_files())
    return write_zip(temp_dir / "site_duplicator.zip", files)


@pytest.fixture
def jetpack_tar(temp_dir):
    files = {"meta.json": json.dumps({"siteurl": "https://old.example.com"}).encode()}
    files.update(table_dumps("sql/"))
    files.update(site_files())
    # Jetpack serves gzipped tarballs named .zip.
    return write_tar(temp_dir / "jetpack-backup.zip", files)


@pytest.fixture
def solidbackups_zip(temp_dir):
    temp = "wp-content/uploads/backupbuddy_temp/abc123/"
    files = {f"{temp}importbuddy.php": b"<?php\n"}
    files.update(table_dumps(temp))
    files.update(site_files())
    return write_zip(temp_dir / "backup-example_com-2024.zip", files)


@pytest.fixture
def nextgen_zip(temp_dir):
    files = {"data/": b"", "files/": b"", "meta/backup.json": b"{}"}
    files.update(table_dumps("data/", prefix="wp_stats_"))
    files.update(site_files("files/"))
    return write_zip(temp_dir / "nextgen.zip", files)


@pytest.fixture
def wpmigrate_zip(temp_dir):
    files = {
        "wpmigrate-backup.json": json.dumps({"format_version": "1.0", "table_prefix": "wpx_"}).encode(),
        "database.sql": b"CREATE TABLE wpx_options (id int);\n",
    }
    files.update(site_files())
    return write_zip(temp_dir / "wpmigrate-backup-example.com-20240101-120000.zip", files)


def gzip_file(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wb") as f:
        f.write(data)
    return path
