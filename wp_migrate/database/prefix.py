"""
Table prefix detection and reconciliation.

After an import the database's table prefix may differ from the one
``wp-config.php`` declares. The live prefix is detected from the table list
and written back to the configuration, first through ``wp config set`` and,
if that does not verify, through a direct edit of ``wp-config.php`` that is
rolled back unless it verifies too.
"""

import logging
import re
import shlex
import shutil
from pathlib import Path
from typing import Iterable, Optional, Tuple

from wp_migrate.core.exceptions import ReconciliationError

logger = logging.getLogger(__name__)

CORE_SUFFIXES = ("options", "posts", "users")
PREFIX_LINE_RE = re.compile(r"""^(\$table_prefix\s*=\s*)['"][^'"]*['"];""", re.MULTILINE)
VALID_PREFIX_RE = re.compile(r"^[A-Za-z0-9_]+$")
CONFIG_FILE = "wp-config.php"
CONFIG_BACKUP_SUFFIX = ".bak"


def detect_prefix(tables: Iterable[str]) -> Optional[str]:
    """
    Find the WordPress table prefix in a list of table names.

    A table ending in ``_options`` proposes the prefix in front of
    ``options``; the prefix is only accepted if ``<prefix>posts`` and
    ``<prefix>users`` exist too. Plugin tables such as
    ``wp_statistics_options`` therefore never win over ``wp_``. The first
    accepted candidate in enumeration order is returned.
    """
    tables = [t.strip() for t in tables if t and t.strip()]
    table_set = set(tables)
    for table in tables:
        if not table.endswith("_options"):
            continue
        candidate = table[:-len("options")]
        if all(f"{candidate}{suffix}" in table_set for suffix in CORE_SUFFIXES):
            return candidate
    return None


def rewrite_prefix(config_text: str, prefix: str) -> Tuple[str, int]:
    """Replace the ``$table_prefix`` assignment; returns (new_text, replacements)."""
    return PREFIX_LINE_RE.subn(lambda m: f"{m.group(1)}'{prefix}';", config_text)


class TablePrefixReconciler:
    """Detect the imported prefix and make wp-config.php agree with it."""

    def __init__(self, wp, config_path: Optional[Path] = None):
        self.wp = wp
        self._config_path = config_path

    detect = staticmethod(detect_prefix)

    @property
    def config_path(self) -> Path:
        if self._config_path is None:
            root = Path(self.wp.root)
            candidate = root / CONFIG_FILE
            # WordPress also looks one directory above the install.
            if not candidate.exists() and (root.parent / CONFIG_FILE).exists():
                candidate = root.parent / CONFIG_FILE
            self._config_path = candidate
        return self._config_path

    async def detect_live(self) -> Optional[str]:
        """Detect the prefix from the tables currently in the database."""
        prefix = detect_prefix(await self.wp.tables())
        if prefix:
            logger.info(f"Detected database prefix: {prefix}")
            logger.debug(f"  Verified core tables: {prefix}options, {prefix}posts, {prefix}users")
        return prefix

    async def configured_prefix(self) -> str:
        result = await self.wp.run("db", "prefix", check=False)
        return result.stdout.strip() if result.ok else ""

    async def _verify(self, prefix: str) -> bool:
        actual = await self.configured_prefix()
        if actual != prefix:
            logger.warning(f"wp-config.php reports prefix '{actual}', expected '{prefix}'")
            return False
        return True

    async def reconcile(self, prefix: str) -> str:
        """
        Write ``prefix`` into wp-config.php and verify it.

        Returns:
            "unchanged", "config-set" or "file-edit" depending on which path
            made the configuration agree

        Raises:
            ReconciliationError: If neither path verifies; the configuration
                file is back to its original content in that case
        """
        if not VALID_PREFIX_RE.match(prefix or ""):
            raise ReconciliationError(f"Refusing to write invalid table prefix {prefix!r}")

        current = await self.configured_prefix()
        if current == prefix:
            logger.info("Table prefix matches wp-config.php; no update needed")
            return "unchanged"

        logger.info(f"Updating wp-config.php table prefix: {current or '?'} -> {prefix}")
        await self.wp.run("config", "set", "table_prefix", prefix, "--type=variable", check=False)
        if await self._verify(prefix):
            logger.info("Table prefix updated successfully")
            return "config-set"

        logger.warning("wp config set did not write the prefix; editing wp-config.php directly")
        if self.wp.is_remote:
            await self._edit_remote(prefix)
        else:
            self._edit_local(prefix)

        if await self._verify(prefix):
            await self._discard_backup()
            logger.info("Table prefix updated successfully via direct edit")
            return "file-edit"

        await self._restore_backup()
        raise ReconciliationError(
            f"Failed to update table prefix to '{prefix}'. wp-config.php has been restored.",
            details={"expected": prefix, "configured": current},
            hint=(
                f"Edit wp-config.php manually and set: $table_prefix = '{prefix}';\n"
                "Then verify with: wp db prefix"
            )
        )

    def _edit_local(self, prefix: str):
        path = self.config_path
        backup = path.with_name(path.name + CONFIG_BACKUP_SUFFIX)
        try:
            shutil.copy2(path, backup)
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ReconciliationError(f"Cannot read {path}: {e}")

        new_text, count = rewrite_prefix(text, prefix)
        if count == 0:
            logger.warning(f"No $table_prefix assignment found in {path}")
            return
        try:
            path.write_text(new_text, encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot write {path}: {e}")

    async def _edit_remote(self, prefix: str):
        sed_expr = r"""s/^\(\$table_prefix[[:space:]]*=[[:space:]]*\)['"][^'"]*['"];/\1'""" + prefix + "';/"
        await self.wp.shell(
            f"sed -i{CONFIG_BACKUP_SUFFIX} {shlex.quote(sed_expr)} {CONFIG_FILE}", check=False
        )

    async def _discard_backup(self):
        if self.wp.is_remote:
            await self.wp.shell(f"rm -f {CONFIG_FILE}{CONFIG_BACKUP_SUFFIX}", check=False)
            return
        backup = self.config_path.with_name(self.config_path.name + CONFIG_BACKUP_SUFFIX)
        if backup.exists():
            backup.unlink()

    async def _restore_backup(self):
        if self.wp.is_remote:
            await self.wp.shell(
                f"test -f {CONFIG_FILE}{CONFIG_BACKUP_SUFFIX} && mv {CONFIG_FILE}{CONFIG_BACKUP_SUFFIX} {CONFIG_FILE}",
                check=False
            )
            return
        backup = self.config_path.with_name(self.config_path.name + CONFIG_BACKUP_SUFFIX)
        if backup.exists():
            shutil.move(str(backup), str(self.config_path))
            logger.info("Restored wp-config.php from backup")

    async def verify_assumed(self, prefix: str):
        """
        Confirm that ``<prefix>options`` is readable when no prefix could be detected.

        Raises:
            ReconciliationError: If the options table cannot be queried
        """
        result = await self.wp.query(f"SELECT COUNT(*) FROM `{prefix}options`", check=False)
        if not result.ok:
            raise ReconciliationError(
                f"Table prefix detection failed and the configured prefix '{prefix}' has no options table",
                hint=(
                    "Check which tables were imported: wp db query \"SHOW TABLES\"\n"
                    "If the tables use another prefix, set $table_prefix in wp-config.php accordingly."
                )
            )
        logger.info(f"Verified: {prefix}options table is accessible")
