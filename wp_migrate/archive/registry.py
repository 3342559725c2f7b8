"""
Archive adapter registry.

Holds the ordered set of known backup-tool adapters, detects which one
matches an archive, and checks the external tools the chosen adapter needs.
"""

import logging
import shutil
from typing import Callable, Dict, List, Optional, Tuple, Type

from wp_migrate.archive.adapters import (
    DuplicatorAdapter,
    FormatAdapter,
    JetpackAdapter,
    SolidBackupsAdapter,
    SolidBackupsNextGenAdapter,
    WPMigrateAdapter,
)
from wp_migrate.core.exceptions import FormatDetectionError, PreflightError, UserInputError
from wp_migrate.models.run import AdapterFailure, Archive

logger = logging.getLogger(__name__)

INSTALL_HINTS: Dict[str, str] = {
    "wp": (
        "WP-CLI: curl -O https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar "
        "&& chmod +x wp-cli.phar && sudo mv wp-cli.phar /usr/local/bin/wp"
    ),
    "rsync": "rsync: apt-get install rsync | yum install rsync | brew install rsync",
    "ssh": "ssh: apt-get install openssh-client | yum install openssh-clients",
    "gzip": "gzip: apt-get install gzip | yum install gzip",
    "unzip": "unzip: apt-get install unzip | yum install unzip | brew install unzip",
    "zip": "zip: apt-get install zip | yum install zip | brew install zip",
    "tar": "tar: apt-get install tar | yum install tar",
    "file": "file: apt-get install file | yum install file | brew install libmagic",
    "jq": "jq: apt-get install jq | yum install jq | brew install jq",
}


def install_hint(tool: str) -> str:
    return INSTALL_HINTS.get(tool, f"{tool}: install it with your system package manager")


def check_tools(tools: List[str], which: Callable[[str], Optional[str]] = shutil.which) -> None:
    """
    Ensure every tool in ``tools`` is on PATH.

    Raises:
        PreflightError: Listing every missing tool with install instructions
    """
    missing = [tool for tool in tools if which(tool) is None]
    if missing:
        raise PreflightError(
            f"Missing required tool(s): {', '.join(missing)}",
            missing_tools=missing,
            hint="\n".join(install_hint(tool) for tool in missing)
        )


class AdapterRegistry:
    """
    Ordered registry of archive adapters.

    Detection tries adapters in registration order and the first match
    wins, so more specific layouts must be registered before looser ones.
    """

    _adapters: Dict[str, Type[FormatAdapter]] = {
        "duplicator": DuplicatorAdapter,
        "jetpack": JetpackAdapter,
        "solidbackups": SolidBackupsAdapter,
        "solidbackups_nextgen": SolidBackupsNextGenAdapter,
        "wpmigrate": WPMigrateAdapter,
    }

    @classmethod
    def register_adapter(cls, name: str, adapter_class: Type[FormatAdapter]) -> None:
        """
        Register a new adapter at the end of the detection order.

        Args:
            name: Adapter identifier used for --archive-type
            adapter_class: Adapter class to register
        """
        cls._adapters[name] = adapter_class

    @classmethod
    def available(cls) -> List[str]:
        return list(cls._adapters.keys())

    def __init__(self, adapters: Optional[List[FormatAdapter]] = None):
        if adapters is None:
            adapters = [adapter_class() for adapter_class in self._adapters.values()]
        self.adapters = adapters

    def get(self, name: str) -> FormatAdapter:
        """
        Return the adapter for an explicit --archive-type override.

        Raises:
            UserInputError: If ``name`` is not a registered adapter
        """
        for adapter in self.adapters:
            if adapter.name == name:
                return adapter
        raise UserInputError(
            f"Unknown archive type: {name}",
            hint=f"Valid archive types: {', '.join(a.name for a in self.adapters)}"
        )

    def detect(self, archive: Archive) -> Tuple[Optional[FormatAdapter], List[AdapterFailure]]:
        """
        Find the adapter that recognises ``archive``.

        Only reads the archive; safe to call before committing to extraction.

        Returns:
            (adapter, []) on success, or (None, failures) with one entry per
            registered adapter
        """
        failures: List[AdapterFailure] = []
        for adapter in self.adapters:
            logger.debug(f"Trying {adapter.display_name} adapter")
            outcome = adapter.validate(archive)
            if outcome.ok:
                logger.info(f"Detected format: {adapter.display_name}")
                return adapter, []
            failures.append(AdapterFailure(adapter.display_name, outcome.failed_checks))
        return None, failures

    def resolve(self, archive: Archive, override: Optional[str] = None) -> FormatAdapter:
        """
        Pick the adapter for ``archive``, honouring an explicit override.

        An override is still validated; a mismatch is reported but the
        operator's choice is kept.

        Raises:
            FormatDetectionError: If auto-detection finds no match
        """
        if override:
            adapter = self.get(override)
            outcome = adapter.validate(archive)
            if not outcome.ok:
                logger.warning(
                    f"Archive does not look like {adapter.display_name} "
                    f"({'; '.join(outcome.failed_checks)}); continuing because --archive-type was given"
                )
            return adapter

        adapter, failures = self.detect(archive)
        if adapter is None:
            raise FormatDetectionError(
                f"Unable to detect archive format for {archive.path.name}",
                failures=failures,
                hint=f"Specify the format explicitly with --archive-type ({', '.join(self.available())})"
            )
        return adapter

    def check_dependencies(
        self,
        adapter: FormatAdapter,
        which: Callable[[str], Optional[str]] = shutil.which
    ) -> None:
        """Check the selected adapter's tools only."""
        logger.debug(f"Checking dependencies for {adapter.display_name}: {', '.join(adapter.dependencies)}")
        check_tools(adapter.dependencies, which=which)
