"""
Maintenance mode manager for WordPress installations.

This module provides the MaintenanceManager class for activating and
deactivating WP-CLI maintenance mode on the source and destination sides of
a run. Engaged sides are recorded on the MigrationRun so the cleanup guard
can release them on every exit path.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from wp_migrate.core.exceptions import WPMigrateError
from wp_migrate.models.run import MigrationRun
from wp_migrate.utils.runner import WPCLI
from wp_migrate.utils.logging import LogCategory, LogEntry, LogLevel

logger = logging.getLogger(__name__)


class MaintenanceManager:
    """
    Symmetric maintenance-mode control per side of a run.

    ``enable`` and ``disable`` take a side name (``source`` or
    ``destination``) and the WP-CLI handle for that side.
    """

    def __init__(self, run: MigrationRun):
        self.run = run
        self._active_maintenance: Dict[str, Dict[str, Any]] = {}
        self._maintenance_logs: List[LogEntry] = []

    def _log(self, level: LogLevel, message: str, side: Optional[str] = None, **kwargs):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=LogCategory.MAINTENANCE,
            message=message,
            component="MaintenanceManager",
            state=self.run.state.value,
            metadata={"side": side, **kwargs}
        )
        self._maintenance_logs.append(log_entry)
        logger.log(getattr(logging, level.value), message)

    @property
    def logs(self) -> List[LogEntry]:
        return list(self._maintenance_logs)

    def is_active(self, side: str) -> bool:
        return side in self._active_maintenance

    async def enable(self, side: str, wp: WPCLI) -> bool:
        """
        Enable maintenance mode on one side.

        In dry-run the command is only announced.

        Raises:
            WPMigrateError: If WP-CLI refuses to activate maintenance mode
        """
        if side in self._active_maintenance:
            self._log(LogLevel.WARNING, f"Maintenance mode already active on {side}", side)
            return True

        if self.run.dry_run:
            self._log(LogLevel.INFO, f"[dry-run] Would enable maintenance mode on {side}", side)
            return False

        self._log(LogLevel.INFO, f"Enabling maintenance mode on {side}", side)
        result = await wp.run("maintenance-mode", "activate", check=False)
        if not result.ok:
            raise WPMigrateError(
                f"Failed to enable maintenance mode on {side}: {result.stderr.strip()}",
                hint="Check that WP-CLI can run against this installation: wp maintenance-mode status"
            )

        self._active_maintenance[side] = {"wp": wp, "enabled_at": datetime.now()}
        self.run.set_maintenance(side, True)
        return True

    async def disable(self, side: str, wp: Optional[WPCLI] = None) -> bool:
        """
        Disable maintenance mode on one side.

        Returns:
            True if the side is no longer in maintenance mode
        """
        entry = self._active_maintenance.get(side)
        if entry is None:
            self._log(LogLevel.DEBUG, f"Maintenance mode not active on {side}", side)
            return True

        wp = wp or entry["wp"]
        self._log(LogLevel.INFO, f"Disabling maintenance mode on {side}", side)
        result = await wp.run("maintenance-mode", "deactivate", check=False)
        if not result.ok:
            self._log(
                LogLevel.WARNING,
                f"Failed to disable maintenance mode on {side}: {result.stderr.strip()}",
                side
            )
            return False

        del self._active_maintenance[side]
        self.run.set_maintenance(side, False)
        return True

    async def disable_all(self) -> Dict[str, bool]:
        """
        Release every engaged side; failures are warnings.

        Returns:
            Mapping of side to whether it was released
        """
        results = {}
        for side in list(self._active_maintenance):
            try:
                results[side] = await self.disable(side)
            except WPMigrateError as e:
                self._log(LogLevel.WARNING, f"Maintenance cleanup on {side} failed: {e}", side)
                results[side] = False
        for side, released in results.items():
            if not released:
                wp = self._active_maintenance[side]["wp"]
                if wp.is_remote:
                    command = f"ssh {wp.remote.host} \"cd {wp.root} && wp maintenance-mode deactivate\""
                else:
                    command = f"wp --path={wp.root} maintenance-mode deactivate"
                logger.warning(f"Disable it manually: {command}")
        return results
