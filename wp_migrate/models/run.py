"""
Run models for wp-migrate.

This module defines the records a single migration run is built from: the
input archive, the extraction result, backup snapshots, and the MigrationRun
context object that carries state between phases.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from wp_migrate.database.url_alignment import URLAlignmentEngine
from wp_migrate.utils.logging import make_stamp


class ContainerType(str, Enum):
    """Archive container types recognised by the sniffer."""
    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    DIRECTORY = "directory"
    UNKNOWN = "unknown"


class RunMode(str, Enum):
    """Top-level operating modes."""
    PUSH = "push"
    ARCHIVE = "archive"
    ROLLBACK = "rollback"
    BACKUP = "backup"


class RunState(str, Enum):
    """Phases of a migration run, in forward order."""
    INIT = "init"
    VERIFY = "verify"
    PREVIEW = "preview"
    MAINTENANCE_ON = "maintenance_on"
    BACKUP = "backup"
    APPLY_DB = "apply_db"
    RECONCILE = "reconcile"
    APPLY_CONTENT = "apply_content"
    MAINTENANCE_OFF = "maintenance_off"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


FORWARD_ORDER: List[RunState] = [
    RunState.INIT,
    RunState.VERIFY,
    RunState.PREVIEW,
    RunState.MAINTENANCE_ON,
    RunState.BACKUP,
    RunState.APPLY_DB,
    RunState.RECONCILE,
    RunState.APPLY_CONTENT,
    RunState.MAINTENANCE_OFF,
    RunState.DONE,
]

TERMINAL_STATES = {RunState.DONE, RunState.ROLLED_BACK, RunState.ABORTED}


class Archive(BaseModel):
    """An input archive: a single file or an already extracted directory."""
    path: Path
    container: ContainerType
    size: int = 0

    @property
    def is_directory(self) -> bool:
        return self.container == ContainerType.DIRECTORY


@dataclass
class AdapterFailure:
    """Every check a single adapter failed while validating an archive."""
    adapter: str
    reasons: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.adapter}: {'; '.join(self.reasons) or 'not recognised'}"


@dataclass
class ValidationOutcome:
    """Result of FormatAdapter.validate."""
    ok: bool
    failed_checks: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok


class ExtractionResult(BaseModel):
    """Where an archive was unpacked and what was found inside it."""
    extract_dir: Path
    database_path: Optional[Path] = None
    content_path: Optional[Path] = None
    has_plugins: bool = False
    has_themes: bool = False
    has_uploads: bool = False

    def describe_content(self) -> str:
        def flag(value: bool) -> str:
            return "YES" if value else "NO"

        return (
            f"plugins={flag(self.has_plugins)} "
            f"themes={flag(self.has_themes)} "
            f"uploads={flag(self.has_uploads)}"
        )


class BackupSnapshot(BaseModel):
    """Pre-destructive copy of the database and/or renamed-aside content tree."""
    stamp: str
    database_path: Optional[Path] = None
    content_path: Optional[Path] = None
    content_origin: Optional[Path] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_empty(self) -> bool:
        return self.database_path is None and self.content_path is None


class MigrationRun(BaseModel):
    """
    Context for one invocation of the tool.

    Components receive the run instead of reading module globals. State moves
    forward only; ``rolled_back`` and ``aborted`` can be entered from any
    non-terminal state.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    mode: RunMode
    dry_run: bool = False
    stamp: str = Field(default_factory=make_stamp)
    state: RunState = RunState.INIT
    history: List[RunState] = Field(default_factory=lambda: [RunState.INIT])
    pairs: URLAlignmentEngine = Field(default_factory=URLAlignmentEngine)
    adapter_name: Optional[str] = None
    archive: Optional[Archive] = None
    extraction: Optional[ExtractionResult] = None
    snapshot: Optional[BackupSnapshot] = None
    maintenance: Dict[str, bool] = Field(
        default_factory=lambda: {"source": False, "destination": False}
    )
    succeeded: bool = False
    notes: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def backup_completed(self) -> bool:
        return self.snapshot is not None and not self.snapshot.is_empty

    def can_transition(self, target: RunState) -> bool:
        if self.is_terminal:
            return False
        if target == RunState.ABORTED:
            return True
        if target == RunState.ROLLED_BACK:
            return self.backup_completed or self.mode == RunMode.ROLLBACK
        return FORWARD_ORDER.index(target) > FORWARD_ORDER.index(self.state)

    def transition(self, target: RunState) -> RunState:
        """
        Move to ``target``.

        Raises:
            ValueError: If the move would go backwards or leave a terminal state
        """
        if not self.can_transition(target):
            raise ValueError(f"Invalid state transition: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)
        if target == RunState.DONE:
            self.succeeded = True
        return target

    def set_maintenance(self, side: str, engaged: bool):
        self.maintenance[side] = engaged

    def engaged_sides(self) -> List[str]:
        return [side for side, engaged in self.maintenance.items() if engaged]
