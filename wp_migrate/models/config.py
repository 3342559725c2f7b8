"""
Configuration models for wp-migrate.

This module defines Pydantic models for the options each run mode accepts,
and the loader for the optional YAML defaults file.
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from wp_migrate.core.exceptions import UserInputError

URL_RE = re.compile(r"^https?://[^/]+")

DEFAULT_CONFIG_FILE = Path.home() / ".wp-migrate.yaml"
DEFAULT_BACKUP_OUTPUT_DIR = "$HOME/wp-migrate-backups"

ADAPTER_NAMES = ["duplicator", "jetpack", "solidbackups", "solidbackups_nextgen", "wpmigrate"]


class CommonOptions(BaseModel):
    """Options shared by every run mode."""
    model_config = ConfigDict(extra="forbid")

    dry_run: bool = False
    yes: bool = False
    quiet: bool = False
    verbose: bool = False
    trace: bool = False
    import_db: bool = True
    search_replace: bool = True
    stellarsites: bool = False
    preserve_dest_plugins: bool = False
    wp_root: Path = Field(default_factory=Path.cwd, description="Local WordPress root")

    @model_validator(mode="after")
    def apply_implied_flags(self):
        if self.stellarsites:
            self.preserve_dest_plugins = True
        if self.trace:
            self.verbose = True
        return self


class PushOptions(CommonOptions):
    """Options for push mode (run on the source WP root)."""
    dest_host: str
    dest_root: str
    gzip_db: bool = True
    maintenance_source: bool = True
    dest_domain: Optional[str] = None
    dest_home_url: Optional[str] = None
    dest_site_url: Optional[str] = None
    ssh_opts: List[str] = Field(default_factory=list)
    rsync_opts: List[str] = Field(default_factory=list)

    @field_validator('dest_root')
    @classmethod
    def dest_root_must_be_absolute(cls, v):
        if not v.startswith("/"):
            raise ValueError('--dest-root must be an absolute path')
        return v.rstrip("/") or "/"

    @field_validator('dest_home_url', 'dest_site_url')
    @classmethod
    def url_must_have_scheme(cls, v):
        if v is not None and not URL_RE.match(v):
            raise ValueError(f'Invalid URL {v!r}: expected http(s)://host[/path]')
        return v

    @field_validator('dest_domain')
    @classmethod
    def normalise_domain(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('--dest-domain cannot be empty')
        if not re.match(r"^https?://", v):
            v = f"https://{v}"
        if not URL_RE.match(v):
            raise ValueError(f'Invalid domain {v!r}')
        return v.rstrip("/")

    @model_validator(mode="after")
    def domain_fills_url_overrides(self):
        if self.dest_domain:
            if not self.dest_home_url:
                self.dest_home_url = self.dest_domain
            if not self.dest_site_url:
                self.dest_site_url = self.dest_domain
        return self


class ArchiveOptions(CommonOptions):
    """Options for archive-import mode (run on the destination WP root)."""
    archive: Path
    archive_type: Optional[str] = None

    @field_validator('archive_type')
    @classmethod
    def archive_type_must_be_known(cls, v):
        if v is not None and v not in ADAPTER_NAMES:
            raise ValueError(
                f"Unknown archive type {v!r}; expected one of: {', '.join(ADAPTER_NAMES)}"
            )
        return v


class RollbackOptions(CommonOptions):
    """Options for rollback mode."""
    rollback_backup: Optional[Path] = None


class BackupOptions(CommonOptions):
    """Options for backup-creation mode (run anywhere, targets a source over SSH)."""
    source_host: str
    source_root: str
    backup_output_dir: str = DEFAULT_BACKUP_OUTPUT_DIR
    ssh_opts: List[str] = Field(default_factory=list)

    @field_validator('source_root')
    @classmethod
    def source_root_must_be_absolute(cls, v):
        if not v.startswith("/"):
            raise ValueError('--source-root must be an absolute path')
        return v.rstrip("/") or "/"


def _option_name(key: Any) -> str:
    # YAML 1.1 reads a bare `yes:` key as the boolean True.
    if key is True:
        return "yes"
    return str(key).replace("-", "_")


def load_config_file(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load option defaults from a YAML file.

    A missing default file is not an error; a missing explicit file is.

    Raises:
        UserInputError: If the file cannot be read or is not a mapping
    """
    explicit = path is not None
    config_path = Path(path) if path else DEFAULT_CONFIG_FILE
    if not config_path.exists():
        if explicit:
            raise UserInputError(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise UserInputError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(data, dict):
        raise UserInputError(f"Config file {config_path} must contain a mapping of option names")
    return {_option_name(key): value for key, value in data.items()}


def build_options(model: type, defaults: Dict[str, Any], overrides: Dict[str, Any]):
    """
    Merge file defaults with CLI values and validate them into ``model``.

    CLI values that are None (flag not given) do not override file values.
    Keys the model does not define are dropped so one file can serve every
    mode.
    """
    allowed = set(model.model_fields)
    merged = {key: value for key, value in defaults.items() if key in allowed}
    merged.update({
        key: value for key, value in overrides.items()
        if value is not None and key in allowed
    })
    try:
        return model(**merged)
    except PydanticValidationError as e:
        messages = []
        for error in e.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            text = error.get("msg", "invalid value").replace("Value error, ", "")
            messages.append(f"{location}: {text}" if location else text)
        raise UserInputError("Invalid options:\n  " + "\n  ".join(messages))
