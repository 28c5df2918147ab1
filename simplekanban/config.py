# SimpleKanban: configuration
# Override thresholds, enumerations and paths via board.yaml or CLI args.

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .schema import AccessLevel

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "board.yaml"

DEFAULT_STATUS_ENUM = (
    "10:new,20:feedback,30:acknowledged,40:confirmed,50:assigned,"
    "60:in progress,70:ready to test,75:testing,80:resolved,90:closed"
)
DEFAULT_PRIORITY_ENUM = "10:none,20:low,30:normal,40:high,50:urgent,60:immediate"
DEFAULT_SEVERITY_ENUM = (
    "10:feature,20:trivial,30:text,40:tweak,50:minor,60:major,70:crash,80:block"
)


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


def parse_enum_string(value: str, fallback: str = "") -> "OrderedDict[int, str]":
    """
    Parse an enum string of the form ``"10:new,20:feedback"``.

    Entries without a colon or with a non-numeric code are skipped. If nothing
    usable remains, ``fallback`` is parsed instead.
    """
    result: "OrderedDict[int, str]" = OrderedDict()
    for part in (value or "").split(","):
        part = part.strip()
        if ":" not in part:
            continue
        code, _, name = part.partition(":")
        try:
            result[int(code.strip())] = name.strip()
        except ValueError:
            continue
    if not result and fallback:
        logger.warning(f"Unusable enum string {value!r}, using defaults")
        return parse_enum_string(fallback)
    return result


def enum_label(enum: Dict[int, str], code: int) -> str:
    """Label for an enum code; unknown codes render as ``@code@``."""
    return enum.get(int(code), f"@{code}@")


@dataclass
class BoardConfig:
    """Runtime configuration for the board server and client."""

    # Storage
    db_path: str = "~/.local/share/simplekanban/tracker.db"

    # Enumerations
    status_enum_string: str = DEFAULT_STATUS_ENUM
    priority_enum_string: str = DEFAULT_PRIORITY_ENUM
    severity_enum_string: str = DEFAULT_SEVERITY_ENUM

    # Workflow
    bug_assigned_status: int = 50
    # Columns rendered even when empty; None = every status in the enum
    display_statuses: Optional[List[int]] = None
    # Columns shown on a first visit (in addition to any non-empty column)
    default_visible_statuses: List[int] = field(
        default_factory=lambda: [10, 50, 60, 70, 75, 80, 90]
    )

    # Access thresholds
    view_bug_threshold: int = AccessLevel.VIEWER
    update_bug_threshold: int = AccessLevel.UPDATER
    update_bug_assign_threshold: int = AccessLevel.DEVELOPER

    # Links to the tracker's own pages (bug id is appended)
    view_url: str = "/view.php?id="
    edit_url: str = "/bug_update_page.php?bug_id="

    # Auth: API key -> username
    api_keys: Dict[str, str] = field(default_factory=dict)

    log_level: str = "INFO"

    def __post_init__(self):
        if not isinstance(self.api_keys, dict):
            raise ConfigError("api_keys must be a mapping of key -> username")
        for name in ("view_bug_threshold", "update_bug_threshold", "update_bug_assign_threshold"):
            try:
                setattr(self, name, int(AccessLevel.from_value(getattr(self, name))))
            except ValueError as e:
                raise ConfigError(f"{name}: {e}")
        self.db_path = str(Path(self.db_path).expanduser())

    @property
    def statuses(self) -> "OrderedDict[int, str]":
        return parse_enum_string(self.status_enum_string, DEFAULT_STATUS_ENUM)

    @property
    def priorities(self) -> "OrderedDict[int, str]":
        return parse_enum_string(self.priority_enum_string, DEFAULT_PRIORITY_ENUM)

    @property
    def severities(self) -> "OrderedDict[int, str]":
        return parse_enum_string(self.severity_enum_string, DEFAULT_SEVERITY_ENUM)

    def column_statuses(self) -> List[int]:
        """Statuses that get a column regardless of issue count."""
        if self.display_statuses is None:
            return list(self.statuses)
        return [int(s) for s in self.display_statuses]

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("SIMPLEKANBAN_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        data = {}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
        elif path:
            logger.warning(f"Config file {cfg_path} not found, using defaults")

        known = cls.__dataclass_fields__
        cfg = cls(**{k: v for k, v in data.items() if k in known})

        env_db = os.environ.get("SIMPLEKANBAN_DB")
        if env_db:
            cfg.db_path = str(Path(env_db).expanduser())
        return cfg
