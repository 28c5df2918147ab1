"""
Issue tracker data model as seen by the Kanban board.

The board only ever patches two fields of an issue: ``status`` and
``handler_id``. Everything else is read for display and filtering.
"""
from enum import IntEnum
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any

# Project id meaning "every project the user can see"
ALL_PROJECTS = 0

# Relationship type: destination depends on source (source is the parent)
BUG_DEPENDANT = 2

# Handler id meaning "no one assigned"
NO_USER = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return utc_now()


class AccessLevel(IntEnum):
    """Access thresholds, lowest to highest."""
    VIEWER = 10
    REPORTER = 25
    UPDATER = 40
    DEVELOPER = 55
    MANAGER = 70
    ADMINISTRATOR = 90

    @classmethod
    def from_value(cls, value) -> "AccessLevel":
        """Accept an int, a numeric string or a level name."""
        if isinstance(value, str) and not value.strip().isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown access level: {value}")
        return cls(int(value))


@dataclass
class Project:
    project_id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.project_id, "name": self.name}


@dataclass
class User:
    """A tracker account. Read-only from the board's perspective."""
    user_id: int
    username: str
    realname: str = ""
    enabled: bool = True
    access_level: int = AccessLevel.VIEWER  # global default, overridden per project

    @property
    def display_name(self) -> str:
        return self.realname or self.username

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "username": self.username,
            "realname": self.realname,
            "display_name": self.display_name,
        }


@dataclass
class Issue:
    """One row of the bug table."""

    bug_id: int
    project_id: int
    summary: str
    description: str = ""

    # Enum codes (see config status/priority/severity enum strings)
    status: int = 10
    priority: int = 30
    severity: int = 50

    reporter_id: int = NO_USER
    handler_id: int = NO_USER

    steps_to_reproduce: str = ""
    additional_information: str = ""

    date_submitted: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def is_assigned(self) -> bool:
        return bool(self.handler_id) and self.handler_id > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date_submitted"] = self.date_submitted.isoformat()
        data["last_updated"] = self.last_updated.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        return cls(
            bug_id=int(data["bug_id"]),
            project_id=int(data.get("project_id", 0)),
            summary=data.get("summary", ""),
            description=data.get("description") or "",
            status=int(data.get("status", 10)),
            priority=int(data.get("priority", 30)),
            severity=int(data.get("severity", 50)),
            reporter_id=int(data.get("reporter_id") or NO_USER),
            handler_id=int(data.get("handler_id") or NO_USER),
            steps_to_reproduce=data.get("steps_to_reproduce") or "",
            additional_information=data.get("additional_information") or "",
            date_submitted=_parse_ts(data.get("date_submitted")),
            last_updated=_parse_ts(data.get("last_updated")),
        )


@dataclass
class HistoryEntry:
    """One recorded field change made through the board."""
    bug_id: int
    user_id: int
    field_name: str
    old_value: str
    new_value: str
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_date(value: Optional[datetime]) -> str:
    """Format a timestamp the way the detail view shows it."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M")
