"""
Column layout and visibility.

One column per displayable status. Visibility is a status-code -> bool map
kept in client-local preferences; a status missing from the stored map falls
back to its first-visit default.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .prefs import PreferenceStore, load_column_preferences, save_column_preferences


@dataclass
class ColumnMeta:
    """One board column."""
    status: int
    label: str
    count: int = 0
    default_visible: bool = True

    @property
    def key(self) -> str:
        return str(self.status)

    @classmethod
    def from_dict(cls, data: dict) -> "ColumnMeta":
        count = int(data.get("count", 0))
        return cls(
            status=int(data["status"]),
            label=data.get("label", ""),
            count=count,
            default_visible=bool(data.get("default_visible", count > 0)),
        )


def resolve_visibility(stored: Optional[Dict[str, bool]],
                       columns: Iterable[ColumnMeta]) -> Dict[str, bool]:
    """
    Visibility for every column on the page: stored value if present,
    else the column's first-visit default. Exactly one entry per column.
    """
    stored = stored or {}
    return {
        col.key: bool(stored[col.key]) if col.key in stored else col.default_visible
        for col in columns
    }


class ColumnVisibility:
    """Shown/hidden state of the board's columns, persisted on every change."""

    def __init__(self, columns: List[ColumnMeta], prefs: PreferenceStore):
        self.columns = columns
        self.prefs = prefs
        stored = load_column_preferences(prefs)
        self._stored = dict(stored or {})
        self.visibility = resolve_visibility(stored, columns)
        if stored is None:
            # First visit: persist the computed defaults right away
            self._save()

    def _save(self) -> None:
        self._stored.update(self.visibility)
        save_column_preferences(self.prefs, self._stored)

    def is_visible(self, status) -> bool:
        return self.visibility.get(str(status), False)

    def visible_statuses(self) -> List[int]:
        """Statuses whose columns accept drags, in board order."""
        return [c.status for c in self.columns if self.visibility.get(c.key)]

    def set_visible(self, status, visible: bool) -> List[int]:
        key = str(status)
        if key not in self.visibility:
            raise KeyError(f"No column for status {status}")
        self.visibility[key] = bool(visible)
        self._save()
        return self.visible_statuses()

    def toggle(self, status) -> List[int]:
        return self.set_visible(status, not self.is_visible(status))

    def show_all(self) -> List[int]:
        for key in self.visibility:
            self.visibility[key] = True
        self._save()
        return self.visible_statuses()

    def hide_empty(self, counts: Optional[Dict[int, int]] = None) -> List[int]:
        """Show exactly the columns that hold at least one issue."""
        for col in self.columns:
            count = counts.get(col.status, 0) if counts is not None else col.count
            self.visibility[col.key] = count > 0
        self._save()
        return self.visible_statuses()
