"""
Client-local preferences.

A small string key/value store, one per browser profile on the web
board. Backed by a JSON file, or by memory when no path is given. Reads and
writes are synchronous; the last write wins.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

COLUMN_PREFS_KEY = "kanban-column-preferences"


class PreferenceStore:
    """String key/value storage with the shape of window.localStorage."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path).expanduser() if path else None
        self._items: Dict[str, str] = {}
        if self.path and self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    self._items = {str(k): str(v) for k, v in data.items()}
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable preferences at {self.path}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._items, indent=2), encoding="utf-8")


def load_column_preferences(prefs: PreferenceStore) -> Optional[Dict[str, bool]]:
    """Stored visibility map, or None when absent or malformed."""
    raw = prefs.get_item(COLUMN_PREFS_KEY)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return {str(k): bool(v) for k, v in data.items()}


def save_column_preferences(prefs: PreferenceStore, visibility: Dict[str, bool]) -> None:
    prefs.set_item(COLUMN_PREFS_KEY, json.dumps({str(k): bool(v) for k, v in visibility.items()}))
