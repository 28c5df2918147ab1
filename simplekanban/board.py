"""
Board application state.

Everything the board page keeps between events lives on one BoardState:
cards, columns, known users, the active filters, column visibility and the
last feedback message. It is built from the board payload and passed to the
drag-and-drop engine and the modals explicitly.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .columns import ColumnMeta, ColumnVisibility
from .filters import UNASSIGNED, FilterSet
from .prefs import PreferenceStore

EMPTY_STATUS_TEXT = "No bugs in this status"
NO_MATCH_TEXT = "No matching issues"


@dataclass
class Card:
    """Client-side view of one rendered card."""
    bug_id: int
    summary: str
    status: int
    priority: int
    priority_name: str = ""
    assignee: str = UNASSIGNED          # handler id as a string, "" when unassigned
    assignee_name: str = ""
    parents: List[str] = field(default_factory=list)

    visible: bool = True                # filter outcome
    disabled: bool = False              # dimmed, not interactive
    cue: Optional[str] = None           # transient visual cue, e.g. "success"

    @property
    def assignee_label(self) -> str:
        return self.assignee_name or "Unassigned"

    @property
    def text(self) -> str:
        """Full card text, as the search filter sees it."""
        return f"#{self.bug_id} {self.summary} {self.priority_name} {self.assignee_label}"

    def data_attributes(self) -> Dict[str, str]:
        return {
            "data-bug-id": str(self.bug_id),
            "data-priority": str(self.priority),
            "data-assignee": self.assignee,
            "data-status": str(self.status),
            "data-parents": ",".join(self.parents),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            bug_id=int(data["id"]),
            summary=data.get("summary", ""),
            status=int(data["status"]),
            priority=int(data.get("priority", 0)),
            priority_name=data.get("priority_name", ""),
            assignee=str(data.get("handler_id") or UNASSIGNED),
            assignee_name=data.get("handler_name", ""),
            parents=[str(p) for p in data.get("parents", [])],
        )


@dataclass
class Feedback:
    """The transient message bar."""
    message: str
    kind: str = "info"      # "info" | "success" | "error"


class BoardState:
    """Explicit application state for one board page."""

    def __init__(
        self,
        columns: List[ColumnMeta],
        cards: List[Card],
        prefs: PreferenceStore,
        users: Optional[List[Dict[str, Any]]] = None,
        parent_tickets: Optional[List[Dict[str, Any]]] = None,
        priorities: Optional[Dict[int, str]] = None,
        project: Optional[Dict[str, Any]] = None,
    ):
        self.columns = columns
        self.cards: Dict[int, Card] = {c.bug_id: c for c in cards}
        self.users = users or []
        self.parent_tickets = parent_tickets or []
        self.priorities = priorities or {}
        self.project = project or {}
        self.filters = FilterSet()
        self.visibility = ColumnVisibility(columns, prefs)
        self.feedback: Optional[Feedback] = None
        self.empty_messages: Dict[int, Optional[str]] = self.placeholders()

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], prefs: PreferenceStore) -> "BoardState":
        return cls(
            columns=[ColumnMeta.from_dict(c) for c in payload.get("columns", [])],
            cards=[Card.from_dict(c) for c in payload.get("cards", [])],
            prefs=prefs,
            users=payload.get("users", []),
            parent_tickets=payload.get("parent_tickets", []),
            priorities={int(p["code"]): p["label"] for p in payload.get("priorities", [])},
            project=payload.get("project"),
        )

    # ── Lookup ───────────────────────────────────────────────────────────────

    def card(self, bug_id: int) -> Card:
        try:
            return self.cards[int(bug_id)]
        except KeyError:
            raise KeyError(f"No card for bug #{bug_id}")

    def column(self, status: int) -> Optional[ColumnMeta]:
        for col in self.columns:
            if col.status == int(status):
                return col
        return None

    def status_label(self, status: int) -> str:
        col = self.column(status)
        return col.label if col else f"@{status}@"

    def cards_in(self, status: int) -> List[Card]:
        return [c for c in self.cards.values() if c.status == int(status)]

    # ── Counts & placeholders ────────────────────────────────────────────────

    def column_count(self, status: int) -> int:
        """Live card count for a column badge."""
        return len(self.cards_in(status))

    def refresh_counts(self, *statuses: int) -> None:
        """Recompute badges from the live cards (all columns when none given)."""
        wanted = {int(s) for s in statuses}
        for col in self.columns:
            if not wanted or col.status in wanted:
                col.count = self.column_count(col.status)

    def placeholder(self, status: int) -> Optional[str]:
        """Empty-state text for a column, or None when it shows cards."""
        cards = self.cards_in(status)
        if not cards:
            return EMPTY_STATUS_TEXT
        if not any(c.visible for c in cards):
            return NO_MATCH_TEXT
        return None

    def placeholders(self) -> Dict[int, Optional[str]]:
        return {col.status: self.placeholder(col.status) for col in self.columns}

    # ── Mutation ─────────────────────────────────────────────────────────────

    def move_card(self, bug_id: int, status: int) -> Card:
        card = self.card(bug_id)
        if self.column(status) is None:
            raise KeyError(f"No column for status {status}")
        card.status = int(status)
        return card

    def set_assignee(self, bug_id: int, assignee_id, name: str) -> Card:
        card = self.card(bug_id)
        card.assignee = str(assignee_id) if assignee_id and int(assignee_id) > 0 else UNASSIGNED
        card.assignee_name = name if card.assignee else ""
        return card

    def notify(self, message: str, kind: str = "info") -> Feedback:
        self.feedback = Feedback(message, kind)
        return self.feedback

    # ── Filtering ────────────────────────────────────────────────────────────

    def apply_filters(self) -> List[int]:
        """
        Re-evaluate every card against the active filters and recompute the
        column placeholders; returns the visible ids.
        """
        visible = []
        for card in self.cards.values():
            card.visible = self.filters.matches(card)
            if card.visible:
                visible.append(card.bug_id)
        self.empty_messages = self.placeholders()
        return visible

    def filter_labels(self) -> Dict[str, Dict[str, str]]:
        """Display names for active-filter tags, keyed by axis then value."""
        assignees = {UNASSIGNED: "Unassigned"}
        for user in self.users:
            assignees[str(user["id"])] = user.get("display_name") or user.get("username", "")
        for card in self.cards.values():
            if card.assignee and card.assignee not in assignees:
                assignees[card.assignee] = card.assignee_name
        return {
            "assignee": assignees,
            "priority": {str(k): v.capitalize() for k, v in self.priorities.items()},
            "status": {str(c.status): c.label.capitalize() for c in self.columns},
            "parent": {str(p["id"]): f"#{p['id']}: {p['summary']}" for p in self.parent_tickets},
        }

    def active_filter_tags(self):
        return self.filters.active_tags(self.filter_labels())

    def known_assignees(self) -> List[Dict[str, Any]]:
        """Distinct assignees on the current cards (degraded user list)."""
        seen: Dict[str, Dict[str, Any]] = {}
        for card in self.cards.values():
            if card.assignee and card.assignee not in seen:
                seen[card.assignee] = {
                    "id": int(card.assignee),
                    "display_name": card.assignee_name or f"@{card.assignee}@",
                }
        return sorted(seen.values(), key=lambda u: u["display_name"].lower())
