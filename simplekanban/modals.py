"""
Assignee editor and ticket detail viewer.

Both modals degrade instead of failing: when the server cannot supply the
candidate list or the full ticket, they fall back to what the board already
knows about the card.
"""
import logging
from typing import Any, Dict, List, Optional

from .board import BoardState
from .client import TransportError
from .dragdrop import NETWORK_ERROR_TEXT

logger = logging.getLogger(__name__)

UNASSIGNED_ENTRY = {"id": 0, "display_name": "Unassigned", "is_current_assignee": False}
FALLBACK_NOTE = "Full details could not be loaded; showing the information on the card."


def _reply_error(reply: Dict[str, Any]) -> str:
    return f"Error: {reply.get('error', 'Unknown error')}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Assignee editor
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AssigneeEditor:
    """Pick a new handler for one card."""

    def __init__(self, board: BoardState, client):
        self.board = board
        self.client = client
        self.bug_id: Optional[int] = None
        self.candidates: List[Dict[str, Any]] = []
        self.degraded = False

    @property
    def is_open(self) -> bool:
        return self.bug_id is not None

    def open(self, bug_id: int) -> List[Dict[str, Any]]:
        card = self.board.card(bug_id)
        self.bug_id = card.bug_id
        self.degraded = False
        try:
            reply = self.client.get_ticket_assignees(card.bug_id)
        except TransportError as e:
            logger.warning(f"Kanban: assignee list for #{card.bug_id} unavailable: {e}")
            reply = None

        users = reply.get("users") if reply and reply.get("success") else None
        if isinstance(users, list):
            self.candidates = users
        else:
            self.degraded = True
            current = card.assignee
            self.candidates = [dict(UNASSIGNED_ENTRY, is_current_assignee=not current)] + [
                dict(u, is_current_assignee=str(u["id"]) == current)
                for u in self.board.known_assignees()
            ]
        return self.candidates

    def search(self, text: str) -> List[Dict[str, Any]]:
        q = text.strip().lower()
        if not q:
            return list(self.candidates)
        return [u for u in self.candidates if q in str(u.get("display_name", "")).lower()]

    def _candidate_name(self, user_id: int) -> str:
        for u in self.candidates:
            if int(u["id"]) == user_id:
                return str(u.get("display_name", ""))
        return ""

    def select(self, user_id: int) -> bool:
        """Assign the card; True when the modal closed on success."""
        if not self.is_open:
            raise RuntimeError("Assignee editor is not open")
        user_id = int(user_id)
        try:
            reply = self.client.update_assignee(self.bug_id, user_id)
        except TransportError:
            self.board.notify(NETWORK_ERROR_TEXT, "error")
            return False
        if not reply.get("success"):
            self.board.notify(_reply_error(reply), "error")
            return False

        name = self._candidate_name(user_id) or reply.get("assignee_name", "")
        card = self.board.set_assignee(self.bug_id, user_id, name)
        card.cue = "success"
        self.board.notify(reply.get("message", "Assignee updated successfully"), "success")
        self.board.apply_filters()
        self.close()
        return True

    def close(self) -> None:
        self.bug_id = None
        self.candidates = []
        self.degraded = False


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Detail viewer
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DetailViewer:
    """Read-only ticket view with links out to the tracker's own pages."""

    def __init__(self, board: BoardState, view_url: str, edit_url: str):
        self.board = board
        self.view_url = view_url
        self.edit_url = edit_url
        self.bug_id: Optional[int] = None
        self.state = "closed"       # closed | loading | loaded | fallback
        self.details: Dict[str, Any] = {}
        self.note = ""

    @property
    def links(self) -> Dict[str, str]:
        if self.bug_id is None:
            return {}
        return {
            "view": f"{self.view_url}{self.bug_id}",
            "edit": f"{self.edit_url}{self.bug_id}",
        }

    def open(self, bug_id: int) -> Dict[str, str]:
        self.bug_id = self.board.card(bug_id).bug_id
        self.state = "loading"
        self.details = {}
        self.note = ""
        return self.links

    def load(self, client) -> Dict[str, Any]:
        if self.bug_id is None:
            raise RuntimeError("Detail viewer is not open")
        try:
            reply = client.get_ticket_details(self.bug_id)
        except TransportError as e:
            logger.warning(f"Kanban: details for #{self.bug_id} unavailable: {e}")
            reply = None

        bug = reply.get("bug") if reply and reply.get("success") else None
        if isinstance(bug, dict):
            self.details = bug
            self.state = "loaded"
        else:
            self.details = self._from_card()
            self.note = FALLBACK_NOTE
            self.state = "fallback"
        return self.details

    def _from_card(self) -> Dict[str, Any]:
        card = self.board.card(self.bug_id)
        return {
            "id": card.bug_id,
            "summary": card.summary,
            "handler_name": card.assignee_label,
            "status_name": self.board.status_label(card.status),
            "priority_name": card.priority_name,
        }

    def close(self) -> None:
        self.bug_id = None
        self.state = "closed"
        self.details = {}
        self.note = ""
