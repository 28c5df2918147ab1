"""
Drag-and-drop status changes.

Each card runs its own small state machine:

    IDLE ──pick_up──▶ DRAGGING ──drop (other column)──▶ PENDING ──▶ SETTLED
      ▲                  │                                   └────▶ ERROR
      └──drop (same)─────┘

A drop on another column moves the card optimistically and yields a
StatusIntent; committing the intent sends exactly one status update and then
settles or reverts the card. SETTLED and ERROR cards can be picked up again.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .board import BoardState
from .client import TransportError

logger = logging.getLogger(__name__)

NETWORK_ERROR_TEXT = "Network error. Please try again."


class CardPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING = "pending"
    SETTLED = "settled"
    ERROR = "error"


_TRANSITIONS = {
    CardPhase.IDLE: {CardPhase.DRAGGING},
    CardPhase.DRAGGING: {CardPhase.IDLE, CardPhase.PENDING},
    CardPhase.PENDING: {CardPhase.SETTLED, CardPhase.ERROR},
    CardPhase.SETTLED: {CardPhase.DRAGGING},
    CardPhase.ERROR: {CardPhase.DRAGGING},
}


class InvalidTransition(Exception):
    """A card was asked to move between phases that are not connected."""


@dataclass
class StatusIntent:
    """One pending status change, produced by a drop and consumed by commit."""
    bug_id: int
    from_status: int
    to_status: int
    committed: bool = False


class DragDropEngine:
    """Drives cards on one BoardState through drag, drop and commit."""

    def __init__(self, board: BoardState):
        self.board = board
        self.phases: Dict[int, CardPhase] = {}

    def phase(self, bug_id: int) -> CardPhase:
        return self.phases.get(int(bug_id), CardPhase.IDLE)

    def _advance(self, bug_id: int, to: CardPhase) -> None:
        current = self.phase(bug_id)
        if to not in _TRANSITIONS[current]:
            raise InvalidTransition(f"Bug #{bug_id}: {current.value} -> {to.value}")
        self.phases[int(bug_id)] = to

    # ── Gestures ─────────────────────────────────────────────────────────────

    def pick_up(self, bug_id: int) -> None:
        card = self.board.card(bug_id)
        if not self.board.visibility.is_visible(card.status):
            raise InvalidTransition(f"Bug #{bug_id} is in a hidden column")
        if card.disabled:
            raise InvalidTransition(f"Bug #{bug_id} has an update in flight")
        self._advance(bug_id, CardPhase.DRAGGING)

    def drop(self, bug_id: int, to_status: int) -> Optional[StatusIntent]:
        """Release a dragged card over a column; None for a same-column reorder."""
        card = self.board.card(bug_id)
        if self.phase(bug_id) != CardPhase.DRAGGING:
            raise InvalidTransition(f"Bug #{bug_id} is not being dragged")

        to_status = int(to_status)
        if to_status == card.status:
            self._advance(bug_id, CardPhase.IDLE)
            return None
        if not self.board.visibility.is_visible(to_status):
            raise InvalidTransition(f"Status {to_status} is not an open column")

        intent = StatusIntent(card.bug_id, card.status, to_status)
        self._advance(bug_id, CardPhase.PENDING)
        self.board.move_card(bug_id, to_status)
        card.disabled = True
        return intent

    def cancel(self, bug_id: int) -> None:
        """Drag abandoned outside any column."""
        self._advance(bug_id, CardPhase.IDLE)

    # ── Server round trip ────────────────────────────────────────────────────

    def commit(self, intent: StatusIntent, client) -> CardPhase:
        """Send the intent's status update once and settle the card from the reply."""
        if intent.committed:
            raise InvalidTransition(f"Bug #{intent.bug_id}: status change already sent")
        if self.phase(intent.bug_id) != CardPhase.PENDING:
            raise InvalidTransition(f"Bug #{intent.bug_id} has no pending status change")
        intent.committed = True

        try:
            reply = client.update_status(intent.bug_id, intent.to_status)
        except TransportError as e:
            logger.warning(f"Kanban: Bug #{intent.bug_id} status update failed: {e}")
            return self.fail(intent, NETWORK_ERROR_TEXT)

        if not reply.get("success"):
            return self.fail(intent, f"Error: {reply.get('error', 'Unknown error')}")
        return self.settle(intent, reply)

    def settle(self, intent: StatusIntent, reply: dict) -> CardPhase:
        card = self.board.card(intent.bug_id)
        self._advance(intent.bug_id, CardPhase.SETTLED)
        card.disabled = False
        self.board.refresh_counts(intent.from_status, intent.to_status)

        assigned_to = reply.get("assigned_to") or ""
        if assigned_to:
            self._apply_handler(card, assigned_to)

        status_name = reply.get("status_name") or self.board.status_label(intent.to_status)
        message = f"Bug #{intent.bug_id} moved to {status_name}"
        if reply.get("was_auto_assigned") and assigned_to:
            message += f" and assigned to {assigned_to}"
        self.board.notify(message, "success")
        self.board.apply_filters()
        return CardPhase.SETTLED

    def fail(self, intent: StatusIntent, message: str) -> CardPhase:
        card = self.board.card(intent.bug_id)
        self._advance(intent.bug_id, CardPhase.ERROR)
        self.board.move_card(intent.bug_id, intent.from_status)
        card.disabled = False
        self.board.refresh_counts(intent.from_status, intent.to_status)
        self.board.notify(message, "error")
        self.board.apply_filters()
        return CardPhase.ERROR

    def _apply_handler(self, card, username: str) -> None:
        """Patch the card's assignee from a reply's username, if it changed."""
        user = self._find_user(username)
        if user is None:
            # Not in the page's user list: label an unassigned card with the username
            if not card.assignee_name:
                card.assignee_name = username
            return
        if str(user["id"]) != card.assignee:
            name = user.get("display_name") or user.get("username") or username
            self.board.set_assignee(card.bug_id, user["id"], name)

    def _find_user(self, username: str) -> Optional[dict]:
        for user in self.board.users:
            if user.get("username") == username:
                return user
        return None
