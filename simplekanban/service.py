"""
Board operations: the server side of the Kanban board.

Every operation takes the already-authenticated acting user, checks access
against the configured thresholds and returns a JSON-ready dict. Failures are
raised as BoardError subclasses; the HTTP layer turns them into
``{"success": false, "error": ...}`` payloads with the matching status code.
"""
import logging
from typing import Any, Dict, List, Optional

from markupsafe import escape

from .config import BoardConfig, enum_label
from .schema import ALL_PROJECTS, NO_USER, Issue, User, format_date
from .store import TrackerStore

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Exceptions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BoardError(Exception):
    """Base class for errors reported to the caller as a structured payload."""
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class InvalidInput(BoardError):
    """Missing or malformed request parameters."""
    http_status = 400


class AuthRequired(BoardError):
    """No authenticated user."""
    http_status = 401


class AccessDenied(BoardError):
    """Caller is below the access threshold for the operation."""
    http_status = 403


class NotFound(BoardError):
    """Referenced bug, user or project does not exist."""
    http_status = 404


class InvalidStatus(BoardError):
    """Status code is not part of the status enumeration."""
    http_status = 400


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _display_text(value: str) -> str:
    """HTML-escape and keep line breaks, as the tracker's own pages do."""
    if not value or not value.strip():
        return ""
    return str(escape(value)).replace("\r\n", "\n").replace("\n", "<br />\n")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BoardService
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BoardService:
    """Stateless per request; all state lives in the store."""

    def __init__(self, store: TrackerStore, config: BoardConfig):
        self.store = store
        self.config = config

    # ── Access ───────────────────────────────────────────────────────────────

    def _require_user(self, actor: Optional[User]) -> User:
        if actor is None or not actor.enabled:
            raise AuthRequired("Authentication required")
        return actor

    def _require_bug(self, bug_id: int, message: str = "Bug not found") -> Issue:
        bug = self.store.get_bug(bug_id)
        if bug is None:
            raise NotFound(message)
        return bug

    def _require_level(self, actor: User, project_id: int, threshold: int) -> None:
        if self.store.access_level(actor.user_id, project_id) < threshold:
            raise AccessDenied("Access denied")

    def _username(self, user_id: int) -> str:
        if not user_id or user_id <= 0:
            return ""
        user = self.store.get_user(user_id)
        return user.username if user else f"@{user_id}@"

    def _display_name(self, user_id: int) -> str:
        if not user_id or user_id <= 0:
            return ""
        user = self.store.get_user(user_id)
        return user.display_name if user else f"@{user_id}@"

    # ── Update status ────────────────────────────────────────────────────────

    def update_status(self, actor: Optional[User], bug_id: int, new_status: int) -> Dict[str, Any]:
        """
        Move a bug to a new status.

        Moving an unassigned bug into the configured "assigned" status also
        makes the acting user its handler, in the same transaction.
        """
        actor = self._require_user(actor)
        if bug_id <= 0 or new_status <= 0:
            raise InvalidInput("Invalid bug ID or status")

        bug = self._require_bug(bug_id)
        self._require_level(actor, bug.project_id, self.config.update_bug_threshold)

        statuses = self.config.statuses
        if new_status not in statuses:
            raise InvalidStatus(f"Invalid status value: {new_status}")

        changes = {"status": new_status}
        was_auto_assigned = False
        if new_status == self.config.bug_assigned_status and not bug.is_assigned:
            changes["handler_id"] = actor.user_id
            was_auto_assigned = True

        updated = self.store.update_fields(bug_id, changes, actor.user_id)

        if was_auto_assigned:
            logger.info(
                f"Kanban: Bug #{bug_id} auto-assigned to {actor.username} "
                f"when moved to {statuses[new_status]} status"
            )
        logger.info(f"Kanban: Bug #{bug_id} status changed to {new_status} via drag and drop")

        return {
            "success": True,
            "bug_id": bug_id,
            "new_status": new_status,
            "status_name": statuses[new_status],
            "assigned_to": self._username(updated.handler_id),
            "was_auto_assigned": was_auto_assigned,
            "message": "Bug status updated successfully",
        }

    # ── Update assignee ──────────────────────────────────────────────────────

    def update_assignee(self, actor: Optional[User], bug_id: int, assignee_id: int) -> Dict[str, Any]:
        """Set or clear (assignee_id == 0) a bug's handler."""
        actor = self._require_user(actor)
        if bug_id <= 0:
            raise InvalidInput("Invalid bug ID")
        if assignee_id < 0:
            raise InvalidInput("Invalid assignee ID")

        bug = self._require_bug(bug_id)
        self._require_level(actor, bug.project_id, self.config.update_bug_assign_threshold)

        if assignee_id != NO_USER and self.store.get_user(assignee_id) is None:
            raise NotFound("User not found")

        self.store.set_handler(bug_id, assignee_id, actor.user_id)
        logger.info(f"Kanban: Bug #{bug_id} assigned to user {assignee_id} by {actor.username}")

        return {
            "success": True,
            "assignee_id": assignee_id,
            "assignee_name": self._username(assignee_id),
            "message": "Assignee updated successfully",
        }

    # ── Ticket details ───────────────────────────────────────────────────────

    def get_ticket_details(self, actor: Optional[User], bug_id: int) -> Dict[str, Any]:
        actor = self._require_user(actor)
        if bug_id <= 0:
            raise InvalidInput("Invalid bug ID")

        bug = self._require_bug(bug_id)
        self._require_level(actor, bug.project_id, self.config.view_bug_threshold)

        project = self.store.get_project(bug.project_id)
        return {
            "success": True,
            "bug": {
                "id": bug.bug_id,
                "summary": str(escape(bug.summary)),
                "description": _display_text(bug.description),
                "status_name": enum_label(self.config.statuses, bug.status),
                "priority_name": enum_label(self.config.priorities, bug.priority),
                "severity_name": enum_label(self.config.severities, bug.severity),
                "project_name": project.name if project else f"@{bug.project_id}@",
                "reporter_name": self._username(bug.reporter_id),
                "handler_name": self._username(bug.handler_id),
                "date_submitted": format_date(bug.date_submitted),
                "last_updated": format_date(bug.last_updated),
                "steps_to_reproduce": _display_text(bug.steps_to_reproduce),
                "additional_information": _display_text(bug.additional_information),
            },
        }

    # ── Ticket assignees ─────────────────────────────────────────────────────

    def get_ticket_assignees(self, actor: Optional[User], ticket_id: int) -> Dict[str, Any]:
        """Users who may be assigned the ticket, led by a "no one" entry."""
        actor = self._require_user(actor)
        if ticket_id <= 0:
            raise InvalidInput("Invalid ticket ID")

        bug = self._require_bug(ticket_id, "Ticket not found")
        self._require_level(actor, bug.project_id, self.config.view_bug_threshold)

        candidates = self.store.assignable_users(
            bug.project_id, self.config.update_bug_assign_threshold
        )
        users = [{
            "id": NO_USER,
            "username": "",
            "realname": "",
            "display_name": "[No one assigned]",
            "is_current_assignee": not bug.is_assigned,
        }]
        for u in candidates:
            entry = u.to_dict()
            entry["is_current_assignee"] = bug.handler_id == u.user_id
            users.append(entry)
        logger.debug(f"Kanban: {len(candidates)} assignable users for ticket #{ticket_id}")

        project = self.store.get_project(bug.project_id)
        return {
            "success": True,
            "ticket_id": ticket_id,
            "project_id": bug.project_id,
            "project_name": project.name if project else "",
            "current_assignee": bug.handler_id,
            "users": users,
        }

    # ── Board payload ────────────────────────────────────────────────────────

    def _scope(self, actor: User, project_id: int) -> List[int]:
        if project_id == ALL_PROJECTS:
            return self.store.accessible_projects(actor.user_id, self.config.view_bug_threshold)
        if self.store.get_project(project_id) is None:
            raise NotFound("Project not found")
        self._require_level(actor, project_id, self.config.view_bug_threshold)
        return [project_id]

    def board_data(self, actor: Optional[User], project_id: int = ALL_PROJECTS) -> Dict[str, Any]:
        """Everything the board needs for one project (or all visible projects)."""
        actor = self._require_user(actor)
        if project_id < 0:
            raise InvalidInput("Invalid project ID")
        scope = self._scope(actor, project_id)

        statuses = self.config.statuses
        priorities = self.config.priorities
        bugs = self.store.list_bugs(scope)
        parents = self.store.parent_map()

        counts: Dict[int, int] = {}
        for bug in bugs:
            counts[bug.status] = counts.get(bug.status, 0) + 1

        # Enum order first, then any unknown status that has issues
        shown = set(self.config.column_statuses()) | set(counts)
        order = [s for s in statuses if s in shown]
        order += sorted(s for s in shown if s not in statuses)
        default_visible = set(int(s) for s in self.config.default_visible_statuses)
        columns = [{
            "status": s,
            "label": enum_label(statuses, s),
            "count": counts.get(s, 0),
            "has_bugs": counts.get(s, 0) > 0,
            "default_visible": s in default_visible or counts.get(s, 0) > 0,
        } for s in order]

        names: Dict[int, str] = {}
        cards = []
        for bug in bugs:
            if bug.is_assigned and bug.handler_id not in names:
                names[bug.handler_id] = self._display_name(bug.handler_id)
            cards.append({
                "id": bug.bug_id,
                "summary": bug.summary,
                "status": bug.status,
                "priority": bug.priority,
                "priority_name": enum_label(priorities, bug.priority),
                "handler_id": str(bug.handler_id) if bug.is_assigned else "",
                "handler_name": names.get(bug.handler_id, "") if bug.is_assigned else "",
                "parents": [str(p) for p in parents.get(bug.bug_id, [])],
                "project_id": bug.project_id,
                "date_submitted": format_date(bug.date_submitted),
            })

        if project_id == ALL_PROJECTS:
            project = {"id": ALL_PROJECTS, "name": "All Projects"}
        else:
            project = self.store.get_project(project_id).to_dict()

        logger.info(
            f"Kanban: Found {len(bugs)} bugs across {len(counts)} statuses "
            f"for project {project_id}"
        )
        return {
            "success": True,
            "project": project,
            "statuses": [{"code": c, "label": l} for c, l in statuses.items()],
            "priorities": [{"code": c, "label": l} for c, l in priorities.items()],
            "columns": columns,
            "cards": cards,
            "users": [u.to_dict() for u in self.store.list_users()],
            "parent_tickets": self.store.parent_tickets(scope),
        }
