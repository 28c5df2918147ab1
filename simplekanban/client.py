# SimpleKanban: board API client
#
# Thin requests wrapper over the board server's JSON operations.
# Service-level failures ({"success": false, ...}) come back as plain dicts;
# anything that never produced a JSON body raises TransportError. No retries.

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The request failed before a JSON reply could be read."""


class BoardClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"X-API-Key": api_key})

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"Kanban: {method} {path} failed: {e}")
            raise TransportError(str(e)) from e

        try:
            body = r.json()
        except ValueError as e:
            raise TransportError(f"Non-JSON reply from {path} (HTTP {r.status_code})") from e
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected reply from {path} (HTTP {r.status_code})")
        return body

    # ── Operations ───────────────────────────────────────────────────────────

    def get_board(self, project_id: int = 0) -> Dict[str, Any]:
        return self._request("GET", "/api/board", params={"project_id": project_id})

    def update_status(self, bug_id: int, new_status: int) -> Dict[str, Any]:
        return self._request(
            "POST", "/api/update_status",
            data={"bug_id": bug_id, "new_status": new_status},
        )

    def update_assignee(self, bug_id: int, assignee_id: int) -> Dict[str, Any]:
        return self._request(
            "POST", "/api/update_assignee",
            data={"bug_id": bug_id, "assignee_id": assignee_id},
        )

    def get_ticket_details(self, bug_id: int) -> Dict[str, Any]:
        return self._request("GET", "/api/ticket_details", params={"bug_id": bug_id})

    def get_ticket_assignees(self, ticket_id: int) -> Dict[str, Any]:
        return self._request("GET", "/api/ticket_assignees", params={"ticket_id": ticket_id})
