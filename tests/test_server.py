"""
Tests for the Flask layer: API-key auth, JSON error mapping and the board page.
"""

import re

import pytest

from board_server import create_app
from simplekanban.schema import Issue

ADMIN = {"X-API-Key": "admin-key"}
VIEWER = {"X-API-Key": "viewer-key"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAuth:

    def test_health_is_open(self, http, seeded):
        r = http.get("/health")
        assert r.status_code == 200
        assert r.get_json() == {"status": "ok", "db": seeded.db_path}

    @pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"},
                                         {"X-API-Key": "disabled-key"},
                                         {"X-API-Key": "ghost-key"}])
    def test_rejected_keys(self, http, headers):
        r = http.post("/api/update_status", data={"bug_id": 42, "new_status": 50}, headers=headers)
        assert r.status_code == 401
        assert r.get_json() == {"success": False, "error": "Authentication required"}

    def test_key_in_query_string(self, http):
        r = http.get("/api/board?key=admin-key")
        assert r.status_code == 200


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON operations
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestOperations:

    def test_update_status(self, http, seeded):
        r = http.post("/api/update_status", data={"bug_id": "42", "new_status": "50"},
                      headers={"X-API-Key": "dev-key"})
        assert r.status_code == 200
        body = r.get_json()
        assert body["success"] is True
        assert body["was_auto_assigned"] is True
        assert body["assigned_to"] == "dave"
        assert seeded.get_bug(42).handler_id == 2

    def test_update_status_json_body(self, http, seeded):
        r = http.post("/api/update_status", json={"bug_id": 44, "new_status": 90}, headers=ADMIN)
        assert r.status_code == 200
        assert seeded.get_bug(44).status == 90

    def test_non_numeric_params(self, http):
        r = http.post("/api/update_status", data={"bug_id": "abc", "new_status": "50"}, headers=ADMIN)
        assert r.status_code == 400
        assert r.get_json() == {"success": False, "error": "Invalid bug ID or status"}

    def test_error_codes(self, http):
        assert http.post("/api/update_status", data={"bug_id": 999, "new_status": 50},
                         headers=ADMIN).status_code == 404
        assert http.post("/api/update_status", data={"bug_id": 42, "new_status": 50},
                         headers=VIEWER).status_code == 403
        r = http.post("/api/update_status", data={"bug_id": 42, "new_status": 55}, headers=ADMIN)
        assert r.status_code == 400
        assert r.get_json()["error"] == "Invalid status value: 55"

    def test_get_not_allowed_for_mutations(self, http):
        assert http.get("/api/update_status", headers=ADMIN).status_code == 405

    def test_update_assignee(self, http, seeded):
        r = http.post("/api/update_assignee", data={"bug_id": 42, "assignee_id": 1}, headers=ADMIN)
        assert r.get_json()["assignee_name"] == "admin"
        assert seeded.get_bug(42).handler_id == 1

    def test_ticket_details(self, http):
        r = http.get("/api/ticket_details?bug_id=43", headers=ADMIN)
        assert r.get_json()["bug"]["handler_name"] == "dave"

    def test_ticket_assignees(self, http):
        r = http.get("/api/ticket_assignees?ticket_id=43", headers=ADMIN)
        body = r.get_json()
        assert body["success"] is True
        assert body["users"][0]["id"] == 0

    def test_board_payload(self, http):
        body = http.get("/api/board?project_id=1", headers=ADMIN).get_json()
        assert body["project"]["name"] == "Alpha"
        assert len(body["cards"]) == 3

    def test_unexpected_error_is_generic(self, config, seeded, monkeypatch):
        app = create_app(config, seeded)
        service = app.config["BOARD_SERVICE"]

        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(service, "get_ticket_details", explode)
        r = app.test_client().get("/api/ticket_details?bug_id=42", headers=ADMIN)
        assert r.status_code == 500
        assert r.get_json() == {"success": False, "error": "Internal server error"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board page
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestBoardPage:

    def page(self, http, query="project_id=1"):
        r = http.get(f"/?{query}", headers=ADMIN)
        assert r.status_code == 200
        return r.get_data(as_text=True)

    def test_title(self, http):
        assert "Simple Kanban Board - Alpha" in self.page(http)

    def test_card_attributes(self, http):
        html = self.page(http)
        assert ('data-bug-id="43" data-priority="30" data-assignee="2" '
                'data-status="50" data-parents="42"') in html
        assert ('data-bug-id="42" data-priority="40" data-assignee="" '
                'data-status="10" data-parents=""') in html

    def test_columns_and_toggles(self, http):
        html = self.page(http)
        assert 'data-status-id="20"' in html
        assert 'id="toggle-80" checked' in html
        assert 'id="toggle-20">' in html
        assert 'data-has-bugs="true"' in html
        assert html.count("No bugs in this status") == 7

    def test_filter_options(self, http):
        html = self.page(http)
        assert re.search(r'value="0" data-filter="parent" checked', html)
        assert "#42: Login page crashes" in html
        assert 'value="2" data-filter="assignee"' in html

    def test_config_urls(self, http):
        html = self.page(http)
        assert 'data-update-status-url="/api/update_status"' in html
        assert 'data-view-url="/view.php?id="' in html

    def test_controls_are_inert_hooks(self, http):
        html = self.page(http)
        assert "<script" not in html
        assert "BoardState" not in html
        for hook in ('id="refresh-btn"', 'id="filter-btn"', 'id="show-all-btn"', 'id="hide-empty-btn"'):
            assert hook in html

    def test_summary_escaped(self, http, seeded):
        seeded.save_bug(Issue(0, 1, "<script>alert(1)</script>"))
        html = self.page(http)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_unknown_project(self, http):
        r = http.get("/?project_id=9", headers=ADMIN)
        assert r.status_code == 404


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLI
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_main_runs_app(tmp_path, monkeypatch):
    import board_server
    seen = {}

    def fake_run(self, host=None, port=None, **kwargs):
        seen.update(host=host, port=port, threaded=kwargs.get("threaded"))

    monkeypatch.setattr(board_server.Flask, "run", fake_run)
    db = tmp_path / "cli.db"
    board_server.main(["--config", str(tmp_path / "none.yaml"), "--db", str(db), "--port", "3100"])
    assert seen == {"host": "127.0.0.1", "port": 3100, "threaded": True}
    assert db.exists()
