"""
Tests for the board operations: status moves with auto-assignment, assignee
changes, ticket details, assignee candidates and the board payload.
"""

import logging

import pytest

from simplekanban.schema import AccessLevel, User
from simplekanban.service import (
    AccessDenied,
    AuthRequired,
    InvalidInput,
    InvalidStatus,
    NotFound,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# update_status
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestUpdateStatus:

    def test_move_to_assigned_auto_assigns(self, service, users, seeded):
        result = service.update_status(users["dave"], 42, 50)
        assert result == {
            "success": True,
            "bug_id": 42,
            "new_status": 50,
            "status_name": "assigned",
            "assigned_to": "dave",
            "was_auto_assigned": True,
            "message": "Bug status updated successfully",
        }
        bug = seeded.get_bug(42)
        assert bug.status == 50
        assert bug.handler_id == users["dave"].user_id

    def test_auto_assign_logged(self, service, users, caplog):
        with caplog.at_level(logging.INFO, logger="simplekanban.service"):
            service.update_status(users["dave"], 42, 50)
        assert "Kanban: Bug #42 auto-assigned to dave when moved to assigned status" in caplog.text

    def test_already_assigned_keeps_handler(self, service, users, seeded):
        seeded.set_status(43, 10, user_id=1)
        result = service.update_status(users["admin"], 43, 50)
        assert result["was_auto_assigned"] is False
        assert result["assigned_to"] == "dave"
        assert seeded.get_bug(43).handler_id == 2

    def test_other_status_does_not_assign(self, service, users, seeded):
        result = service.update_status(users["dave"], 42, 60)
        assert result["was_auto_assigned"] is False
        assert result["assigned_to"] == ""
        assert seeded.get_bug(42).handler_id == 0

    def test_status_and_handler_share_one_update(self, service, users, seeded):
        service.update_status(users["dave"], 42, 50)
        fields = [h.field_name for h in seeded.history(42)]
        assert fields == ["status", "handler_id"]

    @pytest.mark.parametrize("bug_id,status", [(0, 50), (42, 0), (-1, 50)])
    def test_invalid_input(self, service, users, seeded, bug_id, status):
        with pytest.raises(InvalidInput) as exc:
            service.update_status(users["dave"], bug_id, status)
        assert exc.value.message == "Invalid bug ID or status"
        assert exc.value.http_status == 400
        assert seeded.history(42) == []
        assert seeded.get_bug(42).status == 10

    def test_bug_not_found(self, service, users):
        with pytest.raises(NotFound, match="Bug not found"):
            service.update_status(users["dave"], 999, 50)

    def test_below_threshold_denied(self, service, users, seeded):
        with pytest.raises(AccessDenied) as exc:
            service.update_status(users["vera"], 42, 50)
        assert exc.value.to_dict() == {"success": False, "error": "Access denied"}
        assert seeded.get_bug(42).status == 10

    def test_project_override_allows_update(self, service, users):
        assert service.update_status(users["rita"], 42, 20)["success"]
        with pytest.raises(AccessDenied):
            service.update_status(users["rita"], 45, 20)

    def test_invalid_status_value(self, service, users, seeded):
        with pytest.raises(InvalidStatus, match="Invalid status value: 55"):
            service.update_status(users["dave"], 42, 55)
        assert seeded.get_bug(42).status == 10

    def test_no_user(self, service):
        with pytest.raises(AuthRequired):
            service.update_status(None, 42, 50)

    def test_disabled_user(self, service, users):
        with pytest.raises(AuthRequired):
            service.update_status(users["olga"], 42, 50)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# update_assignee
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestUpdateAssignee:

    def test_assign(self, service, users, seeded):
        result = service.update_assignee(users["admin"], 42, 2)
        assert result == {
            "success": True,
            "assignee_id": 2,
            "assignee_name": "dave",
            "message": "Assignee updated successfully",
        }
        assert seeded.get_bug(42).handler_id == 2

    def test_unassign(self, service, users, seeded):
        result = service.update_assignee(users["admin"], 43, 0)
        assert result["assignee_name"] == ""
        assert seeded.get_bug(43).handler_id == 0

    def test_status_untouched(self, service, users, seeded):
        service.update_assignee(users["admin"], 42, 2)
        assert seeded.get_bug(42).status == 10

    def test_invalid_ids(self, service, users):
        with pytest.raises(InvalidInput, match="Invalid bug ID"):
            service.update_assignee(users["admin"], 0, 2)
        with pytest.raises(InvalidInput, match="Invalid assignee ID"):
            service.update_assignee(users["admin"], 42, -3)

    def test_unknown_user(self, service, users):
        with pytest.raises(NotFound, match="User not found"):
            service.update_assignee(users["admin"], 42, 77)

    def test_updater_cannot_assign(self, service, users):
        with pytest.raises(AccessDenied):
            service.update_assignee(users["rita"], 42, 2)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Ticket details & assignees
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTicketDetails:

    def test_details(self, service, users):
        bug = service.get_ticket_details(users["vera"], 42)["bug"]
        assert bug["id"] == 42
        assert bug["status_name"] == "new"
        assert bug["priority_name"] == "high"
        assert bug["severity_name"] == "minor"
        assert bug["project_name"] == "Alpha"
        assert bug["reporter_name"] == "vera"
        assert bug["handler_name"] == ""

    def test_description_escaped_with_line_breaks(self, service, users):
        bug = service.get_ticket_details(users["vera"], 42)["bug"]
        assert bug["description"] == "Steps:<br />\n&lt;click&gt; login"

    def test_hidden_project(self, service, users):
        with pytest.raises(AccessDenied):
            service.get_ticket_details(users["vera"], 45)

    def test_missing(self, service, users):
        with pytest.raises(NotFound):
            service.get_ticket_details(users["vera"], 999)
        with pytest.raises(InvalidInput):
            service.get_ticket_details(users["vera"], 0)


class TestTicketAssignees:

    def test_candidates(self, service, users):
        result = service.get_ticket_assignees(users["admin"], 43)
        assert result["project_name"] == "Alpha"
        assert result["current_assignee"] == 2
        first = result["users"][0]
        assert first["id"] == 0
        assert first["display_name"] == "[No one assigned]"
        assert first["is_current_assignee"] is False
        names = [u["username"] for u in result["users"][1:]]
        assert names == ["admin", "dave"]
        current = [u["username"] for u in result["users"] if u["is_current_assignee"]]
        assert current == ["dave"]

    def test_unassigned_ticket_marks_no_one(self, service, users):
        users_list = service.get_ticket_assignees(users["admin"], 42)["users"]
        assert users_list[0]["is_current_assignee"] is True

    def test_display_names_are_plain_text(self, service, users, seeded):
        seeded.save_user(User(6, "pat", "Pat O'Neil & Co", access_level=AccessLevel.DEVELOPER))
        entries = service.get_ticket_assignees(users["admin"], 42)["users"]
        assert entries[-1]["display_name"] == "Pat O'Neil & Co"

    def test_not_found(self, service, users):
        with pytest.raises(NotFound, match="Ticket not found"):
            service.get_ticket_assignees(users["admin"], 999)
        with pytest.raises(InvalidInput, match="Invalid ticket ID"):
            service.get_ticket_assignees(users["admin"], 0)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board payload
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestBoardData:

    def test_single_project(self, service, users):
        board = service.board_data(users["admin"], 1)
        assert board["project"] == {"id": 1, "name": "Alpha"}
        assert sorted(c["id"] for c in board["cards"]) == [42, 43, 44]

    def test_all_projects_respects_access(self, service, users):
        board = service.board_data(users["vera"], 0)
        assert board["project"] == {"id": 0, "name": "All Projects"}
        assert sorted(c["id"] for c in board["cards"]) == [42, 43, 44]
        assert len(service.board_data(users["admin"], 0)["cards"]) == 4

    def test_columns_follow_enum_order(self, service, users):
        columns = service.board_data(users["admin"], 1)["columns"]
        assert [c["status"] for c in columns] == [10, 20, 30, 40, 50, 60, 70, 75, 80, 90]
        counts = {c["status"]: c["count"] for c in columns}
        assert counts[10] == 1 and counts[50] == 1 and counts[80] == 1 and counts[20] == 0

    def test_default_visibility(self, service, users):
        columns = {c["status"]: c for c in service.board_data(users["admin"], 1)["columns"]}
        assert columns[10]["default_visible"] is True
        assert columns[20]["default_visible"] is False
        assert columns[80]["has_bugs"] is True

    def test_unknown_status_gets_column(self, service, users, seeded):
        seeded.set_status(44, 85, user_id=1)
        columns = service.board_data(users["admin"], 1)["columns"]
        assert columns[-1]["status"] == 85
        assert columns[-1]["label"] == "@85@"

    def test_card_fields(self, service, users):
        cards = {c["id"]: c for c in service.board_data(users["admin"], 1)["cards"]}
        assert cards[43]["handler_id"] == "2"
        assert cards[43]["handler_name"] == "Dave Dev"
        assert cards[43]["parents"] == ["42"]
        assert cards[42]["handler_id"] == ""
        assert cards[42]["priority_name"] == "high"

    def test_parent_tickets(self, service, users):
        board = service.board_data(users["admin"], 1)
        assert [p["id"] for p in board["parent_tickets"]] == [42]

    def test_unknown_project(self, service, users):
        with pytest.raises(NotFound, match="Project not found"):
            service.board_data(users["admin"], 9)

    def test_hidden_project(self, service, users):
        with pytest.raises(AccessDenied):
            service.board_data(users["vera"], 2)
