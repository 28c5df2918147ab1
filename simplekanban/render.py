"""
Board page view model.

Turns the board payload into the structure the template walks. The per-card
data attributes built here are the contract between the server-rendered
markup and the client-side board state (see BoardState.from_payload).
"""
from typing import Any, Dict, List

from flask import render_template

PARENT_LABEL_LIMIT = 50
EMPTY_COLUMN_TEXT = "No bugs in this status"


def status_css_class(label: str) -> str:
    return "status-" + label.lower().replace(" ", "-").replace("_", "-")


def truncate_summary(summary: str, limit: int = PARENT_LABEL_LIMIT) -> str:
    """Cut long parent summaries to fit the filter panel."""
    if len(summary) <= limit:
        return summary
    return summary[: limit - 3] + "..."


def card_data_attributes(card: Dict[str, Any]) -> Dict[str, str]:
    """The data-* attributes every rendered card carries."""
    return {
        "data-bug-id": str(card["id"]),
        "data-priority": str(card["priority"]),
        "data-assignee": card.get("handler_id") or "",
        "data-status": str(card["status"]),
        "data-parents": ",".join(card.get("parents", [])),
    }


def build_view(board: Dict[str, Any], urls: Dict[str, str]) -> Dict[str, Any]:
    """Group cards under their columns and collect filter options."""
    by_status: Dict[int, List[Dict[str, Any]]] = {}
    for card in board["cards"]:
        by_status.setdefault(card["status"], []).append(card)

    columns = []
    for col in board["columns"]:
        cards = [
            dict(card, attrs=card_data_attributes(card))
            for card in by_status.get(col["status"], [])
        ]
        columns.append(dict(
            col,
            css_class=status_css_class(col["label"]),
            cards=cards,
            empty_text=EMPTY_COLUMN_TEXT if not cards else "",
        ))

    # Assignee options: users who currently hold at least one card
    assignees = {}
    for card in board["cards"]:
        if card["handler_id"] and card["handler_id"] not in assignees:
            assignees[card["handler_id"]] = card["handler_name"]

    parents = [
        {"id": p["id"], "label": f"#{p['id']}: {truncate_summary(p['summary'])}"}
        for p in board["parent_tickets"]
    ]

    return {
        "project": board["project"],
        "columns": columns,
        "assignee_options": [{"id": k, "name": v} for k, v in assignees.items()],
        "parent_options": parents,
        "priority_options": [
            {"code": p["code"], "label": p["label"].capitalize()} for p in board["priorities"]
        ],
        "status_options": [
            {"code": s["code"], "label": s["label"].capitalize(),
             "css_class": status_css_class(s["label"])}
            for s in board["statuses"]
        ],
        "urls": urls,
    }


def render_board(board: Dict[str, Any], urls: Dict[str, str]) -> str:
    """Render board.html; must run inside a Flask app context."""
    return render_template("board.html", **build_view(board, urls))
