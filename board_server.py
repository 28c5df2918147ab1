#!/usr/bin/env python3
"""
SimpleKanban Board Server
-------------------------
Serves the Kanban board page and the JSON operations it drives, backed by the
tracker's SQLite database.

Usage:
    python board_server.py --config board.yaml
    python board_server.py --db /var/lib/simplekanban/tracker.db --port 3000

API (all but /health need an X-API-Key header):
    GET  /                        → Kanban board page (HTML, ?project_id=&key=)
    GET  /api/board               → JSON board payload (?project_id=)
    POST /api/update_status       → bug_id, new_status
    POST /api/update_assignee     → bug_id, assignee_id
    GET  /api/ticket_details      → ?bug_id=
    GET  /api/ticket_assignees    → ?ticket_id=
    GET  /health                  → { status, db }

Errors always come back as { success: false, error } with a 4xx/5xx code.
"""

import argparse
import hmac
import logging
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, g, jsonify, request

from simplekanban.config import BoardConfig
from simplekanban.render import render_board
from simplekanban.schema import ALL_PROJECTS, User
from simplekanban.service import AuthRequired, BoardError, BoardService
from simplekanban.store import TrackerStore

logger = logging.getLogger("board_server")

TEMPLATE_DIR = Path(__file__).parent / "simplekanban" / "templates"


# ── Request helpers ──────────────────────────────────────────────────────────

def int_param(name: str, default: int = 0) -> int:
    """Read an int from form, query string or JSON body; junk reads as 0."""
    value = request.values.get(name)
    if value is None and request.is_json:
        value = (request.get_json(silent=True) or {}).get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def resolve_user(service: BoardService, provided: str) -> Optional[User]:
    """Map an API key to an enabled tracker user (constant-time key compare)."""
    provided = (provided or "").strip()
    if not provided:
        return None
    for key, username in service.config.api_keys.items():
        if hmac.compare_digest(provided, str(key)):
            user = service.store.get_user_by_username(username)
            if user and user.enabled:
                return user
            return None
    return None


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(config: Optional[BoardConfig] = None, store: Optional[TrackerStore] = None) -> Flask:
    config = config or BoardConfig.load()
    store = store or TrackerStore(config.db_path)
    service = BoardService(store, config)

    app = Flask(__name__, template_folder=str(TEMPLATE_DIR))
    app.config["BOARD_SERVICE"] = service

    def require_api_key(f):
        """Decorator: reject requests without a key that maps to a user."""
        @wraps(f)
        def decorated(*args, **kwargs):
            provided = request.headers.get("X-API-Key") or request.args.get("key", "")
            g.user = resolve_user(service, provided)
            if g.user is None:
                err = AuthRequired("Authentication required")
                return jsonify(err.to_dict()), err.http_status
            return f(*args, **kwargs)
        return decorated

    def board_operation(f):
        """Decorator: turn every failure into a structured JSON error."""
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return jsonify(f(*args, **kwargs))
            except BoardError as e:
                logger.warning(f"Kanban: {request.path} rejected: {e.message}")
                return jsonify(e.to_dict()), e.http_status
            except Exception:
                logger.exception(f"Kanban: unexpected error in {request.path}")
                return jsonify({"success": False, "error": "Internal server error"}), 500
        return decorated

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/")
    @require_api_key
    def index():
        project_id = int_param("project_id", ALL_PROJECTS)
        try:
            board = service.board_data(g.user, project_id)
        except BoardError as e:
            return e.message, e.http_status
        urls = {
            "update_status": "/api/update_status",
            "update_assignee": "/api/update_assignee",
            "ticket_details": "/api/ticket_details",
            "ticket_assignees": "/api/ticket_assignees",
            "view": config.view_url,
            "edit": config.edit_url,
            "view_all": "/view_all_bug_page.php",
            "new_bug": "/bug_report_page.php",
        }
        return render_board(board, urls)

    @app.route("/api/board")
    @require_api_key
    @board_operation
    def api_board():
        return service.board_data(g.user, int_param("project_id", ALL_PROJECTS))

    @app.route("/api/update_status", methods=["POST"])
    @require_api_key
    @board_operation
    def api_update_status():
        return service.update_status(g.user, int_param("bug_id"), int_param("new_status"))

    @app.route("/api/update_assignee", methods=["POST"])
    @require_api_key
    @board_operation
    def api_update_assignee():
        return service.update_assignee(g.user, int_param("bug_id"), int_param("assignee_id"))

    @app.route("/api/ticket_details")
    @require_api_key
    @board_operation
    def api_ticket_details():
        return service.get_ticket_details(g.user, int_param("bug_id"))

    @app.route("/api/ticket_assignees")
    @require_api_key
    @board_operation
    def api_ticket_assignees():
        return service.get_ticket_assignees(g.user, int_param("ticket_id"))

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "db": store.db_path})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="SimpleKanban Board Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to board.yaml (overrides SIMPLEKANBAN_CONFIG)")
    parser.add_argument("--db", help="Path to tracker.db (overrides config and SIMPLEKANBAN_DB)")
    args = parser.parse_args(argv)

    config = BoardConfig.load(args.config)
    if args.db:
        config.db_path = args.db

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(asctime)s [simplekanban] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if not config.api_keys:
        logger.warning("No api_keys configured; every request will be rejected")

    app = create_app(config)
    logger.info(f"Serving http://{args.host}:{args.port} (db: {config.db_path})")
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
