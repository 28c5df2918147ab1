"""Shared fixtures: a seeded tracker database, the board service and a Flask test client."""

import sys
from pathlib import Path

import pytest

# Ensure board_server.py at the repo root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from board_server import create_app  # noqa: E402
from simplekanban.config import BoardConfig  # noqa: E402
from simplekanban.schema import AccessLevel, Issue, Project, User  # noqa: E402
from simplekanban.service import BoardError, BoardService  # noqa: E402
from simplekanban.store import TrackerStore  # noqa: E402

API_KEYS = {
    "admin-key": "admin",
    "dev-key": "dave",
    "viewer-key": "vera",
    "reporter-key": "rita",
    "disabled-key": "olga",
    "ghost-key": "nobody",
}


@pytest.fixture
def store(tmp_path):
    return TrackerStore(str(tmp_path / "tracker.db"))


@pytest.fixture
def seeded(store):
    """
    Two projects, five users and four bugs:

        #42  Alpha  new       high    unassigned   parent of #43
        #43  Alpha  assigned  normal  dave
        #44  Alpha  resolved  low     unassigned
        #45  Beta   new       urgent  admin
    """
    store.save_project(Project(1, "Alpha"))
    store.save_project(Project(2, "Beta"))

    store.save_user(User(1, "admin", "Ada Admin", access_level=AccessLevel.ADMINISTRATOR))
    store.save_user(User(2, "dave", "Dave Dev", access_level=AccessLevel.DEVELOPER))
    store.save_user(User(3, "vera", "", access_level=AccessLevel.VIEWER))
    store.save_user(User(4, "rita", "Rita Reporter", access_level=AccessLevel.REPORTER))
    store.save_user(User(5, "olga", "Olga Gone", enabled=False, access_level=AccessLevel.DEVELOPER))

    # rita may update bugs in Alpha only; vera cannot see Beta at all
    store.set_project_access(1, 4, AccessLevel.UPDATER)
    store.set_project_access(2, 3, 0)

    store.save_bug(Issue(42, 1, "Login page crashes", description="Steps:\n<click> login",
                         status=10, priority=40, reporter_id=3))
    store.save_bug(Issue(43, 1, "Add dark mode", status=50, priority=30, handler_id=2, reporter_id=1))
    store.save_bug(Issue(44, 1, "Fix typo in footer", status=80, priority=20, reporter_id=4))
    store.save_bug(Issue(45, 2, "Beta release checklist", status=10, priority=50, handler_id=1))
    store.add_relationship(42, 43)
    return store


@pytest.fixture
def config(store):
    return BoardConfig(db_path=store.db_path, api_keys=dict(API_KEYS))


@pytest.fixture
def service(seeded, config):
    return BoardService(seeded, config)


@pytest.fixture
def users(seeded):
    return {u.username: u for u in seeded.list_users(enabled_only=False)}


@pytest.fixture
def app(config, seeded):
    app = create_app(config, seeded)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()


class LocalClient:
    """BoardClient stand-in that calls the service in-process as one user."""

    def __init__(self, service: BoardService, user: User):
        self.service = service
        self.user = user
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        try:
            return getattr(self.service, name)(self.user, *args)
        except BoardError as e:
            return e.to_dict()

    def get_board(self, project_id=0):
        return self._call("board_data", project_id)

    def update_status(self, bug_id, new_status):
        return self._call("update_status", bug_id, new_status)

    def update_assignee(self, bug_id, assignee_id):
        return self._call("update_assignee", bug_id, assignee_id)

    def get_ticket_details(self, bug_id):
        return self._call("get_ticket_details", bug_id)

    def get_ticket_assignees(self, ticket_id):
        return self._call("get_ticket_assignees", ticket_id)


@pytest.fixture
def local_client(service, users):
    return LocalClient(service, users["admin"])
