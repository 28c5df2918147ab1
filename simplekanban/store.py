"""
Tracker storage backend (SQLite).

Stands in for the host issue tracker's data layer: bugs, users, projects,
per-project access levels and parent/child relationships. The board reads all
of it and only ever writes ``status`` and ``handler_id`` (plus history rows).
"""
import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .schema import (
    BUG_DEPENDANT,
    HistoryEntry,
    Issue,
    Project,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)

# Fields the board is allowed to patch
MUTABLE_FIELDS = ("status", "handler_id")


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _in_clause(values: Iterable[int]) -> str:
    return ",".join("?" for _ in values)


class TrackerStore:
    """SQLite-backed store for the tracker's bug table and its collaborators."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "simplekanban" / "tracker.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    realname TEXT DEFAULT '',
                    enabled INTEGER DEFAULT 1,
                    access_level INTEGER DEFAULT 10
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS project_user_list (
                    project_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    access_level INTEGER NOT NULL,
                    PRIMARY KEY (project_id, user_id),
                    FOREIGN KEY (project_id) REFERENCES projects(id),
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bugs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    summary TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    status INTEGER DEFAULT 10,
                    priority INTEGER DEFAULT 30,
                    severity INTEGER DEFAULT 50,
                    reporter_id INTEGER DEFAULT 0,
                    handler_id INTEGER DEFAULT 0,
                    steps_to_reproduce TEXT DEFAULT '',
                    additional_information TEXT DEFAULT '',
                    date_submitted TEXT NOT NULL,
                    last_updated TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bug_relationships (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_bug_id INTEGER NOT NULL,
                    destination_bug_id INTEGER NOT NULL,
                    relationship_type INTEGER NOT NULL,
                    FOREIGN KEY (source_bug_id) REFERENCES bugs(id),
                    FOREIGN KEY (destination_bug_id) REFERENCES bugs(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bug_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    bug_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    field_name TEXT NOT NULL,
                    old_value TEXT,
                    new_value TEXT,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (bug_id) REFERENCES bugs(id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bugs_project ON bugs(project_id, status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_rel_type ON bug_relationships(relationship_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_history_bug ON bug_history(bug_id)")
            conn.commit()

    # ── Projects ─────────────────────────────────────────────────────────────

    def save_project(self, project: Project) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO projects (id, name) VALUES (?, ?)",
                (project.project_id, project.name),
            )
            conn.commit()

    def get_project(self, project_id: int) -> Optional[Project]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if not row:
            return None
        return Project(project_id=row["id"], name=row["name"])

    def list_projects(self) -> List[Project]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM projects ORDER BY name").fetchall()
        return [Project(project_id=r["id"], name=r["name"]) for r in rows]

    # ── Users & access ───────────────────────────────────────────────────────

    def save_user(self, user: User) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO users (id, username, realname, enabled, access_level)
                VALUES (?, ?, ?, ?, ?)
            """, (user.user_id, user.username, user.realname,
                  1 if user.enabled else 0, int(user.access_level)))
            conn.commit()

    def get_user(self, user_id: int) -> Optional[User]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self, enabled_only: bool = True) -> List[User]:
        query = "SELECT * FROM users"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY realname, username"
        with _connect(self.db_path) as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_user(r) for r in rows]

    def set_project_access(self, project_id: int, user_id: int, access_level: int) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO project_user_list (project_id, user_id, access_level)
                VALUES (?, ?, ?)
            """, (project_id, user_id, int(access_level)))
            conn.commit()

    def access_level(self, user_id: int, project_id: int) -> int:
        """
        Effective access level of a user on a project.

        The per-project level wins when one is recorded, else the user's
        global level applies. Disabled or unknown users get 0.
        """
        with _connect(self.db_path) as conn:
            user = conn.execute(
                "SELECT enabled, access_level FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            if not user or not user["enabled"]:
                return 0
            row = conn.execute(
                "SELECT access_level FROM project_user_list WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            ).fetchone()
        return row["access_level"] if row else user["access_level"]

    def accessible_projects(self, user_id: int, min_level: int) -> List[int]:
        """Ids of all projects where the user's effective level is at least min_level."""
        return [
            p.project_id for p in self.list_projects()
            if self.access_level(user_id, p.project_id) >= min_level
        ]

    def assignable_users(self, project_id: int, min_level: int) -> List[User]:
        """Enabled users whose effective level on the project is at least min_level."""
        with _connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT u.*, COALESCE(pul.access_level, u.access_level) AS effective_level
                FROM users u
                LEFT JOIN project_user_list pul
                    ON pul.user_id = u.id AND pul.project_id = ?
                WHERE u.enabled = 1
                  AND COALESCE(pul.access_level, u.access_level) >= ?
                ORDER BY u.realname, u.username
            """, (project_id, int(min_level))).fetchall()
        return [self._row_to_user(r) for r in rows]

    # ── Bugs ─────────────────────────────────────────────────────────────────

    def save_bug(self, issue: Issue) -> int:
        """Insert or replace a bug. Assigns a new id when issue.bug_id is falsy."""
        data = issue.to_dict()
        columns = (
            "project_id", "summary", "description", "status", "priority", "severity",
            "reporter_id", "handler_id", "steps_to_reproduce", "additional_information",
            "date_submitted", "last_updated",
        )
        values = [data[c] for c in columns]
        with _connect(self.db_path) as conn:
            if issue.bug_id:
                cur = conn.execute(
                    f"INSERT OR REPLACE INTO bugs (id, {', '.join(columns)}) "
                    f"VALUES (?, {_in_clause(columns)})",
                    [issue.bug_id] + values,
                )
            else:
                cur = conn.execute(
                    f"INSERT INTO bugs ({', '.join(columns)}) VALUES ({_in_clause(columns)})",
                    values,
                )
                issue.bug_id = cur.lastrowid
            conn.commit()
        return issue.bug_id

    def get_bug(self, bug_id: int) -> Optional[Issue]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM bugs WHERE id = ?", (bug_id,)).fetchone()
        return self._row_to_issue(row) if row else None

    def bug_exists(self, bug_id: int) -> bool:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT 1 FROM bugs WHERE id = ?", (bug_id,)).fetchone()
        return row is not None

    def list_bugs(self, project_ids: Optional[List[int]] = None) -> List[Issue]:
        """Bugs ordered by status then newest first. None = every project."""
        query = "SELECT * FROM bugs"
        params: list = []
        if project_ids is not None:
            if not project_ids:
                return []
            query += f" WHERE project_id IN ({_in_clause(project_ids)})"
            params = list(project_ids)
        query += " ORDER BY status, id DESC"
        with _connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_issue(r) for r in rows]

    def update_fields(self, bug_id: int, changes: Dict[str, int], user_id: int) -> Issue:
        """
        Patch mutable fields in one transaction and record a history row per
        changed field. Raises KeyError for a missing bug and ValueError for a
        field the board may not write.
        """
        bad = set(changes) - set(MUTABLE_FIELDS)
        if bad:
            raise ValueError(f"Fields not writable: {', '.join(sorted(bad))}")

        now = utc_now().isoformat()
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM bugs WHERE id = ?", (bug_id,)).fetchone()
            if not row:
                raise KeyError(bug_id)
            for name, value in changes.items():
                old = row[name]
                conn.execute(f"UPDATE bugs SET {name} = ?, last_updated = ? WHERE id = ?",
                             (int(value), now, bug_id))
                if old != int(value):
                    conn.execute("""
                        INSERT INTO bug_history (bug_id, user_id, field_name, old_value, new_value, timestamp)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (bug_id, user_id, name, str(old), str(int(value)), now))
            conn.commit()
            row = conn.execute("SELECT * FROM bugs WHERE id = ?", (bug_id,)).fetchone()
        return self._row_to_issue(row)

    def set_status(self, bug_id: int, status: int, user_id: int) -> Issue:
        return self.update_fields(bug_id, {"status": status}, user_id)

    def set_handler(self, bug_id: int, handler_id: int, user_id: int) -> Issue:
        return self.update_fields(bug_id, {"handler_id": handler_id}, user_id)

    def history(self, bug_id: int) -> List[HistoryEntry]:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT bug_id, user_id, field_name, old_value, new_value, timestamp "
                "FROM bug_history WHERE bug_id = ? ORDER BY id ASC",
                (bug_id,),
            ).fetchall()
        return [HistoryEntry(**dict(r)) for r in rows]

    # ── Relationships ────────────────────────────────────────────────────────

    def add_relationship(self, source_bug_id: int, destination_bug_id: int,
                         relationship_type: int = BUG_DEPENDANT) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO bug_relationships (source_bug_id, destination_bug_id, relationship_type)
                VALUES (?, ?, ?)
            """, (source_bug_id, destination_bug_id, relationship_type))
            conn.commit()

    def parent_map(self) -> Dict[int, List[int]]:
        """child bug id -> list of parent bug ids (dependant relationships)."""
        parents: Dict[int, List[int]] = {}
        with _connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT destination_bug_id AS child_id, source_bug_id AS parent_id
                FROM bug_relationships
                WHERE relationship_type = ?
                ORDER BY id ASC
            """, (BUG_DEPENDANT,)).fetchall()
        for r in rows:
            parents.setdefault(r["child_id"], []).append(r["parent_id"])
        return parents

    def parent_tickets(self, project_ids: Optional[List[int]] = None) -> List[Dict]:
        """Bugs that have at least one dependant child, newest first."""
        query = """
            SELECT DISTINCT b.id, b.summary, b.status
            FROM bugs b
            JOIN bug_relationships r ON b.id = r.source_bug_id
            WHERE r.relationship_type = ?
        """
        params: list = [BUG_DEPENDANT]
        if project_ids is not None:
            if not project_ids:
                return []
            query += f" AND b.project_id IN ({_in_clause(project_ids)})"
            params.extend(project_ids)
        query += " ORDER BY b.id DESC"
        with _connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]

    # ── Row mapping ──────────────────────────────────────────────────────────

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            user_id=row["id"],
            username=row["username"],
            realname=row["realname"] or "",
            enabled=bool(row["enabled"]),
            access_level=row["access_level"],
        )

    def _row_to_issue(self, row: sqlite3.Row) -> Issue:
        data = dict(row)
        data["bug_id"] = data.pop("id")
        return Issue.from_dict(data)
