# src/duecheck/tracker/tracker_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytz

from .tracker_models import (
    Project,
    ProjectStatus,
    Reminder,
    Task,
    TaskFilter,
    TaskStatus,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _enum(value: Any) -> str:
    return str(getattr(value, "value", value))


def _json_list(value: Any) -> str:
    try:
        return json.dumps(list(value or []), ensure_ascii=False)
    except (TypeError, ValueError):
        logger.exception("Failed to JSON-encode list; storing [].")
        return "[]"


def _reminders_json(reminders: Any) -> str:
    return _json_list(r.to_dict() if isinstance(r, Reminder) else r for r in (reminders or []))


# partial-update key -> (column, encoder)
_TASK_COLUMNS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "title": ("title", str),
    "status": ("status", _enum),
    "start_date": ("start_at", _ts),
    "end_date": ("end_at", _ts),
    "assignee_id": ("assignee_id", lambda v: v),
    "team_id": ("team_id", lambda v: v),
    "project_id": ("project_id", lambda v: v),
    "date_checked_at": ("date_checked_at", _ts),
    "reminders": ("reminders", _reminders_json),
    "completed_at": ("completed_at", _ts),
    "is_deleted": ("is_deleted", lambda v: 1 if v else 0),
}

_PROJECT_COLUMNS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "name": ("name", str),
    "status": ("status", _enum),
    "start_date": ("start_at", _ts),
    "end_date": ("end_at", _ts),
    "assignee_id": ("assignee_id", lambda v: v),
    "team_id": ("team_id", lambda v: v),
    "members": ("members", _json_list),
    "completion_rate": ("completion_rate", lambda v: int(max(0, min(100, int(v))))),
    "date_checked_at": ("date_checked_at", _ts),
    "is_deleted": ("is_deleted", lambda v: 1 if v else 0),
}


class TrackerStore:
    """
    SQLite store for tasks, projects and users' notification preferences.

    Implements the EntityGateway port. The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Instants are stored as UTC epoch seconds and returned as aware datetimes.
    Each method opens its own SQLite connection.
    """

    def __init__(self, db_path: str | Path = "tracker.sqlite3", *, tz: Any = pytz.utc) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tz = tz
        self._ensure_schema()
        try:
            tasks, projects = self._count_rows("tasks"), self._count_rows("projects")
        except sqlite3.Error:
            tasks = projects = -1
        logger.info("TrackerStore ready db=%s tasks=%s projects=%s", self._db_path, tasks, projects)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'not_started',
                    start_at REAL NOT NULL,
                    end_at REAL NOT NULL,
                    creator_id TEXT NOT NULL,
                    assignee_id TEXT,
                    team_id TEXT,
                    project_id TEXT,
                    date_checked_at REAL,
                    reminders TEXT NOT NULL DEFAULT '[]',
                    completed_at REAL,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'not_started',
                    start_at REAL NOT NULL,
                    end_at REAL NOT NULL,
                    owner_id TEXT NOT NULL,
                    assignee_id TEXT,
                    team_id TEXT,
                    members TEXT NOT NULL DEFAULT '[]',
                    completion_rate INTEGER NOT NULL DEFAULT 0,
                    date_checked_at REAL,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL DEFAULT '',
                    notification_settings TEXT NOT NULL DEFAULT '{}',
                    updated_at REAL NOT NULL
                )
                """
            )

            def add_cols(table: str, wanted: dict[str, str]) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                for name, decl in wanted.items():
                    if name in cols:
                        continue
                    cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                    logger.info("TrackerStore migration: added column %s.%s", table, name)

            # Older databases predate watermarks and reminders.
            add_cols(
                "tasks",
                {
                    "project_id": "TEXT",
                    "date_checked_at": "REAL",
                    "reminders": "TEXT NOT NULL DEFAULT '[]'",
                    "completed_at": "REAL",
                    "is_deleted": "INTEGER NOT NULL DEFAULT 0",
                },
            )
            add_cols(
                "projects",
                {
                    "members": "TEXT NOT NULL DEFAULT '[]'",
                    "completion_rate": "INTEGER NOT NULL DEFAULT 0",
                    "date_checked_at": "REAL",
                    "is_deleted": "INTEGER NOT NULL DEFAULT 0",
                },
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id, is_deleted)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_creator ON tasks(creator_id, team_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_id, team_id)")

            conn.commit()
        finally:
            conn.close()

    def _count_rows(self, table: str) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            return int(n)
        finally:
            conn.close()

    def _dt(self, value: float | None) -> datetime | None:
        return datetime.fromtimestamp(float(value), tz=self._tz) if value is not None else None

    @staticmethod
    def _str_to_list(s: str | None) -> list[Any]:
        if not s:
            return []
        try:
            val = json.loads(s)
            return val if isinstance(val, list) else []
        except ValueError:
            return []

    def _read_reminder(self, item: Any) -> Reminder | None:
        if not isinstance(item, dict):
            return None
        try:
            return Reminder.from_dict(item, tz=self._tz)
        except (TypeError, ValueError):
            return None

    def _load_reminders(self, raw: str | None, task_id: str) -> list[Reminder]:
        out: list[Reminder] = []
        for item in self._str_to_list(raw):
            reminder = self._read_reminder(item)
            if reminder is None:
                logger.warning("Skipping unreadable reminder on task_id=%s: %r", task_id, item)
                continue
            out.append(reminder)
        return out

    def _unreadable_reminders(self, raw: str | None) -> list[Any]:
        return [item for item in self._str_to_list(raw) if self._read_reminder(item) is None]

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        task_id = str(row["id"])
        return Task(
            id=task_id,
            title=str(row["title"] or ""),
            status=TaskStatus.from_db(row["status"]),
            start_date=self._dt(row["start_at"]),  # type: ignore[arg-type]
            end_date=self._dt(row["end_at"]),  # type: ignore[arg-type]
            creator_id=str(row["creator_id"] or ""),
            assignee_id=row["assignee_id"] or None,
            team_id=row["team_id"] or None,
            project_id=row["project_id"] or None,
            date_checked_at=self._dt(row["date_checked_at"]),
            reminders=self._load_reminders(row["reminders"], task_id),
            completed_at=self._dt(row["completed_at"]),
            is_deleted=bool(row["is_deleted"]),
        )

    def _row_to_project(self, row: sqlite3.Row) -> Project:
        return Project(
            id=str(row["id"]),
            name=str(row["name"] or ""),
            status=ProjectStatus.from_db(row["status"]),
            start_date=self._dt(row["start_at"]),  # type: ignore[arg-type]
            end_date=self._dt(row["end_at"]),  # type: ignore[arg-type]
            owner_id=str(row["owner_id"] or ""),
            completion_rate=int(row["completion_rate"] or 0),
            assignee_id=row["assignee_id"] or None,
            team_id=row["team_id"] or None,
            members=[str(m) for m in self._str_to_list(row["members"])],
            date_checked_at=self._dt(row["date_checked_at"]),
            is_deleted=bool(row["is_deleted"]),
        )

    @staticmethod
    def _refresh_completion_rate(conn: sqlite3.Connection, project_id: str) -> None:
        total, done = conn.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0)
            FROM tasks
            WHERE project_id = ? AND is_deleted = 0
            """,
            (project_id,),
        ).fetchone()
        rate = int(round(100.0 * int(done) / int(total))) if total else 0
        conn.execute(
            "UPDATE projects SET completion_rate = ?, updated_at = ? WHERE id = ?",
            (rate, time.time(), project_id),
        )

    @staticmethod
    def _build_update(
        partial: dict[str, Any],
        columns: dict[str, tuple[str, Callable[[Any], Any]]],
    ) -> tuple[list[str], list[Any]]:
        fields: list[str] = []
        params: list[Any] = []
        for key, value in partial.items():
            spec = columns.get(key)
            if spec is None:
                logger.debug("Ignoring unknown update field %s", key)
                continue
            column, encode = spec
            fields.append(f"{column} = ?")
            params.append(encode(value) if value is not None else None)
        return fields, params

    # ---- creation API (used by the console driver and tests) ----

    async def add_task(
        self,
        *,
        title: str,
        start_date: datetime,
        end_date: datetime,
        creator_id: str,
        status: TaskStatus = TaskStatus.NOT_STARTED,
        assignee_id: str | None = None,
        team_id: str | None = None,
        project_id: str | None = None,
        reminders: list[Reminder] | None = None,
        task_id: str | None = None,
    ) -> str:
        if not creator_id:
            raise ValueError("creator_id is required")
        if end_date < start_date:
            raise ValueError("end_date must not precede start_date")
        for reminder in reminders or []:
            reminder.validate()

        task_id = task_id or uuid.uuid4().hex
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, title, status, start_at, end_at, creator_id,
                    assignee_id, team_id, project_id, reminders,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    title.strip(),
                    status.value,
                    start_date.timestamp(),
                    end_date.timestamp(),
                    creator_id,
                    assignee_id,
                    team_id,
                    project_id,
                    _reminders_json(reminders),
                    now,
                    now,
                ),
            )
            if project_id:
                self._refresh_completion_rate(conn, project_id)
            conn.commit()
        finally:
            conn.close()
        logger.debug("Task added id=%s status=%s project_id=%s", task_id, status.value, project_id)
        return task_id

    async def add_project(
        self,
        *,
        name: str,
        start_date: datetime,
        end_date: datetime,
        owner_id: str,
        status: ProjectStatus = ProjectStatus.NOT_STARTED,
        assignee_id: str | None = None,
        team_id: str | None = None,
        members: list[str] | None = None,
        project_id: str | None = None,
    ) -> str:
        if not owner_id:
            raise ValueError("owner_id is required")

        project_id = project_id or uuid.uuid4().hex
        member_ids = list(dict.fromkeys([owner_id, *(members or [])]))
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO projects(
                    id, name, status, start_at, end_at, owner_id,
                    assignee_id, team_id, members, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    project_id,
                    name.strip(),
                    status.value,
                    start_date.timestamp(),
                    end_date.timestamp(),
                    owner_id,
                    assignee_id,
                    team_id,
                    _json_list(member_ids),
                    now,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Project added id=%s owner=%s team=%s", project_id, owner_id, team_id)
        return project_id

    async def set_notification_preferences(
        self, user_id: str, settings: dict[str, Any], *, display_name: str = ""
    ) -> None:
        payload = json.dumps({str(k): bool(v) for k, v in settings.items()}, ensure_ascii=False)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users(id, display_name, notification_settings, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    notification_settings = excluded.notification_settings,
                    updated_at = excluded.updated_at
                """,
                (user_id, display_name, payload, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- EntityGateway ----

    async def list_tasks(self, task_filter: TaskFilter) -> list[Task]:
        clauses: list[str] = []
        params: list[Any] = []

        if not task_filter.include_deleted:
            clauses.append("is_deleted = 0")
        if task_filter.exclude_completed:
            clauses.append("status != 'completed'")
        if task_filter.project_id is not None:
            clauses.append("project_id = ?")
            params.append(task_filter.project_id)
        if task_filter.involving_user_id is not None:
            clauses.append(
                "(assignee_id = ? OR ("
                "COALESCE(team_id, '') != '' AND COALESCE(assignee_id, '') = '' AND creator_id = ?"
                "))"
            )
            params.extend([task_filter.involving_user_id, task_filter.involving_user_id])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM tasks {where} ORDER BY start_at ASC, created_at ASC", params
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    async def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    async def update_task(self, task_id: str, partial: dict[str, Any]) -> None:
        fields, params = self._build_update(partial, _TASK_COLUMNS)
        if not fields:
            return

        fields.append("updated_at = ?")
        params.append(time.time())
        params.append(task_id)

        conn = self._get_conn()
        try:
            if partial.get("reminders") is not None:
                # Stored entries that cannot be read back are carried over verbatim.
                row = conn.execute("SELECT reminders FROM tasks WHERE id = ?", (task_id,)).fetchone()
                kept = self._unreadable_reminders(row["reminders"] if row is not None else None)
                if kept:
                    idx = fields.index("reminders = ?")
                    params[idx] = _json_list([*json.loads(params[idx]), *kept])

            cur = conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            if cur.rowcount != 1:
                raise KeyError(f"task not found: {task_id}")

            # Child-task changes drive the project's completion rate.
            if {"status", "is_deleted", "project_id"} & partial.keys():
                row = conn.execute("SELECT project_id FROM tasks WHERE id = ?", (task_id,)).fetchone()
                if row is not None and row["project_id"]:
                    self._refresh_completion_rate(conn, row["project_id"])
            conn.commit()
        finally:
            conn.close()

    async def list_projects_for_user(
        self,
        user_id: str,
        team_id: str | None = None,
        team_ids: list[str] | None = None,
    ) -> list[Project]:
        """
        Projects visible to a user.

        - team_id set: projects of that team the user owns or is a member of
        - otherwise: projects the user owns or is a member of, plus every
          project of the teams listed in team_ids
        """
        if not user_id:
            return []

        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM projects WHERE is_deleted = 0 ORDER BY end_at ASC"
            ).fetchall()
        finally:
            conn.close()

        teams = set(team_ids or [])
        out: list[Project] = []
        for row in rows:
            project = self._row_to_project(row)
            involved = project.owner_id == user_id or user_id in project.members
            if team_id is not None:
                if project.team_id == team_id and involved:
                    out.append(project)
            elif involved or (project.team_id is not None and project.team_id in teams):
                out.append(project)
        return out

    async def get_project(self, project_id: str) -> Project | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            return self._row_to_project(row) if row else None
        finally:
            conn.close()

    async def update_project(self, project_id: str, partial: dict[str, Any]) -> None:
        fields, params = self._build_update(partial, _PROJECT_COLUMNS)
        if not fields:
            return

        fields.append("updated_at = ?")
        params.append(time.time())
        params.append(project_id)

        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE projects SET {', '.join(fields)} WHERE id = ?", params)
            if cur.rowcount != 1:
                raise KeyError(f"project not found: {project_id}")
            conn.commit()
        finally:
            conn.close()

    async def get_notification_preferences(self, user_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT notification_settings FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            val = json.loads(row["notification_settings"] or "{}")
        except ValueError:
            logger.warning("Unreadable notification settings for user=%s", user_id)
            return {}
        return val if isinstance(val, dict) else {}
