# src/duecheck/notifications/notification_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import pytz

from .notification_models import CheckType, Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    SQLite notification ledger storage (implements NotificationRepo).

    Only creation and lookup live here; read/trash management belongs to the UI layer.
    """

    def __init__(self, db_path: str | Path = "notifications.sqlite3", *, tz: Any = pytz.utc) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tz = tz
        self._ensure_schema()
        logger.info("NotificationStore ready db=%s", self._db_path)

    def close(self) -> None:
        return

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    message TEXT NOT NULL DEFAULT '',
                    check_type TEXT,
                    task_id TEXT,
                    project_id TEXT,
                    team_id TEXT,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(notifications)")
            cols = {row["name"] for row in cur.fetchall()}
            if "check_type" not in cols:
                cur.execute("ALTER TABLE notifications ADD COLUMN check_type TEXT")
                logger.info("NotificationStore migration: added column check_type")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_user "
                "ON notifications(user_id, is_deleted, created_at)"
            )
            conn.commit()
        finally:
            conn.close()

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        raw_check = row["check_type"]
        try:
            check_type = CheckType(raw_check) if raw_check else None
        except ValueError:
            check_type = None
        return Notification(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            type=NotificationType(row["type"]),
            title=str(row["title"] or ""),
            message=str(row["message"] or ""),
            created_at=datetime.fromtimestamp(float(row["created_at"]), tz=self._tz),
            check_type=check_type,
            task_id=row["task_id"],
            project_id=row["project_id"],
            team_id=row["team_id"],
            is_read=bool(row["is_read"]),
            is_deleted=bool(row["is_deleted"]),
        )

    async def add_notification(
        self,
        *,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        check_type: CheckType | None = None,
        task_id: str | None = None,
        project_id: str | None = None,
        team_id: str | None = None,
    ) -> str:
        if not user_id:
            raise ValueError("user_id is required")

        notification_id = uuid.uuid4().hex
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO notifications(
                    id, user_id, type, title, message, check_type,
                    task_id, project_id, team_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    notification_id,
                    user_id,
                    type.value,
                    title,
                    message,
                    check_type.value if check_type else None,
                    task_id,
                    project_id,
                    team_id,
                    time.time(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug(
            "Notification added id=%s user=%s type=%s check_type=%s",
            notification_id,
            user_id,
            type.value,
            check_type,
        )
        return notification_id

    async def get_notification(self, notification_id: str) -> Notification | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ?", (notification_id,)
            ).fetchone()
            return self._row_to_notification(row) if row else None
        finally:
            conn.close()

    async def list_for_user(self, user_id: str, limit: int = 20) -> list[Notification]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM notifications
                WHERE user_id = ? AND is_deleted = 0
                ORDER BY created_at DESC
                    LIMIT ?
                """,
                (user_id, int(limit)),
            ).fetchall()
            return [self._row_to_notification(r) for r in rows]
        finally:
            conn.close()
