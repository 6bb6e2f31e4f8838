# src/duecheck/notifications/notification_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class NotificationType(StrEnum):
    TASK_OVERDUE = "task_overdue"
    TASK_REMINDER = "task_reminder"
    PROJECT_UPDATED = "project_updated"
    PROJECT_COMPLETED = "project_completed"


class CheckType(StrEnum):
    """Which date condition a notification was created for."""

    START_DATE = "startDate"
    END_DATE = "endDate"
    COMPLETION = "completion"


@dataclass(slots=True)
class Notification:
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime

    check_type: CheckType | None = None
    task_id: str | None = None
    project_id: str | None = None
    team_id: str | None = None

    is_read: bool = False
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class NotificationDraft:
    """What a caller wants to notify about; the ledger decides whether it is stored."""

    user_id: str
    type: NotificationType
    title: str
    message: str
    check_type: CheckType | None = None
    task_id: str | None = None
    project_id: str | None = None
    team_id: str | None = None
