# src/duecheck/notifications/notification_prefs.py

"""
Notification preference filter.

A user's preference bag holds category switches (task / project / reminder /
team / dateCheck) plus optional per-notification overrides. Bags written by
older clients may miss keys; a missing key always means "enabled".
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from .notification_models import CheckType, NotificationType


class NotificationCategory(StrEnum):
    TASK = "task"
    PROJECT = "project"
    REMINDER = "reminder"
    TEAM = "team"
    DATE_CHECK = "dateCheck"


_CHECK_SETTING_KEYS: dict[CheckType, str] = {
    CheckType.START_DATE: "startDateOverdue",
    CheckType.END_DATE: "endDateOverdue",
    CheckType.COMPLETION: "completionReached",
}

_TYPE_SETTING_KEYS: dict[NotificationType, str] = {
    NotificationType.TASK_OVERDUE: "taskOverdue",
    NotificationType.TASK_REMINDER: "taskReminder",
    NotificationType.PROJECT_UPDATED: "projectUpdated",
    NotificationType.PROJECT_COMPLETED: "projectCompleted",
}


def category_for(ntype: NotificationType, check_type: CheckType | None = None) -> NotificationCategory:
    if check_type is not None:
        return NotificationCategory.DATE_CHECK
    if ntype in (NotificationType.TASK_OVERDUE, NotificationType.TASK_REMINDER):
        return NotificationCategory.REMINDER
    if ntype in (NotificationType.PROJECT_UPDATED, NotificationType.PROJECT_COMPLETED):
        return NotificationCategory.PROJECT
    return NotificationCategory.TASK


def setting_key_for(ntype: NotificationType, check_type: CheckType | None = None) -> str | None:
    """Per-notification override key, or None when only the category switch applies."""
    if check_type is not None:
        return _CHECK_SETTING_KEYS.get(check_type)
    return _TYPE_SETTING_KEYS.get(ntype)


def is_notification_enabled(
    prefs: Mapping[str, Any] | None,
    category: NotificationCategory | str,
    setting_key: str | None = None,
) -> bool:
    if not isinstance(prefs, Mapping):
        return True

    if prefs.get(str(category), True) is False:
        return False

    if setting_key is not None and prefs.get(setting_key, True) is False:
        return False

    return True


def allows(
    prefs: Mapping[str, Any] | None,
    ntype: NotificationType,
    check_type: CheckType | None = None,
) -> bool:
    """Shorthand: category + override decision for one notification type."""
    return is_notification_enabled(
        prefs, category_for(ntype, check_type), setting_key_for(ntype, check_type)
    )
