# src/duecheck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the document store / notification storage / UI collaborators
swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Protocol

from ..notifications.notification_models import CheckType, Notification, NotificationType
from ..tracker.tracker_models import Project, Task, TaskFilter


class EntityGateway(Protocol):
    """
    Store-side port for tasks and projects.

    `partial` dicts use the model field names (status, end_date, date_checked_at,
    reminders, completed_at, ...). Unknown keys are ignored by implementations.
    """

    async def list_tasks(self, task_filter: TaskFilter) -> list[Task]: ...
    async def get_task(self, task_id: str) -> Task | None: ...
    async def update_task(self, task_id: str, partial: dict[str, Any]) -> None: ...

    async def list_projects_for_user(
            self,
            user_id: str,
            team_id: str | None = None,
            team_ids: list[str] | None = None,
    ) -> list[Project]: ...
    async def get_project(self, project_id: str) -> Project | None: ...
    async def update_project(self, project_id: str, partial: dict[str, Any]) -> None: ...

    # Preference bag for the Notification Preference Filter (None if unknown user).
    async def get_notification_preferences(self, user_id: str) -> dict[str, Any] | None: ...


class NotificationRepo(Protocol):
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
    ) -> str: ...

    async def get_notification(self, notification_id: str) -> Notification | None: ...
    async def list_for_user(self, user_id: str, limit: int = 20) -> list[Notification]: ...


class EndDateEditor(Protocol):
    """
    UI-side collaborator that lets the user pick a new end date.

    Returns the chosen end date, or None when the user cancelled the editor.
    """

    async def edit_task_end_date(self, task: Task) -> datetime | None: ...
    async def edit_project_end_date(self, project: Project) -> datetime | None: ...
