# tests/fakes.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

import pytz

from duecheck.notifications.notification_models import CheckType, Notification, NotificationType
from duecheck.tracker.tracker_models import Project, ProjectStatus, Task, TaskFilter, TaskStatus


class FakeGateway:
    """
    In-memory EntityGateway.

    - Returns copies so callers can't mutate the "stored" state by accident
    - Records every update for assertions
    - `fail_updates_for` / `fail_list` inject storage failures
    """

    def __init__(
        self,
        tasks: list[Task] | None = None,
        projects: list[Project] | None = None,
        prefs: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self.projects: dict[str, Project] = {p.id: p for p in projects or []}
        self.prefs: dict[str, dict[str, Any]] = dict(prefs or {})
        self.task_updates: list[tuple[str, dict[str, Any]]] = []
        self.project_updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_updates_for: set[str] = set()
        self.fail_list = False

    async def list_tasks(self, task_filter: TaskFilter) -> list[Task]:
        if self.fail_list:
            raise RuntimeError("store unavailable")
        out: list[Task] = []
        for t in self.tasks.values():
            if t.is_deleted and not task_filter.include_deleted:
                continue
            if task_filter.exclude_completed and t.status == TaskStatus.COMPLETED:
                continue
            if task_filter.project_id is not None and t.project_id != task_filter.project_id:
                continue
            uid = task_filter.involving_user_id
            if uid is not None and not (
                t.assignee_id == uid or (t.team_id and not t.assignee_id and t.creator_id == uid)
            ):
                continue
            out.append(replace(t, reminders=[replace(r) for r in t.reminders]))
        return out

    async def get_task(self, task_id: str) -> Task | None:
        t = self.tasks.get(task_id)
        return replace(t, reminders=[replace(r) for r in t.reminders]) if t else None

    async def update_task(self, task_id: str, partial: dict[str, Any]) -> None:
        if task_id in self.fail_updates_for:
            raise RuntimeError(f"update failed for {task_id}")
        if task_id not in self.tasks:
            raise KeyError(task_id)
        self.task_updates.append((task_id, dict(partial)))
        self.tasks[task_id] = replace(self.tasks[task_id], **partial)

    async def list_projects_for_user(
        self,
        user_id: str,
        team_id: str | None = None,
        team_ids: list[str] | None = None,
    ) -> list[Project]:
        if self.fail_list:
            raise RuntimeError("store unavailable")
        out = []
        for p in self.projects.values():
            if p.is_deleted:
                continue
            involved = p.owner_id == user_id or user_id in p.members
            if team_id is not None:
                if p.team_id == team_id and involved:
                    out.append(replace(p, members=list(p.members)))
            elif involved or (p.team_id and p.team_id in (team_ids or [])):
                out.append(replace(p, members=list(p.members)))
        return out

    async def get_project(self, project_id: str) -> Project | None:
        p = self.projects.get(project_id)
        return replace(p, members=list(p.members)) if p else None

    async def update_project(self, project_id: str, partial: dict[str, Any]) -> None:
        if project_id in self.fail_updates_for:
            raise RuntimeError(f"update failed for {project_id}")
        if project_id not in self.projects:
            raise KeyError(project_id)
        self.project_updates.append((project_id, dict(partial)))
        self.projects[project_id] = replace(self.projects[project_id], **partial)

    async def get_notification_preferences(self, user_id: str) -> dict[str, Any] | None:
        return self.prefs.get(user_id)


@dataclass(slots=True)
class FakeNotificationRepo:
    """In-memory NotificationRepo; `fail` makes every write raise."""

    items: list[Notification] = field(default_factory=list)
    fail: bool = False

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
        if self.fail:
            raise RuntimeError("notification store unavailable")
        n = Notification(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            created_at=datetime.now().astimezone(),
            check_type=check_type,
            task_id=task_id,
            project_id=project_id,
            team_id=team_id,
        )
        self.items.append(n)
        return n.id

    async def get_notification(self, notification_id: str) -> Notification | None:
        return next((n for n in self.items if n.id == notification_id), None)

    async def list_for_user(self, user_id: str, limit: int = 20) -> list[Notification]:
        mine = [n for n in self.items if n.user_id == user_id and not n.is_deleted]
        return list(reversed(mine))[:limit]

    def of_type(self, ntype: NotificationType) -> list[Notification]:
        return [n for n in self.items if n.type == ntype]


@dataclass(slots=True)
class FakeEditor:
    """EndDateEditor returning a canned answer (None = user cancelled)."""

    answer: datetime | None = None
    calls: list[str] = field(default_factory=list)

    async def edit_task_end_date(self, task: Task) -> datetime | None:
        self.calls.append(task.id)
        return self.answer

    async def edit_project_end_date(self, project: Project) -> datetime | None:
        self.calls.append(project.id)
        return self.answer


TZ = pytz.timezone("Europe/Amsterdam")


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    """Aware local datetime in the test timezone."""
    return TZ.localize(datetime(year, month, day, hour, minute, second))


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_task(task_id: str = "t1", **kw: Any) -> Task:
    defaults: dict[str, Any] = {
        "title": f"Task {task_id}",
        "status": TaskStatus.NOT_STARTED,
        "start_date": at(2025, 3, 10),
        "end_date": at(2025, 3, 12, 23, 59, 59),
        "creator_id": "u1",
        "assignee_id": "u1",
    }
    defaults.update(kw)
    return Task(id=task_id, **defaults)


def make_project(project_id: str = "p1", **kw: Any) -> Project:
    defaults: dict[str, Any] = {
        "name": f"Project {project_id}",
        "status": ProjectStatus.IN_PROGRESS,
        "start_date": at(2025, 3, 1),
        "end_date": at(2025, 3, 31, 23, 59, 59),
        "owner_id": "u1",
        "members": ["u1"],
    }
    defaults.update(kw)
    return Project(id=project_id, **defaults)
