# src/duecheck/checks/date_conditions.py

from __future__ import annotations

"""
Date/status condition evaluator.

Pure functions of (entity, now, tz). Nothing here touches storage, and the
dateCheckedAt watermark is NOT consulted by the condition checks themselves:
the watermark only gates notification creation (see checked_today()).

Whole-day dates are recognised by their local time-of-day:
- a start at exactly 00:00:00 means "the whole start day"
- an end at exactly 23:59:59 means "until the end of the end day"
Both sentinels live in is_whole_day_start()/is_whole_day_end() only.

A timed start has passed once now >= start; a timed end only once now > end.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any

from ..notifications.notification_models import CheckType
from ..tracker.tracker_models import EntityKind, Project, ProjectStatus, Task, TaskStatus

WHOLE_DAY_START = (0, 0, 0)
WHOLE_DAY_END = (23, 59, 59)


@dataclass(frozen=True, slots=True)
class Condition:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType


def localize(tz: Any, naive: datetime) -> datetime:
    # pytz zones need localize(); plain tzinfo objects can be attached directly.
    pytz_localize = getattr(tz, "localize", None)
    return pytz_localize(naive) if pytz_localize is not None else naive.replace(tzinfo=tz)


def _clock(dt: datetime, tz: Any) -> tuple[int, int, int]:
    local = dt.astimezone(tz)
    return local.hour, local.minute, local.second


def start_of_day(dt: datetime, tz: Any) -> datetime:
    return localize(tz, datetime.combine(dt.astimezone(tz).date(), time.min))


def start_of_next_day(dt: datetime, tz: Any) -> datetime:
    return localize(tz, datetime.combine(dt.astimezone(tz).date() + timedelta(days=1), time.min))


def is_whole_day_start(start: datetime, tz: Any) -> bool:
    return _clock(start, tz) == WHOLE_DAY_START


def is_whole_day_end(end: datetime, tz: Any) -> bool:
    return _clock(end, tz) == WHOLE_DAY_END


def start_has_passed(start: datetime, now: datetime, tz: Any) -> bool:
    if is_whole_day_start(start, tz):
        return now >= start_of_day(start, tz)
    return now >= start


def end_has_passed(end: datetime, now: datetime, tz: Any) -> bool:
    if is_whole_day_end(end, tz):
        return now >= start_of_next_day(end, tz)
    return now > end


def checked_today(date_checked_at: datetime | None, now: datetime, tz: Any) -> bool:
    """True when the watermark falls on the same local calendar day as now."""
    if date_checked_at is None:
        return False
    return date_checked_at.astimezone(tz).date() == now.astimezone(tz).date()


# ---- tasks ----


def task_start_overdue(task: Task, now: datetime, tz: Any) -> bool:
    return task.status == TaskStatus.NOT_STARTED and start_has_passed(task.start_date, now, tz)


def task_end_overdue(task: Task, now: datetime, tz: Any) -> bool:
    return task.status in (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS) and end_has_passed(
        task.end_date, now, tz
    )


def evaluate_task(task: Task, now: datetime, tz: Any) -> list[Condition]:
    """StartOverdue first, then EndOverdue; both may hold at once."""
    if task.is_deleted:
        return []

    out: list[Condition] = []
    if task_start_overdue(task, now, tz):
        out.append(Condition(EntityKind.TASK, task.id, CheckType.START_DATE))
    if task_end_overdue(task, now, tz):
        out.append(Condition(EntityKind.TASK, task.id, CheckType.END_DATE))
    return out


# ---- projects ----


def project_end_overdue(project: Project, now: datetime, tz: Any) -> bool:
    return project.status != ProjectStatus.COMPLETED and end_has_passed(project.end_date, now, tz)


def project_completion_reached(project: Project, now: datetime, tz: Any) -> bool:
    return (
        project.completion_rate == 100
        and project.status != ProjectStatus.COMPLETED
        and not end_has_passed(project.end_date, now, tz)
    )


def project_start_passed(project: Project, now: datetime, tz: Any) -> bool:
    return project.status == ProjectStatus.NOT_STARTED and start_has_passed(
        project.start_date, now, tz
    )


def evaluate_project(project: Project, now: datetime, tz: Any) -> list[Condition]:
    """At most one condition: EndOverdue dominates CompletionReached."""
    if project.is_deleted:
        return []

    if project_end_overdue(project, now, tz):
        return [Condition(EntityKind.PROJECT, project.id, CheckType.END_DATE)]
    if project_completion_reached(project, now, tz):
        return [Condition(EntityKind.PROJECT, project.id, CheckType.COMPLETION)]
    return []


def condition_holds(entity: Task | Project, check_type: CheckType, now: datetime, tz: Any) -> bool:
    """Re-check a single condition on a fresh snapshot, ignoring the watermark."""
    if isinstance(entity, Task):
        if entity.is_deleted:
            return False
        if check_type == CheckType.START_DATE:
            return task_start_overdue(entity, now, tz)
        if check_type == CheckType.END_DATE:
            return task_end_overdue(entity, now, tz)
        return False

    if entity.is_deleted:
        return False
    if check_type == CheckType.END_DATE:
        return project_end_overdue(entity, now, tz)
    if check_type == CheckType.COMPLETION:
        return project_completion_reached(entity, now, tz)
    return False
