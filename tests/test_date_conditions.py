# tests/test_date_conditions.py

from __future__ import annotations

import pytz

from duecheck.checks.date_conditions import (
    checked_today,
    condition_holds,
    end_has_passed,
    evaluate_project,
    evaluate_task,
    is_whole_day_end,
    is_whole_day_start,
    start_has_passed,
)
from duecheck.notifications.notification_models import CheckType
from duecheck.tracker.tracker_models import ProjectStatus, TaskStatus

from .fakes import TZ, at, make_project, make_task


def test_whole_day_start_holds_from_local_midnight() -> None:
    start = at(2025, 3, 11)
    assert is_whole_day_start(start, TZ)
    assert not start_has_passed(start, at(2025, 3, 10, 23, 59, 59), TZ)
    assert start_has_passed(start, at(2025, 3, 11, 0, 0), TZ)
    assert start_has_passed(start, at(2025, 3, 11, 9, 30), TZ)


def test_timed_start_compares_the_instant() -> None:
    start = at(2025, 3, 11, 14, 0)
    assert not is_whole_day_start(start, TZ)
    assert not start_has_passed(start, at(2025, 3, 11, 13, 59), TZ)
    assert start_has_passed(start, at(2025, 3, 11, 14, 0), TZ)


def test_whole_day_end_runs_until_next_local_midnight() -> None:
    end = at(2025, 3, 11, 23, 59, 59)
    assert is_whole_day_end(end, TZ)
    assert not end_has_passed(end, at(2025, 3, 11, 23, 59, 59), TZ)
    assert end_has_passed(end, at(2025, 3, 12, 0, 0), TZ)


def test_timed_end_is_strict() -> None:
    end = at(2025, 3, 11, 17, 0)
    assert not is_whole_day_end(end, TZ)
    assert not end_has_passed(end, at(2025, 3, 11, 17, 0), TZ)
    assert end_has_passed(end, at(2025, 3, 11, 17, 0, 1), TZ)


def test_whole_day_sentinels_use_local_clock() -> None:
    # 23:59:59 UTC is 00:59:59 in Amsterdam (CET), so it is not a whole-day end there.
    end = pytz.utc.localize(at(2025, 3, 11, 23, 59, 59).replace(tzinfo=None))
    assert is_whole_day_end(end, pytz.utc)
    assert not is_whole_day_end(end, TZ)


def test_task_start_and_end_overdue_in_order() -> None:
    task = make_task(start_date=at(2025, 3, 1), end_date=at(2025, 3, 5, 23, 59, 59))
    conditions = evaluate_task(task, at(2025, 3, 11, 10, 0), TZ)
    assert [c.check_type for c in conditions] == [CheckType.START_DATE, CheckType.END_DATE]


def test_in_progress_task_only_end_overdue() -> None:
    task = make_task(
        status=TaskStatus.IN_PROGRESS,
        start_date=at(2025, 3, 1),
        end_date=at(2025, 3, 5, 23, 59, 59),
    )
    conditions = evaluate_task(task, at(2025, 3, 11, 10, 0), TZ)
    assert [c.check_type for c in conditions] == [CheckType.END_DATE]


def test_completed_or_deleted_task_has_no_conditions() -> None:
    now = at(2025, 3, 11, 10, 0)
    done = make_task(status=TaskStatus.COMPLETED, start_date=at(2025, 3, 1), end_date=at(2025, 3, 2))
    deleted = make_task(is_deleted=True, start_date=at(2025, 3, 1), end_date=at(2025, 3, 2))
    assert evaluate_task(done, now, TZ) == []
    assert evaluate_task(deleted, now, TZ) == []


def test_project_end_overdue_dominates_completion() -> None:
    project = make_project(completion_rate=100, end_date=at(2025, 3, 5, 23, 59, 59))
    conditions = evaluate_project(project, at(2025, 3, 11, 10, 0), TZ)
    assert [c.check_type for c in conditions] == [CheckType.END_DATE]


def test_project_completion_reached_before_end() -> None:
    project = make_project(completion_rate=100)
    conditions = evaluate_project(project, at(2025, 3, 11, 10, 0), TZ)
    assert [c.check_type for c in conditions] == [CheckType.COMPLETION]

    project.status = ProjectStatus.COMPLETED
    assert evaluate_project(project, at(2025, 3, 11, 10, 0), TZ) == []


def test_condition_holds_rejects_foreign_check_types() -> None:
    now = at(2025, 3, 11, 10, 0)
    task = make_task(start_date=at(2025, 3, 1), end_date=at(2025, 3, 2))
    assert condition_holds(task, CheckType.START_DATE, now, TZ)
    assert not condition_holds(task, CheckType.COMPLETION, now, TZ)

    project = make_project(completion_rate=100)
    assert condition_holds(project, CheckType.COMPLETION, now, TZ)
    assert not condition_holds(project, CheckType.START_DATE, now, TZ)


def test_checked_today_uses_local_calendar_day() -> None:
    now = at(2025, 3, 11, 12, 0)
    # 00:30 local is still the previous day in UTC.
    assert checked_today(at(2025, 3, 11, 0, 30), now, TZ)
    assert not checked_today(at(2025, 3, 10, 23, 30), now, TZ)
    assert not checked_today(None, now, TZ)
