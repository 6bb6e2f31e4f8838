# tests/test_date_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from duecheck.checks.periodic import PeriodicScanner
from duecheck.notifications.notification_models import CheckType, NotificationType
from duecheck.tracker.tracker_models import EntityKind, ProjectStatus, TaskStatus

from .fakes import at, make_project, make_task


@pytest.mark.asyncio
async def test_start_overdue_notified_once_per_day(scheduler, gateway, repo, clock) -> None:
    gateway.tasks["t1"] = make_task("t1")

    tasks_rep, _ = await scheduler.scan_once()
    assert tasks_rep.notified == 1
    assert len(repo.items) == 1
    assert repo.items[0].check_type == CheckType.START_DATE
    assert gateway.tasks["t1"].date_checked_at == clock.now

    # same day, later scan: nothing new
    clock.now = at(2025, 3, 11, 18, 0)
    tasks_rep, _ = await scheduler.scan_once()
    assert tasks_rep.already_checked == 1
    assert len(repo.items) == 1

    # next day the condition is surfaced again
    clock.now = at(2025, 3, 12, 9, 0)
    await scheduler.scan_once()
    assert len(repo.items) == 2


@pytest.mark.asyncio
async def test_both_task_conditions_recorded_in_one_scan(scheduler, gateway, repo) -> None:
    gateway.tasks["t1"] = make_task("t1", start_date=at(2025, 3, 1), end_date=at(2025, 3, 5))

    tasks_rep, _ = await scheduler.scan_once()

    assert tasks_rep.notified == 2
    assert sorted(n.check_type for n in repo.items) == sorted(
        [CheckType.START_DATE, CheckType.END_DATE]
    )


@pytest.mark.asyncio
async def test_only_tasks_involving_the_user_are_scanned(scheduler, gateway, repo) -> None:
    gateway.tasks["mine"] = make_task("mine", assignee_id="u1")
    gateway.tasks["other"] = make_task("other", assignee_id="u9")
    gateway.tasks["team"] = make_task("team", assignee_id=None, team_id="x", creator_id="u1")

    tasks_rep, _ = await scheduler.scan_once()

    assert tasks_rep.scanned == 2
    assert sorted(n.task_id for n in repo.items) == ["mine", "team"]


@pytest.mark.asyncio
async def test_project_end_overdue(scheduler, gateway, repo) -> None:
    gateway.projects["p1"] = make_project("p1", completion_rate=40, end_date=at(2025, 3, 5, 23, 59, 59))

    _, projects_rep = await scheduler.scan_once()

    assert projects_rep.notified == 1
    n = repo.items[0]
    assert n.type == NotificationType.PROJECT_UPDATED
    assert n.check_type == CheckType.END_DATE
    assert n.user_id == "u1"
    assert gateway.projects["p1"].date_checked_at is not None


@pytest.mark.asyncio
async def test_project_completion_reached(scheduler, gateway, repo) -> None:
    gateway.projects["p1"] = make_project("p1", completion_rate=100)

    await scheduler.scan_once()

    assert [n.type for n in repo.items] == [NotificationType.PROJECT_COMPLETED]


@pytest.mark.asyncio
async def test_project_completion_then_end_overdue_next_day(scheduler, gateway, repo, clock) -> None:
    gateway.projects["p1"] = make_project(
        "p1",
        completion_rate=100,
        start_date=at(2024, 1, 1),
        end_date=at(2024, 1, 5, 23, 59, 59),
    )

    clock.now = at(2024, 1, 4, 9, 0)
    await scheduler.scan_once()
    assert [n.check_type for n in repo.items] == [CheckType.COMPLETION]

    clock.now = at(2024, 1, 6, 0, 1)
    _, projects_rep = await scheduler.scan_once()

    assert projects_rep.notified == 1
    assert [n.check_type for n in repo.items] == [CheckType.COMPLETION, CheckType.END_DATE]
    assert repo.items[1].type == NotificationType.PROJECT_UPDATED
    assert gateway.projects["p1"].date_checked_at == clock.now


@pytest.mark.asyncio
async def test_project_auto_start_notifies_other_members(scheduler, gateway, repo) -> None:
    gateway.projects["p1"] = make_project(
        "p1",
        status=ProjectStatus.NOT_STARTED,
        start_date=at(2025, 3, 10),
        members=["u1", "u2", "u3"],
    )

    _, projects_rep = await scheduler.scan_once()

    assert projects_rep.auto_started == 1
    assert gateway.projects["p1"].status == ProjectStatus.IN_PROGRESS
    started = repo.of_type(NotificationType.PROJECT_UPDATED)
    assert sorted(n.user_id for n in started) == ["u2", "u3"]
    assert all(n.check_type is None for n in started)


@pytest.mark.asyncio
async def test_scan_skipped_while_confirmation_open(scheduler, workflow, gateway, repo) -> None:
    gateway.tasks["t1"] = make_task("t1")
    gateway.tasks["t2"] = make_task("t2")
    await workflow.open(EntityKind.TASK, "t1", CheckType.START_DATE)
    assert workflow.is_active

    tasks_rep, projects_rep = await scheduler.scan_once()

    assert tasks_rep.skipped_scan and projects_rep.skipped_scan
    assert repo.items == []


@pytest.mark.asyncio
async def test_one_failing_entity_does_not_stop_the_scan(scheduler, gateway, repo) -> None:
    gateway.projects["bad"] = make_project("bad", status=ProjectStatus.NOT_STARTED)
    gateway.projects["good"] = make_project("good", end_date=at(2025, 3, 5, 23, 59, 59))
    gateway.fail_updates_for.add("bad")

    _, projects_rep = await scheduler.scan_once()

    assert projects_rep.failed == 1
    assert [n.project_id for n in repo.items] == ["good"]


@pytest.mark.asyncio
async def test_list_failure_is_contained(scheduler, gateway) -> None:
    gateway.fail_list = True

    tasks_rep, projects_rep = await scheduler.scan_once()

    assert tasks_rep.scanned == 0
    assert projects_rep.scanned == 0


@pytest.mark.asyncio
async def test_completed_task_is_ignored(scheduler, gateway, repo) -> None:
    gateway.tasks["t1"] = make_task("t1", status=TaskStatus.COMPLETED, end_date=at(2025, 3, 5))

    await scheduler.scan_once()

    assert repo.items == []


@pytest.mark.asyncio
async def test_start_runs_immediately_and_stop_is_idempotent(scheduler, gateway, repo) -> None:
    gateway.tasks["t1"] = make_task("t1")

    scheduler.start()
    await asyncio.sleep(0.05)
    scheduler.stop()
    scheduler.stop()
    await scheduler.ticker.wait_idle()

    assert not scheduler.ticker.running
    # many ticks, one notification thanks to the watermark
    assert len(repo.items) == 1


@pytest.mark.asyncio
async def test_ticker_skips_while_scan_in_flight() -> None:
    release = asyncio.Event()
    calls = 0

    async def slow_scan() -> None:
        nonlocal calls
        calls += 1
        await release.wait()

    ticker = PeriodicScanner("test", slow_scan, interval_seconds=0.01)
    first = ticker.tick()
    await asyncio.sleep(0)
    assert ticker.tick() is None

    release.set()
    assert first is not None
    await first
    assert calls == 1
    assert ticker.tick() is not None
    await ticker.wait_idle()
    assert calls == 2


@pytest.mark.asyncio
async def test_stop_lets_in_flight_scan_finish() -> None:
    release = asyncio.Event()
    finished = False

    async def scan() -> None:
        nonlocal finished
        await release.wait()
        finished = True

    ticker = PeriodicScanner("test", scan, interval_seconds=10)
    ticker.start()
    await asyncio.sleep(0.01)
    ticker.stop()

    release.set()
    await ticker.wait_idle()
    assert finished
