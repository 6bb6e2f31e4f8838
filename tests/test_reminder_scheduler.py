# tests/test_reminder_scheduler.py

from __future__ import annotations

import pytest

from duecheck.checks.reminder_scheduler import ReminderScheduler, reminder_trigger_at
from duecheck.notifications.notification_models import NotificationType
from duecheck.tracker.tracker_models import Reminder, ReminderType, ReminderUnit, TaskStatus

from .fakes import TZ, at, make_task


@pytest.fixture()
def reminders(gateway, ledger, clock) -> ReminderScheduler:
    return ReminderScheduler(gateway, ledger, tz=TZ, clock=clock, interval_seconds=0.01)


def test_trigger_for_relative_offsets() -> None:
    task = make_task(start_date=at(2025, 3, 12, 9, 0), end_date=at(2025, 3, 14, 17, 0))

    minutes = Reminder(id="r1", type=ReminderType.BEFORE_START, amount=30, unit=ReminderUnit.MINUTE)
    hours = Reminder(id="r2", type=ReminderType.BEFORE_END, amount=2, unit=ReminderUnit.HOUR)
    days = Reminder(id="r3", type=ReminderType.BEFORE_END, amount=1, unit=ReminderUnit.DAY)

    assert reminder_trigger_at(minutes, task, TZ) == at(2025, 3, 12, 8, 30)
    assert reminder_trigger_at(hours, task, TZ) == at(2025, 3, 14, 15, 0)
    assert reminder_trigger_at(days, task, TZ) == at(2025, 3, 13, 17, 0)


def test_day_offset_keeps_local_wall_clock_across_dst() -> None:
    # Europe/Amsterdam switches to CEST on 2025-03-30.
    task = make_task(start_date=at(2025, 3, 25), end_date=at(2025, 3, 31, 9, 0))
    days = Reminder(id="r1", type=ReminderType.BEFORE_END, amount=2, unit=ReminderUnit.DAY)

    trigger = reminder_trigger_at(days, task, TZ)

    local = trigger.astimezone(TZ)
    assert (local.day, local.hour) == (29, 9)


def test_malformed_reminder_raises() -> None:
    task = make_task()
    with pytest.raises(ValueError):
        reminder_trigger_at(Reminder(id="bad"), task, TZ)
    with pytest.raises(ValueError):
        reminder_trigger_at(
            Reminder(
                id="both",
                scheduled_at=at(2025, 3, 11),
                type=ReminderType.BEFORE_START,
                amount=1,
                unit=ReminderUnit.HOUR,
            ),
            task,
            TZ,
        )


@pytest.mark.asyncio
async def test_due_reminder_fires_once(reminders, gateway, repo, clock) -> None:
    gateway.tasks["t1"] = make_task(
        "t1",
        assignee_id=None,
        creator_id="c1",
        reminders=[
            Reminder(id="due", scheduled_at=at(2025, 3, 11, 9, 0)),
            Reminder(id="later", scheduled_at=at(2025, 3, 11, 12, 0)),
        ],
    )

    report = await reminders.scan_once()

    assert report.sent == 1
    assert len(repo.items) == 1
    n = repo.items[0]
    assert n.type == NotificationType.TASK_REMINDER
    assert n.user_id == "c1"
    assert n.check_type is None

    stored = {r.id: r for r in gateway.tasks["t1"].reminders}
    assert stored["due"].sent and stored["due"].sent_at == clock.now
    assert not stored["later"].sent

    # sent is terminal
    await reminders.scan_once()
    assert len(repo.items) == 1

    clock.now = at(2025, 3, 11, 12, 0)
    await reminders.scan_once()
    assert len(repo.items) == 2


@pytest.mark.asyncio
async def test_relative_reminder_goes_to_assignee(reminders, gateway, repo) -> None:
    gateway.tasks["t1"] = make_task(
        "t1",
        assignee_id="u7",
        start_date=at(2025, 3, 11, 10, 30),
        reminders=[
            Reminder(id="r", type=ReminderType.BEFORE_START, amount=1, unit=ReminderUnit.HOUR)
        ],
    )

    await reminders.scan_once()

    assert [n.user_id for n in repo.items] == ["u7"]
    assert "1 hour" in repo.items[0].message


@pytest.mark.asyncio
async def test_preference_skip_still_marks_sent(reminders, gateway, repo) -> None:
    gateway.prefs["u1"] = {"reminder": False}
    gateway.tasks["t1"] = make_task(
        "t1", reminders=[Reminder(id="r", scheduled_at=at(2025, 3, 11, 9, 0))]
    )

    report = await reminders.scan_once()

    assert report.skipped == 1
    assert repo.items == []
    assert gateway.tasks["t1"].reminders[0].sent


@pytest.mark.asyncio
async def test_write_failure_leaves_reminder_unsent(reminders, gateway, repo) -> None:
    repo.fail = True
    gateway.tasks["t1"] = make_task(
        "t1", reminders=[Reminder(id="r", scheduled_at=at(2025, 3, 11, 9, 0))]
    )

    report = await reminders.scan_once()

    assert report.failed == 1
    assert not gateway.tasks["t1"].reminders[0].sent

    repo.fail = False
    await reminders.scan_once()
    assert len(repo.items) == 1
    assert gateway.tasks["t1"].reminders[0].sent


@pytest.mark.asyncio
async def test_completed_tasks_and_malformed_reminders_are_skipped(reminders, gateway, repo) -> None:
    gateway.tasks["done"] = make_task(
        "done",
        status=TaskStatus.COMPLETED,
        reminders=[Reminder(id="r", scheduled_at=at(2025, 3, 11, 9, 0))],
    )
    gateway.tasks["odd"] = make_task(
        "odd",
        reminders=[Reminder(id="bad"), Reminder(id="ok", scheduled_at=at(2025, 3, 11, 9, 0))],
    )

    report = await reminders.scan_once()

    assert report.invalid == 1
    assert [n.task_id for n in repo.items] == ["odd"]
