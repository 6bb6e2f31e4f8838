# src/duecheck/checks/reminder_scheduler.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import pytz

from ..core.ports import EntityGateway
from ..notifications.notification_ledger import NotificationLedger
from ..notifications.notification_models import NotificationDraft, NotificationType
from ..tracker.tracker_models import Reminder, ReminderType, ReminderUnit, Task, TaskFilter
from .date_conditions import localize
from .periodic import PeriodicScanner

logger = logging.getLogger(__name__)


def reminder_trigger_at(reminder: Reminder, task: Task, tz: Any) -> datetime:
    """
    When a reminder fires.

    - absolute reminders fire at scheduled_at
    - relative reminders fire `amount` units before the task's start/end;
      day offsets are calendar days in the local timezone
    Raises ValueError for malformed reminders.
    """
    reminder.validate()
    if reminder.scheduled_at is not None:
        return reminder.scheduled_at

    base = task.start_date if reminder.type == ReminderType.BEFORE_START else task.end_date
    amount = int(reminder.amount or 0)

    if reminder.unit == ReminderUnit.MINUTE:
        return base - timedelta(minutes=amount)
    if reminder.unit == ReminderUnit.HOUR:
        return base - timedelta(hours=amount)

    local = base.astimezone(tz).replace(tzinfo=None)
    return localize(tz, local - timedelta(days=amount))


def _describe_offset(reminder: Reminder) -> str:
    amount = int(reminder.amount or 0)
    unit = reminder.unit.value if reminder.unit else "minute"
    return f"{amount} {unit}" + ("" if amount == 1 else "s")


def build_reminder_draft(task: Task, reminder: Reminder) -> NotificationDraft:
    if reminder.is_relative:
        edge = "starts" if reminder.type == ReminderType.BEFORE_START else "is due"
        message = f'Task "{task.title}" {edge} in {_describe_offset(reminder)}.'
    else:
        message = f'Reminder for task "{task.title}".'
    return NotificationDraft(
        user_id=task.assignee_id or task.creator_id,
        type=NotificationType.TASK_REMINDER,
        title="Task reminder",
        message=message,
        task_id=task.id,
        project_id=task.project_id,
        team_id=task.team_id,
    )


@dataclass(slots=True)
class ReminderScanReport:
    tasks: int = 0
    sent: int = 0
    skipped: int = 0
    invalid: int = 0
    failed: int = 0
    skipped_scan: bool = False


class ReminderScheduler:
    """
    Periodic reminder scan over non-completed tasks.

    Every due, unsent reminder produces one task_reminder notification for the
    assignee (or creator) and is then marked sent. `sent` is terminal: a
    reminder filtered out by preferences is still marked sent, while a failed
    notification write leaves it unsent for the next scan.
    """

    def __init__(
        self,
        gateway: EntityGateway,
        ledger: NotificationLedger,
        *,
        tz: Any = pytz.utc,
        clock: Callable[[], datetime] | None = None,
        interval_seconds: float = 60.0,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._running = False
        self._ticker = PeriodicScanner("reminders", self.scan_once, interval_seconds=interval_seconds)

    @property
    def ticker(self) -> PeriodicScanner:
        return self._ticker

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    async def scan_once(self, now: datetime | None = None) -> ReminderScanReport:
        now = now or self._clock()
        report = ReminderScanReport()
        if self._running:
            report.skipped_scan = True
            return report

        self._running = True
        try:
            try:
                tasks = await self._gateway.list_tasks(TaskFilter(exclude_completed=True))
            except Exception:
                logger.exception("list_tasks failed (reminders)")
                return report

            for task in tasks:
                if task.is_deleted or not task.reminders:
                    continue
                report.tasks += 1
                for reminder in task.reminders:
                    if reminder.sent:
                        continue
                    await self._process(task, reminder, now, report)
        finally:
            self._running = False

        if report.sent or report.failed:
            logger.info(
                "Reminder scan: sent=%d skipped=%d invalid=%d failed=%d",
                report.sent,
                report.skipped,
                report.invalid,
                report.failed,
            )
        return report

    async def _process(
        self, task: Task, reminder: Reminder, now: datetime, report: ReminderScanReport
    ) -> None:
        try:
            trigger = reminder_trigger_at(reminder, task, self._tz)
        except ValueError as e:
            logger.warning("Skipping malformed reminder task_id=%s: %s", task.id, e)
            report.invalid += 1
            return

        if now < trigger:
            return

        try:
            notification_id = await self._ledger.create_notification(build_reminder_draft(task, reminder))
        except Exception:
            logger.exception("Reminder notification failed task_id=%s reminder=%s", task.id, reminder.id)
            report.failed += 1
            return

        try:
            await self._mark_sent(task, reminder.id, now)
        except Exception:
            logger.exception("Failed to mark reminder sent task_id=%s reminder=%s", task.id, reminder.id)
            report.failed += 1
            return

        reminder.sent = True
        reminder.sent_at = now
        if notification_id is None:
            report.skipped += 1
        else:
            report.sent += 1
            logger.info("Reminder sent task_id=%s reminder=%s", task.id, reminder.id)

    async def _mark_sent(self, task: Task, reminder_id: str, now: datetime) -> None:
        # Only the fired reminder changes; the others keep their stored state.
        fresh = await self._gateway.get_task(task.id)
        reminders = fresh.reminders if fresh is not None else task.reminders

        updated: list[Reminder] = []
        for r in reminders:
            if r.id == reminder_id:
                r = Reminder(
                    id=r.id,
                    scheduled_at=r.scheduled_at,
                    type=r.type,
                    amount=r.amount,
                    unit=r.unit,
                    sent=True,
                    sent_at=now,
                )
            updated.append(r)
        await self._gateway.update_task(task.id, {"reminders": updated})
