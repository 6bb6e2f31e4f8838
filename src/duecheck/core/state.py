# src/duecheck/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..checks.confirmation import ConfirmationWorkflow
from ..checks.date_scheduler import DateCheckScheduler
from ..checks.events import EventBus
from ..checks.reminder_scheduler import ReminderScheduler
from ..notifications.notification_ledger import NotificationLedger
from ..notifications.notification_store import NotificationStore
from ..tracker.tracker_store import TrackerStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    tracker: TrackerStore
    notifications: NotificationStore
    ledger: NotificationLedger
    events: EventBus
    workflow: ConfirmationWorkflow
    date_scheduler: DateCheckScheduler
    reminder_scheduler: ReminderScheduler

    @property
    def user_id(self) -> str:
        return str(self.settings.user_id)

    def start_schedulers(self) -> None:
        self.date_scheduler.start()
        if getattr(self.settings, "reminders_enabled", True):
            self.reminder_scheduler.start()

    def stop_schedulers(self) -> None:
        self.date_scheduler.stop()
        self.reminder_scheduler.stop()
