# src/duecheck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the stores, ledger, workflow and schedulers into AppState.
"""

from __future__ import annotations

import logging
from datetime import datetime

import pytz

from ..checks.confirmation import ConfirmationWorkflow
from ..checks.date_scheduler import DateCheckScheduler
from ..checks.events import EventBus
from ..checks.reminder_scheduler import ReminderScheduler
from ..config import get_settings
from ..core.ports import EndDateEditor
from ..core.state import AppState
from ..notifications.notification_ledger import NotificationLedger
from ..notifications.notification_store import NotificationStore
from ..tracker.tracker_store import TrackerStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tracker_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notifications_db_path.parent.mkdir(parents=True, exist_ok=True)


def _tz_of(settings):
    tz = getattr(settings, "tz", None)
    if tz is not None:
        return tz
    try:
        return pytz.timezone(str(getattr(settings, "timezone", "UTC")))
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r; using UTC", getattr(settings, "timezone", None))
        return pytz.utc


def create_initial_state(*, settings=None, editor: EndDateEditor | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    tz = _tz_of(settings)

    def clock() -> datetime:
        return datetime.now(tz)

    tracker = TrackerStore(settings.tracker_db_path, tz=tz)
    notifications = NotificationStore(settings.notifications_db_path, tz=tz)
    ledger = NotificationLedger(notifications, tracker, tz=tz, clock=clock)
    events = EventBus()

    workflow = ConfirmationWorkflow(
        tracker,
        ledger,
        acting_user_id=settings.user_id,
        events=events,
        editor=editor,
        tz=tz,
        clock=clock,
    )
    date_scheduler = DateCheckScheduler(
        tracker,
        ledger,
        user_id=settings.user_id,
        team_id=settings.team_id,
        team_ids=list(settings.team_ids or []),
        session=workflow,
        tz=tz,
        clock=clock,
        interval_seconds=settings.scan_interval_seconds,
    )
    reminder_scheduler = ReminderScheduler(
        tracker,
        ledger,
        tz=tz,
        clock=clock,
        interval_seconds=settings.reminder_interval_seconds,
    )

    logger.debug("State created user=%s tz=%s", settings.user_id, tz)
    return AppState(
        settings=settings,
        tracker=tracker,
        notifications=notifications,
        ledger=ledger,
        events=events,
        workflow=workflow,
        date_scheduler=date_scheduler,
        reminder_scheduler=reminder_scheduler,
    )
