# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from duecheck.checks.confirmation import ConfirmationWorkflow
from duecheck.checks.date_scheduler import DateCheckScheduler
from duecheck.checks.events import EventBus
from duecheck.cli.bootstrap import create_initial_state
from duecheck.core.state import AppState
from duecheck.notifications.notification_ledger import NotificationLedger

from .fakes import TZ, FakeEditor, FakeGateway, FakeNotificationRepo, FixedClock, at


@pytest.fixture()
def clock() -> FixedClock:
    # Tuesday mid-morning; make_task() defaults start 2025-03-10 and end 2025-03-12.
    return FixedClock(at(2025, 3, 11, 10, 0))


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def repo() -> FakeNotificationRepo:
    return FakeNotificationRepo()


@pytest.fixture()
def ledger(repo: FakeNotificationRepo, gateway: FakeGateway, clock: FixedClock) -> NotificationLedger:
    return NotificationLedger(repo, gateway, tz=TZ, clock=clock)


@pytest.fixture()
def events() -> EventBus:
    return EventBus()


@pytest.fixture()
def editor() -> FakeEditor:
    return FakeEditor()


@pytest.fixture()
def workflow(
    gateway: FakeGateway,
    ledger: NotificationLedger,
    events: EventBus,
    clock: FixedClock,
) -> ConfirmationWorkflow:
    return ConfirmationWorkflow(
        gateway, ledger, acting_user_id="u1", events=events, tz=TZ, clock=clock
    )


@pytest.fixture()
def scheduler(
    gateway: FakeGateway,
    ledger: NotificationLedger,
    workflow: ConfirmationWorkflow,
    clock: FixedClock,
) -> DateCheckScheduler:
    return DateCheckScheduler(
        gateway,
        ledger,
        user_id="u1",
        session=workflow,
        tz=TZ,
        clock=clock,
        interval_seconds=0.01,
    )


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_initial_state().

    A SimpleNamespace rather than the real config keeps tests independent of the environment.
    """
    return SimpleNamespace(
        app_name="duecheck-test",
        log_level="DEBUG",
        user_id="u1",
        team_id=None,
        team_ids=[],
        timezone="Europe/Amsterdam",
        tz=TZ,
        scan_interval_seconds=0.01,
        reminder_interval_seconds=0.01,
        reminders_enabled=True,
        console_enabled=False,
        data_dir=tmp_path,
        tracker_db_path=tmp_path / "tracker.sqlite3",
        notifications_db_path=tmp_path / "notifications.sqlite3",
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired by the real bootstrap.

    NOTE: real SQLite stores are used here because their correctness is part of
    what the command tests exercise.
    """
    return create_initial_state(settings=settings)
