# src/duecheck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from ..checks.date_conditions import localize
from ..checks.events import (
    AlreadyHandled,
    ConfirmationOpened,
    EndDateEditRequested,
    OpenRejected,
    ValidationFailed,
)
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tracker.tracker_models import Project, Task

logger = logging.getLogger(__name__)

InputFunc = Callable[[str], Awaitable[str]]


async def _ainput(prompt: str) -> str:
    """
    input() on a daemon thread.

    A blocked read must not keep the process alive after a signal, so the
    default executor (joined by asyncio.run) is not used.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def _deliver(value: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(value or "")

    def _read() -> None:
        try:
            line, err = input(prompt), None
        except (EOFError, KeyboardInterrupt) as e:
            line, err = None, e
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_deliver, line, err)

    threading.Thread(target=_read, name="console-input", daemon=True).start()
    return await fut


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def parse_end_date(raw: str, tz: Any) -> datetime | None:
    """
    Parse console input into an end date.

    - "YYYY-MM-DD"        -> whole day (23:59:59 local)
    - "YYYY-MM-DD HH:MM"  -> exact local time
    Empty input returns None. Anything else raises ValueError.
    """
    text = raw.strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"):
        try:
            return localize(tz, datetime.strptime(text, fmt))
        except ValueError:
            continue
    day = datetime.strptime(text, "%Y-%m-%d")
    return localize(tz, day.replace(hour=23, minute=59, second=59))


class ConsoleEndDateEditor:
    """EndDateEditor that asks for the new date on the console. Empty input cancels."""

    def __init__(self, tz: Any, *, ask: InputFunc = _ainput) -> None:
        self._tz = tz
        self._ask = ask

    async def _edit(self, label: str, current: datetime) -> datetime | None:
        shown = current.astimezone(self._tz).strftime("%Y-%m-%d %H:%M")
        while True:
            raw = await self._ask(
                f"New end date for {label} (current {shown}; YYYY-MM-DD [HH:MM], empty cancels): "
            )
            try:
                return parse_end_date(raw, self._tz)
            except ValueError:
                _print_ts("Could not parse the date, try again.")

    async def edit_task_end_date(self, task: Task) -> datetime | None:
        return await self._edit(f'task "{task.title}"', task.end_date)

    async def edit_project_end_date(self, project: Project) -> datetime | None:
        return await self._edit(f'project "{project.name}"', project.end_date)


def _print_event(event: Any) -> None:
    if isinstance(event, ConfirmationOpened):
        _print_ts(
            f"[CONFIRM] {event.entity_kind.value} {event.entity_id} ({event.check_type.value}) "
            f"-> /resolve {' | '.join(event.actions)} or /close"
        )
    elif isinstance(event, AlreadyHandled):
        _print_ts(f"[CONFIRM] {event.entity_kind.value} {event.entity_id} was already handled.")
    elif isinstance(event, OpenRejected):
        _print_ts(
            f"[CONFIRM] Cannot open {event.entity_kind.value} {event.entity_id} "
            f"({event.outcome}): {event.message}"
        )
    elif isinstance(event, ValidationFailed):
        _print_ts(f"[CONFIRM] {event.message}")
    elif isinstance(event, EndDateEditRequested):
        _print_ts(f"[CONFIRM] Edit the end date of {event.entity_kind.value} {event.entity_id}.")


async def run_console_loop(state: AppState, *, ask: InputFunc = _ainput) -> None:
    logger.info("Console connector started (user=%s).", state.user_id)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    unsubscribe = state.events.subscribe(_print_event)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = (await ask(">>> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                response = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is None:
                response = "Not a command. Use /help to list available commands."
            _print_ts(response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
