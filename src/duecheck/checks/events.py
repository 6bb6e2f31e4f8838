# src/duecheck/checks/events.py

from __future__ import annotations

"""
In-process event bus for the confirmation workflow.

UI layers subscribe to learn about opened/resolved/closed confirmations and to
ask the workflow to open an item (OpenConfirmationRequested). Listener errors
are logged and never reach the publisher.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..notifications.notification_models import CheckType
from ..tracker.tracker_models import EntityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OpenConfirmationRequested:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType


@dataclass(frozen=True, slots=True)
class ConfirmationOpened:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType
    actions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ConfirmationResolved:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType
    action: str
    outcome: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class ConfirmationClosed:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType
    watermark_written: bool


@dataclass(frozen=True, slots=True)
class AlreadyHandled:
    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType


@dataclass(frozen=True, slots=True)
class OpenRejected:
    """An open request was not presented; `outcome` says why."""

    entity_kind: EntityKind
    entity_id: str
    check_type: CheckType
    outcome: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class ValidationFailed:
    entity_kind: EntityKind
    entity_id: str
    message: str


@dataclass(frozen=True, slots=True)
class EndDateEditRequested:
    """No editor is attached: the UI should open its own end-date editor."""

    entity_kind: EntityKind
    entity_id: str


WorkflowEvent = (
    OpenConfirmationRequested
    | ConfirmationOpened
    | ConfirmationResolved
    | ConfirmationClosed
    | AlreadyHandled
    | OpenRejected
    | ValidationFailed
    | EndDateEditRequested
)

Listener = Callable[[WorkflowEvent], Awaitable[None] | None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener (sync or async). Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def publish(self, event: WorkflowEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event listener failed event=%s", type(event).__name__)
