# src/duecheck/checks/confirmation.py

from __future__ import annotations

"""
Confirmation workflow.

Presents one date-check item at a time and applies the user's decision.

States:
- IDLE: nothing presented
- AWAITING_USER_ACTION: one item presented, waiting for resolve()/close()
- RESOLVING: a decision is being applied

Every resolve() ends in IDLE, or back in AWAITING_USER_ACTION when the item
chains into a follow-up (start -> end overdue), fails validation, or the end
date editor was cancelled. Errors never leave the workflow in RESOLVING.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

import pytz

from ..core.ports import EndDateEditor, EntityGateway
from ..notifications.notification_ledger import NotificationLedger
from ..notifications.notification_models import (
    CheckType,
    Notification,
    NotificationDraft,
    NotificationType,
)
from ..tracker.tracker_models import (
    EntityKind,
    Project,
    ProjectStatus,
    Task,
    TaskFilter,
    TaskStatus,
)
from .date_conditions import condition_holds
from .events import (
    AlreadyHandled,
    ConfirmationClosed,
    ConfirmationOpened,
    ConfirmationResolved,
    EndDateEditRequested,
    EventBus,
    OpenConfirmationRequested,
    OpenRejected,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


class WorkflowState(StrEnum):
    IDLE = "idle"
    AWAITING_USER_ACTION = "awaiting_user_action"
    RESOLVING = "resolving"


class ConfirmationAction(StrEnum):
    # tasks
    CHANGE_TO_IN_PROGRESS = "change_to_in_progress"
    CHANGE_TO_COMPLETED = "change_to_completed"
    CHANGE_END_DATE = "change_end_date"
    # projects
    COMPLETE = "complete"
    EXTEND = "extend"
    NOT_COMPLETE = "not_complete"
    # both
    IGNORE = "ignore"


class Outcome(StrEnum):
    OPENED = "opened"
    BUSY = "busy"
    NOT_FOUND = "not_found"
    NOT_APPLICABLE = "not_applicable"
    ALREADY_HANDLED = "already_handled"
    RESOLVED = "resolved"
    CHAINED = "chained"
    HANDED_OFF = "handed_off"
    EDIT_CANCELLED = "edit_cancelled"
    VALIDATION_FAILED = "validation_failed"
    CLOSED = "closed"
    FAILED = "failed"


_A = ConfirmationAction

ALLOWED_ACTIONS: dict[tuple[EntityKind, CheckType], tuple[ConfirmationAction, ...]] = {
    (EntityKind.TASK, CheckType.START_DATE): (
        _A.CHANGE_TO_IN_PROGRESS,
        _A.CHANGE_TO_COMPLETED,
        _A.CHANGE_END_DATE,
        _A.IGNORE,
    ),
    (EntityKind.TASK, CheckType.END_DATE): (
        _A.CHANGE_TO_COMPLETED,
        _A.CHANGE_END_DATE,
        _A.IGNORE,
    ),
    (EntityKind.PROJECT, CheckType.END_DATE): (_A.COMPLETE, _A.EXTEND, _A.IGNORE),
    (EntityKind.PROJECT, CheckType.COMPLETION): (_A.COMPLETE, _A.NOT_COMPLETE, _A.IGNORE),
}


@dataclass(slots=True)
class ConfirmationItem:
    entity_kind: EntityKind
    entity: Task | Project
    check_type: CheckType
    # status at presentation time; close() only writes the watermark if unchanged
    baseline_status: str

    @property
    def entity_id(self) -> str:
        return self.entity.id

    @property
    def actions(self) -> tuple[ConfirmationAction, ...]:
        return ALLOWED_ACTIONS[(self.entity_kind, self.check_type)]


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    outcome: Outcome
    message: str = ""
    item: ConfirmationItem | None = None


class ConfirmationWorkflow:
    def __init__(
        self,
        gateway: EntityGateway,
        ledger: NotificationLedger,
        *,
        acting_user_id: str,
        events: EventBus | None = None,
        editor: EndDateEditor | None = None,
        tz: Any = pytz.utc,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._acting_user_id = acting_user_id
        self._events = events or EventBus()
        self._editor = editor
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(self._tz))

        self._state = WorkflowState.IDLE
        self._item: ConfirmationItem | None = None
        # single-flight guard while an open() is fetching
        self._opening = False

        self._events.subscribe(self._on_event)

    # ---- introspection ----

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def current(self) -> ConfirmationItem | None:
        return self._item

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def is_active(self) -> bool:
        return self._opening or self._state != WorkflowState.IDLE

    @property
    def task_session_active(self) -> bool:
        return self._item is not None and self._item.entity_kind == EntityKind.TASK

    @property
    def project_session_active(self) -> bool:
        return self._item is not None and self._item.entity_kind == EntityKind.PROJECT

    def set_editor(self, editor: EndDateEditor | None) -> None:
        self._editor = editor

    # ---- open ----

    async def _on_event(self, event: Any) -> None:
        if isinstance(event, OpenConfirmationRequested):
            result = await self.open(event.entity_kind, event.entity_id, event.check_type)
            logger.debug("Open request %s -> %s", event.entity_id, result.outcome.value)
            # OPENED and ALREADY_HANDLED publish their own events
            if result.outcome not in (Outcome.OPENED, Outcome.ALREADY_HANDLED):
                await self._events.publish(
                    OpenRejected(
                        event.entity_kind,
                        event.entity_id,
                        event.check_type,
                        result.outcome.value,
                        result.message,
                    )
                )

    async def open(
        self, entity_kind: EntityKind, entity_id: str, check_type: CheckType
    ) -> WorkflowResult:
        if self.is_active:
            return WorkflowResult(Outcome.BUSY, "Another confirmation is already open.", self._item)

        if (entity_kind, check_type) not in ALLOWED_ACTIONS:
            return WorkflowResult(
                Outcome.NOT_APPLICABLE,
                f"No confirmation exists for {entity_kind.value} check {check_type.value}.",
            )

        self._opening = True
        try:
            return await self._open(entity_kind, entity_id, check_type)
        finally:
            self._opening = False

    async def _open(
        self, entity_kind: EntityKind, entity_id: str, check_type: CheckType
    ) -> WorkflowResult:
        try:
            entity = await self._fetch(entity_kind, entity_id)
        except Exception:
            logger.exception("Failed to load %s %s", entity_kind.value, entity_id)
            return WorkflowResult(Outcome.FAILED, "Could not load the item. Please try again.")

        if entity is None:
            return WorkflowResult(Outcome.NOT_FOUND, f"The {entity_kind.value} no longer exists.")

        now = self._clock()
        if not condition_holds(entity, check_type, now, self._tz):
            logger.info(
                "Confirmation already handled %s=%s check_type=%s",
                entity_kind.value,
                entity_id,
                check_type.value,
            )
            await self._events.publish(AlreadyHandled(entity_kind, entity_id, check_type))
            return WorkflowResult(Outcome.ALREADY_HANDLED, "This item has already been handled.")

        item = ConfirmationItem(entity_kind, entity, check_type, baseline_status=str(entity.status))
        await self._present(item)
        return WorkflowResult(Outcome.OPENED, self._prompt(item), item)

    async def open_from_notification(self, notification: Notification) -> WorkflowResult:
        """Open the item a date-check notification points at."""
        check_type = notification.check_type
        if check_type is None:
            return WorkflowResult(Outcome.NOT_APPLICABLE, "This notification needs no confirmation.")

        if notification.type == NotificationType.TASK_OVERDUE and notification.task_id:
            return await self.open(EntityKind.TASK, notification.task_id, check_type)

        if (
            notification.type
            in (NotificationType.PROJECT_UPDATED, NotificationType.PROJECT_COMPLETED)
            and notification.project_id
        ):
            return await self.open(EntityKind.PROJECT, notification.project_id, check_type)

        return WorkflowResult(Outcome.NOT_APPLICABLE, "This notification needs no confirmation.")

    # ---- resolve ----

    async def resolve(self, action: ConfirmationAction | str) -> WorkflowResult:
        """
        Apply the user's decision on the presented item.

        Raises RuntimeError when nothing awaits a decision and ValueError for an
        action that does not belong to the presented item; both before any change.
        """
        if self._state != WorkflowState.AWAITING_USER_ACTION or self._item is None:
            raise RuntimeError("no confirmation is awaiting a user action")

        item = self._item
        try:
            action = ConfirmationAction(action)
        except ValueError:
            raise ValueError(f"unknown action: {action}") from None
        if action not in item.actions:
            raise ValueError(
                f"action {action.value} is not allowed for "
                f"{item.entity_kind.value} check {item.check_type.value}"
            )

        self._state = WorkflowState.RESOLVING
        result = WorkflowResult(Outcome.FAILED, "Could not apply the change. Please try again.", item)
        try:
            if item.entity_kind == EntityKind.TASK:
                result = await self._resolve_task(item, action)
            else:
                result = await self._resolve_project(item, action)
        except Exception:
            logger.exception(
                "Resolve failed %s=%s action=%s", item.entity_kind.value, item.entity_id, action.value
            )
        finally:
            if self._state == WorkflowState.RESOLVING:
                self._finish()

        await self._events.publish(
            ConfirmationResolved(
                item.entity_kind,
                item.entity_id,
                item.check_type,
                action=action.value,
                outcome=result.outcome.value,
                message=result.message,
            )
        )
        return result

    async def _resolve_task(self, item: ConfirmationItem, action: ConfirmationAction) -> WorkflowResult:
        task = item.entity
        assert isinstance(task, Task)
        now = self._clock()

        if action == _A.CHANGE_TO_IN_PROGRESS:
            await self._gateway.update_task(task.id, {"status": TaskStatus.IN_PROGRESS})
            fresh = await self._gateway.get_task(task.id)
            if fresh is not None and condition_holds(fresh, CheckType.END_DATE, now, self._tz):
                chained = ConfirmationItem(
                    EntityKind.TASK, fresh, CheckType.END_DATE, baseline_status=str(fresh.status)
                )
                await self._present(chained)
                return WorkflowResult(
                    Outcome.CHAINED,
                    "Task is in progress, but its end date has passed as well. " + self._prompt(chained),
                    chained,
                )
            await self._ledger.advance_watermark(fresh or task, now)
            return WorkflowResult(Outcome.RESOLVED, "Task status changed to in progress.")

        if action == _A.CHANGE_TO_COMPLETED:
            await self._gateway.update_task(
                task.id,
                {"status": TaskStatus.COMPLETED, "completed_at": now, "date_checked_at": now},
            )
            return WorkflowResult(Outcome.RESOLVED, "Task marked as completed.")

        if action == _A.CHANGE_END_DATE:
            return await self._hand_off(item, now)

        await self._ledger.advance_watermark(task, now)
        return WorkflowResult(Outcome.RESOLVED, "Ignored for today.")

    async def _resolve_project(
        self, item: ConfirmationItem, action: ConfirmationAction
    ) -> WorkflowResult:
        project = item.entity
        assert isinstance(project, Project)
        now = self._clock()

        if action == _A.COMPLETE:
            tasks = await self._gateway.list_tasks(TaskFilter(project_id=project.id))
            incomplete = [t for t in tasks if t.status != TaskStatus.COMPLETED]
            if incomplete:
                message = (
                    f"{len(incomplete)} task(s) in this project are not completed yet. "
                    "Complete or delete them first."
                )
                await self._present(item, announce=False)
                await self._events.publish(ValidationFailed(item.entity_kind, project.id, message))
                return WorkflowResult(Outcome.VALIDATION_FAILED, message, item)

            await self._gateway.update_project(
                project.id, {"status": ProjectStatus.COMPLETED, "date_checked_at": now}
            )
            await self._notify_members_completed(project)
            return WorkflowResult(Outcome.RESOLVED, "Project marked as completed.")

        if action == _A.EXTEND:
            return await self._hand_off(item, now)

        # IGNORE / NOT_COMPLETE
        await self._ledger.advance_watermark(project, now)
        return WorkflowResult(Outcome.RESOLVED, "Ignored for today.")

    async def _hand_off(self, item: ConfirmationItem, now: datetime) -> WorkflowResult:
        entity = item.entity

        if self._editor is None:
            await self._events.publish(EndDateEditRequested(item.entity_kind, entity.id))
            return WorkflowResult(Outcome.HANDED_OFF, "Opening the end date editor.")

        if isinstance(entity, Task):
            new_end = await self._editor.edit_task_end_date(entity)
        else:
            new_end = await self._editor.edit_project_end_date(entity)

        if new_end is None:
            await self._present(item, announce=False)
            return WorkflowResult(Outcome.EDIT_CANCELLED, "End date change cancelled.", item)

        if new_end < entity.start_date:
            message = "The end date must not be earlier than the start date."
            await self._present(item, announce=False)
            await self._events.publish(ValidationFailed(item.entity_kind, entity.id, message))
            return WorkflowResult(Outcome.VALIDATION_FAILED, message, item)

        partial = {"end_date": new_end, "date_checked_at": now}
        if isinstance(entity, Task):
            await self._gateway.update_task(entity.id, partial)
        else:
            await self._gateway.update_project(entity.id, partial)
        return WorkflowResult(Outcome.RESOLVED, "End date updated.")

    async def _notify_members_completed(self, project: Project) -> None:
        for member_id in project.members:
            if not member_id or member_id == self._acting_user_id:
                continue
            draft = NotificationDraft(
                user_id=member_id,
                type=NotificationType.PROJECT_COMPLETED,
                title="Project completed",
                message=f'Project "{project.name}" has been marked as completed.',
                project_id=project.id,
                team_id=project.team_id,
            )
            try:
                await self._ledger.create_notification(draft)
            except Exception:
                logger.exception(
                    "Completion notification failed project_id=%s user=%s", project.id, member_id
                )

    # ---- close ----

    async def close(self) -> WorkflowResult:
        """
        Dismiss the presented item without a decision.

        The watermark is written only when the entity is still in the state it
        was presented in, so the item is not surfaced again today.
        """
        if self._state == WorkflowState.RESOLVING:
            return WorkflowResult(Outcome.BUSY, "A change is being applied.", self._item)
        if self._state == WorkflowState.IDLE or self._item is None:
            return WorkflowResult(Outcome.CLOSED)

        item = self._item
        self._state = WorkflowState.RESOLVING
        written = False
        try:
            fresh = await self._fetch(item.entity_kind, item.entity_id)
            now = self._clock()
            if (
                fresh is not None
                and str(fresh.status) == item.baseline_status
                and condition_holds(fresh, item.check_type, now, self._tz)
            ):
                written = await self._ledger.advance_watermark(fresh, now)
        except Exception:
            logger.exception("Close failed %s=%s", item.entity_kind.value, item.entity_id)
        finally:
            self._finish()

        await self._events.publish(
            ConfirmationClosed(item.entity_kind, item.entity_id, item.check_type, written)
        )
        return WorkflowResult(Outcome.CLOSED, "Closed.")

    # ---- internals ----

    async def _fetch(self, entity_kind: EntityKind, entity_id: str) -> Task | Project | None:
        if entity_kind == EntityKind.TASK:
            return await self._gateway.get_task(entity_id)
        return await self._gateway.get_project(entity_id)

    async def _present(self, item: ConfirmationItem, *, announce: bool = True) -> None:
        self._item = item
        self._state = WorkflowState.AWAITING_USER_ACTION
        if announce:
            await self._events.publish(
                ConfirmationOpened(
                    item.entity_kind,
                    item.entity_id,
                    item.check_type,
                    tuple(a.value for a in item.actions),
                )
            )

    def _finish(self) -> None:
        self._item = None
        self._state = WorkflowState.IDLE

    @staticmethod
    def _prompt(item: ConfirmationItem) -> str:
        entity = item.entity
        if isinstance(entity, Task):
            if item.check_type == CheckType.START_DATE:
                text = f'Task "{entity.title}" has passed its start date but is not started.'
            else:
                text = f'Task "{entity.title}" has passed its end date.'
        elif item.check_type == CheckType.COMPLETION:
            text = f'All tasks of project "{entity.name}" are done.'
        else:
            text = f'Project "{entity.name}" has passed its end date.'
        return f"{text} Actions: {', '.join(a.value for a in item.actions)}"
