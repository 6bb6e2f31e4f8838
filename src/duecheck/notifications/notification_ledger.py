# src/duecheck/notifications/notification_ledger.py

from __future__ import annotations

"""
Notification ledger.

Creates user-scoped notifications for detected date conditions and keeps them
to at most one per (entity, check type) per calendar day. De-duplication is
driven by the entity's date_checked_at watermark, not by looking up existing
notifications: deleting a notification never re-arms it, and a second
notification on the same day is tolerated if a watermark write is lost.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

import pytz

from ..core.ports import EntityGateway, NotificationRepo
from ..tracker.tracker_models import Project, Task
from .notification_models import CheckType, NotificationDraft, NotificationType
from .notification_prefs import allows, category_for

logger = logging.getLogger(__name__)


class RecordStatus(StrEnum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RecordResult:
    status: RecordStatus
    check_type: CheckType
    recipient_id: str
    notification_id: str | None = None


def resolve_recipient(entity: Task | Project, acting_user_id: str) -> str:
    """
    Who receives a date-check notification.

    - assigned entity -> assignee
    - team entity without assignee -> creator (task) / owner (project)
    - personal entity without assignee -> acting user
    """
    if entity.assignee_id:
        return entity.assignee_id
    if entity.team_id:
        return entity.creator_id if isinstance(entity, Task) else entity.owner_id
    return acting_user_id


def build_condition_draft(
    entity: Task | Project, check_type: CheckType, recipient_id: str
) -> NotificationDraft:
    if isinstance(entity, Task):
        if check_type == CheckType.START_DATE:
            title = "Task start date has passed"
            message = f'Task "{entity.title}" has passed its start date. Please update its status.'
        else:
            title = "Task is overdue"
            message = (
                f'Task "{entity.title}" has passed its end date. '
                "Update its status or extend the deadline."
            )
        return NotificationDraft(
            user_id=recipient_id,
            type=NotificationType.TASK_OVERDUE,
            title=title,
            message=message,
            check_type=check_type,
            task_id=entity.id,
            project_id=entity.project_id,
            team_id=entity.team_id,
        )

    if check_type == CheckType.COMPLETION:
        ntype = NotificationType.PROJECT_COMPLETED
        title = "Project reached 100%"
        message = f'All tasks of project "{entity.name}" are done. Mark the project as completed?'
    else:
        ntype = NotificationType.PROJECT_UPDATED
        title = "Project end date has passed"
        message = (
            f'Project "{entity.name}" has passed its end date. '
            "Complete it or extend the end date."
        )
    return NotificationDraft(
        user_id=recipient_id,
        type=ntype,
        title=title,
        message=message,
        check_type=check_type,
        project_id=entity.id,
        team_id=entity.team_id,
    )


class NotificationLedger:
    def __init__(
        self,
        notifications: NotificationRepo,
        gateway: EntityGateway,
        *,
        tz: Any = pytz.utc,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._notifications = notifications
        self._gateway = gateway
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(self._tz))

    async def create_notification(self, draft: NotificationDraft) -> str | None:
        """
        Store a notification unless the recipient's preferences filter it out.

        Returns the new notification id, or None for a preference-filtered skip.
        Storage errors propagate to the caller.
        """
        prefs = await self._gateway.get_notification_preferences(draft.user_id)
        if not allows(prefs, draft.type, draft.check_type):
            logger.info(
                "Notification skipped by preferences user=%s category=%s type=%s check_type=%s",
                draft.user_id,
                category_for(draft.type, draft.check_type),
                draft.type.value,
                draft.check_type,
            )
            return None

        return await self._notifications.add_notification(
            user_id=draft.user_id,
            type=draft.type,
            title=draft.title,
            message=draft.message,
            check_type=draft.check_type,
            task_id=draft.task_id,
            project_id=draft.project_id,
            team_id=draft.team_id,
        )

    async def advance_watermark(self, entity: Task | Project, now: datetime | None = None) -> bool:
        """Write date_checked_at=now on the entity. Best-effort: False on failure."""
        now = now or self._clock()
        try:
            if isinstance(entity, Task):
                await self._gateway.update_task(entity.id, {"date_checked_at": now})
            else:
                await self._gateway.update_project(entity.id, {"date_checked_at": now})
        except Exception:
            logger.exception("Watermark update failed entity=%s", entity.id)
            return False
        entity.date_checked_at = now
        return True

    async def record_condition_if_needed(
        self,
        entity: Task | Project,
        check_type: CheckType,
        acting_user_id: str,
        *,
        now: datetime | None = None,
        other_pending: bool = False,
    ) -> RecordResult:
        """
        Record one condition on one entity.

        The watermark is advanced after a successful creation unless
        other_pending says another condition on the same entity is still
        unresolved and must be surfaced later.
        """
        recipient = resolve_recipient(entity, acting_user_id)
        draft = build_condition_draft(entity, check_type, recipient)

        try:
            notification_id = await self.create_notification(draft)
        except Exception:
            logger.exception(
                "Failed to record condition entity=%s check_type=%s", entity.id, check_type.value
            )
            return RecordResult(RecordStatus.FAILED, check_type, recipient)

        if notification_id is None:
            return RecordResult(RecordStatus.SKIPPED, check_type, recipient)

        logger.info(
            "Date-check notification created id=%s entity=%s check_type=%s user=%s",
            notification_id,
            entity.id,
            check_type.value,
            recipient,
        )
        if not other_pending:
            await self.advance_watermark(entity, now)
        return RecordResult(RecordStatus.CREATED, check_type, recipient, notification_id)

    async def record_entity_conditions(
        self,
        entity: Task | Project,
        check_types: Iterable[CheckType],
        acting_user_id: str,
        *,
        now: datetime | None = None,
    ) -> list[RecordResult]:
        """
        Record every condition found on one entity during a scan.

        The watermark is written once, after the last condition, and only when
        none of them failed; a failed record keeps the entity eligible for the
        next scan.
        """
        results = [
            await self.record_condition_if_needed(
                entity, check_type, acting_user_id, now=now, other_pending=True
            )
            for check_type in check_types
        ]
        if results and all(r.status != RecordStatus.FAILED for r in results):
            await self.advance_watermark(entity, now)
        return results
