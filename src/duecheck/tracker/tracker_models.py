# src/duecheck/tracker/tracker_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.NOT_STARTED
        try:
            return cls(raw)
        except ValueError:
            return cls.NOT_STARTED


class ProjectStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> ProjectStatus:
        if not raw:
            return cls.NOT_STARTED
        try:
            return cls(raw)
        except ValueError:
            return cls.NOT_STARTED


class EntityKind(StrEnum):
    TASK = "task"
    PROJECT = "project"


class ReminderType(StrEnum):
    BEFORE_START = "before_start"
    BEFORE_END = "before_end"


class ReminderUnit(StrEnum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


@dataclass(slots=True)
class Reminder:
    """
    One reminder record on a task.

    Either `scheduled_at` (absolute) or `type`+`amount`+`unit` (relative offset)
    is populated, never both. `sent` is terminal: once True the reminder is done.
    """

    id: str
    scheduled_at: datetime | None = None
    type: ReminderType | None = None
    amount: int | None = None
    unit: ReminderUnit | None = None
    sent: bool = False
    sent_at: datetime | None = None

    @property
    def is_absolute(self) -> bool:
        return self.scheduled_at is not None

    @property
    def is_relative(self) -> bool:
        return self.type is not None and self.amount is not None and self.unit is not None

    def validate(self) -> None:
        if self.is_absolute == self.is_relative:
            raise ValueError(
                f"reminder {self.id} must have either scheduled_at or type/amount/unit"
            )
        if self.is_relative and int(self.amount or 0) < 0:
            raise ValueError(f"reminder {self.id} has a negative offset")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scheduled_at": self.scheduled_at.timestamp() if self.scheduled_at else None,
            "type": self.type.value if self.type else None,
            "amount": self.amount,
            "unit": self.unit.value if self.unit else None,
            "sent": bool(self.sent),
            "sent_at": self.sent_at.timestamp() if self.sent_at else None,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, tz: Any) -> Reminder:
        def _dt(v: Any) -> datetime | None:
            return datetime.fromtimestamp(float(v), tz=tz) if v is not None else None

        rtype = raw.get("type")
        unit = raw.get("unit")
        amount = raw.get("amount")
        return cls(
            id=str(raw.get("id") or ""),
            scheduled_at=_dt(raw.get("scheduled_at")),
            type=ReminderType(rtype) if rtype else None,
            amount=int(amount) if amount is not None else None,
            unit=ReminderUnit(unit) if unit else None,
            sent=bool(raw.get("sent", False)),
            sent_at=_dt(raw.get("sent_at")),
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus
    start_date: datetime
    end_date: datetime
    creator_id: str

    assignee_id: str | None = None
    team_id: str | None = None
    project_id: str | None = None

    date_checked_at: datetime | None = None
    reminders: list[Reminder] = field(default_factory=list)
    completed_at: datetime | None = None
    is_deleted: bool = False


@dataclass(slots=True)
class Project:
    id: str
    name: str
    status: ProjectStatus
    start_date: datetime
    end_date: datetime
    owner_id: str

    completion_rate: int = 0
    assignee_id: str | None = None
    team_id: str | None = None
    members: list[str] = field(default_factory=list)

    date_checked_at: datetime | None = None
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class TaskFilter:
    """
    Query for EntityGateway.list_tasks.

    None means "don't filter on this field".
    `involving_user_id` selects the tasks a user is responsible for:
    assignee is the user, or a team task with no assignee created by the user.
    """

    involving_user_id: str | None = None
    project_id: str | None = None
    include_deleted: bool = False
    exclude_completed: bool = False
