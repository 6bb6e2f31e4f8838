# src/duecheck/checks/date_scheduler.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import pytz

from ..core.ports import EntityGateway
from ..notifications.notification_ledger import NotificationLedger, RecordResult, RecordStatus
from ..notifications.notification_models import NotificationDraft, NotificationType
from ..tracker.tracker_models import EntityKind, Project, ProjectStatus, TaskFilter
from .date_conditions import checked_today, evaluate_project, evaluate_task, project_start_passed
from .periodic import PeriodicScanner

logger = logging.getLogger(__name__)


class SessionGuard(Protocol):
    @property
    def is_active(self) -> bool: ...


@dataclass(slots=True)
class ScanReport:
    entity_kind: EntityKind
    scanned: int = 0
    already_checked: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0
    auto_started: int = 0
    # True when the whole scan did not run (session active / previous scan in flight)
    skipped_scan: bool = False

    def add(self, results: list[RecordResult]) -> None:
        for r in results:
            if r.status == RecordStatus.CREATED:
                self.notified += 1
            elif r.status == RecordStatus.SKIPPED:
                self.skipped += 1
            else:
                self.failed += 1


class DateCheckScheduler:
    """
    Periodic date scan over the acting user's tasks and projects.

    For each candidate entity not yet checked today:
    - evaluate its conditions (date_conditions)
    - record one notification per condition (NotificationLedger)
    Projects additionally auto-start once their start date has passed.

    A scan never raises: per-entity errors are logged and the scan moves on.
    """

    def __init__(
        self,
        gateway: EntityGateway,
        ledger: NotificationLedger,
        *,
        user_id: str,
        team_id: str | None = None,
        team_ids: list[str] | None = None,
        session: SessionGuard | None = None,
        tz: Any = pytz.utc,
        clock: Callable[[], datetime] | None = None,
        interval_seconds: float = 60.0,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._user_id = user_id
        self._team_id = team_id
        self._team_ids = list(team_ids or [])
        self._session = session
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(self._tz))

        self._task_scan_running = False
        self._project_scan_running = False
        self._ticker = PeriodicScanner("date-check", self.scan_once, interval_seconds=interval_seconds)

    @property
    def ticker(self) -> PeriodicScanner:
        return self._ticker

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    def _session_active(self) -> bool:
        return self._session is not None and bool(self._session.is_active)

    async def scan_once(self, now: datetime | None = None) -> tuple[ScanReport, ScanReport]:
        now = now or self._clock()
        tasks_report = await self.scan_tasks(now)
        projects_report = await self.scan_projects(now)
        return tasks_report, projects_report

    async def scan_tasks(self, now: datetime | None = None) -> ScanReport:
        now = now or self._clock()
        report = ScanReport(EntityKind.TASK)

        if self._session_active():
            logger.debug("Task date scan skipped: confirmation session active")
            report.skipped_scan = True
            return report
        if self._task_scan_running:
            logger.debug("Task date scan skipped: previous scan still running")
            report.skipped_scan = True
            return report

        self._task_scan_running = True
        try:
            try:
                tasks = await self._gateway.list_tasks(TaskFilter(involving_user_id=self._user_id))
            except Exception:
                logger.exception("list_tasks failed user=%s", self._user_id)
                return report

            for task in tasks:
                report.scanned += 1
                try:
                    if checked_today(task.date_checked_at, now, self._tz):
                        report.already_checked += 1
                        continue

                    conditions = evaluate_task(task, now, self._tz)
                    if not conditions:
                        continue

                    results = await self._ledger.record_entity_conditions(
                        task, [c.check_type for c in conditions], self._user_id, now=now
                    )
                    report.add(results)
                except Exception:
                    logger.exception("Task date check failed task_id=%s", task.id)
                    report.failed += 1
        finally:
            self._task_scan_running = False

        self._log_report(report)
        return report

    async def scan_projects(self, now: datetime | None = None) -> ScanReport:
        now = now or self._clock()
        report = ScanReport(EntityKind.PROJECT)

        if self._session_active():
            logger.debug("Project date scan skipped: confirmation session active")
            report.skipped_scan = True
            return report
        if self._project_scan_running:
            logger.debug("Project date scan skipped: previous scan still running")
            report.skipped_scan = True
            return report

        self._project_scan_running = True
        try:
            try:
                projects = await self._gateway.list_projects_for_user(
                    self._user_id, team_id=self._team_id, team_ids=self._team_ids or None
                )
            except Exception:
                logger.exception("list_projects_for_user failed user=%s", self._user_id)
                return report

            for project in projects:
                report.scanned += 1
                try:
                    if not project.is_deleted and project_start_passed(project, now, self._tz):
                        await self._auto_start(project)
                        report.auto_started += 1

                    if checked_today(project.date_checked_at, now, self._tz):
                        report.already_checked += 1
                        continue

                    conditions = evaluate_project(project, now, self._tz)
                    if not conditions:
                        continue

                    results = await self._ledger.record_entity_conditions(
                        project, [c.check_type for c in conditions], self._user_id, now=now
                    )
                    report.add(results)
                except Exception:
                    logger.exception("Project date check failed project_id=%s", project.id)
                    report.failed += 1
        finally:
            self._project_scan_running = False

        self._log_report(report)
        return report

    async def _auto_start(self, project: Project) -> None:
        """NotStarted -> InProgress once the start date has passed; members are told."""
        await self._gateway.update_project(project.id, {"status": ProjectStatus.IN_PROGRESS})
        project.status = ProjectStatus.IN_PROGRESS
        logger.info("Project auto-started project_id=%s", project.id)

        for member_id in project.members:
            if not member_id or member_id == self._user_id:
                continue
            draft = NotificationDraft(
                user_id=member_id,
                type=NotificationType.PROJECT_UPDATED,
                title="Project started",
                message=f'Project "{project.name}" has reached its start date and is now in progress.',
                project_id=project.id,
                team_id=project.team_id,
            )
            try:
                await self._ledger.create_notification(draft)
            except Exception:
                logger.exception(
                    "Project start notification failed project_id=%s user=%s", project.id, member_id
                )

    @staticmethod
    def _log_report(report: ScanReport) -> None:
        if report.notified or report.failed:
            logger.info(
                "Date scan %s: scanned=%d notified=%d skipped=%d failed=%d",
                report.entity_kind.value,
                report.scanned,
                report.notified,
                report.skipped,
                report.failed,
            )
        else:
            logger.debug(
                "Date scan %s: scanned=%d nothing to notify",
                report.entity_kind.value,
                report.scanned,
            )
