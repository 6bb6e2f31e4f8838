# src/duecheck/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..checks.confirmation import WorkflowResult
from ..core.state import AppState
from ..tracker.tracker_models import TaskFilter

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /scan, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_dt(state: AppState, dt) -> str:
    if dt is None:
        return "-"
    return dt.astimezone(state.settings.tz).strftime("%Y-%m-%d %H:%M")


def _fmt_result(result: WorkflowResult) -> str:
    return f"[{result.outcome.value}] {result.message}".rstrip()


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    wf = state.workflow
    item = wf.current
    current = (
        f"{item.entity_kind.value} {item.entity_id} ({item.check_type.value})" if item else "none"
    )
    return (
        "Status:\n"
        f"  User: {s.user_id}\n"
        f"  Timezone: {s.timezone}\n"
        f"  Date scan: {'running' if state.date_scheduler.ticker.running else 'stopped'}"
        f" every {state.date_scheduler.ticker.interval_seconds:g}s\n"
        f"  Reminders: {'running' if state.reminder_scheduler.ticker.running else 'stopped'}"
        f" every {state.reminder_scheduler.ticker.interval_seconds:g}s\n"
        f"  Confirmation: {wf.state.value} (item: {current})"
    )


async def cmd_scan(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /scan            -> run one date scan now
    /scan reminders  -> run one reminder scan now
    """
    if args and args[0].lower() in ("reminders", "reminder", "r"):
        rep = await state.reminder_scheduler.scan_once()
        if rep.skipped_scan:
            return "Reminder scan already running."
        return f"Reminder scan: sent={rep.sent} skipped={rep.skipped} failed={rep.failed}"

    if emit:
        emit("[SCAN] Checking task and project dates...")
    tasks_rep, projects_rep = await state.date_scheduler.scan_once()
    if tasks_rep.skipped_scan and projects_rep.skipped_scan:
        return "Scan skipped: a confirmation is open or a scan is already running."
    return (
        f"Tasks: scanned={tasks_rep.scanned} notified={tasks_rep.notified} "
        f"failed={tasks_rep.failed}\n"
        f"Projects: scanned={projects_rep.scanned} notified={projects_rep.notified} "
        f"started={projects_rep.auto_started} failed={projects_rep.failed}"
    )


async def cmd_notifications(state: AppState, args: list[str]) -> str:
    limit = 10
    if args:
        try:
            limit = max(1, int(args[0]))
        except ValueError:
            return "Usage: /notifications [limit]"

    items = await state.notifications.list_for_user(state.user_id, limit=limit)
    if not items:
        return "No notifications."
    lines = ["Notifications (newest first):"]
    for i, n in enumerate(items, start=1):
        check = f" [{n.check_type.value}]" if n.check_type else ""
        lines.append(f"{i}. {n.id} {_fmt_dt(state, n.created_at)} {n.title}{check}\n   {n.message}")
    return "\n".join(lines)


async def cmd_open(state: AppState, args: list[str]) -> str:
    """/open <notification id | list index>"""
    if not args:
        return "Usage: /open <notification id | number from /notifications>"

    ref = args[0]
    notification = None
    if ref.isdigit():
        items = await state.notifications.list_for_user(state.user_id, limit=int(ref))
        if len(items) >= int(ref) >= 1:
            notification = items[int(ref) - 1]
    else:
        notification = await state.notifications.get_notification(ref)

    if notification is None:
        return f"Notification not found: {ref}"

    return _fmt_result(await state.workflow.open_from_notification(notification))


async def cmd_resolve(state: AppState, args: list[str]) -> str:
    item = state.workflow.current
    if not args:
        if item is None:
            return "Nothing to resolve. Use /open first."
        return "Usage: /resolve <action>. Actions: " + ", ".join(a.value for a in item.actions)

    try:
        result = await state.workflow.resolve(args[0].lower())
    except RuntimeError:
        return "Nothing to resolve. Use /open first."
    except ValueError as e:
        return f"Invalid action: {e}"
    return _fmt_result(result)


async def cmd_close(state: AppState, args: list[str]) -> str:
    return _fmt_result(await state.workflow.close())


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    tasks = await state.tracker.list_tasks(TaskFilter(involving_user_id=state.user_id))
    if not tasks:
        return "No tasks."
    lines = ["Tasks:"]
    for t in tasks:
        lines.append(
            f"  {t.id} [{t.status.value}] {t.title} "
            f"({_fmt_dt(state, t.start_date)} -> {_fmt_dt(state, t.end_date)})"
        )
    return "\n".join(lines)


async def cmd_projects(state: AppState, args: list[str]) -> str:
    s = state.settings
    projects = await state.tracker.list_projects_for_user(
        state.user_id, team_id=s.team_id, team_ids=list(s.team_ids or []) or None
    )
    if not projects:
        return "No projects."
    lines = ["Projects:"]
    for p in projects:
        lines.append(
            f"  {p.id} [{p.status.value}] {p.name} {p.completion_rate}% "
            f"({_fmt_dt(state, p.start_date)} -> {_fmt_dt(state, p.end_date)})"
        )
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show schedulers and confirmation state.")
registry.register("scan", cmd_scan, help_text="Run a date scan now: /scan | /scan reminders.")
registry.register(
    "notifications", cmd_notifications, help_text="List notifications: /notifications [limit].",
    aliases=["n"],
)
registry.register("open", cmd_open, help_text="Open a notification's confirmation: /open <id|#>.")
registry.register("resolve", cmd_resolve, help_text="Apply an action: /resolve <action>.")
registry.register("close", cmd_close, help_text="Dismiss the open confirmation.")
registry.register("tasks", cmd_tasks, help_text="List your tasks.")
registry.register("projects", cmd_projects, help_text="List your projects.")
