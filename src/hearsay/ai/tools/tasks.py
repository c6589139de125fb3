"""Task list and reminder tools."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, ClassVar, Mapping

from ...events import EventBus, OpenWindowCommand
from ..orchestration.tools.types import ToolCategory
from .base import BaseTool, new_window_id, optional_str, require_str
from .errors import ErrorCode, ToolError

LOGGER = logging.getLogger(__name__)

_RELATIVE = re.compile(r"\bin\s+(\d+)\s*(seconds?|secs?|minutes?|mins?|hours?|hrs?)\b", re.IGNORECASE)
_CLOCK = re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", re.IGNORECASE)


def parse_reminder_delay(text: str, *, now: datetime | None = None) -> float | None:
    """Seconds until the moment described by ``text``, or ``None`` if it cannot be parsed.

    Understands "in 10 minutes", "in 2 hours", "at 3:30pm", "at 17:00" and
    ISO timestamps. Clock times already past today roll over to tomorrow.
    """

    current = now or datetime.now()
    match = _RELATIVE.search(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        if unit.startswith("s"):
            return float(amount)
        if unit.startswith("m"):
            return amount * 60.0
        return amount * 3600.0

    match = _CLOCK.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        meridiem = (match.group(3) or "").lower()
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        if hour > 23 or minute > 59:
            return None
        target = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if target <= current:
            target += timedelta(days=1)
        return (target - current).total_seconds()

    try:
        target = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    if target.tzinfo is not None:
        current = current.astimezone(target.tzinfo) if current.tzinfo else datetime.now(target.tzinfo)
    return max(0.0, (target - current).total_seconds())


@dataclass(slots=True)
class TaskItem:
    task_id: str
    title: str
    due: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "title": self.title,
            "due": self.due,
            "createdAt": self.created_at.isoformat(),
        }


class TaskStore:
    """In-memory task list for the session."""

    def __init__(self) -> None:
        self._tasks: list[TaskItem] = []

    def add(self, title: str, due: str | None = None) -> TaskItem:
        item = TaskItem(task_id=f"task_{uuid.uuid4().hex[:10]}", title=title, due=due)
        self._tasks.append(item)
        return item

    def list(self) -> list[TaskItem]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)


class ReminderScheduler:
    """Schedules reminder windows on the running event loop."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._handles: dict[str, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> int:
        return len(self._handles)

    def schedule(self, message: str, delay: float) -> str:
        reminder_id = f"reminder_{uuid.uuid4().hex[:10]}"
        loop = asyncio.get_running_loop()
        self._handles[reminder_id] = loop.call_later(max(0.0, delay), self._fire, reminder_id, message)
        return reminder_id

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _fire(self, reminder_id: str, message: str) -> None:
        self._handles.pop(reminder_id, None)
        LOGGER.info("Reminder %s fired", reminder_id)
        self._bus.publish(
            OpenWindowCommand(
                window_id=new_window_id(),
                window_type="notification",
                title="Reminder",
                content=message,
                position={"x": 320, "y": 260},
                size={"width": 360, "height": 200},
                metadata={"reminderId": reminder_id},
            )
        )


def _render_tasks(tasks: list[TaskItem]) -> str:
    if not tasks:
        return "No tasks yet."
    lines = []
    for item in tasks:
        suffix = f" (due {item.due})" if item.due else ""
        lines.append(f"- {item.title}{suffix}")
    return "\n".join(lines)


@dataclass
class CreateTaskTool(BaseTool):
    name: ClassVar[str] = "create_task"
    description: ClassVar[str] = 'Adds a task to the task list, e.g. "add a task to buy milk".'
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "The task text"},
            "due": {"type": "string", "description": "Optional due date or time in natural language"},
        },
        "required": ["title"],
    }
    category: ClassVar[str] = ToolCategory.TASK
    aliases: ClassVar[tuple[str, ...]] = ("add_task",)

    store: TaskStore = field(default_factory=TaskStore)

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        item = self.store.add(require_str(params, "title"), optional_str(params, "due"))
        suffix = f" (due {item.due})" if item.due else ""
        self.context.bus.publish(
            OpenWindowCommand(
                window_id=new_window_id(),
                window_type="tasks",
                title="Tasks",
                content=f"Added: {item.title}{suffix}\n\n{_render_tasks(self.store.list())}",
                position={"x": 260, "y": 220},
                size={"width": 480, "height": 360},
                metadata={"tasks": [task.to_dict() for task in self.store.list()]},
            )
        )
        return {"id": item.task_id, "title": item.title, "due": item.due}


@dataclass
class ViewTasksTool(BaseTool):
    name: ClassVar[str] = "view_tasks"
    description: ClassVar[str] = "Opens a window listing the current tasks."
    category: ClassVar[str] = ToolCategory.TASK
    aliases: ClassVar[tuple[str, ...]] = ("list_tasks", "show_tasks")

    store: TaskStore = field(default_factory=TaskStore)

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        tasks = self.store.list()
        command = OpenWindowCommand(
            window_id=new_window_id(),
            window_type="tasks",
            title="Tasks",
            content=_render_tasks(tasks),
            position={"x": 280, "y": 240},
            size={"width": 520, "height": 380},
            metadata={"tasks": [task.to_dict() for task in tasks]},
        )
        self.context.bus.publish(command)
        return {"windowId": command.window_id, "count": len(tasks)}


@dataclass
class SetReminderTool(BaseTool):
    """Schedule a notification window. Parsing failures are reported, never guessed."""

    name: ClassVar[str] = "set_reminder"
    description: ClassVar[str] = (
        'Schedules a one-time notification at a future time ("in 10 minutes", "at 3:30pm").'
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "message": {"type": "string", "description": "The reminder text"},
            "time": {"type": "string", "description": "When, in natural language"},
        },
        "required": ["message", "time"],
    }
    category: ClassVar[str] = ToolCategory.TASK
    aliases: ClassVar[tuple[str, ...]] = ("remind_me",)

    scheduler: ReminderScheduler | None = None
    clock: Callable[[], datetime] = datetime.now

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        message = require_str(params, "message")
        when = require_str(params, "time")
        delay = parse_reminder_delay(when, now=self.clock())
        if delay is None:
            raise ToolError(
                error_code=ErrorCode.INVALID_TIME,
                message=f"Could not parse reminder time '{when}'",
                suggestion='Use a phrase like "in 10 minutes" or "at 3:30pm"',
            )
        scheduler = self.scheduler or ReminderScheduler(self.context.bus)
        self.scheduler = scheduler
        reminder_id = scheduler.schedule(message, delay)
        LOGGER.info("Reminder %s scheduled in %.0fs", reminder_id, delay)
        return {"reminderId": reminder_id, "scheduledInMs": int(delay * 1000)}


__all__ = [
    "CreateTaskTool",
    "ReminderScheduler",
    "SetReminderTool",
    "TaskItem",
    "TaskStore",
    "ViewTasksTool",
    "parse_reminder_delay",
]
