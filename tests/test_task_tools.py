"""Tests for tasks and reminders."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from hearsay.ai.tools.errors import ErrorCode, MissingParameterError, ToolError
from hearsay.ai.tools.tasks import (
    CreateTaskTool,
    ReminderScheduler,
    SetReminderTool,
    TaskStore,
    ViewTasksTool,
    parse_reminder_delay,
)
from hearsay.events import OpenWindowCommand

from tests.helpers import EventRecorder

NOON = datetime(2024, 5, 1, 12, 0, 0)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("in 10 seconds", 10.0),
        ("in 5 minutes", 300.0),
        ("remind me in 2 hours", 7200.0),
        ("at 3:30pm", 3.5 * 3600),
        ("at 17:00", 5 * 3600.0),
        ("at 9am", 21 * 3600.0),
        ("at 12am", 12 * 3600.0),
        ("2024-05-01T12:01:00", 60.0),
    ],
)
def test_parse_reminder_delay(text: str, expected: float) -> None:
    assert parse_reminder_delay(text, now=NOON) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["someday", "at 25:00", "at 7:99"])
def test_parse_reminder_delay_rejects_nonsense(text: str) -> None:
    assert parse_reminder_delay(text, now=NOON) is None


@pytest.mark.asyncio
async def test_create_and_view_tasks_share_the_store(tool_context) -> None:
    recorder = EventRecorder(tool_context.bus)
    store = TaskStore()
    created = await CreateTaskTool(tool_context, store=store).execute({"title": "buy milk", "due": "tomorrow"})
    assert created["title"] == "buy milk"
    assert created["due"] == "tomorrow"

    viewed = await ViewTasksTool(tool_context, store=store).execute({})
    assert viewed["count"] == 1
    windows = recorder.of_type(OpenWindowCommand)
    assert [window.window_type for window in windows] == ["tasks", "tasks"]
    assert "- buy milk (due tomorrow)" in windows[1].content


@pytest.mark.asyncio
async def test_create_task_requires_title(tool_context) -> None:
    with pytest.raises(MissingParameterError):
        await CreateTaskTool(tool_context).execute({"title": "  "})


@pytest.mark.asyncio
async def test_reminder_fires_notification_window(tool_context) -> None:
    recorder = EventRecorder(tool_context.bus)
    scheduler = ReminderScheduler(tool_context.bus)
    tool = SetReminderTool(tool_context, scheduler=scheduler, clock=lambda: NOON)

    result = await tool.execute({"message": "stretch", "time": "in 0 seconds"})
    assert result["scheduledInMs"] == 0
    assert scheduler.pending == 1
    await asyncio.sleep(0.01)

    notices = recorder.of_type(OpenWindowCommand)
    assert [(notice.window_type, notice.title, notice.content) for notice in notices] == [
        ("notification", "Reminder", "stretch")
    ]
    assert notices[0].metadata == {"reminderId": result["reminderId"]}
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_cancel_all_drops_pending_reminders(tool_context) -> None:
    recorder = EventRecorder(tool_context.bus)
    scheduler = ReminderScheduler(tool_context.bus)
    scheduler.schedule("later", 0.01)
    scheduler.cancel_all()
    await asyncio.sleep(0.03)
    assert recorder.of_type(OpenWindowCommand) == []


@pytest.mark.asyncio
async def test_unparseable_reminder_time(tool_context) -> None:
    tool = SetReminderTool(tool_context, scheduler=ReminderScheduler(tool_context.bus))
    with pytest.raises(ToolError) as excinfo:
        await tool.execute({"message": "stretch", "time": "whenever"})
    assert excinfo.value.error_code == ErrorCode.INVALID_TIME
