"""Wiring for the built-in tool set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..orchestration.tools.registry import ToolRegistry
from ..orchestration.tools.types import ToolContext
from .search import OpenSearchResultTool, SearchClient, SearchHistory, SearchTool
from .tasks import CreateTaskTool, ReminderScheduler, SetReminderTool, TaskStore, ViewTasksTool
from .window_tools import (
    CloseWindowTool,
    EditWindowTool,
    OpenWebviewTool,
    OpenWindowTool,
    OrganizeWindowsTool,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class ToolResources:
    """Session state shared between tools (task list, last search, pending reminders)."""

    reminders: ReminderScheduler
    tasks: TaskStore = field(default_factory=TaskStore)
    history: SearchHistory = field(default_factory=SearchHistory)
    search_client: SearchClient | None = None

    async def aclose(self) -> None:
        self.reminders.cancel_all()
        if self.search_client is not None:
            await self.search_client.aclose()


def build_default_registry(
    context: ToolContext,
    *,
    search_client: SearchClient | None = None,
    default_result_count: int = 5,
) -> tuple[ToolRegistry, ToolResources]:
    """Register every built-in tool against ``context`` and return the shared resources."""

    resources = ToolResources(
        reminders=ReminderScheduler(context.bus),
        search_client=search_client,
    )
    registry = ToolRegistry()
    registry.register(OpenWindowTool(context))
    registry.register(CloseWindowTool(context))
    registry.register(EditWindowTool(context))
    registry.register(OrganizeWindowsTool(context))
    registry.register(OpenWebviewTool(context))
    registry.register(
        SearchTool(
            context,
            client=search_client,
            history=resources.history,
            default_result_count=default_result_count,
        ),
        enabled=search_client is not None,
    )
    registry.register(OpenSearchResultTool(context, history=resources.history))
    registry.register(CreateTaskTool(context, store=resources.tasks))
    registry.register(ViewTasksTool(context, store=resources.tasks))
    registry.register(SetReminderTool(context, scheduler=resources.reminders))
    LOGGER.debug("Registered %d built-in tool(s)", len(registry))
    return registry, resources


__all__ = ["ToolResources", "build_default_registry"]
