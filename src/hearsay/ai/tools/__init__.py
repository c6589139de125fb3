"""Built-in tools: windows, web search, tasks, and reminders."""

from . import catalog, errors, search, tasks, window_tools
from .catalog import ToolResources, build_default_registry

__all__ = [
    "ToolResources",
    "build_default_registry",
    "catalog",
    "errors",
    "search",
    "tasks",
    "window_tools",
]
