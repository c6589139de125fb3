"""Window management tools: open, close, edit, organize, and web views.

Targets are resolved against the UI context mirror as it stands when the
tool runs, never against the snapshot the extraction step saw.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from ...events import ArrangeWindowsCommand, CloseWindowCommand, EditWindowCommand, OpenWindowCommand
from ..orchestration.tools.types import ToolCategory
from ..orchestration.ui_context import SELECTORS, WindowInfo
from .base import BaseTool, new_window_id, optional_str, require_str
from .errors import InvalidParameterError, MissingParameterError, WindowNotFoundError

LOGGER = logging.getLogger(__name__)

WINDOW_TYPES: tuple[str, ...] = (
    "general",
    "notification",
    "dialog",
    "settings",
    "sticky-note",
    "lesson",
    "quiz",
    "hint",
    "explainer",
)
DEFAULT_TITLE = "Untitled Window"
DEFAULT_POSITION = {"x": 0, "y": 0}
DEFAULT_SIZE = {"width": 300, "height": 200}
EDIT_MODES: tuple[str, ...] = ("set", "append", "clear")
LAYOUTS: tuple[str, ...] = ("grid", "cascade", "stack")


def _coerce_box(value: Any, keys: tuple[str, str], default: Mapping[str, int]) -> dict[str, int]:
    if not isinstance(value, Mapping):
        return dict(default)
    box: dict[str, int] = {}
    for key in keys:
        try:
            box[key] = int(value.get(key, default[key]))
        except (TypeError, ValueError):
            box[key] = default[key]
    return box


@dataclass
class OpenWindowTool(BaseTool):
    """Open a window. Accepts the nested ``context`` form and flat ``title``/``content`` keys."""

    name: ClassVar[str] = "open_window"
    description: ClassVar[str] = (
        "Opens a new window with the given type and context. Use for creating, opening, "
        "showing, or displaying a window. Emit one call per requested window."
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "windowType": {"type": "string", "description": f"One of: {', '.join(WINDOW_TYPES)}"},
            "context": {
                "type": "object",
                "description": "title, content, optional position {x,y}, size {width,height}, metadata",
                "properties": {
                    "title": {"type": "string"},
                    "content": {"type": "string"},
                    "position": {"type": "object"},
                    "size": {"type": "object"},
                    "metadata": {"type": "object"},
                },
            },
        },
        "required": ["windowType", "context"],
    }
    category: ClassVar[str] = ToolCategory.WINDOW
    aliases: ClassVar[tuple[str, ...]] = ("create_window", "show_window")

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        context = params.get("context")
        if not isinstance(context, Mapping):
            context = {}
        window_type = str(
            params.get("windowType") or context.get("type") or params.get("type") or "general"
        ).strip() or "general"
        title = str(context.get("title") or params.get("title") or DEFAULT_TITLE)
        content = context.get("content", params.get("content", ""))
        metadata = context.get("metadata")
        command = OpenWindowCommand(
            window_id=new_window_id(),
            window_type=window_type,
            title=title,
            content="" if content is None else str(content),
            position=_coerce_box(context.get("position") or params.get("position"), ("x", "y"), DEFAULT_POSITION),
            size=_coerce_box(context.get("size") or params.get("size"), ("width", "height"), DEFAULT_SIZE),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )
        self.context.bus.publish(command)
        LOGGER.info("Opened %s window %s (%s)", window_type, command.window_id, title)
        return {"windowId": command.window_id, "windowType": window_type, "title": title}


@dataclass
class CloseWindowTool(BaseTool):
    """Close a window by id, title, or selector. With no target the active window is closed."""

    name: ClassVar[str] = "close_window"
    description: ClassVar[str] = (
        "Closes an existing window. Use windowId when known, otherwise a selector "
        "(newest/latest/oldest/active/all) or the window title."
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "windowId": {"type": "string", "description": "Identifier of the window to close"},
            "selector": {"type": "string", "description": "newest/latest/oldest/active/all"},
            "title": {"type": "string", "description": "Title of the window to close"},
        },
        "required": [],
    }
    category: ClassVar[str] = ToolCategory.WINDOW
    aliases: ClassVar[tuple[str, ...]] = ("dismiss_window",)

    def validate(self, params: dict[str, Any]) -> None:
        selector = optional_str(params, "selector")
        if selector and selector.strip().lower() not in SELECTORS:
            raise InvalidParameterError(
                message=f"Unknown selector '{selector}'",
                parameter="selector",
                suggestion=f"Use one of: {', '.join(SELECTORS)}",
            )

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        snapshot = self.context.ui_context.current
        target = (
            optional_str(params, "windowId")
            or optional_str(params, "title")
            or optional_str(params, "selector")
            or "active"
        )
        windows = snapshot.resolve(target)
        if target.strip().lower() == "all":
            for window in windows:
                self.context.bus.publish(CloseWindowCommand(window_id=window.id))
            LOGGER.info("Closed all %d window(s)", len(windows))
            return {"closedAll": True, "count": len(windows)}
        if not windows:
            raise WindowNotFoundError(message=f"No open window matches '{target}'", target=target)
        window = windows[0]
        self.context.bus.publish(CloseWindowCommand(window_id=window.id))
        LOGGER.info("Closed window %s", window.id)
        return {"windowId": window.id, "closed": True}


@dataclass
class EditWindowTool(BaseTool):
    name: ClassVar[str] = "edit_window"
    description: ClassVar[str] = (
        "Edits an existing window by id, title, or selector, updating its title and/or content. "
        "mode is set (replace), append, or clear."
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "windowId": {"type": "string", "description": "Identifier of the window to edit"},
            "titleMatch": {"type": "string", "description": "Case-insensitive title of the window to edit"},
            "selector": {"type": "string", "description": "newest/oldest/active"},
            "newTitle": {"type": "string", "description": "New title"},
            "newContent": {"type": "string", "description": "New content"},
            "mode": {"type": "string", "description": "set, append, or clear (default set)"},
        },
        "required": [],
    }
    category: ClassVar[str] = ToolCategory.WINDOW
    aliases: ClassVar[tuple[str, ...]] = ("update_window",)

    def validate(self, params: dict[str, Any]) -> None:
        mode = (optional_str(params, "mode") or "set").strip().lower()
        if mode not in EDIT_MODES:
            raise InvalidParameterError(message=f"Unknown edit mode '{mode}'", parameter="mode")
        if mode != "clear" and self._new_title(params) is None and self._new_content(params) is None:
            raise MissingParameterError(
                message="edit_window needs newTitle or newContent",
                parameter="newContent",
            )

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        window = self._resolve_target(params)
        mode = (optional_str(params, "mode") or "set").strip().lower()
        command = EditWindowCommand(
            window_id=window.id,
            title=self._new_title(params),
            content="" if mode == "clear" else self._new_content(params),
            mode=mode,
        )
        self.context.bus.publish(command)
        LOGGER.info("Edited window %s (mode=%s)", window.id, mode)
        return {"windowId": window.id, "mode": mode}

    def _resolve_target(self, params: Mapping[str, Any]) -> WindowInfo:
        snapshot = self.context.ui_context.current
        target = (
            optional_str(params, "windowId")
            or optional_str(params, "titleMatch")
            or optional_str(params, "selector")
            or "active"
        )
        if target.strip().lower() == "all":
            raise InvalidParameterError(message="edit_window targets a single window", parameter="selector")
        windows = snapshot.resolve(target)
        if not windows:
            raise WindowNotFoundError(message=f"No open window matches '{target}'", target=target)
        return windows[0]

    @staticmethod
    def _new_title(params: Mapping[str, Any]) -> str | None:
        return optional_str(params, "newTitle") or optional_str(params, "title")

    @staticmethod
    def _new_content(params: Mapping[str, Any]) -> str | None:
        value = optional_str(params, "newContent")
        if value is None:
            value = optional_str(params, "content")
        return value


@dataclass
class OrganizeWindowsTool(BaseTool):
    name: ClassVar[str] = "organize_windows"
    description: ClassVar[str] = (
        "Organizes the layout of all open windows. Use when the user asks to organize, "
        "arrange, tidy up, or clean up the windows."
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "layout": {"type": "string", "description": f"One of: {', '.join(LAYOUTS)} (default grid)"},
        },
        "required": [],
    }
    category: ClassVar[str] = ToolCategory.WINDOW
    aliases: ClassVar[tuple[str, ...]] = ("arrange_windows",)

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        layout = (optional_str(params, "layout") or "grid").strip().lower()
        if layout not in LAYOUTS:
            layout = "grid"
        window_ids = tuple(window.id for window in self.context.ui_context.current.windows)
        self.context.bus.publish(ArrangeWindowsCommand(layout=layout, window_ids=window_ids))
        return {"layout": layout, "count": len(window_ids)}


@dataclass
class OpenWebviewTool(BaseTool):
    name: ClassVar[str] = "open_webview"
    description: ClassVar[str] = "Opens a window showing a web page for the given URL."
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "URL to load"},
            "title": {"type": "string", "description": "Optional window title"},
        },
        "required": ["url"],
    }
    category: ClassVar[str] = ToolCategory.WINDOW
    aliases: ClassVar[tuple[str, ...]] = ("open_url",)

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        url = normalize_url(require_str(params, "url"))
        title = optional_str(params, "title") or url
        return open_webview(self.context.bus, url, title)


def normalize_url(url: str) -> str:
    stripped = url.strip()
    if "://" not in stripped:
        stripped = f"https://{stripped}"
    return stripped


def open_webview(bus: Any, url: str, title: str) -> dict[str, Any]:
    command = OpenWindowCommand(
        window_id=new_window_id(),
        window_type="webview",
        title=title,
        position={"x": 160, "y": 160},
        size={"width": 900, "height": 600},
        metadata={"url": url},
    )
    bus.publish(command)
    LOGGER.info("Opened webview %s for %s", command.window_id, url)
    return {"windowId": command.window_id, "url": url}


__all__ = [
    "WINDOW_TYPES",
    "OpenWindowTool",
    "CloseWindowTool",
    "EditWindowTool",
    "OrganizeWindowsTool",
    "OpenWebviewTool",
    "normalize_url",
    "open_webview",
]
