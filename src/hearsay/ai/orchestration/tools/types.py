"""Tool system types.

Tools perform the side effects of accepted actions, usually by publishing
UI commands on the event bus. They raise :class:`~hearsay.ai.tools.errors.ToolError`
on failure; the executor turns every outcome into an :class:`ExecutionResult`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ....events import EventBus
    from ..ui_context import UIContextMirror

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
    "ToolCategory",
    "ToolContext",
    "ExecutionResult",
]


class ToolCategory:
    """Standard tool categories, used to group the catalog in the prompt."""

    WINDOW = "window"
    SEARCH = "search"
    TASK = "task"
    UTILITY = "utility"


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: What the tool does, phrased for the extraction model.
        parameters: JSON Schema for the tool's parameters.
        category: Tool category.
        aliases: Alternative names the extraction model may use.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    category: str = ToolCategory.UTILITY
    aliases: tuple[str, ...] = ()

    def to_catalog_entry(self) -> dict[str, Any]:
        """Compact form embedded in the extraction prompt."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters.get("properties", {})) if self.parameters else {},
        }


ToolHandler = Callable[[Mapping[str, Any]], Any]
AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]


@dataclass(slots=True)
class ToolContext:
    """Collaborators shared by the built-in tools.

    Attributes:
        bus: Event bus UI commands are published on.
        ui_context: Mirror of the windows the UI currently shows.
    """

    bus: "EventBus"
    ui_context: "UIContextMirror"


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations."""

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        """Run the tool. Raises ``ToolError`` on failure."""
        ...


@dataclass
class SimpleTool:
    """Tool wrapping a plain callable.

    Example:
        tool = SimpleTool(
            spec=ToolSpec(name="ping", description="Reply with pong"),
            handler=lambda args: {"reply": "pong"},
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = asyncio.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        if self._is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        return self.handler(arguments)


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of dispatching one action.

    Attributes:
        success: Whether the side effect completed.
        output: Tool return value on success.
        error: Human-readable failure description.
        error_code: Machine-readable failure code.
        duration_ms: Wall time spent in the tool.
    """

    success: bool
    output: Any = None
    error: str | None = None
    error_code: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "output": self.output}
        return {"success": False, "error": self.error, "error_code": self.error_code}
