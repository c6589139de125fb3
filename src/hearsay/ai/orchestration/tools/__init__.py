"""Tool registry, executor, and related types.

Example:
    from hearsay.ai.orchestration.tools import ToolExecutor, ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="ping", description="Reply with pong"),
        handler=lambda args: {"reply": "pong"},
    )
    executor = ToolExecutor(registry)
    result = await executor.execute(ProposedAction(tool="ping", source_text="ping"))
"""

from .types import (
    AsyncToolHandler,
    ExecutionResult,
    SimpleTool,
    Tool,
    ToolCategory,
    ToolContext,
    ToolHandler,
    ToolSpec,
)

from .registry import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistration,
    ToolRegistry,
)

from .executor import ExecutorConfig, ToolExecutor

__all__ = [
    # types.py
    "AsyncToolHandler",
    "ExecutionResult",
    "SimpleTool",
    "Tool",
    "ToolCategory",
    "ToolContext",
    "ToolHandler",
    "ToolSpec",
    # registry.py
    "DuplicateToolError",
    "ToolNotFoundError",
    "ToolRegistration",
    "ToolRegistry",
    # executor.py
    "ExecutorConfig",
    "ToolExecutor",
]
