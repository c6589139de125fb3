"""Tool executor: runs one accepted action and reports the outcome.

The executor never raises for tool failures and never re-derives
de-duplication; that bookkeeping belongs to the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from ...tools.errors import ErrorCode, ToolError, ToolTimeoutError
from ..types import ProposedAction
from .registry import ToolRegistry
from .types import ExecutionResult

__all__ = ["ToolExecutor", "ExecutorConfig"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for the tool executor.

    Attributes:
        default_timeout: Seconds a tool may run before the call fails.
        log_arguments: Whether to log tool arguments at debug level.
        log_results: Whether to log tool results at debug level.
    """

    default_timeout: float | None = 15.0
    log_arguments: bool = False
    log_results: bool = False


class ToolExecutor:
    """Dispatches :class:`ProposedAction` values to tools from a registry.

    Example:
        executor = ToolExecutor(registry)
        result = await executor.execute(ProposedAction(tool="open_window", parameters={...}))
        if not result.success:
            ...
    """

    def __init__(self, registry: ToolRegistry, config: ExecutorConfig | None = None) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    async def execute(self, action: ProposedAction, *, timeout: float | None = None) -> ExecutionResult:
        name = action.tool
        if self._config.log_arguments:
            LOGGER.debug("Executing tool %s with arguments: %s", name, dict(action.parameters))
        else:
            LOGGER.debug("Executing tool %s", name)

        tool = self._registry.get(name)
        if tool is None:
            message = f"Tool '{name}' not found or disabled"
            LOGGER.warning(message)
            return ExecutionResult(success=False, error=message, error_code=ErrorCode.UNKNOWN_TOOL)

        effective_timeout = timeout if timeout is not None else self._config.default_timeout
        start_time = time.perf_counter()
        try:
            if effective_timeout is not None and effective_timeout > 0:
                output = await asyncio.wait_for(tool.execute(action.parameters), timeout=effective_timeout)
            else:
                output = await tool.execute(action.parameters)
        except asyncio.TimeoutError:
            duration_ms = _elapsed_ms(start_time)
            timeout_error = ToolTimeoutError(
                message=f"Tool '{name}' timed out after {effective_timeout}s",
                timeout_seconds=effective_timeout,
            )
            LOGGER.warning("Tool %s timed out after %.1fms (timeout=%.1fs)", name, duration_ms, effective_timeout)
            return ExecutionResult(
                success=False,
                error=timeout_error.message,
                error_code=timeout_error.error_code,
                duration_ms=duration_ms,
            )
        except ToolError as exc:
            duration_ms = _elapsed_ms(start_time)
            LOGGER.info("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
            return ExecutionResult(
                success=False,
                error=exc.message,
                error_code=exc.error_code,
                duration_ms=duration_ms,
            )
        except Exception as exc:
            duration_ms = _elapsed_ms(start_time)
            LOGGER.exception("Tool %s raised unexpectedly after %.1fms", name, duration_ms)
            return ExecutionResult(
                success=False,
                error=str(exc) or type(exc).__name__,
                error_code=ErrorCode.INTERNAL_ERROR,
                duration_ms=duration_ms,
            )

        duration_ms = _elapsed_ms(start_time)
        if self._config.log_results:
            LOGGER.debug("Tool %s completed in %.1fms with result: %s", name, duration_ms, output)
        else:
            LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return ExecutionResult(success=True, output=_plain(output), duration_ms=duration_ms)


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


def _plain(output: Any) -> Any:
    if hasattr(output, "to_dict"):
        return output.to_dict()
    return output
