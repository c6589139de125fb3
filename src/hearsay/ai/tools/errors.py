"""Standardized error types for tools.

Tools raise these; the executor converts them into failed
:class:`~hearsay.ai.tools.types.ExecutionResult` values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Constants for error codes used in tool results."""

    WINDOW_NOT_FOUND = "window_not_found"
    NO_WINDOWS = "no_windows"
    SEARCH_FAILED = "search_failed"
    NO_RESULTS = "no_results"
    RESULT_NOT_FOUND = "result_not_found"
    INVALID_TIME = "invalid_time"
    UNKNOWN_TOOL = "unknown_tool"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"


@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# Alias matching the failure category name used by the orchestrator
ExecutionFailed = ToolError


@dataclass
class InvalidParameterError(ToolError):
    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid parameter value")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")
    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter:
            result["parameter"] = self.parameter
        return result


@dataclass
class MissingParameterError(ToolError):
    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Required parameter is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")
    parameter: str | None = field(default=None)

    def __post_init__(self) -> None:
        if self.parameter and self.message == "Required parameter is missing":
            self.message = f"Required parameter '{self.parameter}' is missing"
        super().__post_init__()


@dataclass
class WindowNotFoundError(ToolError):
    """No window in the current UI context matched the target."""

    error_code: str = field(default=ErrorCode.WINDOW_NOT_FOUND)
    message: str = field(default="Window not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Refer to an open window by id, title, or newest/oldest/active")
    target: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.target:
            result["target"] = self.target
        return result


@dataclass
class SearchFailedError(ToolError):
    error_code: str = field(default=ErrorCode.SEARCH_FAILED)
    message: str = field(default="Web search failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")
    status_code: int | None = field(default=None)


@dataclass
class ToolTimeoutError(ToolError):
    error_code: str = field(default=ErrorCode.TIMEOUT)
    message: str = field(default="Tool execution timed out")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")
    timeout_seconds: float | None = field(default=None)


__all__ = [
    "ErrorCode",
    "ToolError",
    "ExecutionFailed",
    "InvalidParameterError",
    "MissingParameterError",
    "WindowNotFoundError",
    "SearchFailedError",
    "ToolTimeoutError",
]
