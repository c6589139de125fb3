"""Base class for the built-in tools.

Built-in tools are dataclasses holding a :class:`ToolContext` (event bus and
UI context mirror). Subclasses declare ``name``, ``description`` and a JSON
schema in ``parameters`` and implement :meth:`BaseTool.run`.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from ..orchestration.tools.types import ToolCategory, ToolContext, ToolSpec
from .errors import InvalidParameterError, MissingParameterError

LOGGER = logging.getLogger(__name__)


def new_window_id() -> str:
    return f"window_{uuid.uuid4().hex[:12]}"


@dataclass
class BaseTool(ABC):
    """Abstract base class for built-in tools.

    Example:
        @dataclass
        class PingTool(BaseTool):
            name: ClassVar[str] = "ping"
            description: ClassVar[str] = "Reply with pong"

            async def run(self, params):
                return {"reply": "pong"}
    """

    context: ToolContext

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    parameters: ClassVar[Mapping[str, Any]] = {"type": "object", "properties": {}, "required": []}
    category: ClassVar[str] = ToolCategory.UTILITY
    aliases: ClassVar[tuple[str, ...]] = ()

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            category=self.category,
            aliases=self.aliases,
        )

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        params = dict(arguments or {})
        self.validate(params)
        return await self.run(params)

    def validate(self, params: dict[str, Any]) -> None:
        """Hook for parameter checks; raise a ``ToolError`` subclass to reject."""

    @abstractmethod
    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        """Perform the side effect and return a JSON-compatible summary."""


def require_str(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingParameterError(parameter=key)
    if not isinstance(value, (str, int, float)):
        raise InvalidParameterError(message=f"'{key}' must be a string", parameter=key)
    return str(value).strip()


def optional_str(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    raise InvalidParameterError(message=f"'{key}' must be a string", parameter=key)


def optional_int(params: Mapping[str, Any], key: str, default: int) -> int:
    value = params.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(message=f"'{key}' must be an integer", parameter=key) from exc
