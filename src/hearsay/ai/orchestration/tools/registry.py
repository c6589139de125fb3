"""Tool registry: registration, alias resolution, and the catalog sent to the model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


class DuplicateToolError(Exception):
    """Raised when a tool name or alias is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


@dataclass(slots=True)
class ToolRegistration:
    name: str
    tool: Tool
    spec: ToolSpec
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class ToolRegistry:
    """Registry for managing tool registrations.

    Names are matched case-insensitively and aliases declared on the
    :class:`ToolSpec` resolve to the canonical tool, so ``web_search`` and
    ``search`` reach the same implementation.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self._aliases: dict[str, str] = {}

    def register(
        self,
        tool: Tool,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        name = tool.name
        key = _normalize(name)
        if (key in self._tools or key in self._aliases) and not allow_override:
            raise DuplicateToolError(name)
        for alias in tool.spec.aliases:
            alias_key = _normalize(alias)
            if alias_key in self._tools or (self._aliases.get(alias_key, key) != key and not allow_override):
                raise DuplicateToolError(alias)

        registration = ToolRegistration(
            name=name,
            tool=tool,
            spec=tool.spec,
            enabled=enabled,
            metadata=dict(metadata) if metadata else {},
        )
        self._tools[key] = registration
        for alias in tool.spec.aliases:
            self._aliases[_normalize(alias)] = key
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a plain callable as a tool."""
        return self.register(
            SimpleTool(spec=spec, handler=handler),
            enabled=enabled,
            allow_override=allow_override,
            metadata=metadata,
        )

    def unregister(self, name: str) -> bool:
        key = self._resolve_key(name)
        registration = self._tools.pop(key, None) if key else None
        if registration is None:
            return False
        for alias in registration.spec.aliases:
            self._aliases.pop(_normalize(alias), None)
        LOGGER.debug("Unregistered tool: %s", registration.name)
        return True

    def get(self, name: str) -> Tool | None:
        """Return the enabled tool registered under ``name`` or one of its aliases."""
        registration = self.get_registration(name)
        if registration is None or not registration.enabled:
            return None
        return registration.tool

    def get_required(self, name: str) -> Tool:
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def get_registration(self, name: str) -> ToolRegistration | None:
        key = self._resolve_key(name)
        return self._tools.get(key) if key else None

    def canonical_name(self, name: str) -> str | None:
        """Registered name for ``name`` or one of its aliases; ``None`` if unknown or disabled."""
        registration = self.get_registration(name)
        if registration is None or not registration.enabled:
            return None
        return registration.name

    def has(self, name: str) -> bool:
        registration = self.get_registration(name)
        return registration is not None and registration.enabled

    def list_tools(self, *, include_disabled: bool = False) -> list[ToolSpec]:
        return [
            registration.spec
            for registration in self._tools.values()
            if registration.enabled or include_disabled
        ]

    def list_names(self, *, include_disabled: bool = False) -> list[str]:
        return [
            registration.name
            for registration in self._tools.values()
            if registration.enabled or include_disabled
        ]

    def catalog(self) -> list[dict[str, Any]]:
        """Enabled tools in the compact form embedded in the extraction prompt."""
        return [spec.to_catalog_entry() for spec in self.list_tools()]

    def enable(self, name: str) -> bool:
        registration = self.get_registration(name)
        if registration is None:
            return False
        registration.enabled = True
        return True

    def disable(self, name: str) -> bool:
        registration = self.get_registration(name)
        if registration is None:
            return False
        registration.enabled = False
        return True

    def clear(self) -> None:
        self._tools.clear()
        self._aliases.clear()

    def _resolve_key(self, name: str) -> str | None:
        key = _normalize(name)
        if key in self._tools:
            return key
        return self._aliases.get(key)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return self._resolve_key(name) is not None


def _normalize(name: str) -> str:
    return (name or "").strip().lower()
