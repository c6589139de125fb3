"""Assembles a ready-to-run engine from :class:`Settings`."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from openai import AsyncOpenAI

from ...events import EventBus
from ...services.settings import Settings
from ...utils import logging as logging_utils
from ..client import AIClient, ClientSettings
from ..tools.catalog import ToolResources, build_default_registry
from ..tools.search import SearchClient
from .event_log import SessionEventLog, SessionEventLogger, _NullSessionEventLog
from .extraction import IntentExtractionAdapter, LLMIntentExtractor
from .orchestrator import CommandOrchestrator, OrchestratorConfig
from .tools.executor import ExecutorConfig, ToolExecutor
from .tools.registry import ToolRegistry
from .tools.types import ToolContext
from .ui_context import UIContextMirror

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EngineRuntime:
    """Everything a session owns; close it with :meth:`aclose`."""

    settings: Settings
    bus: EventBus
    orchestrator: CommandOrchestrator
    registry: ToolRegistry
    executor: ToolExecutor
    resources: ToolResources
    extractor: IntentExtractionAdapter
    event_log: SessionEventLog | _NullSessionEventLog
    session_id: str

    async def __aenter__(self) -> "EngineRuntime":
        self.orchestrator.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.resources.aclose()
        close = getattr(self.extractor, "aclose", None)
        if close is not None:
            await close()
        self.event_log.close()
        logging_utils.bind_session(None)


def build_runtime(
    settings: Settings,
    *,
    bus: EventBus | None = None,
    extractor: IntentExtractionAdapter | None = None,
    openai_client: AsyncOpenAI | None = None,
    http_client: httpx.AsyncClient | None = None,
    session_metadata: Mapping[str, Any] | None = None,
) -> EngineRuntime:
    """Wire client, extractor, tools, executor and orchestrator for one session.

    ``extractor`` replaces the language-model adapter entirely; ``openai_client``
    and ``http_client`` are injected into the default adapter and the search
    client respectively.
    """

    bus = bus or EventBus()
    ui_context = UIContextMirror()
    context = ToolContext(bus=bus, ui_context=ui_context)

    search_client: SearchClient | None = None
    if settings.search_endpoint:
        search_client = SearchClient(settings.search_endpoint, timeout=settings.tool_timeout, client=http_client)
    registry, resources = build_default_registry(
        context,
        search_client=search_client,
        default_result_count=settings.search_result_count,
    )
    executor = ToolExecutor(
        registry,
        ExecutorConfig(
            default_timeout=settings.tool_timeout,
            log_arguments=settings.debug_logging,
            log_results=settings.debug_logging,
        ),
    )

    if extractor is None:
        client = AIClient(ClientSettings.from_settings(settings), client=openai_client)
        extractor = LLMIntentExtractor(client, registry.catalog, temperature=settings.temperature)

    orchestrator = CommandOrchestrator(
        extractor,
        executor,
        bus=bus,
        ui_context=ui_context,
        config=OrchestratorConfig.from_settings(settings),
        resolve_tool=registry.canonical_name,
    )

    session_id = uuid.uuid4().hex
    logging_utils.bind_session(session_id)
    event_log = SessionEventLogger(enabled=settings.debug_event_logging).start_session(
        session_id=session_id,
        metadata={"model": settings.model, **dict(session_metadata or {})},
    )
    event_log.attach(bus)
    LOGGER.info("Engine ready (session=%s, tools=%s)", session_id[:8], ", ".join(registry.list_names()))

    return EngineRuntime(
        settings=settings,
        bus=bus,
        orchestrator=orchestrator,
        registry=registry,
        executor=executor,
        resources=resources,
        extractor=extractor,
        event_log=event_log,
        session_id=session_id,
    )


__all__ = ["EngineRuntime", "build_runtime"]
