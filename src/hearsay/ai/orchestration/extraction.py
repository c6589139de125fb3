"""Intent extraction: conversation state in, proposed actions out.

The adapter is the only place that talks to the language model. Its
contract is deliberately small: given a :class:`ConversationState`, return
the actions whose justifying phrase is not yet represented in the ledger,
or raise one of the :mod:`hearsay.ai.errors` extraction failures.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

import httpx
from openai import APIConnectionError, APIError, APITimeoutError

from ..client import AIClient
from ..errors import ExtractionTimeout, ExtractionUnavailable, MalformedExtractionResponse
from ..memory.buffers import ConversationState
from ..prompts import RESPONSE_KEY, extraction_system_prompt, extraction_user_prompt
from .types import ProposedAction

LOGGER = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

CatalogProvider = Callable[[], Sequence[Mapping[str, Any]]]


@runtime_checkable
class IntentExtractionAdapter(Protocol):
    async def extract(self, state: ConversationState) -> list[ProposedAction]:
        """Return new actions for ``state`` or raise an ``ExtractionError``."""
        ...


def parse_extraction_response(raw: str) -> list[ProposedAction]:
    """Parse ``{"new_tool_calls": [{tool, parameters, sourceText}]}``.

    Raises:
        MalformedExtractionResponse: when the body is not JSON or does not match the shape.
    """

    text = (raw or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    if not text:
        raise MalformedExtractionResponse("Empty extraction response", raw=raw)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedExtractionResponse(f"Extraction response is not JSON: {exc}", raw=raw, cause=exc) from exc

    if not isinstance(payload, Mapping):
        raise MalformedExtractionResponse("Extraction response must be a JSON object", raw=raw)
    calls = payload.get(RESPONSE_KEY)
    if calls is None:
        raise MalformedExtractionResponse(f"Extraction response is missing '{RESPONSE_KEY}'", raw=raw)
    if not isinstance(calls, list):
        raise MalformedExtractionResponse(f"'{RESPONSE_KEY}' must be a list", raw=raw)

    actions: list[ProposedAction] = []
    for index, call in enumerate(calls):
        if not isinstance(call, Mapping):
            raise MalformedExtractionResponse(f"Tool call #{index} is not an object", raw=raw)
        tool = call.get("tool") or call.get("name")
        if not isinstance(tool, str) or not tool.strip():
            raise MalformedExtractionResponse(f"Tool call #{index} has no tool name", raw=raw)
        parameters = call.get("parameters", call.get("arguments"))
        if parameters is None:
            parameters = {}
        if isinstance(parameters, str):
            try:
                parameters = json.loads(parameters) if parameters.strip() else {}
            except json.JSONDecodeError as exc:
                raise MalformedExtractionResponse(
                    f"Tool call #{index} has unparseable parameters", raw=raw, cause=exc
                ) from exc
        if not isinstance(parameters, Mapping):
            raise MalformedExtractionResponse(f"Tool call #{index} parameters must be an object", raw=raw)
        source_text = call.get("sourceText", call.get("source_text", ""))
        if source_text is None:
            source_text = ""
        if not isinstance(source_text, str):
            raise MalformedExtractionResponse(f"Tool call #{index} sourceText must be a string", raw=raw)
        actions.append(ProposedAction(tool=tool.strip(), parameters=dict(parameters), source_text=source_text))
    return actions


class LLMIntentExtractor:
    """Intent extraction through an OpenAI-compatible chat completion endpoint."""

    def __init__(
        self,
        client: AIClient,
        catalog: CatalogProvider,
        *,
        temperature: float | None = 0.1,
        max_tokens: int | None = 1024,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._temperature = temperature
        self._max_tokens = max_tokens

    def build_messages(self, state: ConversationState) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": extraction_system_prompt(list(self._catalog()))},
            {"role": "user", "content": extraction_user_prompt(state.to_payload())},
        ]

    async def extract(self, state: ConversationState) -> list[ProposedAction]:
        messages = self.build_messages(state)
        try:
            raw = await self._client.complete_json(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except (asyncio.TimeoutError, APITimeoutError, httpx.TimeoutException) as exc:
            raise ExtractionTimeout("Intent extraction timed out", cause=exc) from exc
        except (APIConnectionError, APIError, httpx.HTTPError) as exc:
            raise ExtractionUnavailable(f"Intent extraction service unavailable: {exc}", cause=exc) from exc

        actions = parse_extraction_response(raw)
        LOGGER.debug("Extraction proposed %d action(s)", len(actions))
        return actions

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "CatalogProvider",
    "IntentExtractionAdapter",
    "LLMIntentExtractor",
    "parse_extraction_response",
]
