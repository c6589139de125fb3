"""Tests for the intent extraction adapter and its response parser."""

from __future__ import annotations

import json
from typing import cast

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError, AsyncOpenAI

from hearsay.ai.client import AIClient, ClientSettings
from hearsay.ai.errors import ExtractionTimeout, ExtractionUnavailable, MalformedExtractionResponse
from hearsay.ai.memory.buffers import ActionRecord, SlidingWindowStore
from hearsay.ai.orchestration.extraction import LLMIntentExtractor, parse_extraction_response
from hearsay.ai.orchestration.types import ProposedAction
from hearsay.ai.orchestration.ui_context import UIContextMirror
from hearsay.ai.prompts import RESPONSE_KEY, extraction_system_prompt

from tests.helpers import make_openai_stub

CATALOG = [{"name": "open_window", "description": "Opens a window", "parameters": {"windowType": {"type": "string"}}}]


class TestParseExtractionResponse:
    def test_parses_tool_calls(self) -> None:
        raw = json.dumps(
            {
                "new_tool_calls": [
                    {"tool": "open_window", "parameters": {"content": "cheese"}, "sourceText": "saying cheese"},
                    {"name": "close_window", "arguments": "{\"selector\": \"newest\"}", "source_text": "close it"},
                ]
            }
        )
        assert parse_extraction_response(raw) == [
            ProposedAction("open_window", {"content": "cheese"}, "saying cheese"),
            ProposedAction("close_window", {"selector": "newest"}, "close it"),
        ]

    def test_empty_list_means_nothing_to_do(self) -> None:
        assert parse_extraction_response('{"new_tool_calls": []}') == []

    def test_strips_markdown_fence(self) -> None:
        raw = '```json\n{"new_tool_calls": [{"tool": "view_tasks", "sourceText": "show tasks"}]}\n```'
        assert parse_extraction_response(raw) == [ProposedAction("view_tasks", {}, "show tasks")]

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "not json at all",
            "[1, 2]",
            '{"tool_calls": []}',
            '{"new_tool_calls": {"tool": "x"}}',
            '{"new_tool_calls": ["open_window"]}',
            '{"new_tool_calls": [{"parameters": {}}]}',
            '{"new_tool_calls": [{"tool": "x", "parameters": [1]}]}',
            '{"new_tool_calls": [{"tool": "x", "parameters": "{broken"}]}',
            '{"new_tool_calls": [{"tool": "x", "sourceText": 5}]}',
        ],
    )
    def test_rejects_malformed_bodies(self, raw: str) -> None:
        with pytest.raises(MalformedExtractionResponse) as excinfo:
            parse_extraction_response(raw)
        assert excinfo.value.kind == "malformed"
        assert excinfo.value.raw == raw


def _state(sample_windows):
    store = SlidingWindowStore()
    store.merge_transcript("open a window saying cheese and close the newest window")
    store.record_action(ActionRecord(tool="open_window", parameters={"content": "cheese"}, source_text="saying cheese"))
    mirror = UIContextMirror()
    mirror.replace(sample_windows)
    return store.snapshot(mirror.current, generation=1)


def _extractor(openai_stub, **settings) -> LLMIntentExtractor:
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub", retry_min_seconds=0.0, **settings),
        client=cast(AsyncOpenAI, openai_stub),
    )
    return LLMIntentExtractor(client, lambda: CATALOG, temperature=0.0)


class TestLLMIntentExtractor:
    @pytest.mark.asyncio
    async def test_sends_state_and_catalog(self, sample_windows) -> None:
        body = json.dumps({RESPONSE_KEY: [{"tool": "close_window", "parameters": {"selector": "newest"}, "sourceText": "close the newest window"}]})
        stub = make_openai_stub(body)
        actions = await _extractor(stub).extract(_state(sample_windows))

        assert actions == [ProposedAction("close_window", {"selector": "newest"}, "close the newest window")]
        call = stub.chat.completions.calls[0]
        assert call["response_format"] == {"type": "json_object"}
        assert call["temperature"] == 0.0
        system, user = call["messages"]
        assert "**open_window**" in system["content"]
        payload = json.loads(user["content"])
        assert payload["fullTranscript"].startswith("open a window saying cheese")
        assert payload["actionHistory"][0]["sourceText"] == "saying cheese"
        assert [window["id"] for window in payload["uiContext"]["windows"]] == ["w-old", "w-mid", "w-new"]

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, sample_windows) -> None:
        request = httpx.Request("POST", "http://local/chat/completions")
        stub = make_openai_stub(APIConnectionError(request=request))
        with pytest.raises(ExtractionUnavailable):
            await _extractor(stub).extract(_state(sample_windows))

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, sample_windows) -> None:
        request = httpx.Request("POST", "http://local/chat/completions")
        stub = make_openai_stub(APIConnectionError(request=request), '{"new_tool_calls": []}')
        assert await _extractor(stub, max_retries=2).extract(_state(sample_windows)) == []
        assert len(stub.chat.completions.calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_is_reported_as_timeout(self, sample_windows) -> None:
        request = httpx.Request("POST", "http://local/chat/completions")
        stub = make_openai_stub(APITimeoutError(request=request))
        with pytest.raises(ExtractionTimeout):
            await _extractor(stub).extract(_state(sample_windows))

    @pytest.mark.asyncio
    async def test_malformed_body_propagates(self, sample_windows) -> None:
        with pytest.raises(MalformedExtractionResponse):
            await _extractor(make_openai_stub("sure, opening a window!")).extract(_state(sample_windows))


def test_system_prompt_lists_tools_and_contract() -> None:
    prompt = extraction_system_prompt(CATALOG)
    assert RESPONSE_KEY in prompt
    assert "verbatim" in prompt
    assert "corrected clause is appended again" in prompt
    assert "- **open_window**: Opens a window" in prompt
    assert "(none)" in extraction_system_prompt([])
