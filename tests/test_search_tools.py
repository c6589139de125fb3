"""Tests for the web search client and tools."""

from __future__ import annotations

import json

import httpx
import pytest

from hearsay.ai.tools.errors import ErrorCode, SearchFailedError, ToolError, ToolTimeoutError
from hearsay.ai.tools.search import (
    OpenSearchResultTool,
    SearchClient,
    SearchHistory,
    SearchResult,
    SearchTool,
    decode_redirect,
    render_results,
)
from hearsay.events import DisplaySearchResults, OpenWindowCommand

from tests.helpers import EventRecorder

RESULTS = [
    {"title": "Cats", "url": "https://example.com/cats", "snippet": "All about cats"},
    {"title": "Kittens", "url": "https://duckduckgo.com/l/?uddg=https%3A%2F%2Fkittens.example%2F&rut=x"},
]


def _client(handler) -> SearchClient:
    transport = httpx.MockTransport(handler)
    return SearchClient("http://search.local/api/web-search", client=httpx.AsyncClient(transport=transport))


class TestSearchClient:
    @pytest.mark.asyncio
    async def test_posts_query_and_parses_results(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"results": RESULTS})

        results = await _client(handler).search("cats", result_count=2)
        assert seen == [{"query": "cats", "resultCount": 2}]
        assert [result.title for result in results] == ["Cats", "Kittens"]
        assert results[1].snippet == ""

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        client = _client(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(SearchFailedError) as excinfo:
            await client.search("cats")
        assert excinfo.value.status_code == 502
        assert excinfo.value.error_code == ErrorCode.SEARCH_FAILED

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SearchFailedError):
            await _client(handler).search("cats")

    @pytest.mark.asyncio
    async def test_read_timeout_is_a_timeout_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ToolTimeoutError) as excinfo:
            await _client(handler).search("cats")
        assert excinfo.value.error_code == ErrorCode.TIMEOUT
        assert excinfo.value.details == {"query": "cats"}

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(SearchFailedError):
            await client.search("cats")

    @pytest.mark.asyncio
    async def test_missing_results_key_means_no_results(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"items": []}))
        assert await client.search("cats") == []


class TestSearchTool:
    @pytest.mark.asyncio
    async def test_opens_results_window_and_remembers_results(self, tool_context) -> None:
        recorder = EventRecorder(tool_context.bus)
        history = SearchHistory()
        tool = SearchTool(
            tool_context,
            client=_client(lambda request: httpx.Response(200, json={"results": RESULTS})),
            history=history,
        )
        result = await tool.execute({"query": "cats"})

        window = recorder.of_type(OpenWindowCommand)[0]
        display = recorder.of_type(DisplaySearchResults)[0]
        assert window.window_type == "search-results"
        assert window.title == "Search: cats"
        assert display.window_id == window.window_id
        assert result == {
            "windowId": window.window_id,
            "searchQuery": "cats",
            "resultCount": 2,
            "displayMode": "links",
        }
        assert history.query == "cats"
        assert len(history.results) == 2

    @pytest.mark.asyncio
    async def test_single_result_uses_summary(self, tool_context) -> None:
        tool = SearchTool(tool_context, client=_client(lambda request: httpx.Response(200, json={"results": RESULTS[:1]})))
        assert (await tool.execute({"query": "cats"}))["displayMode"] == "summary"

    @pytest.mark.asyncio
    async def test_no_results(self, tool_context) -> None:
        tool = SearchTool(tool_context, client=_client(lambda request: httpx.Response(200, json={"results": []})))
        with pytest.raises(ToolError) as excinfo:
            await tool.execute({"query": "cats"})
        assert excinfo.value.error_code == ErrorCode.NO_RESULTS

    @pytest.mark.asyncio
    async def test_without_client(self, tool_context) -> None:
        with pytest.raises(SearchFailedError):
            await SearchTool(tool_context).execute({"query": "cats"})


class TestOpenSearchResult:
    @pytest.mark.asyncio
    async def test_opens_indexed_result_and_unwraps_redirects(self, tool_context) -> None:
        recorder = EventRecorder(tool_context.bus)
        history = SearchHistory()
        history.remember("cats", [SearchResult.from_payload(item) for item in RESULTS])
        result = await OpenSearchResultTool(tool_context, history=history).execute({"index": 2})
        assert result["url"] == "https://kittens.example/"
        assert result["index"] == 2
        assert recorder.of_type(OpenWindowCommand)[0].title == "Kittens"

    @pytest.mark.asyncio
    async def test_index_out_of_range(self, tool_context) -> None:
        history = SearchHistory()
        history.remember("cats", [SearchResult.from_payload(RESULTS[0])])
        with pytest.raises(ToolError) as excinfo:
            await OpenSearchResultTool(tool_context, history=history).execute({"index": 3})
        assert excinfo.value.error_code == ErrorCode.RESULT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_without_previous_search(self, tool_context) -> None:
        with pytest.raises(ToolError) as excinfo:
            await OpenSearchResultTool(tool_context).execute({"index": 1})
        assert excinfo.value.error_code == ErrorCode.RESULT_NOT_FOUND


def test_decode_redirect_passes_plain_urls_through() -> None:
    assert decode_redirect("https://example.com") == "https://example.com"


def test_render_results_links_mode() -> None:
    results = [SearchResult.from_payload(item) for item in RESULTS]
    text = render_results("cats", results, "links")
    assert text.startswith('**Search Results for "cats"**')
    assert "Found 2 results" in text
