"""Web search tools backed by an HTTP search endpoint."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Sequence
from urllib.parse import unquote

import httpx

from ...events import DisplaySearchResults, OpenWindowCommand
from ..orchestration.tools.types import ToolCategory
from .base import BaseTool, new_window_id, optional_int, optional_str, require_str
from .errors import ErrorCode, InvalidParameterError, SearchFailedError, ToolError, ToolTimeoutError
from .window_tools import normalize_url, open_webview

LOGGER = logging.getLogger(__name__)

DISPLAY_MODES: tuple[str, ...] = ("auto", "summary", "links", "full")
_DDG_REDIRECT = re.compile(r"uddg=([^&]+)")


@dataclass(slots=True, frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str = ""
    content: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SearchResult":
        return cls(
            title=str(payload.get("title") or payload.get("url") or ""),
            url=str(payload.get("url") or ""),
            snippet=str(payload.get("snippet") or ""),
            content=str(payload.get("content") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url, "snippet": self.snippet, "content": self.content}


class SearchClient:
    """POSTs ``{"query", "resultCount"}`` to the search endpoint and parses ``{"results": [...]}``."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def search(self, query: str, *, result_count: int = 5) -> list[SearchResult]:
        try:
            response = await self._client.post(
                self._endpoint,
                json={"query": query, "resultCount": result_count},
            )
        except httpx.TimeoutException as exc:
            raise ToolTimeoutError(message=f"Search request timed out: {exc}", details={"query": query}) from exc
        except httpx.HTTPError as exc:
            raise SearchFailedError(message=f"Search request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SearchFailedError(
                message=f"Search HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchFailedError(message="Search endpoint returned invalid JSON") from exc
        raw_results = payload.get("results") if isinstance(payload, Mapping) else None
        if not isinstance(raw_results, list):
            return []
        return [SearchResult.from_payload(item) for item in raw_results if isinstance(item, Mapping)]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class SearchHistory:
    """Results of the most recent search, for follow-ups like "open the second link"."""

    query: str | None = None
    results: list[SearchResult] = field(default_factory=list)

    def remember(self, query: str, results: Sequence[SearchResult]) -> None:
        self.query = query
        self.results = list(results)


def render_results(query: str, results: Sequence[SearchResult], display_mode: str) -> str:
    if display_mode == "summary":
        first = results[0]
        return f"**{first.title}**\n\n{first.content or first.snippet}\n\nLink: {first.url}"
    if display_mode == "full":
        first = results[0]
        return f"# {first.title}\n\n{first.content or first.snippet}\n\n---\nLink: {first.url}"
    lines = [f'**Search Results for "{query}"**', ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"{index}. **{result.title}**\n   {result.snippet}\n   Link: {result.url}\n")
    plural = "" if len(results) == 1 else "s"
    lines.append(f"Found {len(results)} result{plural}")
    return "\n".join(lines)


@dataclass
class SearchTool(BaseTool):
    """Run a web search and show the results in a new window."""

    name: ClassVar[str] = "search"
    description: ClassVar[str] = (
        'Performs a web search and displays results in a new window. Use for "search for X" '
        'or "find information about Y".'
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The search query"},
            "resultCount": {"type": "number", "description": "Number of results (default 5)"},
            "displayMode": {"type": "string", "description": "auto, summary, links, or full"},
        },
        "required": ["query"],
    }
    category: ClassVar[str] = ToolCategory.SEARCH
    aliases: ClassVar[tuple[str, ...]] = ("web_search",)

    client: SearchClient | None = None
    history: SearchHistory = field(default_factory=SearchHistory)
    default_result_count: int = 5

    def validate(self, params: dict[str, Any]) -> None:
        mode = (optional_str(params, "displayMode") or "auto").lower()
        if mode not in DISPLAY_MODES:
            raise InvalidParameterError(message=f"Unknown display mode '{mode}'", parameter="displayMode")

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        if self.client is None:
            raise SearchFailedError(message="No search endpoint configured")
        query = require_str(params, "query")
        result_count = max(1, min(20, optional_int(params, "resultCount", self.default_result_count)))
        results = await self.client.search(query, result_count=result_count)
        if not results:
            raise ToolError(error_code=ErrorCode.NO_RESULTS, message="No search results found")

        display_mode = (optional_str(params, "displayMode") or "auto").lower()
        if display_mode == "auto":
            display_mode = "summary" if len(results) == 1 else "links"
        self.history.remember(query, results)

        title = f"Search: {query}"
        serialized = [result.to_dict() for result in results]
        command = OpenWindowCommand(
            window_id=new_window_id(),
            window_type="search-results",
            title=title,
            content=render_results(query, results, display_mode),
            position={"x": 150, "y": 150},
            size={"width": 600, "height": 400},
            metadata={
                "searchQuery": query,
                "resultCount": len(results),
                "displayMode": display_mode,
                "results": serialized,
            },
        )
        self.context.bus.publish(command)
        self.context.bus.publish(
            DisplaySearchResults(
                window_id=command.window_id,
                query=query,
                results=tuple(serialized),
                display_mode=display_mode,
            )
        )
        LOGGER.info("Search for %r returned %d result(s)", query, len(results))
        return {
            "windowId": command.window_id,
            "searchQuery": query,
            "resultCount": len(results),
            "displayMode": display_mode,
        }


def decode_redirect(url: str) -> str:
    """Unwrap DuckDuckGo-style ``uddg=`` redirect links."""
    match = _DDG_REDIRECT.search(url)
    if match:
        return unquote(match.group(1))
    return url


@dataclass
class OpenSearchResultTool(BaseTool):
    name: ClassVar[str] = "open_search_result"
    description: ClassVar[str] = (
        'Opens one of the links from the most recent search, e.g. "open the first link" '
        'or "show me the third result".'
    )
    parameters: ClassVar[Mapping[str, Any]] = {
        "type": "object",
        "properties": {
            "index": {"type": "number", "description": "1-based index of the result (default 1)"},
        },
        "required": ["index"],
    }
    category: ClassVar[str] = ToolCategory.SEARCH

    history: SearchHistory = field(default_factory=SearchHistory)

    async def run(self, params: dict[str, Any]) -> dict[str, Any]:
        explicit_url = optional_str(params, "url")
        if explicit_url:
            url = normalize_url(decode_redirect(explicit_url))
            return open_webview(self.context.bus, url, optional_str(params, "title") or url)

        if not self.history.results:
            raise ToolError(
                error_code=ErrorCode.RESULT_NOT_FOUND,
                message="No recent search results found",
                suggestion="Run a search first",
            )
        index = max(1, optional_int(params, "index", 1))
        if index > len(self.history.results):
            raise ToolError(
                error_code=ErrorCode.RESULT_NOT_FOUND,
                message=f"Search result {index} does not exist; the last search returned {len(self.history.results)}",
                details={"index": index, "available": len(self.history.results)},
            )
        result = self.history.results[index - 1]
        url = decode_redirect(result.url)
        outcome = open_webview(self.context.bus, url, result.title or url)
        outcome["index"] = index
        return outcome


__all__ = [
    "DISPLAY_MODES",
    "OpenSearchResultTool",
    "SearchClient",
    "SearchHistory",
    "SearchResult",
    "SearchTool",
    "decode_redirect",
    "render_results",
]
