"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import re
from types import SimpleNamespace
from typing import Any, Awaitable, Callable, Iterable

from hearsay.ai.memory.buffers import ConversationState
from hearsay.ai.orchestration.tools.types import ExecutionResult
from hearsay.ai.orchestration.types import ProposedAction
from hearsay.events import Event, EventBus

ExtractHandler = Callable[[ConversationState], Awaitable[list[ProposedAction]]]

_OPEN_ONE = re.compile(r"open a window saying (\w+)")
_OPEN_MANY = re.compile(r"open (\d+) windows saying (\w+)")
_CLOSE = re.compile(r"close the (newest|oldest|active) window")


class ScriptedExtractor:
    """Intent extraction stub driven by an async handler.

    Records every :class:`ConversationState` it is called with.

    Example:
        async def handler(state):
            return [ProposedAction("open_window", {"content": "hi"}, "open hi")]

        extractor = ScriptedExtractor(handler)
    """

    def __init__(self, handler: ExtractHandler | None = None) -> None:
        self._handler = handler or rule_based_actions
        self.calls: list[ConversationState] = []

    async def extract(self, state: ConversationState) -> list[ProposedAction]:
        self.calls.append(state)
        return await self._handler(state)


async def rule_based_actions(state: ConversationState) -> list[ProposedAction]:
    """Deterministic stand-in for the language model.

    Understands "open a window saying X", "open N windows saying X" and
    "close the newest window"; skips phrases already in the action history.
    """

    seen = {record.source_text for record in state.actions}
    actions: list[ProposedAction] = []
    for match in _OPEN_MANY.finditer(state.transcript):
        count, word = int(match.group(1)), match.group(2)
        phrase = match.group(0)
        words = phrase.split()
        for index in range(count):
            source = " ".join(words[index:index + 2])
            if source in seen:
                continue
            actions.append(
                ProposedAction(
                    tool="open_window",
                    parameters={"windowType": "general", "context": {"title": word, "content": word}},
                    source_text=source,
                )
            )
    for match in _OPEN_ONE.finditer(state.transcript):
        if match.group(0) in seen:
            continue
        word = match.group(1)
        actions.append(
            ProposedAction(
                tool="open_window",
                parameters={"windowType": "general", "context": {"content": word}},
                source_text=match.group(0),
            )
        )
    for match in _CLOSE.finditer(state.transcript):
        if match.group(0) in seen:
            continue
        actions.append(
            ProposedAction(tool="close_window", parameters={"selector": match.group(1)}, source_text=match.group(0))
        )
    return actions


class RecordingExecutor:
    """Tool executor stub that records dispatched actions in order."""

    def __init__(
        self,
        *,
        failing_tools: Iterable[str] = (),
        delay: float = 0.0,
        on_execute: Callable[[ProposedAction], None] | None = None,
    ) -> None:
        self.executed: list[ProposedAction] = []
        self._failing = set(failing_tools)
        self._delay = delay
        self._on_execute = on_execute
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, action: ProposedAction) -> ExecutionResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            self.executed.append(action)
            if self._on_execute is not None:
                self._on_execute(action)
            if action.tool in self._failing:
                return ExecutionResult(success=False, error="window not found", error_code="window_not_found")
            return ExecutionResult(success=True, output={"tool": action.tool})
        finally:
            self.in_flight -= 1


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[Event] = []
        bus.subscribe(Event, self.record)

    def record(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


class FakeCompletions:
    """Stands in for ``AsyncOpenAI().chat.completions``."""

    def __init__(self, responses: Iterable[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=response))],
        )


def make_openai_stub(*responses: Any) -> SimpleNamespace:
    """Build an object shaped like ``AsyncOpenAI`` whose completions return ``responses`` in turn."""

    completions = FakeCompletions(responses)

    async def close() -> None:
        return None

    return SimpleNamespace(chat=SimpleNamespace(completions=completions), close=close)
