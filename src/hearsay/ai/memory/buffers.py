"""Bounded conversational memory: the transcript window and the action ledger."""

from __future__ import annotations

import json
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from ..orchestration.ui_context import UIContextSnapshot

ActionKey = tuple[str, str, str]

DEFAULT_WINDOW_CHARS = 2000
DEFAULT_LEDGER_SIZE = 10
REVISION_CONTEXT_WORDS = 8

_CLAUSE_BREAKS = ".,;:!?\n"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_parameters(parameters: Mapping[str, Any] | None) -> str:
    """Order-independent encoding of a parameters mapping."""

    return json.dumps(_string_keys(parameters or {}), sort_keys=True, separators=(",", ":"), default=str)


def _string_keys(value: Any) -> Any:
    # Model output may carry non-string keys, which sort_keys cannot order
    if isinstance(value, Mapping):
        return {str(key): _string_keys(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_string_keys(item) for item in value]
    return value


def action_key(tool: str, parameters: Mapping[str, Any] | None, source_text: str) -> ActionKey:
    return (tool, canonical_parameters(parameters), source_text)


class TranscriptWindow:
    """Append-only text holding the most recent ``max_chars`` characters of speech.

    Older text is dropped from the front; nothing else ever rewrites it.
    """

    def __init__(self, *, max_chars: int = DEFAULT_WINDOW_CHARS, initial: str = "") -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars
        self._text = ""
        self._last_full: str | None = None
        if initial:
            self.append(initial)

    @property
    def text(self) -> str:
        return self._text

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def __len__(self) -> int:
        return len(self._text)

    def __contains__(self, fragment: object) -> bool:
        return isinstance(fragment, str) and bool(fragment) and fragment in self._text

    def append(self, delta: str) -> None:
        if not delta:
            return
        self._text += delta
        self._trim()

    def merge_full(self, transcript: str) -> str:
        """Merge an entire-transcript payload and return the text actually appended.

        An extension of the previous payload appends the new suffix. An
        identical payload appends nothing. A revision appends the revised clause
        as a new space-separated segment: the tail from the first differing word,
        extended back to the nearest clause break so that the corrected command
        appears literally in the window.
        """

        previous = self._last_full
        self._last_full = transcript
        if previous is None:
            delta = transcript
        elif transcript == previous:
            delta = ""
        elif transcript.startswith(previous):
            delta = transcript[len(previous):]
        else:
            divergence = _word_boundary(_common_prefix_length(previous, transcript), transcript)
            tail = transcript[_clause_start(divergence, transcript):]
            tail = tail.strip()
            delta = f" {tail}" if tail and self._text else tail
        self.append(delta)
        return delta

    def _trim(self) -> None:
        overflow = len(self._text) - self._max_chars
        if overflow > 0:
            self._text = self._text[overflow:]


def _common_prefix_length(left: str, right: str) -> int:
    limit = min(len(left), len(right))
    index = 0
    while index < limit and left[index] == right[index]:
        index += 1
    return index


def _word_boundary(index: int, text: str) -> int:
    while index > 0 and not text[index - 1].isspace():
        index -= 1
    return index


def _clause_start(index: int, text: str) -> int:
    """Walk back from a word start to the start of its clause, at most ``REVISION_CONTEXT_WORDS`` words."""

    words = 0
    while index > 0 and words < REVISION_CONTEXT_WORDS:
        before = text[:index].rstrip()
        if not before or before[-1] in _CLAUSE_BREAKS:
            break
        index = _word_boundary(len(before), before)
        words += 1
    return index


@dataclass(slots=True, frozen=True)
class ActionRecord:
    """An action that executed successfully, with the phrase that justified it."""

    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    action_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def key(self) -> ActionKey:
        return action_key(self.tool, self.parameters, self.source_text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.action_id,
            "tool": self.tool,
            "parameters": dict(self.parameters),
            "sourceText": self.source_text,
            "timestamp": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ActionRecord":
        created_at = payload.get("timestamp")
        timestamp = datetime.fromisoformat(created_at) if isinstance(created_at, str) else _utcnow()
        return cls(
            tool=str(payload.get("tool", "")),
            parameters=dict(payload.get("parameters") or {}),
            source_text=str(payload.get("sourceText", "")),
            action_id=str(payload.get("id") or uuid.uuid4().hex),
            created_at=timestamp,
        )


class ActionLedger:
    """FIFO of the most recent ``max_records`` executed actions, unique by key."""

    def __init__(self, *, max_records: int = DEFAULT_LEDGER_SIZE, initial: Iterable[ActionRecord] | None = None) -> None:
        self._max_records = max(1, max_records)
        self._records: deque[ActionRecord] = deque()
        self._keys: set[ActionKey] = set()
        for record in initial or ():
            self.append(record)

    @property
    def max_records(self) -> int:
        return self._max_records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(tuple(self._records))

    def contains(self, key: ActionKey) -> bool:
        return key in self._keys

    def append(self, record: ActionRecord) -> None:
        if self.contains(record.key):
            raise ValueError(f"Action already recorded: {record.tool} for {record.source_text!r}")
        self._records.append(record)
        self._keys.add(record.key)
        while len(self._records) > self._max_records:
            self._keys.discard(self._records.popleft().key)

    def records(self) -> tuple[ActionRecord, ...]:
        return tuple(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._keys.clear()


@dataclass(slots=True, frozen=True)
class ConversationState:
    """Value snapshot handed to the intent extraction step on every cycle."""

    transcript: str
    actions: tuple[ActionRecord, ...]
    ui_context: UIContextSnapshot = field(default_factory=UIContextSnapshot)
    generation: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "fullTranscript": self.transcript,
            "actionHistory": [record.to_dict() for record in self.actions],
            "uiContext": self.ui_context.to_payload(),
        }


class SlidingWindowStore:
    """Transcript window plus action ledger, written only by the orchestrator."""

    def __init__(
        self,
        *,
        max_chars: int = DEFAULT_WINDOW_CHARS,
        max_records: int = DEFAULT_LEDGER_SIZE,
    ) -> None:
        self.transcript = TranscriptWindow(max_chars=max_chars)
        self.ledger = ActionLedger(max_records=max_records)

    def append_transcript(self, delta: str) -> None:
        self.transcript.append(delta)

    def merge_transcript(self, transcript: str) -> str:
        return self.transcript.merge_full(transcript)

    def record_action(self, record: ActionRecord) -> None:
        self.ledger.append(record)

    def contains_key(self, key: ActionKey) -> bool:
        return self.ledger.contains(key)

    def snapshot(self, ui_context: UIContextSnapshot | None = None, *, generation: int = 0) -> ConversationState:
        return ConversationState(
            transcript=self.transcript.text,
            actions=self.ledger.records(),
            ui_context=ui_context or UIContextSnapshot(),
            generation=generation,
        )


__all__ = [
    "ActionKey",
    "ActionLedger",
    "ActionRecord",
    "ConversationState",
    "SlidingWindowStore",
    "TranscriptWindow",
    "action_key",
    "canonical_parameters",
]
