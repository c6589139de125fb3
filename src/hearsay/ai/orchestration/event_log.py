"""Debug event logging: one JSONL file per orchestration session."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from ...events import Event, EventBus, TranscriptReceived
from ...utils import logging as logging_utils

LOGGER = logging.getLogger(__name__)


def _default_event_dir() -> Path:
    log_path = logging_utils.get_log_path()
    if log_path is not None:
        return log_path.parent / "events"
    return Path.home() / ".hearsay" / "logs" / "events"


@dataclass(slots=True)
class _NullSessionEventLog:
    """No-op implementation used when event logging is disabled."""

    path: Path | None = None

    def __enter__(self) -> "_NullSessionEventLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False

    def attach(self, bus: EventBus) -> None:
        return

    def record(self, *_: Any, **__: Any) -> None:
        return

    def close(self) -> None:
        return


class SessionEventLog:
    """Writes every engine event published on the bus as a JSONL entry.

    Transcript text is only logged when ``include_transcript`` is set; by
    default ``TranscriptReceived`` entries carry lengths but not the words.
    """

    def __init__(self, path: Path, *, context: Mapping[str, Any], include_transcript: bool = False) -> None:
        self.path = path
        self._file = path.open("w", encoding="utf-8")
        self._closed = False
        self._include_transcript = include_transcript
        self._bus: EventBus | None = None
        self._write_entry("start", context)

    def __enter__(self) -> "SessionEventLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self._write_entry("failure", {"message": str(exc)})
        self.close()
        return False

    def attach(self, bus: EventBus) -> None:
        self._bus = bus
        bus.subscribe(Event, self.on_event)

    def on_event(self, event: Event) -> None:
        payload = event.to_dict()
        name = payload.pop("event")
        if isinstance(event, TranscriptReceived) and not self._include_transcript:
            payload["delta"] = f"<{len(event.delta)} chars>"
        self._write_entry(name, payload)

    def record(self, name: str, payload: Mapping[str, Any] | None = None) -> None:
        self._write_entry(name, payload)

    def close(self) -> None:
        if self._closed:
            return
        if self._bus is not None:
            self._bus.unsubscribe(Event, self.on_event)
            self._bus = None
        self._write_entry("end", None)
        self._closed = True
        self._file.close()

    def _write_entry(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        if self._closed:
            return
        entry: dict[str, Any] = {"event": event, "timestamp": time.time()}
        if payload:
            for key, value in payload.items():
                entry[key] = self._safe_json(value)
        json.dump(entry, self._file, ensure_ascii=False)
        self._file.write("\n")
        self._file.flush()

    def _safe_json(self, value: Any, *, depth: int = 0) -> Any:
        if depth > 6:
            return repr(value)
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Mapping):
            return {str(key): self._safe_json(val, depth=depth + 1) for key, val in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._safe_json(item, depth=depth + 1) for item in value]
        if isinstance(value, datetime):
            return value.isoformat()
        return repr(value)


class SessionEventLogger:
    """Factory for per-session event logs when debug event logging is enabled."""

    def __init__(self, *, enabled: bool, base_dir: Path | str | None = None) -> None:
        self.enabled = bool(enabled)
        self._base_dir = Path(base_dir) if base_dir else _default_event_dir()

    def start_session(
        self,
        *,
        session_id: str,
        metadata: Mapping[str, Any] | None = None,
        include_transcript: bool = False,
    ) -> SessionEventLog | _NullSessionEventLog:
        if not self.enabled:
            return _NullSessionEventLog()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            path = self._allocate_path(session_id)
            log = SessionEventLog(
                path,
                context={"session_id": session_id, "metadata": dict(metadata or {})},
                include_transcript=include_transcript,
            )
        except OSError:
            LOGGER.warning("Failed to start session event log", exc_info=True)
            return _NullSessionEventLog()
        LOGGER.debug("Session event log started: %s", path)
        return log

    def _allocate_path(self, session_id: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        safe_id = "".join(ch for ch in session_id if ch.isalnum())[:12] or "session"
        return self._base_dir / f"session-{timestamp}-{safe_id}.jsonl"


__all__ = ["SessionEventLog", "SessionEventLogger"]
