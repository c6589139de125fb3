"""Read-only mirror of the windows the UI layer currently shows.

The UI layer owns window state. It pushes a full enumeration whenever
something changes and the mirror swaps in a new immutable snapshot in a
single assignment, so readers never observe a partially applied update.
Tools resolve targets such as ``"newest"`` or ``"active"`` against
:attr:`UIContextMirror.current` at the moment they execute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

LOGGER = logging.getLogger(__name__)

SELECTORS: tuple[str, ...] = ("newest", "latest", "oldest", "active", "all")


def _parse_timestamp(value: Any) -> float:
    """Coerce epoch seconds/milliseconds or ISO strings into epoch seconds."""

    if value is None or value == "":
        return 0.0
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        number = float(value)
        # JavaScript clients send milliseconds
        return number / 1000.0 if number > 1e11 else number
    text = str(value).strip()
    try:
        return _parse_timestamp(float(text))
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        LOGGER.debug("Unparseable window timestamp %r", value)
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


@dataclass(slots=True, frozen=True)
class WindowInfo:
    """One addressable window as reported by the UI layer."""

    id: str
    title: str = ""
    window_type: str = "general"
    created_at: float = 0.0
    is_active: bool = False
    z_index: int = 0
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WindowInfo":
        window_id = payload.get("id") or payload.get("windowId")
        if not window_id:
            raise ValueError("Window payload requires an 'id'")
        known = {"id", "windowId", "title", "type", "windowType", "createdAt", "created_at",
                 "isActive", "is_active", "zIndex", "z_index"}
        return cls(
            id=str(window_id),
            title=str(payload.get("title") or ""),
            window_type=str(payload.get("windowType") or payload.get("type") or "general"),
            created_at=_parse_timestamp(payload.get("createdAt", payload.get("created_at"))),
            is_active=bool(payload.get("isActive", payload.get("is_active", False))),
            z_index=int(payload.get("zIndex", payload.get("z_index", 0)) or 0),
            extra={key: value for key, value in payload.items() if key not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.window_type,
            "createdAt": self.created_at,
            "isActive": self.is_active,
        }


@dataclass(slots=True, frozen=True)
class UIContextSnapshot:
    """Immutable enumeration of open windows, in the order the UI reported them."""

    windows: tuple[WindowInfo, ...] = ()
    received_at: float = 0.0

    def __len__(self) -> int:
        return len(self.windows)

    def get(self, window_id: str) -> WindowInfo | None:
        for window in self.windows:
            if window.id == window_id:
                return window
        return None

    def find_by_title(self, title: str) -> WindowInfo | None:
        """Case-insensitive exact title match first, then substring match on the newest window."""

        needle = title.strip().lower()
        if not needle:
            return None
        exact = [window for window in self.windows if window.title.lower() == needle]
        if exact:
            return _newest(exact)
        partial = [window for window in self.windows if needle in window.title.lower()]
        return _newest(partial) if partial else None

    def newest(self) -> WindowInfo | None:
        return _newest(self.windows) if self.windows else None

    def oldest(self) -> WindowInfo | None:
        if not self.windows:
            return None
        return min(self.windows, key=lambda window: window.created_at)

    def active(self) -> WindowInfo | None:
        """The focused window; falls back to the highest z-index, then to the newest."""

        for window in self.windows:
            if window.is_active:
                return window
        if not self.windows:
            return None
        top = max(self.windows, key=lambda window: (window.z_index, window.created_at))
        if top.z_index > 0:
            return top
        return self.newest()

    def resolve(self, target: str) -> list[WindowInfo]:
        """Resolve an id, a selector keyword or a title to the windows it designates."""

        key = (target or "").strip()
        lowered = key.lower()
        if lowered == "all":
            return list(self.windows)
        if lowered in {"newest", "latest"}:
            found = self.newest()
        elif lowered == "oldest":
            found = self.oldest()
        elif lowered == "active":
            found = self.active()
        else:
            found = self.get(key) or self.find_by_title(key)
        return [found] if found is not None else []

    def to_payload(self) -> dict[str, Any]:
        return {"windows": [window.to_dict() for window in self.windows]}


def _newest(windows: Sequence[WindowInfo]) -> WindowInfo:
    # Ties resolve to the window reported last
    best = windows[0]
    for window in windows[1:]:
        if window.created_at >= best.created_at:
            best = window
    return best


class UIContextMirror:
    """Holds the latest :class:`UIContextSnapshot`; the engine never edits it."""

    def __init__(self, initial: UIContextSnapshot | None = None) -> None:
        self._snapshot = initial or UIContextSnapshot()

    @property
    def current(self) -> UIContextSnapshot:
        return self._snapshot

    def replace(self, windows: Iterable[WindowInfo | Mapping[str, Any]]) -> UIContextSnapshot:
        """Swap in a new snapshot built from ``windows``. Invalid entries are skipped."""

        parsed: list[WindowInfo] = []
        for entry in windows:
            if isinstance(entry, WindowInfo):
                parsed.append(entry)
                continue
            if not isinstance(entry, Mapping):
                LOGGER.warning("Ignoring window entry that is not an object: %r", entry)
                continue
            try:
                parsed.append(WindowInfo.from_payload(entry))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Ignoring malformed window entry %r: %s", entry, exc)
        snapshot = UIContextSnapshot(
            windows=tuple(parsed),
            received_at=datetime.now(timezone.utc).timestamp(),
        )
        self._snapshot = snapshot
        LOGGER.debug("UI context replaced with %d window(s)", len(parsed))
        return snapshot

    def replace_from_payload(self, payload: Mapping[str, Any]) -> UIContextSnapshot:
        """Accept ``{"windows": [...]}`` as pushed by the UI layer."""

        windows = payload.get("windows")
        if windows is None:
            windows = []
        if not isinstance(windows, (list, tuple)):
            raise ValueError("UI context payload requires a 'windows' list")
        return self.replace(windows)


__all__ = ["SELECTORS", "WindowInfo", "UIContextSnapshot", "UIContextMirror"]
