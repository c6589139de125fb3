"""Event bus and event types shared by the orchestration engine and the UI layer.

The orchestrator publishes lifecycle events (cycles, rejections, commits,
failures) and the tool layer publishes UI commands (open/close/edit window,
display search results). Anything rendering windows subscribes to the
command events; anything observing the engine subscribes to the lifecycle
events.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Generic, Mapping, TypeVar, TYPE_CHECKING
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events.

    Subclasses use ``@dataclass(slots=True)``. Handlers subscribed to a base
    class receive every subclass event as well.
    """

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["event"] = type(self).__name__
        return payload


# =============================================================================
# Engine lifecycle events
# =============================================================================


@dataclass(slots=True)
class TranscriptReceived(Event):
    """A transcript update was merged into the sliding window.

    Attributes:
        generation: Generation counter value after the update.
        delta: Text appended to the transcript window.
        window_length: Length of the transcript window after truncation.
    """

    generation: int
    delta: str
    window_length: int


@dataclass(slots=True)
class CycleStarted(Event):
    generation: int
    transcript_length: int
    ledger_size: int


@dataclass(slots=True)
class CycleSuperseded(Event):
    """A newer transcript arrived while a cycle was in flight.

    Attributes:
        generation: The generation of the superseded cycle.
        current_generation: The generation that replaced it.
        phase: ``"extracting"`` or ``"dispatching"``.
        dropped: Number of proposed actions that were discarded.
    """

    generation: int
    current_generation: int
    phase: str
    dropped: int = 0


@dataclass(slots=True)
class CycleCompleted(Event):
    generation: int
    proposed: int
    committed: int
    rejected: int
    failed: int
    error: str | None = None


@dataclass(slots=True)
class ActionRejected(Event):
    """A proposed action failed verification and was not dispatched."""

    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    reason: str


@dataclass(slots=True)
class ActionDispatched(Event):
    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    generation: int


@dataclass(slots=True)
class ActionCommitted(Event):
    """A successful execution was recorded in the action ledger."""

    action_id: str
    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    output: Any = None


@dataclass(slots=True)
class ActionFailed(Event):
    """An accepted action failed to execute. It is not recorded so it may be retried."""

    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    error: str
    error_code: str | None = None


@dataclass(slots=True)
class AssistantUnavailable(Event):
    """The intent extraction step failed for a cycle.

    Attributes:
        message: Human-readable description of the failure.
        kind: ``"unavailable"``, ``"timeout"``, ``"malformed"`` or ``"internal"``.
        retry_in: Seconds the engine will wait before the next attempt.
        error_code: Stable code surfaced to the UI layer.
    """

    message: str
    kind: str
    retry_in: float = 0.0
    error_code: str = "AI_ERROR"


@dataclass(slots=True)
class UIContextUpdated(Event):
    window_count: int


# =============================================================================
# UI commands (engine -> UI layer)
# =============================================================================


@dataclass(slots=True)
class OpenWindowCommand(Event):
    """Ask the UI layer to open a window.

    Attributes:
        window_id: Identifier assigned by the engine to the new window.
        window_type: Kind of window (``general``, ``notification``, ``search`` ...).
        title: Window title.
        content: Body text or markdown.
        position: ``{"x": int, "y": int}``.
        size: ``{"width": int, "height": int}``.
        metadata: Free-form extra data for the renderer.
    """

    window_id: str
    window_type: str
    title: str
    content: str = ""
    position: dict[str, int] = field(default_factory=lambda: {"x": 0, "y": 0})
    size: dict[str, int] = field(default_factory=lambda: {"width": 300, "height": 200})
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CloseWindowCommand(Event):
    window_id: str


@dataclass(slots=True)
class EditWindowCommand(Event):
    """Update a window title and/or content. ``mode`` is ``set``, ``append`` or ``clear``."""

    window_id: str
    title: str | None = None
    content: str | None = None
    mode: str = "set"


@dataclass(slots=True)
class ArrangeWindowsCommand(Event):
    layout: str = "grid"
    window_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class DisplaySearchResults(Event):
    """Search results rendered in a dedicated window."""

    window_id: str
    query: str
    results: tuple[dict[str, Any], ...]
    display_mode: str = "auto"


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = {TranscriptReceived}


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are invoked synchronously in registration order. Bound methods
    are held through weak references so subscribers that go away are
    dropped automatically. A handler raising does not prevent the remaining
    handlers from running.

    Example::

        bus = EventBus()
        bus.subscribe(OpenWindowCommand, renderer.open)
        bus.publish(OpenWindowCommand(window_id="w1", window_type="general", title="Hi"))

    Not thread-safe: use it from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for ``event_type`` and its subclasses.

        Subscribing the same handler twice results in two invocations.
        """
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast ``event`` to handlers of its type and of its base event types."""
        event_type = type(event)
        is_quiet = event_type in _QUIET_EVENT_TYPES
        delivered = 0

        for cls in event_type.__mro__:
            if not (isinstance(cls, type) and issubclass(cls, Event)):
                continue
            handlers = self._handlers.get(cls)
            if not handlers:
                continue
            dead_indices: list[int] = []
            for i, handler_ref in enumerate(list(handlers)):
                handler = handler_ref.resolve()
                if handler is None:
                    dead_indices.append(i)
                    continue
                delivered += 1
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        "Handler %s raised exception for event %s",
                        _handler_name(handler),
                        event_type.__name__,
                    )
            for i in reversed(dead_indices):
                handlers.pop(i)

        if not is_quiet:
            logger.debug("Published %s to %d handler(s)", event_type.__name__, delivered)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    # Engine lifecycle
    "TranscriptReceived",
    "CycleStarted",
    "CycleSuperseded",
    "CycleCompleted",
    "ActionRejected",
    "ActionDispatched",
    "ActionCommitted",
    "ActionFailed",
    "AssistantUnavailable",
    "UIContextUpdated",
    # UI commands
    "OpenWindowCommand",
    "CloseWindowCommand",
    "EditWindowCommand",
    "ArrangeWindowsCommand",
    "DisplaySearchResults",
]
