"""Unit tests for :mod:`hearsay.events`."""

from __future__ import annotations

import gc
import json
import logging

import pytest

from hearsay.events import (
    ActionCommitted,
    ArrangeWindowsCommand,
    CloseWindowCommand,
    Event,
    EventBus,
    OpenWindowCommand,
    TranscriptReceived,
)


class _Collector:
    def __init__(self) -> None:
        self.received: list[Event] = []

    def on_event(self, event: Event) -> None:
        self.received.append(event)


class TestEventPayloads:
    def test_to_dict_names_the_event(self) -> None:
        payload = CloseWindowCommand(window_id="w1").to_dict()
        assert payload == {"window_id": "w1", "event": "CloseWindowCommand"}

    def test_open_window_defaults(self) -> None:
        command = OpenWindowCommand(window_id="w1", window_type="general", title="Hi")
        assert command.position == {"x": 0, "y": 0}
        assert command.size == {"width": 300, "height": 200}
        assert command.metadata == {}

    def test_payloads_are_json_serializable(self) -> None:
        events = [
            ArrangeWindowsCommand(layout="grid", window_ids=("a", "b")),
            ActionCommitted(action_id="1", tool="open_window", parameters={"content": "x"}, source_text="x", output={"windowId": "w"}),
        ]
        for event in events:
            json.dumps(event.to_dict())


class TestEventBusSubscription:
    def test_subscribe_and_publish(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []
        bus.subscribe(CloseWindowCommand, received.append)
        bus.publish(CloseWindowCommand(window_id="w1"))
        assert received == [CloseWindowCommand(window_id="w1")]
        assert bus.handler_count(CloseWindowCommand) == 1

    def test_base_class_subscribers_receive_everything(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []
        bus.subscribe(Event, received.append)
        bus.publish(CloseWindowCommand(window_id="w1"))
        bus.publish(TranscriptReceived(generation=1, delta="hi", window_length=2))
        assert [type(event).__name__ for event in received] == ["CloseWindowCommand", "TranscriptReceived"]

    def test_only_matching_handlers_run(self) -> None:
        bus: EventBus[Event] = EventBus()
        closes: list[Event] = []
        opens: list[Event] = []
        bus.subscribe(CloseWindowCommand, closes.append)
        bus.subscribe(OpenWindowCommand, opens.append)
        bus.publish(CloseWindowCommand(window_id="w1"))
        assert len(closes) == 1
        assert opens == []

    def test_handlers_run_in_registration_order(self) -> None:
        bus: EventBus[Event] = EventBus()
        order: list[str] = []
        bus.subscribe(CloseWindowCommand, lambda event: order.append("first"))
        bus.subscribe(CloseWindowCommand, lambda event: order.append("second"))
        bus.publish(CloseWindowCommand(window_id="w1"))
        assert order == ["first", "second"]


class TestEventBusUnsubscription:
    def test_unsubscribe_removes_handler(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []

        def handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(CloseWindowCommand, handler)
        bus.unsubscribe(CloseWindowCommand, handler)
        bus.publish(CloseWindowCommand(window_id="w1"))
        assert received == []

    def test_unsubscribe_unknown_handler_is_safe(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.unsubscribe(CloseWindowCommand, lambda event: None)
        assert bus.handler_count() == 0


class TestEventBusErrors:
    def test_publish_continues_after_handler_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []

        def broken(event: Event) -> None:
            raise RuntimeError("boom")

        bus.subscribe(CloseWindowCommand, broken)
        bus.subscribe(CloseWindowCommand, received.append)
        with caplog.at_level(logging.ERROR, logger="hearsay.events"):
            bus.publish(CloseWindowCommand(window_id="w1"))

        assert len(received) == 1
        assert "raised exception" in caplog.text


class TestEventBusWeakReferences:
    def test_bound_method_handler_cleaned_up_on_gc(self) -> None:
        bus: EventBus[Event] = EventBus()
        collector = _Collector()
        bus.subscribe(CloseWindowCommand, collector.on_event)
        bus.publish(CloseWindowCommand(window_id="before"))
        assert len(collector.received) == 1

        del collector
        gc.collect()
        bus.publish(CloseWindowCommand(window_id="after"))
        assert bus.handler_count(CloseWindowCommand) == 0

    def test_function_handler_is_held_strongly(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []
        bus.subscribe(CloseWindowCommand, lambda event: received.append(event))
        gc.collect()
        bus.publish(CloseWindowCommand(window_id="w1"))
        assert len(received) == 1

    def test_clear_removes_all_handlers(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.subscribe(CloseWindowCommand, lambda event: None)
        bus.subscribe(OpenWindowCommand, lambda event: None)
        bus.clear()
        assert bus.handler_count() == 0
