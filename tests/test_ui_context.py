"""Tests for the UI context mirror."""

from __future__ import annotations

import pytest

from hearsay.ai.orchestration.ui_context import UIContextMirror, UIContextSnapshot, WindowInfo


def _snapshot(windows) -> UIContextSnapshot:
    mirror = UIContextMirror()
    return mirror.replace(windows)


def test_from_payload_accepts_both_spellings() -> None:
    window = WindowInfo.from_payload(
        {"windowId": "w1", "windowType": "quiz", "title": "Quiz", "createdAt": "2024-05-01T12:00:00Z", "zIndex": 3, "color": "red"}
    )
    assert window.id == "w1"
    assert window.window_type == "quiz"
    assert window.z_index == 3
    assert window.created_at == pytest.approx(1714564800.0)
    assert window.extra == {"color": "red"}


def test_millisecond_timestamps_are_normalized() -> None:
    window = WindowInfo.from_payload({"id": "w1", "createdAt": 1_700_000_000_000})
    assert window.created_at == pytest.approx(1_700_000_000.0)


def test_selectors(sample_windows) -> None:
    snapshot = _snapshot(sample_windows)
    assert snapshot.newest().id == "w-new"
    assert snapshot.oldest().id == "w-old"
    assert snapshot.active().id == "w-mid"
    assert [window.id for window in snapshot.resolve("all")] == ["w-old", "w-mid", "w-new"]
    assert [window.id for window in snapshot.resolve("latest")] == ["w-new"]
    assert snapshot.resolve("nothing like it") == []


def test_active_falls_back_to_z_index_then_newest() -> None:
    stacked = _snapshot([
        {"id": "a", "createdAt": 1, "zIndex": 5},
        {"id": "b", "createdAt": 2, "zIndex": 1},
    ])
    assert stacked.active().id == "a"
    flat = _snapshot([{"id": "a", "createdAt": 1}, {"id": "b", "createdAt": 2}])
    assert flat.active().id == "b"
    assert UIContextSnapshot().active() is None


def test_newest_ties_go_to_last_reported() -> None:
    snapshot = _snapshot([{"id": "a", "createdAt": 7}, {"id": "b", "createdAt": 7}])
    assert snapshot.newest().id == "b"


def test_title_lookup_prefers_exact_match() -> None:
    snapshot = _snapshot([
        {"id": "a", "title": "Notes archive", "createdAt": 2},
        {"id": "b", "title": "Notes", "createdAt": 1},
    ])
    assert snapshot.find_by_title("notes").id == "b"
    assert snapshot.find_by_title("ARCHIVE").id == "a"
    assert snapshot.find_by_title("  ") is None


def test_replace_skips_malformed_entries(caplog) -> None:
    mirror = UIContextMirror()
    snapshot = mirror.replace([{"title": "no id"}, {"id": "ok"}])
    assert [window.id for window in snapshot.windows] == ["ok"]
    assert mirror.current is snapshot
    assert "Ignoring malformed window entry" in caplog.text


def test_replace_skips_entries_that_are_not_objects(caplog) -> None:
    mirror = UIContextMirror()
    snapshot = mirror.replace_from_payload({"windows": ["w1", 7, None, {"id": "w2"}]})
    assert [window.id for window in snapshot.windows] == ["w2"]
    assert "not an object" in caplog.text


def test_replace_from_payload_requires_a_list() -> None:
    mirror = UIContextMirror()
    with pytest.raises(ValueError):
        mirror.replace_from_payload({"windows": "w1"})
    assert len(mirror.replace_from_payload({})) == 0


def test_snapshot_is_replaced_not_mutated(sample_windows) -> None:
    mirror = UIContextMirror()
    first = mirror.replace(sample_windows)
    mirror.replace([])
    assert len(first) == 3
    assert len(mirror.current) == 0
