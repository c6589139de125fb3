"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from hearsay.events import EventBus
from hearsay.utils import logging as logging_utils
from hearsay.ai.orchestration.tools.types import ToolContext
from hearsay.ai.orchestration.ui_context import UIContextMirror


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep settings, keys and log files out of the real home directory."""

    monkeypatch.setenv("HEARSAY_LOG_DIR", str(tmp_path / "logs"))
    for name in ("HEARSAY_API_KEY", "HEARSAY_BASE_URL", "HEARSAY_MODEL", "HEARSAY_DEBUG_EVENT_LOGGING"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_windows() -> list[dict]:
    return [
        {"id": "w-old", "title": "Shopping List", "type": "sticky-note", "createdAt": 1_700_000_000_000},
        {"id": "w-mid", "title": "Weather", "type": "general", "createdAt": 1_700_000_100_000, "isActive": True},
        {"id": "w-new", "title": "Search: cats", "type": "search-results", "createdAt": 1_700_000_200_000},
    ]


@pytest.fixture
def tool_context(sample_windows) -> ToolContext:
    mirror = UIContextMirror()
    mirror.replace(sample_windows)
    return ToolContext(bus=EventBus(), ui_context=mirror)


@pytest.fixture
def restore_logging(monkeypatch):
    """Undo root logger changes made by ``setup_logging``."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    monkeypatch.setattr(logging_utils, "_CONFIGURED", False)
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    logging_utils.bind_session(None)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging_utils.bind_session(None)
