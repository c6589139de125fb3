"""Tests for :mod:`hearsay.utils.logging`."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from hearsay.utils import logging as logging_utils


@pytest.mark.usefixtures("restore_logging")
def test_setup_logging_writes_file_and_console(tmp_path: Path) -> None:
    stream = io.StringIO()
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console_stream=stream)

    logging.getLogger("hearsay.test").info("hello from the engine")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == tmp_path / "hearsay.log"
    assert logging_utils.get_log_path() == path
    assert "hello from the engine" in path.read_text(encoding="utf-8")
    assert "| INFO     | - | hearsay.test | hello from the engine" in stream.getvalue()
    assert logging.getLogger("httpx").level == logging.WARNING


@pytest.mark.usefixtures("restore_logging")
def test_setup_logging_is_idempotent_unless_forced(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False)
    again = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False, force=True)
    assert again == first
    assert forced == tmp_path / "b" / "hearsay.log"


@pytest.mark.usefixtures("restore_logging")
def test_log_dir_comes_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HEARSAY_LOG_DIR", str(tmp_path / "env"))
    assert logging_utils.setup_logging(console=False) == tmp_path / "env" / "hearsay.log"


def test_resolve_level() -> None:
    assert logging_utils.resolve_level(True) == logging.DEBUG
    assert logging_utils.resolve_level(False) == logging.INFO


@pytest.mark.usefixtures("restore_logging")
def test_records_carry_the_bound_session(tmp_path: Path) -> None:
    stream = io.StringIO()
    logging_utils.setup_logging(log_dir=tmp_path, console_stream=stream)
    logger = logging.getLogger("hearsay.test")

    logging_utils.bind_session("0123456789abcdef")
    logger.info("inside the session")
    logging_utils.bind_session(None)
    logger.info("after the session")

    lines = stream.getvalue().splitlines()
    assert lines[0].endswith("| INFO     | 01234567 | hearsay.test | inside the session")
    assert lines[1].endswith("| INFO     | - | hearsay.test | after the session")
    assert logging_utils.current_session() == "-"
