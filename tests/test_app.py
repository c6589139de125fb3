"""Tests for the command-line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from hearsay import app
from hearsay.ai.orchestration.runtime import build_runtime
from hearsay.services.settings import Settings, SettingsStore

from tests.helpers import ScriptedExtractor


class TestCliOverrides:
    def test_values_are_coerced_to_field_types(self) -> None:
        overrides = app._coerce_cli_overrides(
            [
                "ledger_size=5",
                "extraction_timeout=2.5",
                "debug_logging=yes",
                "organization=none",
                "model= gpt-test ",
                'default_headers={"X-Team": "voice"}',
            ]
        )
        assert overrides == {
            "ledger_size": 5,
            "extraction_timeout": 2.5,
            "debug_logging": True,
            "organization": None,
            "model": "gpt-test",
            "default_headers": {"X-Team": "voice"},
        }

    @pytest.mark.parametrize("item", ["ledger_size", "unknown=1", "=3", "debug_logging=maybe", "ledger_size=ten"])
    def test_invalid_overrides(self, item: str) -> None:
        with pytest.raises(ValueError):
            app._coerce_cli_overrides([item])


@pytest.mark.usefixtures("restore_logging")
def test_dump_settings_redacts_api_key(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(Settings(api_key="sk-1234567890"))

    code = app.main(["--dump-settings", "--settings-path", str(settings_path), "--set", "ledger_size=3"])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["settings"]["api_key"] == "sk*********90"
    assert output["settings"]["ledger_size"] == 3
    assert output["meta"]["path"] == str(settings_path)
    assert output["meta"]["cli_overrides"] == ["ledger_size"]


@pytest.mark.usefixtures("restore_logging")
def test_invalid_override_exits_with_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        app.main(["--dump-settings", "--settings-path", str(tmp_path / "s.json"), "--set", "nope=1"])
    assert excinfo.value.code == 2


@pytest.mark.asyncio
async def test_json_lines_drive_the_engine(sample_windows) -> None:
    runtime = build_runtime(Settings(search_endpoint=""), extractor=ScriptedExtractor())
    output = io.StringIO()
    writer = app.EventWriter(output, verbose=True)
    writer.attach(runtime.bus)
    lines = [
        json.dumps({"windows": sample_windows}),
        "not json",
        json.dumps(["a list"]),
        json.dumps({"transcript": 42}),
        json.dumps({"transcript": "close the newest window"}),
        "",
    ]
    async with runtime:
        handled = await app.run_lines(runtime, lines)

    events = [json.loads(line) for line in output.getvalue().splitlines()]
    assert handled == 2
    assert [event["event"] for event in events] == ["CloseWindowCommand", "ActionCommitted"]
    assert events[0]["window_id"] == "w-new"


@pytest.mark.asyncio
async def test_malformed_window_entries_do_not_end_the_session() -> None:
    runtime = build_runtime(Settings(search_endpoint=""), extractor=ScriptedExtractor())
    output = io.StringIO()
    writer = app.EventWriter(output)
    writer.attach(runtime.bus)
    lines = [
        json.dumps({"windows": ["w1", {"id": "w-ok", "title": "Notes", "createdAt": 1, "isActive": True}]}),
        json.dumps({"transcript": "close the active window"}),
    ]
    async with runtime:
        handled = await app.run_lines(runtime, lines)

    assert handled == 2
    assert [window.id for window in runtime.orchestrator.ui_context.current.windows] == ["w-ok"]
    events = [json.loads(line) for line in output.getvalue().splitlines()]
    assert [(event["event"], event["window_id"]) for event in events] == [("CloseWindowCommand", "w-ok")]


@pytest.mark.asyncio
async def test_delta_messages_append_to_the_window() -> None:
    runtime = build_runtime(Settings(search_endpoint=""), extractor=ScriptedExtractor())
    output = io.StringIO()
    writer = app.EventWriter(output)
    writer.attach(runtime.bus)
    async with runtime:
        await app.run_lines(runtime, [json.dumps({"delta": "open a window "}), json.dumps({"delta": "saying hi"})])

    assert runtime.orchestrator.store.transcript.text == "open a window saying hi"
    events = [json.loads(line) for line in output.getvalue().splitlines()]
    assert [(event["event"], event["content"]) for event in events] == [("OpenWindowCommand", "hi")]
    assert writer.written == 1
