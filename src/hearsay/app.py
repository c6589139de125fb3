"""Command-line entry point for the hearsay engine.

The engine reads newline-delimited JSON from stdin:

* ``{"transcript": "..."}``: the full current transcript from the speech layer;
* ``{"delta": "..."}``: raw new speech to append;
* ``{"windows": [...]}``: the windows the UI currently shows.

UI commands and notifications are written to stdout as JSON lines. Logs go
to stderr and to the rotating log file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.orchestration.runtime import EngineRuntime, build_runtime
from .events import (
    ActionCommitted,
    ActionFailed,
    ArrangeWindowsCommand,
    AssistantUnavailable,
    CloseWindowCommand,
    DisplaySearchResults,
    EditWindowCommand,
    Event,
    EventBus,
    OpenWindowCommand,
)
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}

# Events forwarded to the UI layer on stdout.
OUTPUT_EVENTS: tuple[type[Event], ...] = (
    OpenWindowCommand,
    CloseWindowCommand,
    EditWindowCommand,
    ArrangeWindowsCommand,
    DisplaySearchResults,
    AssistantUnavailable,
)
VERBOSE_EVENTS: tuple[type[Event], ...] = (ActionCommitted, ActionFailed)


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the engine. Console output always goes to stderr."""

    level = logging_utils.resolve_level(debug)
    logging_utils.setup_logging(level, force=force, console_stream=sys.stderr)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


class EventWriter:
    """Serializes bus events as JSON lines on ``stream``.

    The bus holds bound methods weakly, so keep the writer alive for the
    whole session.
    """

    def __init__(self, stream: TextIO, *, verbose: bool = False) -> None:
        self._stream = stream
        self._types = OUTPUT_EVENTS + (VERBOSE_EVENTS if verbose else ())
        self.written = 0

    def attach(self, bus: EventBus) -> None:
        for event_type in self._types:
            bus.subscribe(event_type, self.write)

    def detach(self, bus: EventBus) -> None:
        for event_type in self._types:
            bus.unsubscribe(event_type, self.write)

    def write(self, event: Event) -> None:
        json.dump(event.to_dict(), self._stream, ensure_ascii=False, default=str)
        self._stream.write("\n")
        self._stream.flush()
        self.written += 1


def handle_message(runtime: EngineRuntime, payload: Mapping[str, Any]) -> None:
    """Route one decoded input message to the orchestrator."""

    orchestrator = runtime.orchestrator
    if "windows" in payload:
        orchestrator.update_ui_context(payload)
    if "transcript" in payload:
        transcript = payload["transcript"]
        if not isinstance(transcript, str):
            raise ValueError("'transcript' must be a string")
        orchestrator.submit_transcript(transcript)
    elif "delta" in payload:
        delta = payload["delta"]
        if not isinstance(delta, str):
            raise ValueError("'delta' must be a string")
        orchestrator.submit_delta(delta)


def handle_line(runtime: EngineRuntime, line: str) -> bool:
    """Decode and route one input line. Returns ``False`` for lines that were skipped."""

    text = line.strip()
    if not text:
        return False
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        _LOGGER.warning("Skipping input line that is not JSON: %s", exc)
        return False
    if not isinstance(payload, Mapping):
        _LOGGER.warning("Skipping input line that is not a JSON object")
        return False
    try:
        handle_message(runtime, payload)
    except ValueError as exc:
        _LOGGER.warning("Skipping invalid input message: %s", exc)
        return False
    return True


async def run_lines(runtime: EngineRuntime, lines: Iterable[str] | AsyncIterator[str]) -> int:
    """Feed ``lines`` to the engine and wait for the last cycle to finish."""

    handled = 0
    if hasattr(lines, "__aiter__"):
        async for line in lines:  # type: ignore[union-attr]
            handled += handle_line(runtime, line)
    else:
        for line in lines:  # type: ignore[union-attr]
            handled += handle_line(runtime, line)
            await asyncio.sleep(0)
    await runtime.orchestrator.wait_idle()
    return handled


async def _read_stdin_lines(stream: TextIO) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            return
        yield line


async def run_engine(
    settings: Settings,
    *,
    transcript: str | None = None,
    input_stream: TextIO | None = None,
    output_stream: TextIO | None = None,
    verbose: bool = False,
) -> int:
    """Run one session: a single transcript, or the stdin JSONL loop."""

    output = output_stream or sys.stdout
    runtime = build_runtime(settings, session_metadata={"mode": "oneshot" if transcript is not None else "stream"})
    writer = EventWriter(output, verbose=verbose)
    writer.attach(runtime.bus)
    async with runtime:
        if transcript is not None:
            handled = await run_lines(runtime, [json.dumps({"transcript": transcript})])
        else:
            handled = await run_lines(runtime, _read_stdin_lines(input_stream or sys.stdin))
        writer.detach(runtime.bus)
    _LOGGER.info("Session finished: %d message(s), %d action(s) committed", handled, len(runtime.orchestrator.actions()))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `hearsay` console script."""

    args = _parse_cli_args(argv)

    debug = args.debug or _env_flag("HEARSAY_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("HEARSAY_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    try:
        return asyncio.run(run_engine(settings, transcript=args.transcript, verbose=args.verbose))
    except KeyboardInterrupt:
        _LOGGER.info("Shutdown requested by user.")
        return 130


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hearsay",
        description="Turn a live speech transcript into UI commands, reading JSON lines from stdin.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.hearsay/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--transcript",
        metavar="TEXT",
        help="Process a single transcript and exit instead of reading stdin.",
    )
    parser.add_argument("--verbose", action="store_true", help="Also emit committed and failed action events.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if normalized.lower() in {"none", "null"} and _is_optional(annotation):
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    if is_dataclass(target):
        raise ValueError("Nested settings cannot be overridden from the command line")
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _is_optional(annotation: Any) -> bool:
    return type(None) in get_args(annotation)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    api_key = payload.get("api_key", "")
    if isinstance(api_key, str):
        payload["api_key"] = redact_secret(api_key)
    metadata = {
        "path": str(store.path),
        "key_path": str(store.vault.key_path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("HEARSAY_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
