"""Command orchestrator: the transcript-to-action state machine.

A single worker task per session consumes a coalescing wake signal. Every
transcript update is merged into the sliding window immediately, in arrival
order, and bumps a generation counter. The worker snapshots the current
state, awaits the extraction step, verifies the proposals and dispatches
the survivors one at a time. Results are applied only while their
generation is still current:

* superseded while extracting: the whole response is discarded;
* superseded while dispatching: an action whose side effect already ran is
  still committed (it must never run twice), the remaining actions of the
  stale cycle are dropped and left for the fresh cycle to propose again.

States: ``idle -> extracting -> dispatching -> idle``, terminal ``closed``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from ...events import (
    ActionCommitted,
    ActionDispatched,
    ActionFailed,
    ActionRejected,
    AssistantUnavailable,
    CycleCompleted,
    CycleStarted,
    CycleSuperseded,
    EventBus,
    TranscriptReceived,
    UIContextUpdated,
)
from ...services.settings import Settings
from ..errors import ExtractionError, ExtractionTimeout, ExtractionUnavailable
from ..tools.errors import ErrorCode
from ..memory.buffers import ActionRecord, SlidingWindowStore
from .extraction import IntentExtractionAdapter
from .tools.types import ExecutionResult
from .types import CycleReport, OrchestratorState, ProposedAction
from .ui_context import UIContextMirror, UIContextSnapshot
from .verification import verify_batch

__all__ = ["ActionExecutor", "CommandOrchestrator", "OrchestratorConfig"]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ActionExecutor(Protocol):
    async def execute(self, action: ProposedAction) -> ExecutionResult:
        ...


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Tunables for one orchestration session.

    Attributes:
        transcript_window_chars: Size of the transcript window.
        ledger_size: Number of executed actions remembered.
        extraction_timeout: Seconds to wait for the extraction step.
        backoff_base_seconds: Delay before the cycle following one failure.
        backoff_max_seconds: Upper bound for the exponential backoff.
    """

    transcript_window_chars: int = 2000
    ledger_size: int = 10
    extraction_timeout: float = 8.0
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            transcript_window_chars=settings.transcript_window_chars,
            ledger_size=settings.ledger_size,
            extraction_timeout=settings.extraction_timeout,
            backoff_base_seconds=settings.backoff_base_seconds,
            backoff_max_seconds=settings.backoff_max_seconds,
        )

    def backoff_for(self, failures: int) -> float:
        if failures <= 0 or self.backoff_base_seconds <= 0:
            return 0.0
        return min(self.backoff_base_seconds * (2 ** (failures - 1)), self.backoff_max_seconds)


class CommandOrchestrator:
    """Turns transcript updates into exactly-once tool executions.

    Example::

        async with CommandOrchestrator(extractor, executor, bus=bus) as engine:
            engine.submit_transcript("open a window saying cheese")
            await engine.wait_idle()
    """

    def __init__(
        self,
        extractor: IntentExtractionAdapter,
        executor: ActionExecutor,
        *,
        bus: EventBus | None = None,
        ui_context: UIContextMirror | None = None,
        config: OrchestratorConfig | None = None,
        resolve_tool: Callable[[str], str | None] | None = None,
    ) -> None:
        self._extractor = extractor
        self._executor = executor
        self._bus = bus or EventBus()
        self._ui_context = ui_context or UIContextMirror()
        self._config = config or OrchestratorConfig()
        self._resolve_tool = resolve_tool
        self._store = SlidingWindowStore(
            max_chars=self._config.transcript_window_chars,
            max_records=self._config.ledger_size,
        )
        self._state: OrchestratorState = "idle"
        self._generation = 0
        self._failures = 0
        self._wake = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._worker: asyncio.Task[None] | None = None
        self._closed = False
        self._last_report: CycleReport | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def store(self) -> SlidingWindowStore:
        return self._store

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def ui_context(self) -> UIContextMirror:
        return self._ui_context

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    def actions(self) -> tuple[ActionRecord, ...]:
        return self._store.ledger.records()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker task on the running loop. Idempotent."""
        if self._closed:
            raise RuntimeError("Orchestrator is closed")
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(), name="hearsay-orchestrator")

    async def aclose(self) -> None:
        """Stop the worker. In-flight extraction results are discarded."""
        if self._closed:
            return
        self._closed = True
        self._state = "closed"
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        self._idle.set()
        LOGGER.debug("Orchestrator closed at generation %d", self._generation)

    async def __aenter__(self) -> "CommandOrchestrator":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def wait_idle(self) -> None:
        """Wait until every submitted update has been fully processed."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def submit_transcript(self, transcript: str) -> int:
        """Merge an entire-transcript payload and schedule a cycle. Returns the new generation."""
        self._ensure_open()
        delta = self._store.merge_transcript(transcript or "")
        return self._schedule(delta)

    def submit_delta(self, delta: str) -> int:
        """Append raw new speech to the window and schedule a cycle."""
        self._ensure_open()
        self._store.append_transcript(delta or "")
        return self._schedule(delta or "")

    def update_ui_context(self, payload: Mapping[str, Any]) -> UIContextSnapshot:
        """Replace the UI context mirror with ``{"windows": [...]}`` from the UI layer."""
        snapshot = self._ui_context.replace_from_payload(payload)
        self._bus.publish(UIContextUpdated(window_count=len(snapshot)))
        return snapshot

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Orchestrator is closed")

    def _schedule(self, delta: str) -> int:
        self._generation += 1
        generation = self._generation
        self._bus.publish(
            TranscriptReceived(
                generation=generation,
                delta=delta,
                window_length=len(self._store.transcript),
            )
        )
        self._idle.clear()
        self._wake.set()
        if self._worker is None or self._worker.done():
            with contextlib.suppress(RuntimeError):
                self.start()
        return generation

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while not self._closed:
            await self._wake.wait()
            self._wake.clear()
            delay = self._config.backoff_for(self._failures)
            if delay > 0:
                LOGGER.info("Backing off %.1fs after %d failed extraction(s)", delay, self._failures)
                await asyncio.sleep(delay)
                self._wake.clear()
            report = CycleReport(generation=self._generation)
            try:
                await self._run_cycle(report)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._handle_cycle_crash(report, exc)
            finally:
                self._last_report = report
                if not self._closed:
                    self._state = "idle"
            if not self._wake.is_set():
                self._idle.set()

    async def _run_cycle(self, report: CycleReport) -> None:
        generation = report.generation
        self._state = "extracting"
        snapshot = self._store.snapshot(self._ui_context.current, generation=generation)
        self._bus.publish(
            CycleStarted(
                generation=generation,
                transcript_length=len(snapshot.transcript),
                ledger_size=len(snapshot.actions),
            )
        )
        LOGGER.debug("Cycle %d extracting (%d chars, %d actions)", generation, len(snapshot.transcript), len(snapshot.actions))

        try:
            proposed = await self._extract(snapshot)
        except ExtractionError as exc:
            self._handle_extraction_failure(report, exc)
            return
        self._failures = 0
        report.proposed = len(proposed)

        if self._generation != generation:
            report.superseded = True
            LOGGER.info(
                "Cycle %d superseded by %d during extraction; discarding %d proposal(s)",
                generation,
                self._generation,
                len(proposed),
            )
            self._bus.publish(
                CycleSuperseded(
                    generation=generation,
                    current_generation=self._generation,
                    phase="extracting",
                    dropped=len(proposed),
                )
            )
            return

        outcome = verify_batch(
            [self._canonicalize(action) for action in proposed],
            transcript=self._store.transcript,
            ledger=self._store.ledger,
            is_known_tool=self._is_known_tool if self._resolve_tool is not None else None,
        )
        report.rejected = len(outcome.rejected)
        for rejection in outcome.rejected:
            self._bus.publish(
                ActionRejected(
                    tool=rejection.tool,
                    parameters=rejection.parameters,
                    source_text=rejection.source_text,
                    reason=rejection.reason,
                )
            )

        self._state = "dispatching"
        for index, action in enumerate(outcome.accepted):
            if self._generation != generation:
                dropped = len(outcome.accepted) - index
                report.superseded = True
                LOGGER.info(
                    "Cycle %d superseded by %d during dispatch; leaving %d action(s) to the next cycle",
                    generation,
                    self._generation,
                    dropped,
                )
                self._bus.publish(
                    CycleSuperseded(
                        generation=generation,
                        current_generation=self._generation,
                        phase="dispatching",
                        dropped=dropped,
                    )
                )
                break
            await self._dispatch(action, generation, report)

        self._bus.publish(
            CycleCompleted(
                generation=generation,
                proposed=report.proposed,
                committed=report.committed,
                rejected=report.rejected,
                failed=report.failed,
            )
        )

    async def _extract(self, snapshot) -> list[ProposedAction]:
        timeout = self._config.extraction_timeout
        try:
            if timeout and timeout > 0:
                return list(await asyncio.wait_for(self._extractor.extract(snapshot), timeout=timeout))
            return list(await self._extractor.extract(snapshot))
        except ExtractionError:
            raise
        except asyncio.TimeoutError as exc:
            raise ExtractionTimeout(f"Intent extraction exceeded {timeout:.1f}s", cause=exc) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Intent extraction raised unexpectedly")
            raise ExtractionUnavailable(f"Intent extraction failed: {exc}", cause=exc) from exc

    def _handle_extraction_failure(self, report: CycleReport, exc: ExtractionError) -> None:
        self._failures += 1
        retry_in = self._config.backoff_for(self._failures)
        report.error = exc.kind
        LOGGER.warning(
            "Cycle %d extraction failed (%s): %s; %d consecutive failure(s)",
            report.generation,
            exc.kind,
            exc.message,
            self._failures,
        )
        self._bus.publish(AssistantUnavailable(message=exc.message, kind=exc.kind, retry_in=retry_in))

    def _handle_cycle_crash(self, report: CycleReport, exc: Exception) -> None:
        report.error = "internal"
        LOGGER.exception("Cycle %d failed unexpectedly", report.generation)
        self._bus.publish(
            AssistantUnavailable(
                message=f"Internal error while processing the transcript: {exc}",
                kind="internal",
                error_code="INTERNAL_ERROR",
            )
        )
        self._bus.publish(
            CycleCompleted(
                generation=report.generation,
                proposed=report.proposed,
                committed=report.committed,
                rejected=report.rejected,
                failed=report.failed,
                error=report.error,
            )
        )

    async def _dispatch(self, action: ProposedAction, generation: int, report: CycleReport) -> None:
        self._bus.publish(
            ActionDispatched(
                tool=action.tool,
                parameters=action.parameters,
                source_text=action.source_text,
                generation=generation,
            )
        )
        try:
            result = await self._executor.execute(action)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Executor raised for %s", action.tool)
            result = ExecutionResult(success=False, error=str(exc) or type(exc).__name__, error_code=ErrorCode.INTERNAL_ERROR)

        if not result.success:
            report.failed += 1
            LOGGER.info("Action %s failed: %s", action.tool, result.error)
            self._bus.publish(
                ActionFailed(
                    tool=action.tool,
                    parameters=action.parameters,
                    source_text=action.source_text,
                    error=result.error or "unknown error",
                    error_code=result.error_code,
                )
            )
            return

        record = ActionRecord(tool=action.tool, parameters=dict(action.parameters), source_text=action.source_text)
        self._store.record_action(record)
        report.committed += 1
        LOGGER.info("Committed %s for %r", action.tool, action.source_text)
        self._bus.publish(
            ActionCommitted(
                action_id=record.action_id,
                tool=record.tool,
                parameters=record.parameters,
                source_text=record.source_text,
                output=result.output,
            )
        )

    def _canonicalize(self, action: ProposedAction) -> ProposedAction:
        if self._resolve_tool is None:
            return action
        name = self._resolve_tool(action.tool)
        if name is None or name == action.tool:
            return action
        return ProposedAction(tool=name, parameters=action.parameters, source_text=action.source_text)

    def _is_known_tool(self, name: str) -> bool:
        return self._resolve_tool is not None and self._resolve_tool(name) is not None
