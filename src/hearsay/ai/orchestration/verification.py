"""Idempotence backstop applied to every batch the extraction step proposes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..errors import RejectionReason, VerificationRejected
from ..memory.buffers import ActionKey, ActionLedger, TranscriptWindow
from .types import ProposedAction

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class VerificationOutcome:
    accepted: list[ProposedAction] = field(default_factory=list)
    rejected: list[VerificationRejected] = field(default_factory=list)


def verify_batch(
    actions: Sequence[ProposedAction],
    *,
    transcript: TranscriptWindow,
    ledger: ActionLedger,
    is_known_tool: Callable[[str], bool] | None = None,
) -> VerificationOutcome:
    """Split ``actions`` into accepted and rejected, preserving order.

    An action is rejected when its source text is not a literal substring of
    the transcript window, when its key is already in the ledger, or when an
    earlier action in the same batch has the same key. Unknown tools are
    rejected when ``is_known_tool`` is given.
    """

    outcome = VerificationOutcome()
    seen: set[ActionKey] = set()
    for action in actions:
        rejection = _check(action, transcript, ledger, seen, is_known_tool)
        if rejection is None:
            seen.add(action.key)
            outcome.accepted.append(action)
            continue
        outcome.rejected.append(rejection)
        if rejection.reason == RejectionReason.SOURCE_NOT_IN_TRANSCRIPT:
            LOGGER.warning(
                "Corroboration failed for %s: source text %r not found in transcript window",
                action.tool,
                action.source_text,
            )
        else:
            LOGGER.info("Rejected %s (%s): %s", action.tool, rejection.reason, rejection.detail)
    return outcome


def _check(
    action: ProposedAction,
    transcript: TranscriptWindow,
    ledger: ActionLedger,
    seen: set[ActionKey],
    is_known_tool: Callable[[str], bool] | None,
) -> VerificationRejected | None:
    def reject(reason: str, detail: str) -> VerificationRejected:
        return VerificationRejected(
            tool=action.tool,
            parameters=dict(action.parameters),
            source_text=action.source_text,
            reason=reason,
            detail=detail,
        )

    if is_known_tool is not None and not is_known_tool(action.tool):
        return reject(RejectionReason.UNKNOWN_TOOL, f"no tool named {action.tool!r}")
    if action.source_text not in transcript:
        return reject(RejectionReason.SOURCE_NOT_IN_TRANSCRIPT, "source text is not in the transcript window")
    key = action.key
    if ledger.contains(key):
        return reject(RejectionReason.ALREADY_EXECUTED, "an identical action is already recorded")
    if key in seen:
        return reject(RejectionReason.DUPLICATE_IN_BATCH, "repeated within the same response")
    return None


__all__ = ["VerificationOutcome", "verify_batch"]
