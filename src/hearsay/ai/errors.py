"""Failure types raised by the intent extraction step and returned by verification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


class ExtractionError(Exception):
    """Base class for intent extraction failures.

    ``kind`` is a short stable label surfaced in notifications and logs.
    """

    kind: str = "error"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ExtractionUnavailable(ExtractionError):
    """The extraction service is unreachable, rejected the credentials or failed upstream."""

    kind = "unavailable"


class ExtractionTimeout(ExtractionError):
    """The extraction call exceeded its bounded wait."""

    kind = "timeout"


class MalformedExtractionResponse(ExtractionError):
    """The service responded, but not with the agreed JSON shape."""

    kind = "malformed"

    def __init__(self, message: str, *, raw: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.raw = raw


class RejectionReason:
    SOURCE_NOT_IN_TRANSCRIPT = "source_not_in_transcript"
    ALREADY_EXECUTED = "already_executed"
    DUPLICATE_IN_BATCH = "duplicate_in_batch"
    UNKNOWN_TOOL = "unknown_tool"


@dataclass(slots=True, frozen=True)
class VerificationRejected:
    """Outcome of a proposed action that verification filtered out. Never raised."""

    tool: str
    parameters: Mapping[str, Any]
    source_text: str
    reason: str
    detail: str = ""


__all__ = [
    "ExtractionError",
    "ExtractionUnavailable",
    "ExtractionTimeout",
    "MalformedExtractionResponse",
    "RejectionReason",
    "VerificationRejected",
]
