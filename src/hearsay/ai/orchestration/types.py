"""Value types that flow between extraction, verification and dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from ..memory.buffers import ActionKey, action_key

__all__ = ["ProposedAction", "OrchestratorState", "CycleReport"]

OrchestratorState = Literal["idle", "extracting", "dispatching", "closed"]


@dataclass(slots=True, frozen=True)
class ProposedAction:
    """Candidate action returned by intent extraction. Untrusted until verified.

    Attributes:
        tool: Name of the tool to invoke.
        parameters: Tool arguments as produced by the extraction service.
        source_text: Phrase of the transcript that justified the action.
    """

    tool: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    source_text: str = ""

    @property
    def key(self) -> ActionKey:
        return action_key(self.tool, self.parameters, self.source_text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "parameters": dict(self.parameters),
            "sourceText": self.source_text,
        }


@dataclass(slots=True)
class CycleReport:
    """Tally of one processing cycle, used for logging and the session event log."""

    generation: int
    proposed: int = 0
    committed: int = 0
    rejected: int = 0
    failed: int = 0
    superseded: bool = False
    error: str | None = None
