"""Transcript-to-action orchestration: extraction, verification, dispatch.

Import from the submodules directly, e.g.
``from hearsay.ai.orchestration.orchestrator import CommandOrchestrator``.
"""
