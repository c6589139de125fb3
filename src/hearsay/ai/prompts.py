"""Prompt templates for intent extraction."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

RESPONSE_KEY = "new_tool_calls"


def extraction_system_prompt(tool_catalog: Sequence[Mapping[str, Any]]) -> str:
    """System prompt describing the diffing contract and the available tools."""

    return f"""You turn a live speech transcript into UI actions.

## Input

You receive a JSON object with:
- fullTranscript: everything the user has said recently, oldest first. It grows over time and may contain earlier commands that were already handled.
- actionHistory: the actions already executed, each with the sourceText phrase that caused it.
- uiContext: the windows currently open (id, title, type, createdAt, isActive).

## Task

{_diff_rules()}

## Output

Respond with a single JSON object and nothing else:
{{"{RESPONSE_KEY}": [{{"tool": "<tool name>", "parameters": {{...}}, "sourceText": "<exact phrase>"}}]}}

Return {{"{RESPONSE_KEY}": []}} when there is nothing new to do.

## Available Tools

{_tool_section(tool_catalog)}
"""


def _diff_rules() -> str:
    return """1. Find commands in fullTranscript whose phrase is NOT already represented in actionHistory. Only those are new.
2. sourceText MUST be copied verbatim from fullTranscript: same words, same casing, same punctuation.
3. Ignore commands that are still incomplete, e.g. "open a window saying" with nothing after it. They will be completed by later speech.
4. When the user asks for several instances ("open 3 windows saying hello"), emit one call per instance, each with a distinct sourceText slice of the phrase (for example "open 3", "3 windows", "windows saying hello").
5. Never repeat an action from actionHistory, even if its phrase is still in the transcript.
6. Refer to existing windows by id from uiContext, or by selector (newest, oldest, active, all) when the user does not name one.
7. Do not invent commands from small talk. When unsure, return nothing.
8. When the speech recognizer corrects itself, the corrected clause is appended again at the end ("open a window saying cheese open a window saying peas"). Act on the latest version of the clause and take sourceText from that appended copy."""


def _tool_section(tool_catalog: Sequence[Mapping[str, Any]]) -> str:
    if not tool_catalog:
        return "(none)"
    lines = []
    for entry in tool_catalog:
        parameters = json.dumps(entry.get("parameters") or {}, ensure_ascii=False, sort_keys=True)
        lines.append(f"- **{entry.get('name')}**: {entry.get('description', '')}\n  parameters: {parameters}")
    return "\n".join(lines)


def extraction_user_prompt(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, default=str)


__all__ = ["RESPONSE_KEY", "extraction_system_prompt", "extraction_user_prompt"]
