"""Strict wire schemas for planning responses from the LLM."""

from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as SchemaError

from core.errors import PlanParseError


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)


class ActionSpec(_Strict):
    """One action as the planner must describe it. Every field is required."""

    id: int
    title: str
    tool: str
    target: str
    operation: str
    purpose: str
    success_criteria: str
    dependencies: list[int]
    content: str


class PhaseSpec(_Strict):
    name: str
    emoji: str
    actions: list[ActionSpec]


class PlanSpec(_Strict):
    title: str
    overview: str
    phases: list[PhaseSpec]
    phase_dependencies: list[str]
    risks: list[str]
    expected_outcome: str


class PlanDecision(_Strict):
    decision: Literal["plan"]
    analysis: str
    plan: PlanSpec


class DirectDecision(_Strict):
    decision: Literal["direct"]
    analysis: str
    action: ActionSpec


PlanningDecision = Annotated[PlanDecision | DirectDecision, Field(discriminator="decision")]

_decision_adapter: TypeAdapter[PlanDecision | DirectDecision] = TypeAdapter(PlanningDecision)

PLANNING_RESPONSE_SCHEMA = """\
Respond with ONLY one JSON object, no markdown, no commentary. Use exactly one of
these two shapes and include every field:

1. A multi-phase plan:
{
  "decision": "plan",
  "analysis": "<why this needs several steps>",
  "plan": {
    "title": "<short title>",
    "overview": "<approach>",
    "phases": [
      {"name": "Analysis", "emoji": "🔍", "actions": [
        {"id": 1, "title": "...", "tool": "<tool name>", "target": "<file/dir/pattern>",
         "operation": "<what to do>", "purpose": "<why>", "success_criteria": "<how to tell>",
         "dependencies": [], "content": ""}
      ]},
      {"name": "Implementation", "emoji": "🛠️", "actions": [...]},
      {"name": "Verification", "emoji": "✅", "actions": [...]}
    ],
    "phase_dependencies": ["Implementation needs Analysis findings"],
    "risks": ["<risk>"],
    "expected_outcome": "<final state>"
  }
}

2. A single direct action:
{"decision": "direct", "analysis": "<why one step is enough>", "action": {<one action as above>}}

Rules: action ids are unique integers starting at 1; dependencies list ids of
actions in the same or an earlier phase; "content" is the text to write for
write_file and "" otherwise.
"""

_FENCE_RE = re.compile(r"```(?:json)?\s*|```\s*")


def extract_json_text(response: str) -> str:
    """Strip markdown fences and surrounding prose from an LLM reply."""
    cleaned = _FENCE_RE.sub("", response).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end < start:
        return cleaned
    return cleaned[start : end + 1]


def parse_planning_response(response: str) -> PlanDecision | DirectDecision:
    """Parse a planning reply. Any deviation from the schema raises ``PlanParseError``."""
    text = extract_json_text(response)
    if not text:
        raise PlanParseError("empty planning response")
    try:
        return _decision_adapter.validate_json(text)
    except SchemaError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()[:5]
        )
        raise PlanParseError(f"planning response does not match schema: {problems}") from exc
