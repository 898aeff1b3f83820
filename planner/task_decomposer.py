"""Planning client: turns a request into a parsed planning decision via the LLM."""

from __future__ import annotations

import logging
from typing import Any

from core.errors import PlanParseError
from planner.request_router import ConversationState
from planner.schemas import (
    PLANNING_RESPONSE_SCHEMA,
    DirectDecision,
    PlanDecision,
    parse_planning_response,
)

logger = logging.getLogger("planexec.task_decomposer")

_DECOMPOSITION_SYSTEM_PROMPT = """\
You are the planning engine of a coding assistant command-line application.
Given a user request, decide whether it is a single executable action or needs
a step-by-step plan. Plans are grouped into the phases Analysis,
Implementation and Verification, in that order. Each action names exactly one
tool and must be specific enough to execute without further decisions.

Available tools:
{tool_list}

Use the tool "task" for a step that itself needs its own sub-plan.
"""

_STATE_GUIDANCE = {
    ConversationState.CONVERSATIONAL: (
        "The user is chatting. Prefer a single direct action unless the request "
        "clearly needs several steps."
    ),
    ConversationState.PLANNING: (
        "The user wants a plan. Be thorough in the Analysis phase and list risks."
    ),
    ConversationState.IMPLEMENTING: (
        "The user wants changes made. Keep Analysis short, make Implementation "
        "actions atomic, and verify every change."
    ),
    ConversationState.TROUBLESHOOTING: (
        "Something failed. Start by reproducing and inspecting the failure before "
        "changing anything."
    ),
    ConversationState.EXPLORING: (
        "The user is exploring the project. Favour read-only tools and summarise findings."
    ),
}

_CORRECTIVE_INSTRUCTION = """\
Your previous reply could not be used: {error}
Reply again with ONLY a JSON object that matches the required shape exactly.
"""


class TaskDecomposer:
    """Builds planning prompts and parses the LLM's JSON decision."""

    def __init__(self, llm: Any, tool_names: list[str] | None = None) -> None:
        self.llm = llm
        self.tool_names = tool_names or []

    def build_messages(
        self,
        request: str,
        *,
        state: ConversationState,
        context: str = "",
        corrective_error: str | None = None,
    ) -> list[dict[str, str]]:
        tool_list = "\n".join(f"- {name}" for name in self.tool_names) or "- mock_tool"
        system_prompt = _DECOMPOSITION_SYSTEM_PROMPT.format(tool_list=tool_list)
        system_prompt += f"\n{_STATE_GUIDANCE[state]}\n\n{PLANNING_RESPONSE_SCHEMA}"

        user_prompt = f"Decompose this request: {request}"
        if context:
            user_prompt += f"\n\nContext:\n{context}"
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        if corrective_error is not None:
            messages.append(
                {"role": "user", "content": _CORRECTIVE_INSTRUCTION.format(error=corrective_error)}
            )
        return messages

    def request_plan(
        self,
        request: str,
        *,
        state: ConversationState,
        context: str = "",
        corrective_error: str | None = None,
    ) -> PlanDecision | DirectDecision:
        """One planning call. Raises ``PlanParseError`` on any unusable reply."""
        messages = self.build_messages(
            request, state=state, context=context, corrective_error=corrective_error
        )
        try:
            response = self.llm.chat(messages)
        except Exception as exc:
            raise PlanParseError(f"planning call failed: {exc}") from exc
        decision = parse_planning_response(response)
        logger.info("Planning decision '%s' for request: %s", decision.decision, request[:80])
        return decision
