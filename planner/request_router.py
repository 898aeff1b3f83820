"""Request classification and conversion of planning decisions into plans.

The conversation state is passed into and returned from every call; the
router itself holds no mutable state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from planner.execution_plan import Action, Phase, Plan
from planner.schemas import ActionSpec, DirectDecision, PlanDecision


class ConversationState(str, Enum):
    CONVERSATIONAL = "conversational"
    PLANNING = "planning"
    IMPLEMENTING = "implementing"
    TROUBLESHOOTING = "troubleshooting"
    EXPLORING = "exploring"


@dataclass
class DirectAction:
    """Input that names one tool call and bypasses planning."""

    action: Action


@dataclass
class NeedsPlanning:
    request: str


Classification = DirectAction | NeedsPlanning

# Checked in order; first match wins.
_STATE_KEYWORDS: list[tuple[ConversationState, tuple[str, ...]]] = [
    (
        ConversationState.TROUBLESHOOTING,
        ("error", "fix", "bug", "fail", "broken", "crash", "traceback", "debug", "why does"),
    ),
    (
        ConversationState.IMPLEMENTING,
        ("implement", "add", "create", "write", "build", "refactor", "update", "rename", "change"),
    ),
    (ConversationState.PLANNING, ("plan", "design", "steps", "roadmap", "approach")),
    (
        ConversationState.EXPLORING,
        ("find", "where", "explain", "show", "list", "search", "look", "what is", "how does"),
    ),
]

_DIRECT_RE = re.compile(r"^/(?P<tool>[A-Za-z_][\w-]*)\s*(?P<rest>.*)$", re.DOTALL)


class RequestRouter:
    """Classifies input as a direct action or a planning request."""

    def next_state(
        self,
        text: str,
        state: ConversationState,
        previous_failed: bool = False,
    ) -> ConversationState:
        """Derive the conversation state from the input and the last cycle's outcome."""
        if previous_failed:
            return ConversationState.TROUBLESHOOTING
        lowered = text.lower()
        for candidate, keywords in _STATE_KEYWORDS:
            if any(re.search(rf"\b{re.escape(kw)}", lowered) for kw in keywords):
                return candidate
        if state is ConversationState.TROUBLESHOOTING:
            # Stay in troubleshooting until the input moves elsewhere.
            return state
        return ConversationState.CONVERSATIONAL

    def classify(
        self,
        text: str,
        state: ConversationState,
        previous_failed: bool = False,
    ) -> tuple[Classification, ConversationState]:
        """Return the classification and the updated conversation state.

        Explicit tool syntax ``/<tool> <target> [:: <operation>]`` is a direct
        action; anything else needs planning.
        """
        stripped = text.strip()
        new_state = self.next_state(stripped, state, previous_failed)
        match = _DIRECT_RE.match(stripped)
        if match:
            tool = match.group("tool")
            rest = match.group("rest").strip()
            target, _, operation = rest.partition("::")
            target = target.strip()
            operation = operation.strip() or f"{tool} {target}".strip()
            action = Action(
                id=1,
                title=f"{tool} {target}".strip(),
                tool=tool,
                target=target,
                operation=operation,
                purpose="Direct user request",
                success_criteria="Tool reports success",
            )
            return DirectAction(action=action), new_state
        return NeedsPlanning(request=stripped), new_state

    @staticmethod
    def direct_plan(
        action: Action,
        *,
        depth: int = 0,
        parent_request_id: str | None = None,
        title: str | None = None,
    ) -> Plan:
        """Wrap one action in a synthetic single-phase plan."""
        action.dependencies = []
        return Plan(
            title=title or action.title,
            phases=[Phase(name="Implementation", actions=[action])],
            overview="Direct action",
            depth=depth,
            parent_request_id=parent_request_id,
        )

    def plan_from_decision(
        self,
        decision: PlanDecision | DirectDecision,
        *,
        depth: int = 0,
        parent_request_id: str | None = None,
    ) -> Plan:
        """Convert a parsed planning decision into a candidate plan."""
        if isinstance(decision, DirectDecision):
            return self.direct_plan(
                _action_from_spec(decision.action),
                depth=depth,
                parent_request_id=parent_request_id,
            )
        spec = decision.plan
        return Plan(
            title=spec.title,
            overview=spec.overview,
            phases=[
                Phase(
                    name=phase.name,
                    emoji=phase.emoji,
                    actions=[_action_from_spec(a) for a in phase.actions],
                )
                for phase in spec.phases
            ],
            phase_dependencies=list(spec.phase_dependencies),
            risks=list(spec.risks),
            expected_outcome=spec.expected_outcome,
            depth=depth,
            parent_request_id=parent_request_id,
        )


def _action_from_spec(spec: ActionSpec) -> Action:
    return Action(
        id=spec.id,
        title=spec.title,
        tool=spec.tool,
        target=spec.target,
        operation=spec.operation,
        purpose=spec.purpose,
        success_criteria=spec.success_criteria,
        dependencies=list(spec.dependencies),
        content=spec.content,
    )
