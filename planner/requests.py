"""Request shapes admitted to the execution stack."""

from __future__ import annotations

from dataclasses import dataclass

from planner.execution_plan import Action


@dataclass
class UserPrompt:
    """Raw input not yet classified or planned."""

    id: str
    content: str


@dataclass
class PlanAction:
    """One action of a validated plan, with the context needed to run it."""

    id: str
    plan_id: str
    action: Action
    context: str = ""


@dataclass
class NestedPlan:
    """Sub-planning request spawned by an executing action.

    ``depth`` counts nested-plan ancestors. ``plan_id``/``action_id`` name the
    action that spawned it, which is resolved when the sub-plan finishes.
    """

    id: str
    parent_id: str
    request: str
    depth: int
    context: str = ""
    plan_id: str | None = None
    action_id: int | None = None


Request = UserPrompt | PlanAction | NestedPlan


def request_kind(request: Request) -> str:
    if isinstance(request, UserPrompt):
        return "user_prompt"
    if isinstance(request, PlanAction):
        return "plan_action"
    return "nested_plan"
