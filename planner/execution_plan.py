"""Execution plan models: actions, phases, plans and their validated form."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


class ActionStatus(str, Enum):
    """Lifecycle status of a single action."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        # Blocked is permanent for the plan run.
        return self in (ActionStatus.COMPLETED, ActionStatus.FAILED, ActionStatus.BLOCKED)


class PlanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex[:10]}"


@dataclass
class Action:
    """Atomic unit of work executed by one tool."""

    id: int
    title: str
    tool: str
    target: str
    operation: str
    purpose: str = ""
    success_criteria: str = ""
    dependencies: list[int] = field(default_factory=list)
    content: str = ""
    status: ActionStatus = ActionStatus.PENDING
    result: str = ""
    error: str = ""

    def __post_init__(self) -> None:
        # Ordered set: keep first occurrence only.
        self.dependencies = list(dict.fromkeys(self.dependencies))


@dataclass
class Phase:
    """Named group of actions; phases are executed in declared order."""

    name: str
    actions: list[Action] = field(default_factory=list)
    emoji: str = ""


@dataclass
class Plan:
    """Ordered phases of actions plus free-text planning notes."""

    title: str
    phases: list[Phase] = field(default_factory=list)
    overview: str = ""
    phase_dependencies: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    expected_outcome: str = ""
    id: str = field(default_factory=new_plan_id)
    depth: int = 0
    parent_request_id: str | None = None

    def all_actions(self) -> list[Action]:
        return [action for phase in self.phases for action in phase.actions]

    def find_action(self, action_id: int) -> Action | None:
        for action in self.all_actions():
            if action.id == action_id:
                return action
        return None

    def progress(self) -> tuple[int, int]:
        actions = self.all_actions()
        completed = sum(1 for a in actions if a.status is ActionStatus.COMPLETED)
        return completed, len(actions)


@dataclass
class ValidatedPlan:
    """A plan that passed validation, annotated with its execution order.

    ``phase_order`` holds action ids per phase sorted by dependency depth and
    then id. ``rank`` is each action's position in the concatenated order and
    ``dependents`` is the reverse-dependency index used at completion time;
    ``actions`` maps ids to actions so lookups never scan the plan.
    """

    plan: Plan
    phase_order: list[list[int]]
    depths: dict[int, int]
    dependents: dict[int, list[int]]
    rank: dict[int, int]
    phase_index: dict[int, int]
    actions: dict[int, Action]

    @property
    def id(self) -> str:
        return self.plan.id

    @property
    def depth(self) -> int:
        return self.plan.depth

    def action(self, action_id: int) -> Action:
        try:
            return self.actions[action_id]
        except KeyError:
            raise KeyError(f"Action {action_id} not in plan {self.plan.id}") from None

    def ordered_ids(self) -> list[int]:
        return [action_id for phase in self.phase_order for action_id in phase]

    def ordered_actions(self) -> list[Action]:
        return [self.action(action_id) for action_id in self.ordered_ids()]
