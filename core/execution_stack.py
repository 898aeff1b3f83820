"""Execution stack: override LIFO plus ready FIFO with plan status tracking.

The stack is owned by a single processing loop. It performs no I/O; every
mutation is a plain in-memory transition so ordering and at-most-once
scheduling hold without locks.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

from core.errors import DepthExceeded, InvalidTransition
from planner.dependency_graph import newly_ready, transitive_dependents
from planner.execution_plan import Action, ActionStatus, PlanStatus, ValidatedPlan
from planner.requests import NestedPlan, PlanAction, Request, UserPrompt

logger = logging.getLogger("planexec.execution_stack")

MAX_DEPTH = 5
CANCELLED = "Cancelled"

ActionKey = tuple[str, int]


@dataclass
class PlanCounts:
    total: int = 0
    completed: int = 0
    failed: int = 0


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max(max_len - 3, 0)] + "..."


def build_action_context(validated: ValidatedPlan, action: Action, counts: PlanCounts) -> str:
    """Context text handed to the executor of ``action``."""
    plan = validated.plan
    completed, total = counts.completed, counts.total
    parts = [
        f"## Plan: {plan.title}",
        _truncate(plan.overview, 300) if plan.overview else "",
        f"- Progress: {completed}/{total} actions completed",
        f"- Phase: {plan.phases[validated.phase_index[action.id]].name}",
    ]
    dep_lines = []
    for dep_id in action.dependencies:
        dep = validated.action(dep_id)
        dep_lines.append(f"### Action {dep_id} ({dep.title})\n{_truncate(dep.result, 200)}")
    if dep_lines:
        parts.append("## Dependency Results\n" + "\n\n".join(dep_lines))
    return "\n".join(part for part in parts if part)


class ExecutionStack:
    """Dual-container scheduler for user prompts, plan actions and nested plans."""

    def __init__(self, max_depth: int = MAX_DEPTH) -> None:
        self.max_depth = max_depth
        self.current_depth = 0
        self._override: list[UserPrompt | NestedPlan] = []
        self._ready: deque[PlanAction] = deque()
        self._scheduled: set[ActionKey] = set()
        self._plans: dict[str, ValidatedPlan] = {}
        self._statuses: dict[str, dict[int, ActionStatus]] = {}
        self._block_reasons: dict[ActionKey, str] = {}
        self._counts: dict[str, PlanCounts] = {}
        self._plan_status: dict[str, PlanStatus] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def generate_id(self) -> str:
        request_id = f"req_{self._next_id}"
        self._next_id += 1
        return request_id

    def push_user_prompt(self, content: str, request_id: str | None = None) -> UserPrompt:
        """Place a user prompt on the override container."""
        request = UserPrompt(id=request_id or self.generate_id(), content=content)
        self._override.append(request)
        logger.info("Queued user prompt %s", request.id)
        return request

    def push_plan_actions(self, validated: ValidatedPlan) -> list[PlanAction]:
        """Register a validated plan and enqueue the actions that are ready now."""
        plan_id = validated.id
        if plan_id in self._plans:
            raise InvalidTransition(f"Plan {plan_id} already admitted")
        self._plans[plan_id] = validated
        self._plan_status[plan_id] = PlanStatus.ACTIVE
        actions = validated.ordered_actions()
        self._counts[plan_id] = PlanCounts(total=len(actions))
        for action in actions:
            self._set_status(plan_id, action, ActionStatus.PENDING)

        queued = [
            self._enqueue(validated, action)
            for action in actions
            if not action.dependencies
        ]
        logger.info(
            "Admitted plan %s (%d actions, %d ready)", plan_id, len(actions), len(queued)
        )
        self._recompute(plan_id)
        return queued

    def push_nested_plan(
        self,
        parent_id: str,
        request: str,
        depth: int,
        *,
        context: str = "",
        plan_id: str | None = None,
        action_id: int | None = None,
    ) -> NestedPlan:
        """Place a sub-planning request on the override container.

        ``depth`` is the depth of the spawning request; the stored depth is one
        more. Raises ``DepthExceeded`` without touching the stack when that
        would pass ``max_depth``.
        """
        nested_depth = depth + 1
        if nested_depth > self.max_depth:
            logger.warning("Rejected nested plan from %s at depth %d", parent_id, nested_depth)
            raise DepthExceeded(nested_depth, self.max_depth)
        nested = NestedPlan(
            id=self.generate_id(),
            parent_id=parent_id,
            request=request,
            depth=nested_depth,
            context=context,
            plan_id=plan_id,
            action_id=action_id,
        )
        self._override.append(nested)
        logger.info("Queued nested plan %s (depth %d) from %s", nested.id, nested_depth, parent_id)
        return nested

    def _enqueue(self, validated: ValidatedPlan, action: Action) -> PlanAction:
        key = (validated.id, action.id)
        if key in self._scheduled:
            raise InvalidTransition(f"Action {action.id} of {validated.id} already scheduled")
        request = PlanAction(
            id=self.generate_id(),
            plan_id=validated.id,
            action=action,
            context=build_action_context(validated, action, self._counts[validated.id]),
        )
        self._ready.append(request)
        self._scheduled.add(key)
        return request

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def pop_request(self) -> Request | None:
        """Override container first (LIFO), then ready container (FIFO)."""
        if self._override:
            request = self._override.pop()
            self.current_depth = request.depth if isinstance(request, NestedPlan) else 0
            return request
        if self._ready:
            request = self._ready.popleft()
            self._scheduled.discard((request.plan_id, request.action.id))
            self.current_depth = self._plans[request.plan_id].depth
            return request
        return None

    def start_action(self, plan_id: str, action_id: int) -> None:
        action = self._lookup(plan_id, action_id)
        status = self._statuses[plan_id][action_id]
        if status is not ActionStatus.PENDING:
            raise InvalidTransition(f"Cannot start action {action_id} from {status.value}")
        self._set_status(plan_id, action, ActionStatus.IN_PROGRESS)

    def complete_action(self, plan_id: str, action_id: int, result: str = "") -> list[PlanAction]:
        """Mark an action completed and enqueue dependents that became ready.

        Completing an already completed action is a no-op.
        """
        action = self._lookup(plan_id, action_id)
        status = self._statuses[plan_id][action_id]
        if status is ActionStatus.COMPLETED:
            return []
        if status in (ActionStatus.FAILED, ActionStatus.BLOCKED):
            raise InvalidTransition(f"Cannot complete action {action_id} from {status.value}")

        validated = self._plans[plan_id]
        action.result = result
        self._set_status(plan_id, action, ActionStatus.COMPLETED)
        self._counts[plan_id].completed += 1
        self._withdraw_scheduled(plan_id, action_id)

        statuses = self._statuses[plan_id]
        queued = []
        for ready_id in newly_ready(validated, action_id, statuses):
            if (plan_id, ready_id) not in self._scheduled:
                queued.append(self._enqueue(validated, validated.action(ready_id)))
        self._recompute(plan_id)
        return queued

    def fail_action(self, plan_id: str, action_id: int, error: str) -> list[int]:
        """Mark an action failed and block everything that depends on it."""
        action = self._lookup(plan_id, action_id)
        status = self._statuses[plan_id][action_id]
        if status is ActionStatus.FAILED:
            return []
        if status.is_terminal:
            raise InvalidTransition(f"Cannot fail action {action_id} from {status.value}")
        action.error = error
        self._set_status(plan_id, action, ActionStatus.FAILED)
        self._counts[plan_id].failed += 1
        self._withdraw_scheduled(plan_id, action_id)
        blocked = self._block_dependents(plan_id, action_id, f"dependency {action_id} failed")
        logger.info("Action %s/%d failed; blocked %s", plan_id, action_id, blocked)
        self._recompute(plan_id)
        return blocked

    def cancel(self, request_id: str) -> Request:
        """Withdraw a request that is still resident in a container.

        A withdrawn plan action becomes blocked with reason ``Cancelled`` and
        its dependents are blocked like after a failure.
        """
        for idx, request in enumerate(self._override):
            if request.id == request_id:
                del self._override[idx]
                logger.info("Cancelled %s", request_id)
                return request
        for request in self._ready:
            if request.id == request_id:
                self._ready.remove(request)
                plan_id, action = request.plan_id, request.action
                key = (plan_id, action.id)
                self._scheduled.discard(key)
                action.error = CANCELLED
                self._block_reasons[key] = CANCELLED
                self._set_status(plan_id, action, ActionStatus.BLOCKED)
                self._counts[plan_id].failed += 1
                self._block_dependents(plan_id, action.id, CANCELLED)
                self._recompute(plan_id)
                logger.info("Cancelled %s (action %s/%d)", request_id, plan_id, action.id)
                return request
        raise InvalidTransition(f"Request {request_id} is not resident and cannot be cancelled")

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    def _lookup(self, plan_id: str, action_id: int) -> Action:
        validated = self._plans.get(plan_id)
        if validated is None:
            raise InvalidTransition(f"Unknown plan {plan_id}")
        if action_id not in self._statuses.get(plan_id, {}):
            raise InvalidTransition(f"Unknown action {action_id} in plan {plan_id}")
        return validated.action(action_id)

    def _set_status(self, plan_id: str, action: Action, status: ActionStatus) -> None:
        self._statuses.setdefault(plan_id, {})[action.id] = status
        action.status = status

    def _withdraw_scheduled(self, plan_id: str, action_id: int) -> None:
        key = (plan_id, action_id)
        if key not in self._scheduled:
            return
        for request in list(self._ready):
            if request.plan_id == plan_id and request.action.id == action_id:
                self._ready.remove(request)
        self._scheduled.discard(key)

    def _block_dependents(self, plan_id: str, action_id: int, reason: str) -> list[int]:
        validated = self._plans[plan_id]
        blocked = []
        for dependent_id in transitive_dependents(validated, action_id):
            key = (plan_id, dependent_id)
            if self._statuses[plan_id][dependent_id].is_terminal:
                continue
            self._withdraw_scheduled(plan_id, dependent_id)
            dependent = validated.action(dependent_id)
            dependent.error = reason
            self._block_reasons.setdefault(key, reason)
            self._set_status(plan_id, dependent, ActionStatus.BLOCKED)
            self._counts[plan_id].failed += 1
            blocked.append(dependent_id)
        return blocked

    def _recompute(self, plan_id: str) -> PlanStatus:
        counts = self._counts[plan_id]
        if counts.completed == counts.total:
            status = PlanStatus.COMPLETED
        elif counts.completed + counts.failed == counts.total:
            status = PlanStatus.FAILED
        else:
            status = PlanStatus.ACTIVE
        previous = self._plan_status.get(plan_id)
        self._plan_status[plan_id] = status
        if status is not PlanStatus.ACTIVE and previous is PlanStatus.ACTIVE:
            logger.info("Plan %s finished: %s", plan_id, status.value)
        return status

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def override_size(self) -> int:
        return len(self._override)

    @property
    def ready_size(self) -> int:
        return len(self._ready)

    @property
    def pending_count(self) -> int:
        return len(self._override) + len(self._ready)

    def is_empty(self) -> bool:
        return not self._override and not self._ready

    def ready_action_ids(self, plan_id: str | None = None) -> list[int]:
        return [
            request.action.id
            for request in self._ready
            if plan_id is None or request.plan_id == plan_id
        ]

    def status_of(self, plan_id: str, action_id: int) -> ActionStatus:
        self._lookup(plan_id, action_id)
        return self._statuses[plan_id][action_id]

    def block_reason(self, plan_id: str, action_id: int) -> str | None:
        return self._block_reasons.get((plan_id, action_id))

    def plan_status(self, plan_id: str) -> PlanStatus:
        if plan_id not in self._plan_status:
            raise InvalidTransition(f"Unknown plan {plan_id}")
        return self._plan_status[plan_id]

    def plan_progress(self, plan_id: str) -> PlanCounts:
        counts = self._counts[plan_id]
        return PlanCounts(total=counts.total, completed=counts.completed, failed=counts.failed)

    def get_plan(self, plan_id: str) -> ValidatedPlan:
        return self._plans[plan_id]

    def active_plan_ids(self) -> list[str]:
        return [pid for pid, status in self._plan_status.items() if status is PlanStatus.ACTIVE]

    def snapshot(self) -> dict[str, Any]:
        return {
            "override": [request.id for request in self._override],
            "ready": [request.id for request in self._ready],
            "current_depth": self.current_depth,
            "active_plans": self.active_plan_ids(),
            "plans": {
                pid: {
                    "status": status.value,
                    "completed": self._counts[pid].completed,
                    "failed": self._counts[pid].failed,
                    "total": self._counts[pid].total,
                }
                for pid, status in self._plan_status.items()
            },
        }
