"""Processing loop: pop a request, dispatch it, feed the outcome back.

The loop is the single owner of the execution stack. Each request is handled
to completion (including the external planning or tool call) before the next
pop, so every stack mutation is serialized through here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.errors import (
    ActionFailed,
    Cancelled,
    DepthExceeded,
    PlanExecError,
    PlanningExhausted,
    UnsupportedTool,
    ValidationError,
)
from core.event_bus import EventBus, StatusEvent
from core.execution_stack import CANCELLED, ExecutionStack
from executor.recovery import RecoveryController
from planner.dependency_graph import validate
from planner.execution_plan import Plan, PlanStatus, ValidatedPlan
from planner.request_router import ConversationState, DirectAction, RequestRouter
from planner.requests import NestedPlan, PlanAction, Request, UserPrompt, request_kind

logger = logging.getLogger("planexec.control_loop")


@dataclass
class LoopResult:
    """Outcome of one ``run`` call."""

    iterations: int = 0
    events: list[tuple[str, StatusEvent]] = field(default_factory=list)
    plan_statuses: dict[str, PlanStatus] = field(default_factory=dict)
    results: dict[str, dict[int, str]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    remaining: int = 0
    state: ConversationState = ConversationState.CONVERSATIONAL

    @property
    def completed(self) -> bool:
        return (
            not self.errors
            and self.remaining == 0
            and all(s is PlanStatus.COMPLETED for s in self.plan_statuses.values())
        )


class ControlLoop:
    """Drives requests from the execution stack to planning and tools."""

    def __init__(
        self,
        stack: ExecutionStack,
        router: RequestRouter,
        recovery: RecoveryController,
        event_bus: EventBus,
        max_iterations: int = 200,
        state: ConversationState = ConversationState.CONVERSATIONAL,
    ) -> None:
        self.stack = stack
        self.router = router
        self.recovery = recovery
        self.action_router = recovery.action_router
        self.event_bus = event_bus
        self.max_iterations = max_iterations
        self.state = state
        self._previous_failed = False
        self._nested_parents: dict[str, tuple[str, int]] = {}
        self._finished: set[str] = set()
        self._current: LoopResult | None = None

    # ------------------------------------------------------------------
    # Front-end boundary
    # ------------------------------------------------------------------

    def submit(self, content: str, request_id: str | None = None) -> UserPrompt:
        """Queue a user prompt; it preempts any queued plan actions."""
        request = self.stack.push_user_prompt(content, request_id)
        self._emit("request_queued", StatusEvent(request.id, "queued", f"Prompt: {content[:80]}"))
        return request

    def cancel(self, request_id: str) -> Request:
        """Withdraw a request that has not been dispatched yet."""
        request = self.stack.cancel(request_id)
        if isinstance(request, PlanAction):
            self._emit(
                "action_blocked",
                StatusEvent(
                    request.id,
                    "blocked",
                    f"Action '{request.action.title}' cancelled",
                    plan_id=request.plan_id,
                    action_id=request.action.id,
                ),
            )
            self._emit_blocked(request.plan_id, request.action.id, request.id)
            self._check_plan(request.plan_id)
        else:
            reason = str(Cancelled(request.id))
            self._emit("request_cancelled", StatusEvent(request.id, "cancelled", reason))
            if isinstance(request, NestedPlan):
                self._fail_parent(request, reason)
        return request

    def run_goal(self, goal: str) -> LoopResult:
        """Submit one prompt and process until the stack drains."""
        self.submit(goal)
        return self.run()

    def run(self, max_iterations: int | None = None) -> LoopResult:
        """Process requests until both containers are empty or the limit is hit."""
        result = LoopResult(state=self.state)
        self._current = result
        limit = self.max_iterations if max_iterations is None else max_iterations
        try:
            while result.iterations < limit:
                request = self.stack.pop_request()
                if request is None:
                    break
                result.iterations += 1
                self._dispatch(request)
        finally:
            self._current = None
        result.remaining = self.stack.pending_count
        result.state = self.state
        if result.remaining:
            logger.warning(
                "Stopped after %d iterations with %d requests still queued",
                result.iterations,
                result.remaining,
            )
        return result

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, request: Request) -> None:
        kind = request_kind(request)
        logger.info("Processing %s %s (depth %d)", kind, request.id, self.stack.current_depth)
        self._emit(
            "request_popped",
            StatusEvent(
                request.id,
                "popped",
                f"Dispatching {kind}",
                plan_id=request.plan_id if isinstance(request, PlanAction) else None,
                action_id=request.action.id if isinstance(request, PlanAction) else None,
            ),
        )
        if isinstance(request, UserPrompt):
            self._handle_user_prompt(request)
        elif isinstance(request, NestedPlan):
            self._handle_nested_plan(request)
        else:
            self._handle_plan_action(request)

    def _handle_user_prompt(self, request: UserPrompt) -> None:
        classification, self.state = self.router.classify(
            request.content, self.state, self._previous_failed
        )
        self._previous_failed = False
        if isinstance(classification, DirectAction):
            plan = self.router.direct_plan(classification.action, parent_request_id=request.id)
            if self._admit(plan, request.id) is None:
                self._previous_failed = True
            return
        try:
            decision = self.recovery.request_plan(classification.request, state=self.state)
        except PlanningExhausted as exc:
            self._reject(request.id, exc)
            self._previous_failed = True
            return
        plan = self.router.plan_from_decision(decision, parent_request_id=request.id)
        if self._admit(plan, request.id) is None:
            self._previous_failed = True

    def _handle_nested_plan(self, request: NestedPlan) -> None:
        try:
            decision = self.recovery.request_plan(
                request.request, state=self.state, context=request.context
            )
        except PlanningExhausted as exc:
            self._reject(request.id, exc)
            self._fail_parent(request, str(exc))
            return
        plan = self.router.plan_from_decision(
            decision, depth=request.depth, parent_request_id=request.id
        )
        if request.plan_id is not None and request.action_id is not None:
            self._nested_parents[plan.id] = (request.plan_id, request.action_id)
        if self._admit(plan, request.id) is None:
            self._nested_parents.pop(plan.id, None)
            self._fail_parent(request, f"sub-plan for {request.id} rejected")

    def _handle_plan_action(self, request: PlanAction) -> None:
        action, plan_id = request.action, request.plan_id

        if self.action_router.is_nested_plan(action):
            self._start(request)
            depth = self.stack.get_plan(plan_id).depth
            try:
                nested = self.stack.push_nested_plan(
                    request.id,
                    f"{action.title}: {action.operation}",
                    depth,
                    context=request.context,
                    plan_id=plan_id,
                    action_id=action.id,
                )
            except DepthExceeded as exc:
                self._reject(request.id, exc, plan_id, action.id)
                self._fail(plan_id, action.id, str(exc), request.id)
                return
            self._emit(
                "nested_plan_queued",
                StatusEvent(
                    nested.id,
                    "queued",
                    f"Sub-plan requested at depth {nested.depth}",
                    plan_id=plan_id,
                    action_id=action.id,
                ),
            )
            return

        try:
            self.action_router.resolve(action)
        except UnsupportedTool as exc:
            self._fail(plan_id, action.id, str(exc), request.id)
            return

        self._start(request)
        outcome = self.recovery.execute(action)
        if outcome.success:
            self._complete(plan_id, action.id, outcome.output, request.id)
        else:
            self._fail(plan_id, action.id, str(ActionFailed(outcome.error)), request.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _admit(self, plan: Plan, request_id: str) -> ValidatedPlan | None:
        try:
            validated = validate(plan)
        except ValidationError as exc:
            self._reject(request_id, exc)
            return None
        queued = self.stack.push_plan_actions(validated)
        self._emit(
            "plan_admitted",
            StatusEvent(
                request_id,
                "admitted",
                f"Plan '{plan.title}' admitted: {len(validated.rank)} actions, {len(queued)} ready",
                plan_id=plan.id,
            ),
        )
        self._check_plan(plan.id)
        return validated

    def _start(self, request: PlanAction) -> None:
        self.stack.start_action(request.plan_id, request.action.id)
        self._emit(
            "action_started",
            StatusEvent(
                request.id,
                "in_progress",
                f"{request.action.tool}: {request.action.title}",
                plan_id=request.plan_id,
                action_id=request.action.id,
            ),
        )

    def _complete(self, plan_id: str, action_id: int, output: str, request_id: str | None) -> None:
        queued = self.stack.complete_action(plan_id, action_id, output)
        if self._current is not None:
            self._current.results.setdefault(plan_id, {})[action_id] = output
        self._emit(
            "action_completed",
            StatusEvent(request_id, "completed", output[:200], plan_id=plan_id, action_id=action_id),
        )
        for ready in queued:
            self._emit(
                "action_scheduled",
                StatusEvent(
                    ready.id,
                    "scheduled",
                    f"Ready: {ready.action.title}",
                    plan_id=plan_id,
                    action_id=ready.action.id,
                ),
            )
        self._check_plan(plan_id)

    def _fail(self, plan_id: str, action_id: int, error: str, request_id: str | None) -> None:
        blocked = self.stack.fail_action(plan_id, action_id, error)
        self._emit(
            "action_failed",
            StatusEvent(request_id, "failed", error, plan_id=plan_id, action_id=action_id),
        )
        if self._current is not None:
            self._current.errors.append(f"{plan_id}/{action_id}: {error}")
        for blocked_id in blocked:
            self._emit(
                "action_blocked",
                StatusEvent(
                    request_id,
                    "blocked",
                    f"Blocked: dependency {action_id} failed",
                    plan_id=plan_id,
                    action_id=blocked_id,
                ),
            )
        self._check_plan(plan_id)

    def _emit_blocked(self, plan_id: str, cancelled_id: int, request_id: str) -> None:
        validated = self.stack.get_plan(plan_id)
        for action in validated.ordered_actions():
            if action.id == cancelled_id:
                continue
            if self.stack.block_reason(plan_id, action.id) == CANCELLED:
                self._emit(
                    "action_blocked",
                    StatusEvent(
                        request_id,
                        "blocked",
                        CANCELLED,
                        plan_id=plan_id,
                        action_id=action.id,
                    ),
                )

    def _fail_parent(self, request: NestedPlan, reason: str) -> None:
        if request.plan_id is None or request.action_id is None:
            return
        self._fail(request.plan_id, request.action_id, reason, request.parent_id)

    def _check_plan(self, plan_id: str) -> None:
        if plan_id in self._finished:
            return
        status = self.stack.plan_status(plan_id)
        if status is PlanStatus.ACTIVE:
            return
        self._finished.add(plan_id)
        validated = self.stack.get_plan(plan_id)
        counts = self.stack.plan_progress(plan_id)
        completed, total = counts.completed, counts.total
        if self._current is not None:
            self._current.plan_statuses[plan_id] = status
        self._emit(
            "plan_finished",
            StatusEvent(
                validated.plan.parent_request_id,
                status.value,
                f"Plan '{validated.plan.title}' {status.value} ({completed}/{total} actions)",
                plan_id=plan_id,
            ),
        )

        parent = self._nested_parents.pop(plan_id, None)
        if parent is not None:
            parent_plan_id, parent_action_id = parent
            if status is PlanStatus.COMPLETED:
                summary = "; ".join(
                    f"{a.title}: {a.result[:80]}" for a in validated.ordered_actions()
                )
                self._complete(
                    parent_plan_id,
                    parent_action_id,
                    f"Sub-plan '{validated.plan.title}' completed. {summary}",
                    validated.plan.parent_request_id,
                )
            else:
                self._fail(
                    parent_plan_id,
                    parent_action_id,
                    f"Sub-plan '{validated.plan.title}' failed",
                    validated.plan.parent_request_id,
                )
        elif validated.depth == 0 and status is PlanStatus.FAILED:
            self._previous_failed = True

    def _reject(
        self,
        request_id: str,
        exc: PlanExecError,
        plan_id: str | None = None,
        action_id: int | None = None,
    ) -> None:
        message = f"{type(exc).__name__}: {exc}"
        logger.warning("Rejected %s: %s", request_id, message)
        if self._current is not None:
            self._current.errors.append(f"{request_id}: {message}")
        self._emit(
            "request_rejected",
            StatusEvent(request_id, "rejected", message, plan_id=plan_id, action_id=action_id),
        )

    def _emit(self, event_name: str, event: StatusEvent) -> None:
        if self._current is not None:
            self._current.events.append((event_name, event))
        self.event_bus.emit(event_name, event)
