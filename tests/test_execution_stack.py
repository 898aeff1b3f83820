"""Execution stack scheduling tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from core.errors import DepthExceeded, InvalidTransition
from core.execution_stack import CANCELLED, ExecutionStack
from planner.dependency_graph import validate
from planner.execution_plan import Action, ActionStatus, Phase, Plan, PlanStatus, ValidatedPlan
from planner.requests import NestedPlan, PlanAction, UserPrompt


def _action(action_id: int, deps: tuple[int, ...] = ()) -> Action:
    return Action(
        id=action_id,
        title=f"A{action_id}",
        tool="mock_tool",
        target=".",
        operation="noop",
        dependencies=list(deps),
    )


def _diamond() -> ValidatedPlan:
    """Phases [A1], [A2 dep A1, A3 dep A1], [A4 dep A2, A3]."""
    plan = Plan(
        title="diamond",
        phases=[
            Phase(name="Analysis", actions=[_action(1)]),
            Phase(name="Implementation", actions=[_action(3, (1,)), _action(2, (1,))]),
            Phase(name="Verification", actions=[_action(4, (2, 3))]),
        ],
    )
    return validate(plan)


def _drain(stack: ExecutionStack) -> list[PlanAction]:
    popped = []
    while (request := stack.pop_request()) is not None:
        assert isinstance(request, PlanAction)
        popped.append(request)
    return popped


def test_override_container_always_wins_and_is_lifo() -> None:
    stack = ExecutionStack()
    stack.push_plan_actions(_diamond())
    first = stack.push_user_prompt("first")
    second = stack.push_user_prompt("second")

    assert stack.pop_request() is second
    assert stack.pop_request() is first
    assert isinstance(stack.pop_request(), PlanAction)
    assert stack.pop_request() is None


def test_user_prompt_preempts_three_ready_actions() -> None:
    stack = ExecutionStack()
    plan = Plan(
        title="flat",
        phases=[Phase(name="Implementation", actions=[_action(1), _action(2), _action(3)])],
    )
    stack.push_plan_actions(validate(plan))
    assert stack.ready_size == 3

    prompt = stack.push_user_prompt("urgent")

    assert stack.pop_request() is prompt
    assert [r.action.id for r in _drain(stack)] == [1, 2, 3]


def test_nested_plan_depth_limit() -> None:
    stack = ExecutionStack()
    stack.push_user_prompt("root")
    sizes = (stack.override_size, stack.ready_size)

    with pytest.raises(DepthExceeded):
        stack.push_nested_plan("req_1", "too deep", 5)
    assert (stack.override_size, stack.ready_size) == sizes

    nested = stack.push_nested_plan("req_1", "deep enough", 4)
    assert isinstance(nested, NestedPlan)
    assert nested.depth == 5
    assert stack.pop_request() is nested
    assert stack.current_depth == 5


def test_dependency_release_follows_completion() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id

    stack.push_plan_actions(validated)
    assert stack.ready_action_ids() == [1]

    stack.pop_request()
    stack.start_action(plan_id, 1)
    queued = stack.complete_action(plan_id, 1, "ok")
    assert [r.action.id for r in queued] == [2, 3]
    assert stack.ready_action_ids() == [2, 3]

    _drain(stack)
    assert stack.complete_action(plan_id, 2, "ok") == []
    assert stack.plan_status(plan_id) is PlanStatus.ACTIVE
    queued = stack.complete_action(plan_id, 3, "ok")
    assert [r.action.id for r in queued] == [4]
    assert stack.plan_status(plan_id) is PlanStatus.ACTIVE

    _drain(stack)
    stack.complete_action(plan_id, 4, "ok")
    assert stack.plan_status(plan_id) is PlanStatus.COMPLETED
    assert stack.plan_progress(plan_id).completed == 4


def test_failure_blocks_all_dependents() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    stack.push_plan_actions(validated)
    stack.pop_request()

    blocked = stack.fail_action(plan_id, 1, "boom")

    assert blocked == [2, 3, 4]
    for action_id in (2, 3, 4):
        assert stack.status_of(plan_id, action_id) is ActionStatus.BLOCKED
    assert stack.status_of(plan_id, 1) is ActionStatus.FAILED
    assert stack.is_empty()
    assert stack.plan_status(plan_id) is PlanStatus.FAILED


def test_failure_withdraws_queued_dependents() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    stack.push_plan_actions(validated)
    stack.pop_request()
    stack.complete_action(plan_id, 1)
    assert stack.ready_action_ids() == [2, 3]

    stack.pop_request()
    stack.fail_action(plan_id, 2, "boom")

    # A3 stays queued; A4 can never run.
    assert stack.ready_action_ids() == [3]
    assert stack.status_of(plan_id, 4) is ActionStatus.BLOCKED
    stack.pop_request()
    stack.complete_action(plan_id, 3)
    assert stack.is_empty()
    assert stack.plan_status(plan_id) is PlanStatus.FAILED


def test_complete_action_is_idempotent() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    stack.push_plan_actions(validated)
    stack.pop_request()

    first = stack.complete_action(plan_id, 1, "ok")
    second = stack.complete_action(plan_id, 1, "ok again")

    assert len(first) == 2
    assert second == []
    assert stack.ready_size == 2
    assert stack.plan_progress(plan_id).completed == 1


def test_invalid_transitions_raise() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    stack.push_plan_actions(validated)
    stack.pop_request()
    stack.fail_action(plan_id, 1, "boom")

    with pytest.raises(InvalidTransition):
        stack.complete_action(plan_id, 1)
    with pytest.raises(InvalidTransition):
        stack.complete_action(plan_id, 2)
    with pytest.raises(InvalidTransition):
        stack.start_action(plan_id, 3)
    with pytest.raises(InvalidTransition):
        stack.complete_action(plan_id, 42)
    with pytest.raises(InvalidTransition):
        stack.complete_action("plan_missing", 1)
    assert stack.fail_action(plan_id, 1, "again") == []


def test_plan_cannot_be_admitted_twice() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    stack.push_plan_actions(validated)

    with pytest.raises(InvalidTransition):
        stack.push_plan_actions(validated)


def test_empty_plan_completes_immediately() -> None:
    stack = ExecutionStack()
    validated = validate(Plan(title="nothing"))

    assert stack.push_plan_actions(validated) == []
    assert stack.plan_status(validated.id) is PlanStatus.COMPLETED


def test_cancel_ready_action_blocks_it_and_dependents() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    queued = stack.push_plan_actions(validated)

    cancelled = stack.cancel(queued[0].id)

    assert cancelled is queued[0]
    assert stack.is_empty()
    assert stack.status_of(plan_id, 1) is ActionStatus.BLOCKED
    assert stack.block_reason(plan_id, 1) == CANCELLED
    assert stack.status_of(plan_id, 4) is ActionStatus.BLOCKED
    assert stack.plan_status(plan_id) is PlanStatus.FAILED


def test_cancel_user_prompt_and_unknown_request() -> None:
    stack = ExecutionStack()
    prompt = stack.push_user_prompt("never mind")

    assert isinstance(stack.cancel(prompt.id), UserPrompt)
    assert stack.is_empty()
    with pytest.raises(InvalidTransition):
        stack.cancel(prompt.id)


def test_dispatched_action_context_includes_dependency_results() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    plan_id = validated.id
    stack.push_plan_actions(validated)
    stack.pop_request()

    queued = stack.complete_action(plan_id, 1, "found three modules")

    assert "## Plan: diamond" in queued[0].context
    assert "found three modules" in queued[0].context
    assert "Phase: Implementation" in queued[0].context


def test_snapshot_reports_containers_and_plans() -> None:
    stack = ExecutionStack()
    validated = _diamond()
    stack.push_plan_actions(validated)
    stack.push_user_prompt("hello")

    snapshot = stack.snapshot()

    assert snapshot["override"] == ["req_2"]
    assert snapshot["ready"] == ["req_1"]
    assert snapshot["active_plans"] == [validated.id]
    assert snapshot["plans"][validated.id]["total"] == 4


def test_completing_a_queued_action_withdraws_it() -> None:
    stack = ExecutionStack()
    validated = validate(Plan(title="one", phases=[Phase(name="Implementation", actions=[_action(1)])]))
    stack.push_plan_actions(validated)

    stack.complete_action(validated.id, 1, "done elsewhere")

    assert stack.ready_size == 0
    assert stack.pop_request() is None
    assert stack.plan_status(validated.id) is PlanStatus.COMPLETED


def test_completion_uses_indexes_instead_of_rescanning_plan(monkeypatch: pytest.MonkeyPatch) -> None:
    plan = Plan(
        title="fan-out",
        phases=[
            Phase(name="Analysis", actions=[_action(1)]),
            Phase(name="Implementation", actions=[_action(i, (1,)) for i in range(2, 201)]),
        ],
    )
    validated = validate(plan)
    stack = ExecutionStack()
    stack.push_plan_actions(validated)
    stack.pop_request()
    scan = MagicMock(side_effect=AssertionError("plan rescanned"))
    monkeypatch.setattr(Plan, "all_actions", scan)

    queued = stack.complete_action(validated.id, 1, "ok")

    assert len(queued) == 199
    assert "Progress: 1/200" in queued[0].context
    scan.assert_not_called()
