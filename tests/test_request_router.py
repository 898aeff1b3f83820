"""Request classification and plan conversion tests."""

from __future__ import annotations

from planner.request_router import (
    ConversationState,
    DirectAction,
    NeedsPlanning,
    RequestRouter,
)
from planner.schemas import parse_planning_response


def test_tool_syntax_is_a_direct_action() -> None:
    router = RequestRouter()

    classification, state = router.classify(
        "/read_file src/app.py :: show the imports", ConversationState.CONVERSATIONAL
    )

    assert isinstance(classification, DirectAction)
    action = classification.action
    assert (action.tool, action.target, action.operation) == (
        "read_file",
        "src/app.py",
        "show the imports",
    )
    assert state is ConversationState.EXPLORING


def test_direct_action_without_operation_gets_default() -> None:
    classification, _ = RequestRouter().classify("/ls .", ConversationState.CONVERSATIONAL)

    assert isinstance(classification, DirectAction)
    assert classification.action.operation == "ls ."


def test_free_text_needs_planning() -> None:
    classification, state = RequestRouter().classify(
        "  implement a retry decorator  ", ConversationState.CONVERSATIONAL
    )

    assert isinstance(classification, NeedsPlanning)
    assert classification.request == "implement a retry decorator"
    assert state is ConversationState.IMPLEMENTING


def test_previous_failure_forces_troubleshooting() -> None:
    router = RequestRouter()

    state = router.next_state("implement it again", ConversationState.IMPLEMENTING, previous_failed=True)

    assert state is ConversationState.TROUBLESHOOTING


def test_troubleshooting_is_sticky_until_input_moves_on() -> None:
    router = RequestRouter()

    assert router.next_state("ok, thanks", ConversationState.TROUBLESHOOTING) is (
        ConversationState.TROUBLESHOOTING
    )
    assert router.next_state("ok, thanks", ConversationState.IMPLEMENTING) is (
        ConversationState.CONVERSATIONAL
    )
    assert router.next_state("design the steps", ConversationState.TROUBLESHOOTING) is (
        ConversationState.PLANNING
    )


def test_direct_plan_wraps_single_action() -> None:
    classification, _ = RequestRouter().classify("/mock_tool workspace", ConversationState.CONVERSATIONAL)
    assert isinstance(classification, DirectAction)

    plan = RequestRouter.direct_plan(classification.action, parent_request_id="req_7")

    assert [phase.name for phase in plan.phases] == ["Implementation"]
    assert plan.all_actions() == [classification.action]
    assert plan.parent_request_id == "req_7"
    assert plan.depth == 0


def test_plan_from_decision_keeps_phases_and_depth() -> None:
    decision = parse_planning_response(
        """
        {"decision": "plan", "analysis": "two steps",
         "plan": {"title": "Add logging", "overview": "inspect then edit",
          "phases": [
            {"name": "Analysis", "emoji": "", "actions": [
              {"id": 1, "title": "Look", "tool": "read_file", "target": "app.py",
               "operation": "read", "purpose": "p", "success_criteria": "s",
               "dependencies": [], "content": ""}]},
            {"name": "Implementation", "emoji": "", "actions": [
              {"id": 2, "title": "Edit", "tool": "write_file", "target": "app.py",
               "operation": "write", "purpose": "p", "success_criteria": "s",
               "dependencies": [1], "content": "print('hi')"}]}],
          "phase_dependencies": ["Implementation needs Analysis"],
          "risks": ["might break imports"],
          "expected_outcome": "logging added"}}
        """
    )

    plan = RequestRouter().plan_from_decision(decision, depth=2, parent_request_id="req_3")

    assert plan.title == "Add logging"
    assert [p.name for p in plan.phases] == ["Analysis", "Implementation"]
    assert plan.find_action(2).dependencies == [1]
    assert plan.find_action(2).content == "print('hi')"
    assert plan.risks == ["might break imports"]
    assert plan.depth == 2
    assert plan.parent_request_id == "req_3"
