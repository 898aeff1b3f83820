"""Retry policy tests for planning calls and tool execution."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from core.errors import PlanningExhausted, UnsupportedTool
from executor.recovery import RecoveryController, RecoveryPolicy
from executor.safe_runner import ToolResult
from planner.execution_plan import Action
from planner.request_router import ConversationState
from planner.schemas import DirectDecision
from planner.task_decomposer import TaskDecomposer

_VALID_REPLY = json.dumps(
    {
        "decision": "direct",
        "analysis": "one step",
        "action": {
            "id": 1,
            "title": "List",
            "tool": "list_directory",
            "target": ".",
            "operation": "list",
            "purpose": "p",
            "success_criteria": "s",
            "dependencies": [],
            "content": "",
        },
    }
)


def _action() -> Action:
    return Action(id=1, title="Run", tool="mock_tool", target=".", operation="noop")


def test_planning_retries_with_corrective_message() -> None:
    llm = MagicMock()
    llm.chat.side_effect = ["not json at all", _VALID_REPLY]
    controller = RecoveryController(TaskDecomposer(llm), MagicMock())

    decision = controller.request_plan("list files", state=ConversationState.EXPLORING)

    assert isinstance(decision, DirectDecision)
    assert llm.chat.call_count == 2
    retry_messages = llm.chat.call_args_list[1].args[0]
    assert len(retry_messages) == 3
    assert "could not be used" in retry_messages[-1]["content"]


def test_planning_gives_up_after_budget() -> None:
    llm = MagicMock()
    llm.chat.return_value = "{}"
    policy = RecoveryPolicy(max_planning_retries=2)
    controller = RecoveryController(TaskDecomposer(llm), MagicMock(), policy=policy)

    with pytest.raises(PlanningExhausted) as exc_info:
        controller.request_plan("anything", state=ConversationState.CONVERSATIONAL)

    assert exc_info.value.attempts == 3
    assert llm.chat.call_count == 3


def test_llm_exceptions_count_as_failed_attempts() -> None:
    llm = MagicMock()
    llm.chat.side_effect = [RuntimeError("rate limited"), _VALID_REPLY]
    controller = RecoveryController(TaskDecomposer(llm), MagicMock())

    decision = controller.request_plan("list files", state=ConversationState.EXPLORING)

    assert isinstance(decision, DirectDecision)


def test_transient_tool_failure_is_retried_with_backoff() -> None:
    router = MagicMock()
    router.dispatch.side_effect = [
        ToolResult(success=False, error="timed out", transient=True),
        ToolResult(success=True, output="done"),
    ]
    sleeps: list[float] = []
    controller = RecoveryController(
        MagicMock(),
        router,
        policy=RecoveryPolicy(max_tool_retries=1, backoff_seconds=0.25),
        sleep=sleeps.append,
    )

    result = controller.execute(_action())

    assert result.success is True
    assert router.dispatch.call_count == 2
    assert sleeps == [0.25]


def test_tool_retry_budget_is_bounded() -> None:
    router = MagicMock()
    router.dispatch.return_value = ToolResult(success=False, error="timed out", transient=True)
    sleeps: list[float] = []
    controller = RecoveryController(
        MagicMock(),
        router,
        policy=RecoveryPolicy(max_tool_retries=2, backoff_seconds=1.0),
        sleep=sleeps.append,
    )

    result = controller.execute(_action())

    assert result.success is False
    assert router.dispatch.call_count == 3
    assert sleeps == [1.0, 2.0]


def test_permanent_tool_failure_is_not_retried() -> None:
    router = MagicMock()
    router.dispatch.return_value = ToolResult(success=False, error="no such file")
    controller = RecoveryController(MagicMock(), router, sleep=lambda _: None)

    result = controller.execute(_action())

    assert result.success is False
    assert router.dispatch.call_count == 1


def test_unsupported_tool_propagates() -> None:
    router = MagicMock()
    router.dispatch.side_effect = UnsupportedTool("teleport")
    controller = RecoveryController(MagicMock(), router)

    with pytest.raises(UnsupportedTool):
        controller.execute(_action())


def test_policy_from_config() -> None:
    policy = RecoveryPolicy.from_config(
        {"recovery": {"max_planning_retries": 4, "max_tool_retries": 0, "backoff_seconds": 2}}
    )

    assert policy == RecoveryPolicy(max_planning_retries=4, max_tool_retries=0, backoff_seconds=2.0)
