"""Bounded retry policy around planning calls and tool execution."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from core.errors import PlanningExhausted, PlanParseError
from executor.action_router import ActionRouter
from executor.safe_runner import ToolResult
from planner.execution_plan import Action
from planner.request_router import ConversationState
from planner.schemas import DirectDecision, PlanDecision
from planner.task_decomposer import TaskDecomposer

logger = logging.getLogger("planexec.recovery")


@dataclass
class RecoveryPolicy:
    max_planning_retries: int = 2
    max_tool_retries: int = 1
    backoff_seconds: float = 0.5

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> RecoveryPolicy:
        section = config.get("recovery", {})
        return cls(
            max_planning_retries=int(section.get("max_planning_retries", 2)),
            max_tool_retries=int(section.get("max_tool_retries", 1)),
            backoff_seconds=float(section.get("backoff_seconds", 0.5)),
        )


class RecoveryController:
    """Retries malformed planning replies and transient tool failures.

    Structural errors (validation, depth, unsupported tool) are never retried
    here; they propagate to the caller unchanged.
    """

    def __init__(
        self,
        decomposer: TaskDecomposer,
        action_router: ActionRouter,
        policy: RecoveryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.decomposer = decomposer
        self.action_router = action_router
        self.policy = policy or RecoveryPolicy()
        self.sleep = sleep

    def request_plan(
        self,
        request: str,
        *,
        state: ConversationState,
        context: str = "",
    ) -> PlanDecision | DirectDecision:
        """Ask for a plan, re-asking with a corrective note on parse failures.

        Raises ``PlanningExhausted`` once the retry budget is spent.
        """
        attempts = 1 + self.policy.max_planning_retries
        last_error: str | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self.decomposer.request_plan(
                    request, state=state, context=context, corrective_error=last_error
                )
            except PlanParseError as exc:
                last_error = str(exc)
                logger.warning("Planning attempt %d/%d unusable: %s", attempt, attempts, exc)
        raise PlanningExhausted(attempts, last_error or "unknown error")

    def execute(self, action: Action) -> ToolResult:
        """Run an action's tool, retrying transient failures with backoff.

        ``UnsupportedTool`` is raised immediately.
        """
        result = self.action_router.dispatch(action)
        retries = 0
        while not result.success and result.transient and retries < self.policy.max_tool_retries:
            retries += 1
            delay = self.policy.backoff_seconds * retries
            logger.info(
                "Transient failure on action %d (%s); retry %d in %.2fs",
                action.id,
                result.error,
                retries,
                delay,
            )
            self.sleep(delay)
            result = self.action_router.dispatch(action)
        return result
