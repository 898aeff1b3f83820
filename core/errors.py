"""Typed error taxonomy for planning and execution."""

from __future__ import annotations


class PlanExecError(Exception):
    """Base class for all engine errors."""


class ValidationError(PlanExecError):
    """A candidate plan violated a structural rule; nothing was admitted."""

    CYCLIC = "CyclicDependency"
    UNKNOWN_DEPENDENCY = "UnknownDependency"
    PHASE_ORDER = "PhaseOrderViolation"
    DUPLICATE_ACTION = "DuplicateAction"

    def __init__(self, rule: str, action_ids: list[int], detail: str = "") -> None:
        self.rule = rule
        self.action_ids = sorted(set(action_ids))
        self.detail = detail
        ids = ", ".join(str(i) for i in self.action_ids)
        message = f"{rule}: action(s) [{ids}]"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class DepthExceeded(PlanExecError):
    def __init__(self, depth: int, max_depth: int) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(f"Nested plan depth {depth} exceeds maximum {max_depth}")


class PlanningExhausted(PlanExecError):
    def __init__(self, attempts: int, last_error: str) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Planning failed after {attempts} attempt(s): {last_error}")


class PlanParseError(PlanExecError):
    """Planning response could not be parsed into the plan schema."""


class UnsupportedTool(PlanExecError):
    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unsupported tool: {tool}")


class ActionFailed(PlanExecError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class Cancelled(PlanExecError):
    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id} cancelled")


class InvalidTransition(PlanExecError):
    """Status change not permitted from the action's current status."""
