"""Routes plan actions to registered tools by name."""

from __future__ import annotations

import logging

from executor.safe_runner import ToolResult
from planner.execution_plan import Action
from tools.base_tool import BaseTool
from tools.tool_registry import ToolRegistry

logger = logging.getLogger("planexec.action_router")

# Tool names that request a sub-plan instead of a tool call.
NESTED_PLAN_TOOLS = frozenset({"task", "plan", "subplan"})


class ActionRouter:
    """Resolves an action's tool once and executes it."""

    def __init__(self, tool_registry: ToolRegistry) -> None:
        self.tool_registry = tool_registry

    @staticmethod
    def is_nested_plan(action: Action) -> bool:
        return action.tool.strip().lower() in NESTED_PLAN_TOOLS

    def resolve(self, action: Action) -> BaseTool:
        """Return the tool for ``action``; raises ``UnsupportedTool`` if unknown."""
        return self.tool_registry.resolve(action.tool)

    def dispatch(self, action: Action) -> ToolResult:
        tool = self.resolve(action)
        logger.info("Dispatching action %d to %s: %s", action.id, tool.name, action.target)
        return tool.execute(action.target, action.operation, action.content)
