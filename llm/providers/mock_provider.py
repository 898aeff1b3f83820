"""Deterministic local planning provider for offline usage and tests."""

from __future__ import annotations

import json
import re
from typing import Any

from llm.base_llm import BaseLLM

_REQUEST_RE = re.compile(r"Decompose this request:\s*(?P<request>.+?)(?:\n\nContext:|$)", re.DOTALL)


def _action(
    action_id: int,
    title: str,
    tool: str,
    target: str,
    operation: str,
    purpose: str,
    dependencies: list[int],
) -> dict[str, Any]:
    return {
        "id": action_id,
        "title": title,
        "tool": tool,
        "target": target,
        "operation": operation,
        "purpose": purpose,
        "success_criteria": "Tool reports success",
        "dependencies": dependencies,
        "content": "",
    }


class MockProvider(BaseLLM):
    """Rule-based planner that always answers with a valid three-phase plan.

    A request mentioning "subtask" gets an extra ``task`` action in the
    Implementation phase so nested planning can be exercised offline.
    """

    name = "mock"

    @staticmethod
    def _extract_request(messages: list[dict[str, str]]) -> str:
        for message in messages:
            if message.get("role") != "user":
                continue
            match = _REQUEST_RE.search(message.get("content", ""))
            if match:
                return match.group("request").strip()
        user_messages = [m["content"] for m in messages if m.get("role") == "user"]
        return user_messages[0].strip() if user_messages else ""

    def _plan(self, request: str) -> dict[str, Any]:
        short = request[:60] or "empty request"
        implementation = [
            _action(2, "Carry out the request", "mock_tool", "workspace", request or "noop",
                    "Perform the requested change", [1]),
        ]
        verify_deps = [2]
        if "subtask" in request.lower():
            implementation.append(
                _action(4, "Delegate sub-work", "task", "workspace", "Break down the sub-work",
                        "Work that needs its own plan", [1])
            )
            verify_deps = [2, 4]
        return {
            "decision": "plan",
            "analysis": "Inspect, change, then verify.",
            "plan": {
                "title": f"Plan: {short}",
                "overview": f"Deterministic offline plan for: {short}",
                "phases": [
                    {
                        "name": "Analysis",
                        "emoji": "🔍",
                        "actions": [
                            _action(1, "Inspect workspace", "list_directory", ".",
                                    "list workspace contents", "Understand current state", []),
                        ],
                    },
                    {"name": "Implementation", "emoji": "🛠️", "actions": implementation},
                    {
                        "name": "Verification",
                        "emoji": "✅",
                        "actions": [
                            _action(3, "Verify outcome", "mock_tool", "workspace",
                                    "verify result", "Confirm the change", verify_deps),
                        ],
                    },
                ],
                "phase_dependencies": [
                    "Implementation needs Analysis findings",
                    "Verification needs Implementation results",
                ],
                "risks": [],
                "expected_outcome": f"Request handled: {short}",
            },
        }

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Return the plan JSON for the request found in ``messages``."""
        _ = kwargs
        if not messages:
            raise ValueError("No input received.")
        return json.dumps(self._plan(self._extract_request(messages)), ensure_ascii=False)
