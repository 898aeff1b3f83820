"""Base tool interface and execution wrapper."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from executor.safe_runner import SafeRunner, ToolResult, TransientToolError

__all__ = ["BaseTool", "ToolResult", "TransientToolError"]


class BaseTool(ABC):
    """Base class for all tools with safe-runner integration."""

    def __init__(
        self,
        name: str,
        safe_runner: SafeRunner,
        workspace_dir: Path,
        enabled: bool = True,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.safe_runner = safe_runner
        self.workspace_dir = workspace_dir
        self.enabled = enabled
        self.settings = settings or {}

    def execute(self, target: str, operation: str, content: str = "") -> ToolResult:
        """Execute the tool through the safe runner."""
        if not self.enabled:
            return ToolResult(success=False, error=f"Tool '{self.name}' disabled.")
        return self.safe_runner.run(
            tool_name=self.name,
            inputs={"target": target, "operation": operation, "content": content},
            execute=lambda: self._run(target, operation, content),
        )

    @abstractmethod
    def _run(self, target: str, operation: str, content: str) -> str:
        """Tool-specific execution logic; returns the result payload text."""

    def resolve_path(self, target: str) -> Path:
        """Resolve ``target`` inside the workspace, rejecting escapes."""
        raw = Path(target or ".")
        resolved = (raw if raw.is_absolute() else self.workspace_dir / raw).resolve()
        try:
            resolved.relative_to(self.workspace_dir.resolve())
        except ValueError as exc:
            raise PermissionError(f"Path traversal blocked: {resolved} is outside workspace.") from exc
        return resolved
