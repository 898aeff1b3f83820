"""Safe execution gate: runs tool callables, classifies failures and audits them."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from governance.audit_logger import AuditLogger

logger = logging.getLogger("planexec.safe_runner")


@dataclass
class ToolResult:
    """Outcome of one tool call. ``transient`` marks failures worth retrying."""

    success: bool
    output: str = ""
    error: str = ""
    transient: bool = False

    @property
    def summary(self) -> str:
        return self.output if self.success else self.error


class TransientToolError(RuntimeError):
    """Raised by tools for failures that may succeed on retry."""


# Failure classes that a retry may fix.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientToolError,
    TimeoutError,
    ConnectionError,
    subprocess.TimeoutExpired,
)


class SafeRunner:
    """Runs tool callables and turns every exception into a failed result."""

    def __init__(self, audit_logger: AuditLogger | None = None, max_output_chars: int = 4000) -> None:
        self.audit_logger = audit_logger
        self.max_output_chars = max_output_chars

    def run(
        self,
        *,
        tool_name: str,
        inputs: dict[str, Any],
        execute: Callable[[], Any],
    ) -> ToolResult:
        """Execute the callable and return a standardized result."""
        try:
            output = execute()
        except TRANSIENT_ERRORS as exc:
            logger.warning("Transient failure in %s: %s", tool_name, exc)
            self._audit(tool_name, inputs, "failed", f"transient: {exc}")
            return ToolResult(success=False, error=f"Execution failed: {exc}", transient=True)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", tool_name, exc)
            self._audit(tool_name, inputs, "failed", str(exc))
            return ToolResult(success=False, error=f"Execution failed: {exc}")

        text = str(output)
        if len(text) > self.max_output_chars:
            text = text[: self.max_output_chars] + "\n... (truncated)"
        self._audit(tool_name, inputs, "success")
        return ToolResult(success=True, output=text)

    def _audit(self, tool_name: str, inputs: dict[str, Any], outcome: str, reason: str = "") -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log_tool_call(tool=tool_name, inputs=inputs, outcome=outcome, reason=reason)
