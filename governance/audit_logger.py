"""Structured JSONL audit logger for tool calls and status events."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


class AuditLogger:
    """Writes audit records as JSON lines."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("planexec.audit")

    @staticmethod
    def _hash_inputs(inputs: dict[str, Any]) -> str:
        payload = json.dumps(inputs, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(payload).hexdigest()

    def _write(self, record: dict[str, Any]) -> None:
        record = {"timestamp": datetime.now(UTC).isoformat(), **record}
        line = json.dumps(record, ensure_ascii=True, default=str)
        with self.log_path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        self.logger.debug(line)

    def log_tool_call(
        self,
        tool: str,
        inputs: dict[str, Any],
        outcome: str,
        reason: str = "",
    ) -> None:
        """Append one tool-call record; inputs are stored only as a hash."""
        self._write(
            {
                "kind": "tool_call",
                "tool": tool,
                "inputs_hash": self._hash_inputs(inputs),
                "outcome": outcome,
                "reason": reason,
            }
        )

    def log_event(self, event_name: str, payload: dict[str, Any]) -> None:
        """Append one status event record."""
        self._write({"kind": "status", "event": event_name, **payload})

    def handle_event(self, event_name: str, event: Any) -> None:
        """Event bus handler; subscribe it to ``*`` to record every status event."""
        self.log_event(event_name, event.to_dict())
