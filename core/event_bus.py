"""In-process event bus carrying status events to the front end and audit log."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class StatusEvent:
    """One displayable status change for a request, plan or action."""

    request_id: str | None
    status: str
    summary: str
    plan_id: str | None = None
    action_id: int | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


EventHandler = Callable[[str, StatusEvent], None]


class EventBus:
    """Dispatches events to subscribers by event name; ``*`` receives all events."""

    WILDCARD = "*"

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register a callback for an event name or ``*``."""
        self._handlers[event_name].append(handler)

    def emit(self, event_name: str, event: StatusEvent) -> None:
        for handler in self._handlers.get(event_name, []):
            handler(event_name, event)
        for handler in self._handlers.get(self.WILDCARD, []):
            handler(event_name, event)
