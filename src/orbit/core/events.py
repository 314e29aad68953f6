"""Lifecycle notifications and a bounded in-memory recorder for them."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

LifecycleEventName = Literal[
    "agent.started",
    "agent.ready",
    "agent.stopped",
    "agent.tasks_pending",
]


@dataclass(slots=True, frozen=True)
class LifecycleEvent:
    """One lifecycle notification delivered to observers."""

    name: LifecycleEventName
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "payload": self.payload,
            "ts": self.timestamp.isoformat(),
        }


class EventLog:
    """Observer that keeps the most recent lifecycle events in a ring buffer."""

    def __init__(self, max_size: int = 500) -> None:
        self._items: deque[LifecycleEvent] = deque(maxlen=max_size)

    def notify(self, event: LifecycleEvent) -> None:
        self._items.append(event)

    def items(self) -> list[LifecycleEvent]:
        return list(self._items)

    def names(self) -> list[str]:
        return [item.name for item in self._items]

    def count(self, name: str) -> int:
        return sum(1 for item in self._items if item.name == name)
