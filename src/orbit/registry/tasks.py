"""In-flight action bookkeeping shared by the pipeline and the shutdown drain."""

from __future__ import annotations

import logging
import threading

from orbit.core.errors import DuplicateTaskError
from orbit.core.types import Action

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Thread-safe mapping of action id to the action currently being executed."""

    def __init__(self) -> None:
        self._tasks: dict[str, Action] = {}
        self._lock = threading.Lock()

    def register(self, action: Action) -> None:
        """Track one action; an id can only be registered once at a time."""
        with self._lock:
            if action.id in self._tasks:
                raise DuplicateTaskError(f"Action '{action.id}' is already registered")
            self._tasks[action.id] = action
        logger.debug("task_registered action_id=%s priority=%s", action.id, action.priority)

    def remove(self, action_id: str) -> Action | None:
        """Stop tracking an action; removing an unknown id is a no-op."""
        with self._lock:
            return self._tasks.pop(action_id, None)

    def get(self, action_id: str) -> Action | None:
        with self._lock:
            return self._tasks.get(action_id)

    def by_priority(self, priority: str) -> list[Action]:
        with self._lock:
            return [action for action in self._tasks.values() if action.priority == priority]

    def critical(self) -> list[Action]:
        return self.by_priority("critical")

    def pending(self) -> list[Action]:
        with self._lock:
            return list(self._tasks.values())

    def __contains__(self, action_id: object) -> bool:
        with self._lock:
            return action_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
