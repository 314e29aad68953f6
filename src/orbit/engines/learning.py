"""Adaptive learning engine aggregating action outcomes."""

from __future__ import annotations

import logging
from typing import Any

from orbit.core.types import LearningEvent
from orbit.sm.manager import StateManager

logger = logging.getLogger(__name__)

_LEARNINGS_NAMESPACE = "learnings"


class AdaptiveLearningEngine:
    """Keeps per action-type success statistics updated with an exponential rate."""

    def __init__(self, state_manager: StateManager, *, learning_rate: float = 0.2) -> None:
        self._state_manager = state_manager
        self._learning_rate = learning_rate
        self._stats: dict[str, dict[str, Any]] = {}
        self._errors: dict[str, int] = {}

    async def initialize(self) -> None:
        for key, value in self._state_manager.kv_list_prefix(_LEARNINGS_NAMESPACE, ""):
            if isinstance(value, dict):
                self._stats[key] = dict(value)
        logger.info("learning_engine_initialized restored=%s", len(self._stats))

    async def process_learning_event(self, event: LearningEvent) -> None:
        self._state_manager.remember_learning_event(
            event_id=event.id,
            event_type=event.type,
            business_id=event.business_id,
            data=event.data,
            outcome=event.outcome,
        )

        if event.type == "error_occurred":
            self._errors[event.business_id] = self._errors.get(event.business_id, 0) + 1
            return

        action_type = str(event.data.get("action_type", "unknown"))
        key = f"{event.business_id}:{action_type}"
        stats = self._stats.setdefault(
            key,
            {"count": 0, "success_rate": 0.5, "avg_satisfaction": 0.5, "avg_duration_ms": 0.0},
        )

        rate = self._learning_rate
        success = 1.0 if event.outcome == "completed" else 0.0
        metrics = event.data.get("metrics") or {}
        stats["count"] += 1
        stats["success_rate"] += rate * (success - stats["success_rate"])
        if "user_satisfaction" in metrics:
            satisfaction = float(metrics["user_satisfaction"])
            stats["avg_satisfaction"] += rate * (satisfaction - stats["avg_satisfaction"])
        duration = float(event.data.get("duration_ms", 0.0))
        stats["avg_duration_ms"] += rate * (duration - stats["avg_duration_ms"])

    async def persist_learnings(self) -> None:
        for key, stats in self._stats.items():
            self._state_manager.kv_set_json(_LEARNINGS_NAMESPACE, key, stats)
        logger.info("learnings_persisted entries=%s", len(self._stats))

    def stats_for(self, business_id: str) -> dict[str, dict[str, Any]]:
        prefix = f"{business_id}:"
        return {
            key.removeprefix(prefix): dict(stats)
            for key, stats in self._stats.items()
            if key.startswith(prefix)
        }

    def error_count(self, business_id: str) -> int:
        return self._errors.get(business_id, 0)
