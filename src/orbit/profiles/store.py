"""Profile and operational-metrics stores backed by the state manager."""

from __future__ import annotations

import logging
from typing import Any

from orbit.core.models import BusinessProfile
from orbit.sm.manager import StateManager

logger = logging.getLogger(__name__)

_METRICS_NAMESPACE = "metrics"

BASELINE_METRICS: dict[str, float] = {
    "engagement_rate": 0.03,
    "sales_trend": 0.0,
    "customer_satisfaction": 0.7,
    "response_time_minutes": 30.0,
    "pending_messages": 0.0,
    "negative_mentions": 0.0,
    "content_posts_last_7d": 3.0,
}


class SQLProfileStore:
    """Loads profiles, falling back to a default profile for unknown businesses."""

    def __init__(self, state_manager: StateManager) -> None:
        self._state_manager = state_manager

    async def load_profile(self, business_id: str) -> BusinessProfile:
        stored = self._state_manager.load_profile(business_id)
        if stored is None:
            logger.info("profile_default business_id=%s", business_id)
            return BusinessProfile.default_for(business_id)
        return BusinessProfile.model_validate(stored)

    async def list_active_business_ids(self) -> list[str]:
        return self._state_manager.list_active_profile_ids()

    def save_profile(self, profile: BusinessProfile) -> None:
        self._state_manager.save_profile(
            profile.id,
            profile.model_dump(mode="json"),
            active=profile.active,
        )


class StoreMetricsProvider:
    """Serves the latest operational metrics snapshot recorded for a business."""

    def __init__(self, state_manager: StateManager) -> None:
        self._state_manager = state_manager

    async def current_metrics(self, business_id: str) -> dict[str, Any]:
        stored = self._state_manager.kv_get_json(_METRICS_NAMESPACE, business_id)
        metrics: dict[str, Any] = dict(BASELINE_METRICS)
        if isinstance(stored, dict):
            metrics.update(stored)
        return metrics

    def record_metrics(self, business_id: str, metrics: dict[str, Any]) -> None:
        current = self._state_manager.kv_get_json(_METRICS_NAMESPACE, business_id)
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(metrics)
        self._state_manager.kv_set_json(_METRICS_NAMESPACE, business_id, merged)
