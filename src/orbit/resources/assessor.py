"""Budget assessment gating the decide stage."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from orbit.core.models import BusinessProfile
from orbit.core.types import Action, RequestContext

logger = logging.getLogger(__name__)

# Defaults used when an action does not carry its own estimate.
DEFAULT_TOKEN_ESTIMATE = 1_500
DEFAULT_CALL_ESTIMATE = 1


@dataclass(slots=True)
class UsageTotals:
    tokens: int = 0
    calls: int = 0
    spend: float = 0.0


@dataclass(slots=True)
class ResourceAssessment:
    """Snapshot of remaining budget for one decide invocation.

    ``can_execute`` reserves the estimate of every action it approves so a
    single plan cannot over-commit the remaining budget.
    """

    available_tokens: int
    available_calls: int
    available_spend: float
    time_constraints: list[str] = field(default_factory=list)

    def can_execute(self, action: Action) -> bool:
        tokens, calls, cost = estimate_cost(action)
        if tokens > self.available_tokens:
            return False
        if calls > self.available_calls:
            return False
        if cost > self.available_spend:
            return False
        self.available_tokens -= tokens
        self.available_calls -= calls
        self.available_spend -= cost
        return True

    def as_dict(self) -> dict[str, Any]:
        return {
            "available_tokens": self.available_tokens,
            "available_calls": self.available_calls,
            "available_spend": self.available_spend,
            "time_constraints": list(self.time_constraints),
        }


def estimate_cost(action: Action) -> tuple[int, int, float]:
    """Return (tokens, calls, spend) the action is expected to consume."""
    params = action.parameters
    tokens = int(params.get("estimated_tokens", DEFAULT_TOKEN_ESTIMATE))
    calls = int(params.get("estimated_calls", DEFAULT_CALL_ESTIMATE))
    cost = float(params.get("cost", 0.0))
    return max(0, tokens), max(0, calls), max(0.0, cost)


def metric_value(
    metrics: Mapping[str, Any],
    key: str,
    cast: type[int] | type[float],
    business_id: str,
) -> int | float:
    """Read one numeric metric reported by an engine, falling back to zero."""
    raw = metrics.get(key, 0) or 0
    try:
        return cast(raw)
    except (TypeError, ValueError):
        logger.warning(
            "usage_metrics_invalid business_id=%s key=%s value=%r", business_id, key, raw
        )
        return cast(0)


class ResourceAssessor:
    """Tracks daily usage per business and derives fresh assessments from it."""

    def __init__(self, *, daily_token_budget: int, daily_call_budget: int) -> None:
        self._daily_token_budget = daily_token_budget
        self._daily_call_budget = daily_call_budget
        self._usage: dict[tuple[str, date], UsageTotals] = {}
        self._lock = threading.Lock()

    async def assess(
        self,
        context: RequestContext,
        profile: BusinessProfile,
    ) -> ResourceAssessment:
        """Build a new assessment; never reused across pipeline runs."""
        today = datetime.now(UTC).date()
        with self._lock:
            usage = self._usage.get((context.business_id, today), UsageTotals())
            snapshot = UsageTotals(usage.tokens, usage.calls, usage.spend)

        max_spend = profile.preferences.max_daily_spend
        assessment = ResourceAssessment(
            available_tokens=max(0, self._daily_token_budget - snapshot.tokens),
            available_calls=max(0, self._daily_call_budget - snapshot.calls),
            available_spend=max(0.0, max_spend - snapshot.spend),
            time_constraints=[f"daily budgets reset at 00:00 UTC ({today.isoformat()})"],
        )
        logger.debug(
            "resources_assessed business_id=%s tokens=%s calls=%s spend=%.2f",
            context.business_id,
            assessment.available_tokens,
            assessment.available_calls,
            assessment.available_spend,
        )
        return assessment

    def record_usage(self, business_id: str, metrics: Mapping[str, Any] | None) -> None:
        """Charge executed work against today's budget for the business."""
        if not metrics:
            return
        key = (business_id, datetime.now(UTC).date())
        with self._lock:
            usage = self._usage.setdefault(key, UsageTotals())
            usage.tokens += int(metric_value(metrics, "tokens_used", int, business_id))
            usage.calls += int(metric_value(metrics, "api_calls", int, business_id))
            usage.spend += metric_value(metrics, "cost", float, business_id)

    def usage_for(self, business_id: str) -> UsageTotals:
        key = (business_id, datetime.now(UTC).date())
        with self._lock:
            usage = self._usage.get(key, UsageTotals())
            return UsageTotals(usage.tokens, usage.calls, usage.spend)
