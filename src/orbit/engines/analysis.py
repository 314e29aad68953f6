"""Heuristic analysis engine deriving opportunities and risks from metrics."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from orbit.core.types import (
    PRIORITY_RANK,
    Action,
    AnalysisRequest,
    BusinessAnalysis,
    Opportunity,
    Risk,
    TaskPriority,
    clamp_unit,
)
from orbit.profiles.store import BASELINE_METRICS

logger = logging.getLogger(__name__)

_POSITIVE_WORDS = {"thanks", "great", "love", "excellent", "good", "perfect", "amazing", "gracias"}
_NEGATIVE_WORDS = {"bad", "terrible", "late", "broken", "refund", "angry", "worst", "complaint", "never"}


def linear_trend(values: list[float]) -> float:
    """Least-squares slope of evenly spaced samples."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(index * value for index, value in enumerate(values))
    sum_x2 = n * (n - 1) * (2 * n - 1) / 6
    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def period_days(period: str) -> int:
    """Parse ``"7d"`` style periods; unknown formats fall back to a week."""
    digits = period.strip().lower().removesuffix("d")
    try:
        days = int(digits)
    except ValueError:
        return 7
    return days if days > 0 else 7


def severity_for(value: float, thresholds: tuple[float, float, float]) -> TaskPriority:
    medium, high, critical = thresholds
    if value > critical:
        return "critical"
    if value > high:
        return "high"
    if value > medium:
        return "medium"
    return "low"


def message_sentiment(text: str) -> float:
    """Crude lexicon polarity in [-1, 1]."""
    words = {word.strip(".,!?¡¿").lower() for word in text.split()}
    positive = len(words & _POSITIVE_WORDS)
    negative = len(words & _NEGATIVE_WORDS)
    if positive == negative == 0:
        return 0.0
    return (positive - negative) / (positive + negative)


class HeuristicAnalysisEngine:
    """Rule-based business analysis over the operational metrics snapshot.

    ``history`` optionally supplies per-business daily samples used by
    ``forecast``; without at least a week of samples the forecast reports
    insufficient data.
    """

    def __init__(self, history: dict[str, list[dict[str, float]]] | None = None) -> None:
        self._history = history or {}

    def record_sample(self, business_id: str, sample: dict[str, float]) -> None:
        self._history.setdefault(business_id, []).append(dict(sample))

    async def analyze(self, request: AnalysisRequest) -> BusinessAnalysis:
        metrics: dict[str, Any] = dict(BASELINE_METRICS)
        metrics.update(request.metrics)

        trigger_type = request.trigger.type if request.trigger is not None else "analysis_request"
        trigger_data: dict[str, Any] = (
            request.trigger.data.model_dump(mode="json") if request.trigger is not None else {}
        )

        sentiment = 0.0
        if request.trigger is not None and request.trigger.type in {"message_received", "chat_message"}:
            sentiment = message_sentiment(request.trigger.query_text())

        opportunities = self._opportunities(metrics, trigger_type, request)
        risks = self._risks(metrics, sentiment)
        trends = self._trends(metrics)

        logger.debug(
            "analysis_completed business_id=%s opportunities=%s risks=%s",
            request.business_id,
            len(opportunities),
            len(risks),
        )
        return BusinessAnalysis(
            business_id=request.business_id,
            trigger_type=trigger_type,
            metrics=metrics,
            opportunities=opportunities,
            risks=risks,
            sentiment=sentiment,
            trends=trends,
            trigger_data=trigger_data,
        )

    async def forecast(self, business_id: str, period: str) -> dict[str, Any]:
        history = self._history.get(business_id, [])
        if len(history) < 7:
            return {"sales": "insufficient_data", "engagement": "insufficient_data", "confidence": 0.1}

        days = period_days(period)
        sales = [float(sample.get("sales", 0.0)) for sample in history]
        engagement = [float(sample.get("engagement", 0.0)) for sample in history]
        return {
            "sales": {
                "predicted": max(0.0, sales[-1] + linear_trend(sales) * days),
                "confidence": min(0.8, len(history) / 30),
            },
            "engagement": {
                "predicted": max(0.0, engagement[-1] + linear_trend(engagement) * days),
                "confidence": min(0.7, len(history) / 30),
            },
            "period": f"{days}d",
        }

    def _opportunities(
        self,
        metrics: dict[str, Any],
        trigger_type: str,
        request: AnalysisRequest,
    ) -> list[Opportunity]:
        opportunities: list[Opportunity] = []

        if float(metrics.get("content_posts_last_7d", 0)) < 2:
            opportunities.append(
                Opportunity(
                    type="content_creation",
                    title="No recent posts, good moment to publish",
                    priority="medium",
                    estimated_impact=0.6,
                    actions=[
                        Action(
                            type="create_content",
                            priority="medium",
                            title="Create new content",
                            parameters={"urgency": "medium"},
                        )
                    ],
                )
            )

        hour = (request.context.timestamp if request.context else datetime.now(UTC)).hour
        if 11 <= hour <= 13:
            opportunities.append(
                Opportunity(
                    type="promotion",
                    title="Lunch time promotion",
                    priority="high",
                    estimated_impact=0.8,
                    actions=[
                        Action(
                            type="create_promotion",
                            priority="high",
                            title="Create lunch promotion",
                            parameters={"promotion": "lunch_special"},
                        )
                    ],
                )
            )

        if float(metrics.get("pending_messages", 0)) > 10 and trigger_type != "message_received":
            opportunities.append(
                Opportunity(
                    type="customer_retention",
                    title="Unanswered customers waiting",
                    priority="medium",
                    estimated_impact=0.65,
                    actions=[
                        Action(
                            type="send_message",
                            priority="medium",
                            title="Follow up pending conversations",
                            parameters={"campaign": "follow_up"},
                        )
                    ],
                )
            )

        opportunities.sort(key=lambda item: PRIORITY_RANK[item.priority], reverse=True)
        return opportunities

    def _risks(self, metrics: dict[str, Any], sentiment: float) -> list[Risk]:
        risks: list[Risk] = []

        negative = float(metrics.get("negative_mentions", 0))
        interactions = max(1.0, float(metrics.get("interactions_last_14d", 10)))
        churn_probability = clamp_unit(negative / interactions)
        churn_severity = severity_for(churn_probability, (0.1, 0.3, 0.5))
        if churn_severity != "low":
            risks.append(
                Risk(
                    type="customer_churn",
                    severity=churn_severity,
                    probability=churn_probability,
                    description=f"{churn_probability:.0%} of recent interactions were negative",
                    mitigation=[
                        Action(
                            type="send_message",
                            priority="high",
                            title="Retention campaign",
                            parameters={"campaign": "retention"},
                        )
                    ],
                )
            )

        decline = max(0.0, -float(metrics.get("sales_trend", 0.0)) * 100)
        decline_severity = severity_for(decline, (15, 30, 50))
        if decline_severity != "low":
            risks.append(
                Risk(
                    type="sales_decline",
                    severity=decline_severity,
                    probability=clamp_unit(decline / 100),
                    description=f"Sales dropped {decline:.1f}% over the last two weeks",
                    mitigation=[
                        Action(
                            type="create_promotion",
                            priority="critical",
                            title="Recovery promotion",
                            parameters={"promotion": "recovery", "discount": 20},
                        )
                    ],
                )
            )

        if sentiment < -0.3:
            risks.append(
                Risk(
                    type="negative_sentiment",
                    severity="high",
                    probability=clamp_unit(-sentiment),
                    description="Customer message reads negative",
                    mitigation=[
                        Action(
                            type="respond_comment",
                            priority="high",
                            title="Answer the complaint",
                            parameters={"tone": "empathetic"},
                        )
                    ],
                )
            )

        risks.sort(key=lambda item: PRIORITY_RANK[item.severity], reverse=True)
        return risks

    @staticmethod
    def _trends(metrics: dict[str, Any]) -> list[str]:
        trends: list[str] = []
        sales_trend = float(metrics.get("sales_trend", 0.0))
        if sales_trend > 0.05:
            trends.append(f"Sales trending up ({sales_trend:+.1%})")
        elif sales_trend < -0.05:
            trends.append(f"Sales trending down ({sales_trend:+.1%})")
        if float(metrics.get("engagement_rate", 0.0)) > 0.05:
            trends.append("Engagement above average")
        return trends
