"""Recommendation engine that remembers what it recommends."""

from __future__ import annotations

import json
import logging

from orbit.core.engines import MemoryStore
from orbit.core.types import (
    Action,
    BusinessAnalysis,
    Recommendation,
    RecommendationCriteria,
    TaskResult,
)

logger = logging.getLogger(__name__)


def recommendation_key(recommendation_id: str) -> str:
    return f"recommendation:{recommendation_id}"


class StoredRecommendationEngine:
    """Builds recommendations from results or analysis and stores each in long-term memory."""

    def __init__(self, memory: MemoryStore, *, max_recommendations: int = 5) -> None:
        self._memory = memory
        self._max_recommendations = max_recommendations

    async def recommend(self, criteria: RecommendationCriteria) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        if criteria.results:
            recommendations.extend(self._from_results(criteria.business_id, criteria.results))
        if criteria.analysis is not None:
            recommendations.extend(self._from_analysis(criteria.business_id, criteria.analysis))
        if criteria.include_types:
            wanted = set(criteria.include_types)
            recommendations = [item for item in recommendations if item.type in wanted]

        recommendations.sort(key=lambda item: item.confidence, reverse=True)
        recommendations = recommendations[: self._max_recommendations]
        for recommendation in recommendations:
            await self._remember(recommendation)

        logger.debug(
            "recommendations_built business_id=%s based_on=%s count=%s",
            criteria.business_id,
            criteria.based_on,
            len(recommendations),
        )
        return recommendations

    async def _remember(self, recommendation: Recommendation) -> None:
        payload = recommendation.as_dict()
        await self._memory.long_term_store(
            json.dumps(payload, ensure_ascii=False),
            {
                "type": "recommendation",
                "key": recommendation_key(recommendation.id),
                "business_id": recommendation.business_id,
                "actions": payload["actions"],
            },
        )

    @staticmethod
    def _from_results(business_id: str, results: list[TaskResult]) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        failed = [result for result in results if not result.succeeded]
        for result in failed:
            recommendations.append(
                Recommendation(
                    type="reliability",
                    title=f"Retry {result.action_type or 'failed action'}",
                    description=f"The last attempt failed: {result.error}",
                    rationale="Failed actions are worth a manual retry once the cause is fixed.",
                    business_id=business_id,
                    priority="medium",
                    actions=[Action(type=result.action_type, priority="medium")] if result.action_type else [],
                    confidence=0.6,
                )
            )

        created = any(r.succeeded and r.action_type == "create_content" for r in results)
        scheduled = any(r.succeeded and r.action_type == "schedule_post" for r in results)
        if created and not scheduled:
            recommendations.append(
                Recommendation(
                    type="content_strategy",
                    title="Schedule the new content",
                    description="Content was created but not scheduled yet.",
                    rationale="Posts published at the next best slot reach more customers.",
                    business_id=business_id,
                    priority="medium",
                    actions=[Action(type="schedule_post", priority="medium", title="Schedule post")],
                    confidence=0.7,
                )
            )
        return recommendations

    @staticmethod
    def _from_analysis(business_id: str, analysis: BusinessAnalysis) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        for risk in analysis.risks:
            recommendations.append(
                Recommendation(
                    type=f"risk_{risk.type}",
                    title=f"Mitigate {risk.type.replace('_', ' ')}",
                    description=risk.description,
                    rationale=f"Severity {risk.severity} with probability {risk.probability:.0%}.",
                    business_id=business_id,
                    priority=risk.severity,
                    actions=list(risk.mitigation),
                    confidence=max(0.5, risk.probability),
                )
            )
        for opportunity in analysis.opportunities:
            recommendations.append(
                Recommendation(
                    type=opportunity.type,
                    title=opportunity.title,
                    description=f"Estimated impact {opportunity.estimated_impact:.0%}.",
                    rationale="Detected by the performance analysis.",
                    business_id=business_id,
                    priority=opportunity.priority,
                    actions=list(opportunity.actions),
                    confidence=opportunity.estimated_impact,
                )
            )
        return recommendations
