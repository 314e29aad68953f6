"""Heuristic planning engine."""

from __future__ import annotations

import logging
from typing import Any

from orbit.core.types import PRIORITY_RANK, Action, BusinessAnalysis, Plan, PlanningOptions

logger = logging.getLogger(__name__)

_SCHEDULED_ACTIONS: dict[str, list[tuple[str, str, str]]] = {
    "morning_routine": [
        ("create_content", "medium", "Prepare today's post"),
        ("schedule_post", "medium", "Schedule today's post"),
    ],
    "evening_analysis": [("generate_report", "medium", "Daily performance report")],
    "weekly_report": [
        ("generate_report", "high", "Weekly performance report"),
        ("analyze_competitor", "medium", "Weekly competitor scan"),
    ],
}


class HeuristicPlanningEngine:
    """Ranks candidate actions with a composite score and keeps the best ones."""

    async def plan(self, analysis: BusinessAnalysis, options: PlanningOptions) -> Plan:
        candidates: list[tuple[float, Action]] = []

        for action in self._trigger_actions(analysis):
            candidates.append((1.0 + 0.1 * PRIORITY_RANK[action.priority], action))
        for opportunity in analysis.opportunities:
            for action in opportunity.actions:
                score = 0.6 * opportunity.estimated_impact + 0.1 * PRIORITY_RANK[action.priority]
                candidates.append((score, action))
        for risk in analysis.risks:
            for action in risk.mitigation:
                score = 0.5 * risk.probability + 0.15 * PRIORITY_RANK[risk.severity]
                candidates.append((score, action))

        minimum = PRIORITY_RANK[options.priority_threshold]
        eligible = [
            (score, action) for score, action in candidates if PRIORITY_RANK[action.priority] >= minimum
        ]
        # Stable sort keeps trigger-driven actions ahead of equally scored findings.
        eligible.sort(key=lambda pair: pair[0], reverse=True)
        selected = eligible[: options.max_actions]

        if not selected:
            return Plan(
                actions=[],
                rationale=f"No candidate reached priority '{options.priority_threshold}'.",
                confidence=0.5,
                timeframe=options.time_horizon,
            )

        confidence = sum(min(1.0, score) for score, _ in selected) / len(selected)
        rationale = (
            f"Selected {len(selected)} of {len(candidates)} candidates for "
            f"{analysis.trigger_type}; top score={selected[0][0]:.3f}."
        )
        logger.debug(
            "plan_built business_id=%s actions=%s confidence=%.3f",
            options.business_id,
            len(selected),
            confidence,
        )
        return Plan(
            actions=[action for _, action in selected],
            rationale=rationale,
            confidence=confidence,
            timeframe=options.time_horizon,
        )

    @staticmethod
    def _trigger_actions(analysis: BusinessAnalysis) -> list[Action]:
        data: dict[str, Any] = analysis.trigger_data
        if analysis.trigger_type == "message_received":
            return [
                Action(
                    type="send_message",
                    priority="high",
                    title="Reply to customer",
                    parameters={
                        "recipient": data.get("sender", ""),
                        "in_reply_to": data.get("id", ""),
                        "platform": data.get("platform", "whatsapp"),
                        "content": data.get("content", ""),
                        "sentiment": analysis.sentiment,
                    },
                )
            ]
        if analysis.trigger_type == "chat_message":
            return [
                Action(
                    type="send_message",
                    priority="high",
                    title="Answer chat",
                    parameters={
                        "recipient": data.get("customer_id", ""),
                        "platform": data.get("platform", "web"),
                        "content": data.get("message", ""),
                    },
                )
            ]
        if analysis.trigger_type == "content_request":
            return [
                Action(
                    type="create_content",
                    priority="high",
                    title="Create requested content",
                    parameters=dict(data),
                )
            ]
        if analysis.trigger_type == "scheduled_check":
            return [
                Action(type=action_type, priority=priority, title=title, parameters={"check": data.get("check")})  # type: ignore[arg-type]
                for action_type, priority, title in _SCHEDULED_ACTIONS.get(str(data.get("check")), [])
            ]
        return []
