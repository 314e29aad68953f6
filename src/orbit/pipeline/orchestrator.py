"""Six-stage perceive -> analyze -> plan -> decide -> execute -> learn pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Any, TypeVar

from orbit.core.config import Settings
from orbit.core.engines import Capabilities
from orbit.core.errors import DuplicateTaskError
from orbit.core.triggers import Trigger
from orbit.core.types import (
    Action,
    AgentResponse,
    AnalysisRequest,
    BusinessAnalysis,
    ExecutionDecision,
    ExecutionOutcome,
    LearningEvent,
    Perception,
    Plan,
    PlanningOptions,
    Recommendation,
    RecommendationCriteria,
    RequestContext,
    TaskResult,
)
from orbit.profiles.cache import BusinessProfileCache
from orbit.registry.tasks import TaskRegistry
from orbit.resources.assessor import ResourceAssessment, ResourceAssessor, metric_value

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, TimeoutError):
        return "Operation timed out"
    return str(exc) or type(exc).__name__


class PipelineOrchestrator:
    """Runs one trigger through the pipeline with per-stage fault containment.

    Faults in perceive, analyze and plan abort the request and are reported as
    a single ``error_occurred`` learning event. Decide, execute and learn never
    raise: per-action faults become failed results and every other fault is
    logged.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        settings: Settings,
        *,
        registry: TaskRegistry,
        profile_cache: BusinessProfileCache,
        resources: ResourceAssessor,
    ) -> None:
        self._capabilities = capabilities
        self._settings = settings
        self._registry = registry
        self._profile_cache = profile_cache
        self._resources = resources
        self._approval_required = frozenset(settings.approval_required)

    async def call(self, awaitable: Awaitable[T]) -> T:
        """Await one external call, bounded by the configured engine timeout."""
        return await asyncio.wait_for(awaitable, timeout=self._settings.engine_timeout_s)

    async def process(self, trigger: Trigger) -> AgentResponse:
        started = time.perf_counter()
        context = RequestContext.from_trigger(trigger)
        logger.info(
            "pipeline_started business_id=%s trigger=%s session_id=%s",
            context.business_id,
            trigger.type,
            context.session_id,
        )

        stage = "perceive"
        try:
            perception = await self.perceive(trigger, context)
            stage = "analyze"
            analysis = await self.analyze(perception)
            stage = "plan"
            plan = await self.plan(analysis, context)
        except Exception as exc:
            logger.error(
                "pipeline_stage_failed stage=%s business_id=%s error=%s",
                stage,
                context.business_id,
                _error_message(exc),
            )
            await self.learn_from_error(exc, stage, trigger, context)
            return AgentResponse(
                success=False,
                processing_time_ms=_elapsed_ms(started),
                error=_error_message(exc),
                session_id=context.session_id,
            )

        decision = await self.decide(plan, perception)
        outcome = await self.execute(decision, context)
        await self.learn(outcome, context)

        response = AgentResponse(
            success=True,
            processing_time_ms=_elapsed_ms(started),
            actions=outcome.actions,
            insights=outcome.insights,
            recommendations=outcome.recommendations,
            session_id=context.session_id,
        )
        logger.info(
            "pipeline_completed business_id=%s approved=%s rejected=%s duration_ms=%.1f",
            context.business_id,
            len(decision.approved_actions),
            len(decision.rejected_actions),
            response.processing_time_ms,
        )
        return response

    async def perceive(self, trigger: Trigger, context: RequestContext) -> Perception:
        capabilities = self._capabilities
        profile = await self.call(self._profile_cache.get(context.business_id))
        memories = await self.call(capabilities.memory.recall(trigger.query_text(), context))
        metrics = await self.call(capabilities.metrics.current_metrics(context.business_id))
        return Perception(
            trigger=trigger,
            context=context,
            business_profile=profile,
            memories=memories,
            metrics=metrics,
        )

    async def analyze(self, perception: Perception) -> BusinessAnalysis:
        request = AnalysisRequest(
            business_id=perception.context.business_id,
            business_profile=perception.business_profile,
            metrics=perception.metrics,
            context=perception.context,
            trigger=perception.trigger,
            memories=perception.memories,
        )
        return await self.call(self._capabilities.analysis.analyze(request))

    async def plan(self, analysis: BusinessAnalysis, context: RequestContext) -> Plan:
        options = PlanningOptions(
            business_id=context.business_id,
            time_horizon=self._settings.time_horizon,
            max_actions=self._settings.max_actions,
            priority_threshold=self._settings.priority_threshold,  # type: ignore[arg-type]
        )
        return await self.call(self._capabilities.planning.plan(analysis, options))

    async def decide(self, plan: Plan, perception: Perception) -> ExecutionDecision:
        """Partition the plan with the policy gate first and the resource gate second."""
        context = perception.context
        try:
            assessment = await self.call(
                self._resources.assess(context, perception.business_profile)
            )
        except Exception as exc:
            logger.error(
                "resource_assessment_failed business_id=%s error=%s",
                context.business_id,
                _error_message(exc),
            )
            assessment = ResourceAssessment(available_tokens=0, available_calls=0, available_spend=0.0)

        auto_publish = perception.business_profile.preferences.auto_publish
        approved: list[Action] = []
        rejected: list[Action] = []
        reasons: dict[str, str] = {}
        for action in plan.actions:
            if action.type in self._approval_required:
                if auto_publish:
                    approved.append(action)
                else:
                    rejected.append(action)
                    reasons[action.id] = "approval_required"
            else:
                try:
                    affordable = assessment.can_execute(action)
                except (TypeError, ValueError) as exc:
                    logger.warning(
                        "action_estimate_invalid action_id=%s action_type=%s error=%s",
                        action.id,
                        action.type,
                        exc,
                    )
                    rejected.append(action)
                    reasons[action.id] = "invalid_estimate"
                    continue
                if affordable:
                    approved.append(action)
                else:
                    rejected.append(action)
                    reasons[action.id] = "insufficient_resources"

        share = len(approved) / len(plan.actions) if plan.actions else 1.0
        needs_approval = sum(1 for reason in reasons.values() if reason == "approval_required")
        counts = f"{len(approved)} approved, {len(rejected)} rejected ({needs_approval} need approval)."
        rationale = f"{plan.rationale} {counts}" if plan.rationale else counts
        return ExecutionDecision(
            approved_actions=approved,
            rejected_actions=rejected,
            rationale=rationale,
            confidence=plan.confidence * share,
            rejection_reasons=reasons,
        )

    async def execute(self, decision: ExecutionDecision, context: RequestContext) -> ExecutionOutcome:
        results = await self.run_actions(decision.approved_actions, context)
        insights = self._insights(results, context.business_id)
        recommendations: list[Recommendation] = []
        try:
            recommendations = await self.call(
                self._capabilities.recommendation.recommend(
                    RecommendationCriteria(
                        business_id=context.business_id,
                        based_on="execution_results",
                        results=results,
                    )
                )
            )
        except Exception as exc:
            logger.warning(
                "recommendations_failed business_id=%s error=%s",
                context.business_id,
                _error_message(exc),
            )
        return ExecutionOutcome(actions=results, insights=insights, recommendations=recommendations)

    async def run_actions(self, actions: list[Action], context: RequestContext) -> list[TaskResult]:
        """Execute actions in order; each fault becomes a failed result for that action only."""
        results: list[TaskResult] = []
        for action in actions:
            try:
                self._registry.register(action)
            except DuplicateTaskError as exc:
                logger.warning("task_already_running action_id=%s", action.id)
                results.append(TaskResult.failed(action, exc))
                continue

            try:
                result = await self.call(self._capabilities.execution.execute(action, context))
            except Exception as exc:
                logger.warning(
                    "action_failed action_id=%s type=%s error=%s",
                    action.id,
                    action.type,
                    _error_message(exc),
                )
                result = TaskResult.failed(action, _error_message(exc))
            finally:
                self._registry.remove(action.id)

            self._resources.record_usage(context.business_id, result.metrics)
            results.append(result)
        return results

    async def learn(self, outcome: ExecutionOutcome, context: RequestContext) -> None:
        learning = self._capabilities.learning
        events = [
            LearningEvent(
                type="action_result",
                data={
                    "task_id": result.task_id,
                    "action_type": result.action_type,
                    "status": result.status,
                    "duration_ms": result.duration_ms,
                    "metrics": result.metrics or {},
                    "error": result.error,
                    "session_id": context.session_id,
                },
                outcome=result.status,
                business_id=context.business_id,
            )
            for result in outcome.actions
        ]
        settled = await asyncio.gather(
            *(self.call(learning.process_learning_event(event)) for event in events),
            return_exceptions=True,
        )
        for event, item in zip(events, settled, strict=True):
            if isinstance(item, BaseException):
                logger.warning(
                    "learning_event_failed event_id=%s error=%s", event.id, _error_message(item)
                )

        for insight in outcome.insights:
            metadata: dict[str, Any] = {
                "type": "insight",
                "business_id": context.business_id,
                "timestamp": datetime.now(UTC).isoformat(),
                "confidence": self._settings.insight_confidence,
            }
            try:
                await self.call(self._capabilities.memory.long_term_store(insight, metadata))
            except Exception as exc:
                logger.warning(
                    "insight_store_failed business_id=%s error=%s",
                    context.business_id,
                    _error_message(exc),
                )

    async def learn_from_error(
        self,
        exc: BaseException,
        stage: str,
        trigger: Trigger,
        context: RequestContext,
    ) -> None:
        event = LearningEvent(
            type="error_occurred",
            data={
                "error": _error_message(exc),
                "error_type": type(exc).__name__,
                "stack": "".join(traceback.format_exception(exc)),
                "stage": stage,
                "trigger_type": trigger.type,
                "context": context.as_dict(),
            },
            outcome="failed",
            business_id=context.business_id,
        )
        try:
            await self.call(self._capabilities.learning.process_learning_event(event))
        except Exception as learn_exc:
            logger.error(
                "error_event_failed business_id=%s error=%s",
                context.business_id,
                _error_message(learn_exc),
            )

    def _insights(self, results: list[TaskResult], business_id: str) -> list[str]:
        threshold = self._settings.insight_satisfaction_threshold
        insights: list[str] = []
        for result in results:
            if not result.succeeded or not result.metrics:
                continue
            satisfaction = metric_value(result.metrics, "user_satisfaction", float, business_id)
            if satisfaction > threshold:
                insights.append(
                    f"High user satisfaction on {result.action_type or 'action'}: {satisfaction:.0%}"
                )
        return insights
