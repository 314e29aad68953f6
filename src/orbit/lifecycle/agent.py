"""Agent lifecycle: start/stop state machine around the pipeline orchestrator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from orbit.core.config import Settings
from orbit.core.engines import Capabilities, ConversationRestorer, Initializable, LifecycleObserver
from orbit.core.errors import (
    AgentNotRunningError,
    AgentStartupError,
    ContentGenerationError,
    RecommendationNotFoundError,
)
from orbit.core.events import LifecycleEvent, LifecycleEventName
from orbit.core.triggers import (
    ChatPayload,
    ContentRequestPayload,
    ContentRequestTrigger,
    MessagePayload,
    MessageReceivedTrigger,
    RecommendationExecutionPayload,
    RecommendationExecutionTrigger,
    ShutdownTaskPayload,
    ShutdownTaskTrigger,
    Trigger,
)
from orbit.core.types import (
    Action,
    AgentResponse,
    AnalysisRequest,
    BusinessAnalysis,
    BusinessInsights,
    MessageResponse,
    Recommendation,
    RecommendationCriteria,
    RequestContext,
    TaskResult,
    action_from_dict,
    action_to_dict,
)
from orbit.pipeline.orchestrator import PipelineOrchestrator
from orbit.profiles.cache import BusinessProfileCache
from orbit.registry.tasks import TaskRegistry
from orbit.resources.assessor import ResourceAssessor
from orbit.sm.manager import StateManager

logger = logging.getLogger(__name__)

CHAT_HISTORY_TURNS = 5
CHAT_TONE = "helpful_assistant"


class AgentState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class OrbitAgent:
    """Owns the registry, profile cache and resource ledger of one agent process."""

    def __init__(
        self,
        capabilities: Capabilities,
        settings: Settings | None = None,
        *,
        state_manager: StateManager | None = None,
        observers: Iterable[LifecycleObserver] = (),
    ) -> None:
        self._capabilities = capabilities
        self._settings = settings or Settings()
        self._state_manager = state_manager
        self._observers: list[LifecycleObserver] = list(observers)
        self._state = AgentState.STOPPED
        self._started_at: datetime | None = None
        self._startup_recommendations: dict[str, list[Recommendation]] = {}

        self.registry = TaskRegistry()
        self.profiles = BusinessProfileCache(capabilities.profiles)
        self.resources = ResourceAssessor(
            daily_token_budget=self._settings.daily_token_budget,
            daily_call_budget=self._settings.daily_call_budget,
        )
        self.pipeline = PipelineOrchestrator(
            capabilities,
            self._settings,
            registry=self.registry,
            profile_cache=self.profiles,
            resources=self.resources,
        )

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is AgentState.RUNNING

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    def add_observer(self, observer: LifecycleObserver) -> None:
        self._observers.append(observer)

    def startup_recommendations(self, business_id: str) -> list[Recommendation]:
        return list(self._startup_recommendations.get(business_id, []))

    async def start(self) -> None:
        if self._state is AgentState.RUNNING:
            logger.warning("agent_already_running")
            return
        if self._state is not AgentState.STOPPED:
            logger.warning("agent_start_ignored state=%s", self._state)
            return

        self._state = AgentState.STARTING
        logger.info("agent_starting")
        try:
            await self.pipeline.call(self._capabilities.memory.initialize())
            for engine in self._capabilities.engines():
                if isinstance(engine, Initializable):
                    await self.pipeline.call(engine.initialize())
        except Exception as exc:
            self._state = AgentState.STOPPED
            logger.error("agent_start_failed error=%s", exc)
            raise AgentStartupError(f"Agent failed to start: {exc}") from exc

        self._state = AgentState.RUNNING
        self._started_at = datetime.now(UTC)
        self._emit("agent.started", {"started_at": self._started_at.isoformat()})

        await self._boot()
        self._emit("agent.ready", {"profiles_loaded": len(self.profiles)})
        logger.info("agent_ready profiles=%s", len(self.profiles))

    async def stop(self) -> None:
        if self._state is AgentState.STOPPED:
            return
        if self._state is not AgentState.RUNNING:
            logger.warning("agent_stop_ignored state=%s", self._state)
            return

        self._state = AgentState.STOPPING
        logger.info("agent_stopping pending=%s", len(self.registry))

        critical = self.registry.critical()
        settled = await asyncio.gather(
            *(self._drain(action) for action in critical),
            return_exceptions=True,
        )
        for action, outcome in zip(critical, settled, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "critical_task_failed action_id=%s type=%s error=%s",
                    action.id,
                    action.type,
                    outcome,
                )

        self._save_state()
        try:
            await self.pipeline.call(self._capabilities.learning.persist_learnings())
        except Exception as exc:
            logger.error("persist_learnings_failed error=%s", exc)

        pending = self.registry.pending()
        if pending:
            logger.warning("agent_tasks_pending count=%s", len(pending))
            self._emit("agent.tasks_pending", {"actions": [action_to_dict(action) for action in pending]})

        try:
            await self.pipeline.call(self._capabilities.memory.close())
        except Exception as exc:
            logger.error("memory_close_failed error=%s", exc)

        self._state = AgentState.STOPPED
        self._emit("agent.stopped", {"pending": len(pending)})
        logger.info("agent_stopped")

    async def process(self, trigger: Trigger) -> AgentResponse:
        self._ensure_running()
        return await self.pipeline.process(trigger)

    async def handle_message(self, business_id: str, message: MessagePayload) -> MessageResponse:
        response = await self.process(MessageReceivedTrigger(business_id=business_id, data=message))
        reply = next(
            (
                result.output.get("reply") if isinstance(result.output, dict) else result.output
                for result in response.actions
                if result.action_type == "send_message" and result.succeeded
            ),
            None,
        )
        return MessageResponse(
            success=response.success,
            reply=reply,
            actions=response.actions,
            processing_time_ms=response.processing_time_ms,
            error=response.error,
        )

    async def generate_content(
        self,
        business_id: str,
        request: ContentRequestPayload | None = None,
    ) -> dict[str, Any]:
        trigger = ContentRequestTrigger(
            business_id=business_id,
            data=request or ContentRequestPayload(),
        )
        response = await self.process(trigger)
        for result in response.actions:
            if result.action_type == "create_content" and result.succeeded and result.output:
                return dict(result.output)
        raise ContentGenerationError(response.error or "Failed to generate content")

    async def chat(self, business_id: str, payload: ChatPayload) -> str:
        """Answer directly with the conversation model, bypassing the pipeline."""
        self._ensure_running()
        profile = await self.pipeline.call(self.profiles.get(business_id))
        history = [
            {"role": turn.role, "content": turn.content}
            for turn in payload.history[-CHAT_HISTORY_TURNS:]
        ]
        return await self.pipeline.call(
            self._capabilities.conversation.generate_response(
                payload.message, history, profile, CHAT_TONE
            )
        )

    async def get_recommendations(self, business_id: str) -> list[Recommendation]:
        self._ensure_running()
        analysis = await self._analyze_business(business_id, timeframe="1d")
        return await self.pipeline.call(
            self._capabilities.recommendation.recommend(
                RecommendationCriteria(
                    business_id=business_id,
                    based_on="current_state",
                    analysis=analysis,
                )
            )
        )

    async def execute_recommendation(self, business_id: str, recommendation_id: str) -> list[TaskResult]:
        self._ensure_running()
        key = f"recommendation:{recommendation_id}"
        records = await self.pipeline.call(self._capabilities.memory.long_term_search(key, 1))
        record = next((item for item in records if item.metadata.get("key") == key), None)
        if record is None:
            raise RecommendationNotFoundError(f"Recommendation {recommendation_id} not found")

        trigger = RecommendationExecutionTrigger(
            business_id=business_id,
            data=RecommendationExecutionPayload(recommendation_id=recommendation_id),
        )
        context = RequestContext.from_trigger(trigger)
        actions: list[Action] = []
        for raw in record.metadata.get("actions", []):
            # Fresh ids so repeated executions never collide in the registry.
            actions.append(action_from_dict({**raw, "id": None}))
        logger.info(
            "recommendation_execution business_id=%s recommendation_id=%s actions=%s",
            business_id,
            recommendation_id,
            len(actions),
        )
        return await self.pipeline.run_actions(actions, context)

    async def generate_insights(self, business_id: str, period: str = "7d") -> BusinessInsights:
        self._ensure_running()
        analysis = await self._analyze_business(
            business_id, timeframe=period, include_comparative=True, include_forecasting=True
        )
        recommendations = await self.pipeline.call(
            self._capabilities.recommendation.recommend(
                RecommendationCriteria(
                    business_id=business_id,
                    based_on="performance_analysis",
                    analysis=analysis,
                )
            )
        )
        forecast = await self.pipeline.call(
            self._capabilities.analysis.forecast(business_id, period)
        )
        return BusinessInsights(
            summary=analysis.metrics,
            opportunities=analysis.opportunities,
            risks=analysis.risks,
            recommendations=recommendations,
            trends=analysis.trends,
            forecast=forecast,
        )

    async def _analyze_business(
        self,
        business_id: str,
        *,
        timeframe: str,
        include_comparative: bool = False,
        include_forecasting: bool = False,
    ) -> BusinessAnalysis:
        profile = await self.pipeline.call(self.profiles.get(business_id))
        metrics = await self.pipeline.call(self._capabilities.metrics.current_metrics(business_id))
        request = AnalysisRequest(
            business_id=business_id,
            business_profile=profile,
            metrics=metrics,
            timeframe=timeframe,
            include_comparative=include_comparative,
            include_forecasting=include_forecasting,
        )
        return await self.pipeline.call(self._capabilities.analysis.analyze(request))

    async def _boot(self) -> None:
        steps = {
            "load_active_profiles": self._load_active_profiles(),
            "restore_conversations": self._restore_conversations(),
            "startup_analysis": self._startup_analysis(),
            "startup_recommendations": self._generate_startup_recommendations(),
        }
        settled = await asyncio.gather(*steps.values(), return_exceptions=True)
        for name, outcome in zip(steps, settled, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("boot_step_failed step=%s error=%s", name, outcome)
            else:
                logger.info("boot_step_completed step=%s result=%s", name, outcome)

    async def _active_business_ids(self) -> list[str]:
        return await self.pipeline.call(self._capabilities.profiles.list_active_business_ids())

    async def _load_active_profiles(self) -> int:
        for business_id in await self._active_business_ids():
            await self.pipeline.call(self.profiles.get(business_id))
        return len(self.profiles)

    async def _restore_conversations(self) -> int:
        memory = self._capabilities.memory
        if not isinstance(memory, ConversationRestorer):
            return 0
        return await self.pipeline.call(memory.restore_pending_conversations())

    async def _startup_analysis(self) -> int:
        analysed = 0
        for business_id in await self._active_business_ids():
            analysis = await self._analyze_business(business_id, timeframe="1d")
            logger.info(
                "startup_analysis business_id=%s opportunities=%s risks=%s",
                business_id,
                len(analysis.opportunities),
                len(analysis.risks),
            )
            analysed += 1
        return analysed

    async def _generate_startup_recommendations(self) -> int:
        total = 0
        for business_id in await self._active_business_ids():
            analysis = await self._analyze_business(business_id, timeframe="1d")
            recommendations = await self.pipeline.call(
                self._capabilities.recommendation.recommend(
                    RecommendationCriteria(
                        business_id=business_id,
                        based_on="startup",
                        analysis=analysis,
                    )
                )
            )
            self._startup_recommendations[business_id] = recommendations
            total += len(recommendations)
        return total

    async def _drain(self, action: Action) -> TaskResult:
        trigger = ShutdownTaskTrigger(
            business_id=str(action.parameters.get("business_id") or "system"),
            data=ShutdownTaskPayload(action_id=action.id),
        )
        context = RequestContext.from_trigger(trigger)
        result = await self.pipeline.call(self._capabilities.execution.execute(action, context))
        if result.succeeded:
            self.registry.remove(action.id)
            logger.info("critical_task_completed action_id=%s", action.id)
        else:
            logger.error("critical_task_failed action_id=%s error=%s", action.id, result.error)
        return result

    def _save_state(self) -> None:
        if self._state_manager is None:
            return
        snapshot = {
            "stopped_at": datetime.now(UTC).isoformat(),
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "cached_profiles": self.profiles.cached_ids(),
            "pending_actions": [action_to_dict(action) for action in self.registry.pending()],
        }
        try:
            self._state_manager.save_state(snapshot)
        except Exception as exc:
            logger.error("agent_state_save_failed error=%s", exc)
        else:
            logger.debug("agent_state_saved pending=%s", len(snapshot["pending_actions"]))

    def _emit(self, name: LifecycleEventName, payload: dict[str, Any]) -> None:
        event = LifecycleEvent(name=name, payload=payload)
        for observer in list(self._observers):
            try:
                observer.notify(event)
            except Exception:
                logger.exception("lifecycle_observer_failed event=%s", name)

    def _ensure_running(self) -> None:
        if self._state is not AgentState.RUNNING:
            raise AgentNotRunningError(f"Agent is {self._state.value}; call start() first")
