from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import pytest

from orbit.core.config import Settings
from orbit.core.engines import Capabilities, LifecycleObserver
from orbit.core.models import BusinessProfile
from orbit.core.types import (
    Action,
    AnalysisRequest,
    BusinessAnalysis,
    LearningEvent,
    MemoryRecord,
    Plan,
    PlanningOptions,
    Recommendation,
    RecommendationCriteria,
    RequestContext,
    TaskResult,
)
from orbit.lifecycle.agent import OrbitAgent
from orbit.registry.tasks import TaskRegistry


class FakeMemory:
    def __init__(self) -> None:
        self.stored: list[tuple[str, dict[str, Any]]] = []
        self.recall_error: Exception | None = None
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def recall(self, query: str, context: RequestContext, limit: int = 10) -> list[MemoryRecord]:
        if self.recall_error is not None:
            raise self.recall_error
        return []

    async def long_term_store(self, content: str, metadata: dict[str, Any]) -> str:
        self.stored.append((content, metadata))
        return f"memory-{len(self.stored)}"

    async def long_term_search(self, key: str, limit: int = 5) -> list[MemoryRecord]:
        return [
            MemoryRecord(id=f"memory-{index}", content=content, metadata=metadata)
            for index, (content, metadata) in enumerate(self.stored)
            if metadata.get("key") == key
        ][:limit]


class FakeProfiles:
    def __init__(self) -> None:
        self.profiles: dict[str, BusinessProfile] = {}
        self.active: list[str] = []
        self.loads: Counter[str] = Counter()
        self.list_calls = 0
        self.delay_s = 0.0

    async def load_profile(self, business_id: str) -> BusinessProfile:
        self.loads[business_id] += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return self.profiles.get(business_id) or BusinessProfile.default_for(business_id)

    async def list_active_business_ids(self) -> list[str]:
        self.list_calls += 1
        return list(self.active)


class FakeMetrics:
    async def current_metrics(self, business_id: str) -> dict[str, Any]:
        return {"engagement_rate": 0.04}


class FakeAnalysis:
    def __init__(self) -> None:
        self.requests: list[AnalysisRequest] = []
        self.delay_s = 0.0

    async def analyze(self, request: AnalysisRequest) -> BusinessAnalysis:
        self.requests.append(request)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        trigger_type = request.trigger.type if request.trigger is not None else "analysis_request"
        return BusinessAnalysis(business_id=request.business_id, trigger_type=trigger_type)

    async def forecast(self, business_id: str, period: str) -> dict[str, Any]:
        return {"period": period}


class FakePlanning:
    def __init__(self) -> None:
        self.actions: Callable[[], list[Action]] = lambda: []
        self.options: list[PlanningOptions] = []

    async def plan(self, analysis: BusinessAnalysis, options: PlanningOptions) -> Plan:
        self.options.append(options)
        return Plan(actions=self.actions(), rationale="fake plan", confidence=0.9)


class FakeExecution:
    def __init__(self) -> None:
        self.failing_types: set[str] = set()
        self.executed: list[Action] = []
        self.registry: TaskRegistry | None = None
        self.seen_in_registry: list[bool] = []
        self.satisfaction = 0.9
        self.metrics_by_type: dict[str, dict[str, Any]] = {}
        self.contexts: list[RequestContext] = []
        self.gate: asyncio.Event | None = None

    async def execute(self, action: Action, context: RequestContext) -> TaskResult:
        self.executed.append(action)
        self.contexts.append(context)
        if self.registry is not None:
            self.seen_in_registry.append(action.id in self.registry)
        if self.gate is not None:
            await self.gate.wait()
        if action.type in self.failing_types:
            raise RuntimeError(f"boom {action.type}")
        return TaskResult(
            task_id=action.id,
            status="completed",
            action_type=action.type,
            output={"reply": f"done {action.type}"},
            duration_ms=1.5,
            metrics=self.metrics_by_type.get(
                action.type,
                {"tokens_used": 10, "api_calls": 1, "cost": 0.0, "user_satisfaction": self.satisfaction},
            ),
        )


class FakeLearning:
    def __init__(self) -> None:
        self.events: list[LearningEvent] = []
        self.persisted = 0
        self.error: Exception | None = None

    async def process_learning_event(self, event: LearningEvent) -> None:
        self.events.append(event)
        if self.error is not None:
            raise self.error

    async def persist_learnings(self) -> None:
        self.persisted += 1

    def of_type(self, event_type: str) -> list[LearningEvent]:
        return [event for event in self.events if event.type == event_type]


class FakeRecommendation:
    def __init__(self) -> None:
        self.criteria: list[RecommendationCriteria] = []
        self.error: Exception | None = None

    async def recommend(self, criteria: RecommendationCriteria) -> list[Recommendation]:
        self.criteria.append(criteria)
        if self.error is not None:
            raise self.error
        return []


class FakeConversation:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def generate_response(
        self,
        prompt: str,
        history: list[dict[str, str]],
        profile: BusinessProfile,
        tone: str,
    ) -> str:
        self.calls.append({"prompt": prompt, "history": history, "profile": profile, "tone": tone})
        return f"echo: {prompt}"


@dataclass
class Fakes:
    memory: FakeMemory = field(default_factory=FakeMemory)
    profiles: FakeProfiles = field(default_factory=FakeProfiles)
    metrics: FakeMetrics = field(default_factory=FakeMetrics)
    analysis: FakeAnalysis = field(default_factory=FakeAnalysis)
    planning: FakePlanning = field(default_factory=FakePlanning)
    execution: FakeExecution = field(default_factory=FakeExecution)
    learning: FakeLearning = field(default_factory=FakeLearning)
    recommendation: FakeRecommendation = field(default_factory=FakeRecommendation)
    conversation: FakeConversation = field(default_factory=FakeConversation)

    def capabilities(self) -> Capabilities:
        return Capabilities(
            memory=self.memory,
            profiles=self.profiles,
            metrics=self.metrics,
            analysis=self.analysis,
            planning=self.planning,
            execution=self.execution,
            learning=self.learning,
            recommendation=self.recommendation,
            conversation=self.conversation,
        )


def make_settings(**overrides: Any) -> Settings:
    overrides.setdefault("db_url", "sqlite://")
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def fakes() -> Fakes:
    return Fakes()


@pytest.fixture
def make_agent(fakes: Fakes) -> Callable[..., OrbitAgent]:
    def _make(
        settings: Settings | None = None,
        observers: Iterable[LifecycleObserver] = (),
        **kwargs: Any,
    ) -> OrbitAgent:
        agent = OrbitAgent(
            fakes.capabilities(),
            settings or make_settings(),
            observers=observers,
            **kwargs,
        )
        fakes.execution.registry = agent.registry
        return agent

    return _make


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings
