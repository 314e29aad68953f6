"""Contracts for the collaborators the pipeline orchestrator calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from orbit.core.events import LifecycleEvent
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


@runtime_checkable
class Initializable(Protocol):
    async def initialize(self) -> None: ...


class MemoryStore(Protocol):
    async def recall(
        self,
        query: str,
        context: RequestContext,
        limit: int = 10,
    ) -> list[MemoryRecord]: ...

    async def long_term_store(self, content: str, metadata: dict[str, Any]) -> str: ...

    async def long_term_search(self, key: str, limit: int = 5) -> list[MemoryRecord]: ...

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...


class ProfileStore(Protocol):
    async def load_profile(self, business_id: str) -> BusinessProfile: ...

    async def list_active_business_ids(self) -> list[str]: ...


class MetricsProvider(Protocol):
    async def current_metrics(self, business_id: str) -> dict[str, Any]: ...


class AnalysisEngine(Protocol):
    async def analyze(self, request: AnalysisRequest) -> BusinessAnalysis: ...

    async def forecast(self, business_id: str, period: str) -> dict[str, Any]: ...


class PlanningEngine(Protocol):
    async def plan(self, analysis: BusinessAnalysis, options: PlanningOptions) -> Plan: ...


class ExecutionEngine(Protocol):
    async def execute(self, action: Action, context: RequestContext) -> TaskResult: ...


class LearningEngine(Protocol):
    async def process_learning_event(self, event: LearningEvent) -> None: ...

    async def persist_learnings(self) -> None: ...


class RecommendationEngine(Protocol):
    async def recommend(self, criteria: RecommendationCriteria) -> list[Recommendation]: ...


class ConversationModel(Protocol):
    async def generate_response(
        self,
        prompt: str,
        history: list[dict[str, str]],
        profile: BusinessProfile,
        tone: str,
    ) -> str: ...


class LifecycleObserver(Protocol):
    def notify(self, event: LifecycleEvent) -> None: ...


@runtime_checkable
class ConversationRestorer(Protocol):
    """Optional memory-store capability used by the boot sequence."""

    async def restore_pending_conversations(self) -> int: ...


@dataclass(slots=True)
class Capabilities:
    """Collaborators wired into one agent instance."""

    memory: MemoryStore
    profiles: ProfileStore
    metrics: MetricsProvider
    analysis: AnalysisEngine
    planning: PlanningEngine
    execution: ExecutionEngine
    learning: LearningEngine
    recommendation: RecommendationEngine
    conversation: ConversationModel

    def engines(self) -> list[object]:
        """Everything except the memory store, in initialization order."""
        return [
            self.profiles,
            self.metrics,
            self.analysis,
            self.planning,
            self.execution,
            self.learning,
            self.recommendation,
            self.conversation,
        ]
