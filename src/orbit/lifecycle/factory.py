"""Default wiring of an agent over the SQL state manager."""

from __future__ import annotations

from collections.abc import Iterable

from orbit.core.config import Settings
from orbit.core.engines import Capabilities, ConversationModel, LifecycleObserver
from orbit.engines import (
    ActionExecutor,
    AdaptiveLearningEngine,
    HeuristicAnalysisEngine,
    HeuristicPlanningEngine,
    NullConversationModel,
    OpenRouterConversationModel,
    StoredRecommendationEngine,
)
from orbit.lifecycle.agent import OrbitAgent
from orbit.memory.store import SQLMemoryStore
from orbit.profiles.store import SQLProfileStore, StoreMetricsProvider
from orbit.sm.manager import StateManager


def build_conversation_model(settings: Settings) -> ConversationModel:
    if not settings.openrouter_api_key:
        return NullConversationModel()
    return OpenRouterConversationModel(
        api_key=settings.openrouter_api_key,
        model=settings.openrouter_model,
        base_url=settings.openrouter_base_url,
        timeout_s=settings.openrouter_timeout_s,
    )


def build_capabilities(settings: Settings, state_manager: StateManager) -> Capabilities:
    memory = SQLMemoryStore(state_manager)
    return Capabilities(
        memory=memory,
        profiles=SQLProfileStore(state_manager),
        metrics=StoreMetricsProvider(state_manager),
        analysis=HeuristicAnalysisEngine(),
        planning=HeuristicPlanningEngine(),
        execution=ActionExecutor(),
        learning=AdaptiveLearningEngine(state_manager),
        recommendation=StoredRecommendationEngine(memory),
        conversation=build_conversation_model(settings),
    )


def build_agent(
    settings: Settings | None = None,
    *,
    state_manager: StateManager | None = None,
    observers: Iterable[LifecycleObserver] = (),
) -> OrbitAgent:
    """Build an agent with the default engines; nothing is started yet."""
    settings = settings or Settings()
    state_manager = state_manager or StateManager(settings.db_url)
    return OrbitAgent(
        build_capabilities(settings, state_manager),
        settings,
        state_manager=state_manager,
        observers=observers,
    )
