from __future__ import annotations

import asyncio

import pytest

from orbit.core.errors import DuplicateTaskError
from orbit.core.models import AgentPreferences, BusinessProfile
from orbit.core.types import Action, RequestContext
from orbit.profiles.cache import BusinessProfileCache
from orbit.registry.tasks import TaskRegistry
from orbit.resources.assessor import ResourceAssessor, estimate_cost


def test_registry_tracks_actions_by_priority() -> None:
    registry = TaskRegistry()
    urgent = Action(type="send_message", priority="critical")
    routine = Action(type="create_content", priority="low")

    registry.register(urgent)
    registry.register(routine)

    assert len(registry) == 2
    assert urgent.id in registry
    assert registry.critical() == [urgent]
    assert registry.by_priority("low") == [routine]
    assert registry.get(routine.id) is routine


def test_registry_rejects_duplicate_ids_and_ignores_unknown_removal() -> None:
    registry = TaskRegistry()
    action = Action(type="send_message")
    registry.register(action)

    with pytest.raises(DuplicateTaskError):
        registry.register(action)

    assert registry.remove("missing") is None
    assert registry.remove(action.id) is action
    assert registry.pending() == []


class SlowStore:
    def __init__(self) -> None:
        self.loads = 0

    async def load_profile(self, business_id: str) -> BusinessProfile:
        self.loads += 1
        await asyncio.sleep(0.01)
        return BusinessProfile(id=business_id, name=f"Business {business_id}")

    async def list_active_business_ids(self) -> list[str]:
        return []


def test_concurrent_cache_misses_share_one_load() -> None:
    store = SlowStore()
    cache = BusinessProfileCache(store)

    async def scenario() -> list[BusinessProfile]:
        return await asyncio.gather(*(cache.get("b1") for _ in range(5)))

    profiles = asyncio.run(scenario())

    assert store.loads == 1
    assert all(profile is profiles[0] for profile in profiles)
    assert cache.cached_ids() == ["b1"]


def test_cache_put_and_evict() -> None:
    store = SlowStore()
    cache = BusinessProfileCache(store)
    cache.put(BusinessProfile(id="b2", name="Preloaded"))

    profile = asyncio.run(cache.get("b2"))

    assert profile.name == "Preloaded"
    assert store.loads == 0
    assert cache.evict("b2") is True
    assert cache.evict("b2") is False
    assert "b2" not in cache


def test_assessment_reserves_budget_per_approved_action() -> None:
    assessor = ResourceAssessor(daily_token_budget=3_000, daily_call_budget=10)
    profile = BusinessProfile(id="b1", preferences=AgentPreferences(max_daily_spend=1.0))

    assessment = asyncio.run(assessor.assess(RequestContext(business_id="b1"), profile))

    assert assessment.can_execute(Action(type="create_content"))
    assert assessment.can_execute(Action(type="create_content"))
    assert not assessment.can_execute(Action(type="create_content"))
    assert not assessment.can_execute(Action(type="update_pricing", parameters={"estimated_tokens": 0, "cost": 2.0}))
    assert assessment.available_tokens == 0
    assert assessment.available_calls == 8


def test_recorded_usage_shrinks_the_next_assessment() -> None:
    assessor = ResourceAssessor(daily_token_budget=1_000, daily_call_budget=5)
    profile = BusinessProfile(id="b1")

    assessor.record_usage("b1", {"tokens_used": 400, "api_calls": 2, "cost": 1.5})
    assessor.record_usage("b1", None)
    assessment = asyncio.run(assessor.assess(RequestContext(business_id="b1"), profile))
    other = asyncio.run(assessor.assess(RequestContext(business_id="b2"), profile))

    assert (assessment.available_tokens, assessment.available_calls) == (600, 3)
    assert assessment.available_spend == pytest.approx(98.5)
    assert other.available_tokens == 1_000
    assert assessor.usage_for("b1").calls == 2


def test_estimate_cost_uses_action_parameters_and_never_goes_negative() -> None:
    assert estimate_cost(Action(type="send_message")) == (1_500, 1, 0.0)
    assert estimate_cost(
        Action(type="send_message", parameters={"estimated_tokens": -5, "estimated_calls": 3, "cost": 0.25})
    ) == (0, 3, 0.25)


def test_unparseable_usage_metrics_count_as_zero() -> None:
    assessor = ResourceAssessor(daily_token_budget=1_000, daily_call_budget=5)

    assessor.record_usage("b1", {"tokens_used": "n/a", "api_calls": 2, "cost": object()})

    usage = assessor.usage_for("b1")
    assert (usage.tokens, usage.calls, usage.spend) == (0, 2, 0.0)
