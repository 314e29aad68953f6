from __future__ import annotations

import asyncio

import pytest

from orbit.core.errors import AgentNotRunningError
from orbit.core.models import AgentPreferences, BusinessProfile
from orbit.core.triggers import MessagePayload, MessageReceivedTrigger, ingest_trigger
from orbit.core.types import Action, Plan, RequestContext


def _message_trigger(business_id: str = "b1") -> MessageReceivedTrigger:
    return MessageReceivedTrigger(
        business_id=business_id,
        data=MessagePayload(id="m1", sender="+5491100000000", content="hello there"),
    )


def _three_actions() -> list[Action]:
    return [
        Action(type="send_message", priority="high"),
        Action(type="create_promotion", priority="high"),
        Action(type="create_content", priority="medium"),
    ]


def test_decide_rejects_only_the_action_that_needs_approval(fakes, make_agent) -> None:
    agent = make_agent()
    actions = _three_actions()

    async def scenario():  # type: ignore[no-untyped-def]
        await agent.start()
        perception = await agent.pipeline.perceive(_message_trigger(), RequestContext(business_id="b1"))
        plan = Plan(actions=actions, rationale="three actions", confidence=0.9)
        return await agent.pipeline.decide(plan, perception)

    decision = asyncio.run(scenario())

    assert len(decision.rejected_actions) == 1
    assert decision.rejected_actions[0].type == "create_promotion"
    assert [action.type for action in decision.approved_actions] == ["send_message", "create_content"]
    assert decision.rejection_reasons == {actions[1].id: "approval_required"}

    approved_ids = {action.id for action in decision.approved_actions}
    rejected_ids = {action.id for action in decision.rejected_actions}
    assert approved_ids.isdisjoint(rejected_ids)
    assert approved_ids | rejected_ids == {action.id for action in actions}
    assert 0.0 <= decision.confidence <= 1.0
    assert decision.rationale == "three actions 2 approved, 1 rejected (1 need approval)."


def test_auto_publish_approves_actions_that_need_approval(fakes, make_agent) -> None:
    fakes.profiles.profiles["b1"] = BusinessProfile(
        id="b1", preferences=AgentPreferences(auto_publish=True)
    )
    fakes.planning.actions = _three_actions
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.success
    assert [result.action_type for result in response.actions] == [
        "send_message",
        "create_promotion",
        "create_content",
    ]


def test_process_executes_only_approved_actions_in_plan_order(fakes, make_agent) -> None:
    fakes.planning.actions = _three_actions
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.success
    assert [action.type for action in fakes.execution.executed] == ["send_message", "create_content"]
    assert len(response.actions) == 2
    assert response.session_id.startswith("session_")


def test_resource_gate_rejects_actions_over_budget(fakes, make_agent, settings_factory) -> None:
    fakes.planning.actions = lambda: [
        Action(type="send_message", priority="high"),
        Action(type="create_content", priority="medium"),
    ]
    agent = make_agent(settings_factory(daily_call_budget=1))

    response = asyncio.run(_run(agent, _message_trigger()))

    assert [result.action_type for result in response.actions] == ["send_message"]


def test_unparseable_estimate_rejects_only_that_action(fakes, make_agent) -> None:
    unparseable = Action(type="send_message", priority="high", parameters={"estimated_tokens": "many"})
    fakes.planning.actions = lambda: [unparseable, Action(type="create_content", priority="medium")]
    agent = make_agent()

    async def scenario():  # type: ignore[no-untyped-def]
        await agent.start()
        perception = await agent.pipeline.perceive(_message_trigger(), RequestContext(business_id="b1"))
        plan = Plan(actions=fakes.planning.actions(), rationale="mixed estimates", confidence=0.9)
        decision = await agent.pipeline.decide(plan, perception)
        try:
            return decision, await agent.process(_message_trigger())
        finally:
            await agent.stop()

    decision, response = asyncio.run(scenario())

    assert decision.rejection_reasons == {unparseable.id: "invalid_estimate"}
    assert [action.type for action in decision.approved_actions] == ["create_content"]
    assert response.success
    assert [result.action_type for result in response.actions] == ["create_content"]


def test_unparseable_metrics_do_not_abort_remaining_actions(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [
        Action(type="send_message", priority="high"),
        Action(type="create_content", priority="medium"),
    ]
    fakes.execution.metrics_by_type["send_message"] = {"tokens_used": "n/a", "user_satisfaction": "high"}
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger("b1")))

    assert response.success
    assert [result.status for result in response.actions] == ["completed", "completed"]
    assert [action.type for action in fakes.execution.executed] == ["send_message", "create_content"]
    assert response.insights == ["High user satisfaction on create_content: 90%"]
    assert agent.resources.usage_for("b1").tokens == 10
    assert agent.resources.usage_for("b1").calls == 1
    assert len(agent.registry) == 0


def test_failed_action_becomes_failed_result_and_processing_continues(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [
        Action(type="send_message", priority="high"),
        Action(type="generate_report", priority="medium"),
        Action(type="create_content", priority="medium"),
    ]
    fakes.execution.failing_types = {"generate_report"}
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.success
    assert len(response.actions) == 3
    failed = response.actions[1]
    assert failed.status == "failed"
    assert failed.duration_ms == 0
    assert failed.error == "boom generate_report"
    assert response.actions[2].status == "completed"
    assert len(agent.registry) == 0


def test_actions_are_registered_while_executing(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [Action(type="send_message", priority="critical")]
    agent = make_agent()

    asyncio.run(_run(agent, _message_trigger()))

    assert fakes.execution.seen_in_registry == [True]
    assert len(agent.registry) == 0


def test_perceive_failure_returns_failure_and_one_error_event(fakes, make_agent) -> None:
    fakes.memory.recall_error = RuntimeError("memory unavailable")
    fakes.planning.actions = _three_actions
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger("b1")))

    assert response.success is False
    assert response.error == "memory unavailable"
    assert response.processing_time_ms >= 0
    errors = [event for event in fakes.learning.of_type("error_occurred") if event.business_id == "b1"]
    assert len(errors) == 1
    assert errors[0].data["stage"] == "perceive"
    assert errors[0].data["error_type"] == "RuntimeError"
    assert "memory unavailable" in errors[0].data["stack"]
    assert errors[0].data["context"]["business_id"] == "b1"
    assert fakes.learning.of_type("action_result") == []
    assert fakes.execution.executed == []


def test_slow_analysis_times_out_as_upstream_failure(fakes, make_agent, settings_factory) -> None:
    fakes.analysis.delay_s = 1.0
    agent = make_agent(settings_factory(engine_timeout_s=0.05))

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.success is False
    assert response.error == "Operation timed out"
    assert len(fakes.learning.of_type("error_occurred")) == 1
    assert fakes.learning.of_type("error_occurred")[0].data["stage"] == "analyze"


def test_learn_emits_one_event_per_result_and_stores_insights(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [
        Action(type="send_message", priority="high"),
        Action(type="create_content", priority="medium"),
    ]
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger("b1")))

    events = fakes.learning.of_type("action_result")
    assert len(events) == len(response.actions) == 2
    assert {event.data["task_id"] for event in events} == {result.task_id for result in response.actions}
    assert len(response.insights) == 2
    insights = [metadata for _, metadata in fakes.memory.stored if metadata["type"] == "insight"]
    assert len(insights) == 2
    assert all(item["business_id"] == "b1" and item["confidence"] == 0.8 for item in insights)


def test_low_satisfaction_yields_no_insight(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [Action(type="send_message", priority="high")]
    fakes.execution.satisfaction = 0.8
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.insights == []
    assert fakes.memory.stored == []


def test_downstream_failures_never_fail_the_response(fakes, make_agent) -> None:
    fakes.planning.actions = lambda: [Action(type="send_message", priority="high")]
    fakes.recommendation.error = RuntimeError("recommender down")
    fakes.learning.error = RuntimeError("learning down")
    agent = make_agent()

    response = asyncio.run(_run(agent, _message_trigger()))

    assert response.success
    assert response.recommendations == []
    assert len(response.actions) == 1
    assert fakes.recommendation.criteria[0].based_on == "execution_results"


def test_plan_receives_fixed_policy_parameters(fakes, make_agent) -> None:
    agent = make_agent()

    trigger = ingest_trigger(
        {"type": "scheduled_check", "business_id": "b1", "data": {"check": "morning_routine"}}
    )
    asyncio.run(_run(agent, trigger))

    options = fakes.planning.options[0]
    assert options.time_horizon == "immediate"
    assert options.max_actions == 5
    assert options.priority_threshold == "medium"


def test_process_requires_running_agent(make_agent) -> None:
    agent = make_agent()

    with pytest.raises(AgentNotRunningError):
        asyncio.run(agent.process(_message_trigger()))


async def _run(agent, trigger):  # type: ignore[no-untyped-def]
    await agent.start()
    try:
        return await agent.process(trigger)
    finally:
        await agent.stop()
