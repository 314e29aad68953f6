from __future__ import annotations

import pytest

from orbit.core.config import Settings
from orbit.core.triggers import (
    ChatMessageTrigger,
    ContentRequestTrigger,
    MessageReceivedTrigger,
    ScheduledCheckTrigger,
    ingest_trigger,
)
from orbit.core.types import Action, Plan, RequestContext, TaskResult, action_from_dict, action_to_dict


def test_ingest_trigger_returns_typed_variant() -> None:
    trigger = ingest_trigger(
        {
            "type": "message_received",
            "business_id": "b1",
            "user_id": "u1",
            "data": {"id": "m1", "sender": "+1", "content": "Do you deliver?", "platform": "instagram"},
        }
    )

    assert isinstance(trigger, MessageReceivedTrigger)
    assert trigger.data.platform == "instagram"
    assert trigger.query_text() == "Do you deliver?"

    context = RequestContext.from_trigger(trigger)
    assert context.user_id == "u1"
    assert context.session_id.startswith("session_")


def test_ingest_trigger_defaults_optional_payloads() -> None:
    content = ingest_trigger({"type": "content_request", "business_id": "b1"})
    check = ingest_trigger({"type": "scheduled_check", "business_id": "b1", "data": {"check": "weekly_report"}})
    chat = ingest_trigger({"type": "chat_message", "business_id": "b1", "data": {"message": "hi"}})

    assert isinstance(content, ContentRequestTrigger)
    assert content.query_text() == "post engagement"
    assert isinstance(check, ScheduledCheckTrigger)
    assert check.data.period == "1d"
    assert isinstance(chat, ChatMessageTrigger)
    assert RequestContext.from_trigger(chat).user_id == "system"


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "unknown", "business_id": "b1"},
        {"type": "message_received", "business_id": "b1", "data": {"id": "m1"}},
        {"type": "message_received", "business_id": "", "data": {"id": "m1", "sender": "+1", "content": "x"}},
        {"type": "scheduled_check", "business_id": "b1"},
    ],
)
def test_ingest_trigger_rejects_invalid_documents(raw) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ValueError, match="Invalid trigger payload"):
        ingest_trigger(raw)


def test_triggers_are_immutable() -> None:
    trigger = ingest_trigger({"type": "content_request", "business_id": "b1"})

    with pytest.raises(ValueError):
        trigger.business_id = "b2"  # type: ignore[misc]


def test_scores_are_clamped_and_failed_results_carry_the_error() -> None:
    action = Action(type="send_message", priority="critical")

    assert Plan(actions=[], rationale="", confidence=1.7).confidence == 1.0
    result = TaskResult.failed(action, TimeoutError())
    assert result.status == "failed"
    assert result.error == "TimeoutError"
    assert result.task_id == action.id
    assert not result.succeeded


def test_action_dict_conversion_normalizes_priority() -> None:
    action = Action(type="create_content", priority="high", parameters={"platform": "instagram"})

    restored = action_from_dict(action_to_dict(action))
    assert restored.id == action.id
    assert restored.parameters == {"platform": "instagram"}

    fresh = action_from_dict({"type": "send_message", "priority": "urgent", "id": None})
    assert fresh.priority == "medium"
    assert fresh.id.startswith("action_")


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("ORBIT_MAX_ACTIONS", "3")
    monkeypatch.setenv("ORBIT_LOG_LEVEL", "debug")
    monkeypatch.setenv("ORBIT_APPROVAL_REQUIRED", '["update_pricing"]')

    settings = Settings(_env_file=None)

    assert settings.max_actions == 3
    assert settings.log_level == "DEBUG"
    assert settings.approval_required == ["update_pricing"]
    assert settings.engine_timeout_s == 30.0
