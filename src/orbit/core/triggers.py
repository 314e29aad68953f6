"""Inbound trigger envelopes, one strongly-typed variant per trigger type."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class MessagePayload(_Frozen):
    """Inbound customer message (WhatsApp, Instagram, ...)."""

    id: str
    sender: str
    content: str
    kind: str = Field(default="text", pattern="^(text|image|audio|document)$")
    platform: str = Field(default="whatsapp", pattern="^(whatsapp|instagram|facebook|email)$")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContentRequestPayload(_Frozen):
    """Request to produce social media content."""

    content_type: str = "post"
    platform: str = "instagram"
    objective: str = "engagement"
    topic: str | None = None


class ScheduledCheckPayload(_Frozen):
    """Periodic routine fired by the worker loop."""

    check: str
    period: str = "1d"


class ChatTurn(_Frozen):
    role: str
    content: str


class ChatPayload(_Frozen):
    """Conversational message addressed to the agent itself."""

    message: str
    customer_id: str = ""
    platform: str = "web"
    history: list[ChatTurn] = Field(default_factory=list)


class RecommendationExecutionPayload(_Frozen):
    recommendation_id: str


class ShutdownTaskPayload(_Frozen):
    action_id: str


class _TriggerBase(_Frozen):
    business_id: str = Field(min_length=1)
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)

    def query_text(self) -> str:
        """Text used to recall relevant memories during perception."""
        return ""


class MessageReceivedTrigger(_TriggerBase):
    type: Literal["message_received"] = "message_received"
    data: MessagePayload

    def query_text(self) -> str:
        return self.data.content


class ContentRequestTrigger(_TriggerBase):
    type: Literal["content_request"] = "content_request"
    data: ContentRequestPayload = Field(default_factory=ContentRequestPayload)

    def query_text(self) -> str:
        return self.data.topic or f"{self.data.content_type} {self.data.objective}"


class ScheduledCheckTrigger(_TriggerBase):
    type: Literal["scheduled_check"] = "scheduled_check"
    data: ScheduledCheckPayload

    def query_text(self) -> str:
        return self.data.check


class ChatMessageTrigger(_TriggerBase):
    type: Literal["chat_message"] = "chat_message"
    data: ChatPayload

    def query_text(self) -> str:
        return self.data.message


class RecommendationExecutionTrigger(_TriggerBase):
    type: Literal["recommendation_execution"] = "recommendation_execution"
    data: RecommendationExecutionPayload

    def query_text(self) -> str:
        return f"recommendation:{self.data.recommendation_id}"


class ShutdownTaskTrigger(_TriggerBase):
    type: Literal["shutdown_task"] = "shutdown_task"
    data: ShutdownTaskPayload


Trigger = Annotated[
    MessageReceivedTrigger
    | ContentRequestTrigger
    | ScheduledCheckTrigger
    | ChatMessageTrigger
    | RecommendationExecutionTrigger
    | ShutdownTaskTrigger,
    Field(discriminator="type"),
]

_TRIGGER_ADAPTER: TypeAdapter[Trigger] = TypeAdapter(Trigger)


def ingest_trigger(raw: dict[str, Any]) -> Trigger:
    """Validate a raw trigger document and convert it to its typed variant."""
    try:
        return _TRIGGER_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValueError(f"Invalid trigger payload: {details}") from exc
