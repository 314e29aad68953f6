"""Action executor dispatching to handlers by first successful match."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any, Protocol

from orbit.core.errors import UnsupportedActionError
from orbit.core.types import Action, RequestContext, TaskResult

logger = logging.getLogger(__name__)


class ActionHandler(Protocol):
    name: str

    def match(self, action: Action) -> bool: ...

    async def handle(self, action: Action, context: RequestContext) -> tuple[Any, dict[str, Any]]: ...


def usage(action: Action, *, tokens: int, satisfaction: float) -> dict[str, Any]:
    """Usage metrics reported with a result; explicit estimates win over defaults."""
    params = action.parameters
    return {
        "tokens_used": int(params.get("estimated_tokens", tokens)),
        "api_calls": int(params.get("estimated_calls", 1)),
        "cost": float(params.get("cost", 0.0)),
        "user_satisfaction": float(params.get("expected_satisfaction", satisfaction)),
    }


class _TypedHandler:
    types: frozenset[str] = frozenset()

    @property
    def name(self) -> str:
        return type(self).__name__

    def match(self, action: Action) -> bool:
        return action.type in self.types


class MessageHandler(_TypedHandler):
    """Composes replies for direct messages and public comments."""

    types = frozenset({"send_message", "respond_comment"})

    async def handle(self, action: Action, context: RequestContext) -> tuple[Any, dict[str, Any]]:
        params = action.parameters
        incoming = str(params.get("content", "")).strip()
        sentiment = float(params.get("sentiment", 0.0))
        campaign = params.get("campaign")

        if campaign:
            reply = f"Hi! We have something new for you ({campaign}). Reply to learn more."
        elif sentiment < -0.3 or params.get("tone") == "empathetic":
            reply = "We're sorry about your experience. A team member will follow up right away."
        elif incoming:
            reply = f"Thanks for your message! About \"{incoming[:80]}\": we'll help you right away."
        else:
            reply = "Thanks for reaching out! How can we help you today?"

        output = {
            "reply": reply,
            "recipient": params.get("recipient", ""),
            "platform": params.get("platform", "whatsapp"),
            "in_reply_to": params.get("in_reply_to"),
        }
        satisfaction = 0.85 if sentiment >= 0 else 0.6
        return output, usage(action, tokens=400, satisfaction=satisfaction)


class ContentHandler(_TypedHandler):
    """Drafts and schedules social media content."""

    types = frozenset({"create_content", "schedule_post"})

    async def handle(self, action: Action, context: RequestContext) -> tuple[Any, dict[str, Any]]:
        params = action.parameters
        platform = str(params.get("platform", "instagram"))
        if action.type == "schedule_post":
            output = {
                "scheduled": True,
                "platform": platform,
                "publish_at": params.get("publish_at", "next_best_slot"),
            }
            return output, usage(action, tokens=100, satisfaction=0.7)

        topic = params.get("topic") or params.get("objective") or "our latest news"
        content_type = str(params.get("content_type", "post"))
        output = {
            "content": f"New {content_type} for {platform}: {topic}. Visit us today!",
            "content_type": content_type,
            "platform": platform,
            "hashtags": [f"#{word.lower()}" for word in str(topic).split()[:3] if word.isalnum()],
        }
        return output, usage(action, tokens=1_200, satisfaction=0.75)


class CampaignHandler(_TypedHandler):
    """Promotions, newsletters and pricing changes."""

    types = frozenset({"create_promotion", "send_newsletter", "update_pricing"})

    async def handle(self, action: Action, context: RequestContext) -> tuple[Any, dict[str, Any]]:
        params = action.parameters
        if action.type == "create_promotion":
            output = {
                "promotion": params.get("promotion", "special_offer"),
                "discount": params.get("discount", 10),
            }
        elif action.type == "send_newsletter":
            output = {"newsletter": params.get("subject", "Monthly news"), "queued": True}
        else:
            output = {"price_changes": params.get("changes", {}), "applied": True}
        return output, usage(action, tokens=800, satisfaction=0.7)


class InsightHandler(_TypedHandler):
    """Reports, competitor scans and customer segmentation."""

    types = frozenset({"generate_report", "analyze_competitor", "segment_customers"})

    async def handle(self, action: Action, context: RequestContext) -> tuple[Any, dict[str, Any]]:
        output = {
            "kind": action.type,
            "business_id": context.business_id,
            "check": action.parameters.get("check"),
            "generated_at": context.timestamp.isoformat(),
        }
        return output, usage(action, tokens=2_000, satisfaction=0.8)


def default_handlers() -> list[ActionHandler]:
    return [MessageHandler(), ContentHandler(), CampaignHandler(), InsightHandler()]


class ActionExecutor:
    """Execution engine backed by a first-match handler registry."""

    def __init__(self, handlers: Iterable[ActionHandler] | None = None) -> None:
        self._handlers: list[ActionHandler] = (
            list(handlers) if handlers is not None else default_handlers()
        )

    def register(self, handler: ActionHandler) -> None:
        self._handlers.append(handler)

    def supported(self, action: Action) -> bool:
        return self._first_handler(action) is not None

    async def execute(self, action: Action, context: RequestContext) -> TaskResult:
        handler = self._first_handler(action)
        if handler is None:
            raise UnsupportedActionError(f"No handler for action type '{action.type}'")

        started = time.perf_counter()
        output, metrics = await handler.handle(action, context)
        duration_ms = (time.perf_counter() - started) * 1000.0
        logger.debug(
            "action_executed action_id=%s type=%s handler=%s duration_ms=%.2f",
            action.id,
            action.type,
            handler.name,
            duration_ms,
        )
        return TaskResult(
            task_id=action.id,
            status="completed",
            action_type=action.type,
            output=output,
            duration_ms=duration_ms,
            metrics=metrics,
        )

    def _first_handler(self, action: Action) -> ActionHandler | None:
        for handler in self._handlers:
            if handler.match(action):
                return handler
        return None
