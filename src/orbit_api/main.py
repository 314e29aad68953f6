"""FastAPI interface for the Orbit agent with request-scoped dependency access."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from orbit.core.config import Settings
from orbit.core.errors import (
    AgentNotRunningError,
    ChatModelError,
    ContentGenerationError,
    RecommendationNotFoundError,
)
from orbit.core.events import EventLog
from orbit.core.logging import configure_logging
from orbit.core.triggers import ChatPayload, ContentRequestPayload, MessagePayload, ingest_trigger
from orbit.lifecycle.agent import OrbitAgent
from orbit.lifecycle.factory import build_agent
from orbit.sm.manager import StateManager

logger = logging.getLogger(__name__)


class MessageIn(BaseModel):
    business_id: str = Field(min_length=1)
    message: MessagePayload


class ContentIn(BaseModel):
    business_id: str = Field(min_length=1)
    request: ContentRequestPayload = Field(default_factory=ContentRequestPayload)


class ChatIn(BaseModel):
    business_id: str = Field(min_length=1)
    chat: ChatPayload


class ChatOut(BaseModel):
    reply: str


def _agent(request: Request) -> OrbitAgent:
    return request.app.state.agent


def build_app(
    agent: OrbitAgent | None = None,
    *,
    settings: Settings | None = None,
    state_manager: StateManager | None = None,
) -> FastAPI:
    """Build FastAPI app with an explicit dependency container in ``app.state``."""
    settings = settings or Settings()
    agent = agent or build_agent(settings, state_manager=state_manager)
    event_log = EventLog(settings.event_log_size)
    agent.add_observer(event_log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        await app.state.agent.start()
        try:
            yield
        finally:
            await app.state.agent.stop()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.agent = agent
    app.state.event_log = event_log

    @app.exception_handler(AgentNotRunningError)
    async def agent_not_running(request: Request, exc: AgentNotRunningError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.post("/triggers")
    async def post_trigger(raw: dict[str, Any], request: Request) -> dict[str, Any]:
        try:
            trigger = ingest_trigger(raw)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        response = await _agent(request).process(trigger)
        return response.as_dict()

    @app.post("/messages")
    async def post_message(body: MessageIn, request: Request) -> dict[str, Any]:
        response = await _agent(request).handle_message(body.business_id, body.message)
        return response.as_dict()

    @app.post("/content")
    async def post_content(body: ContentIn, request: Request) -> dict[str, Any]:
        try:
            return await _agent(request).generate_content(body.business_id, body.request)
        except ContentGenerationError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @app.post("/chat", response_model=ChatOut)
    async def post_chat(body: ChatIn, request: Request) -> ChatOut:
        try:
            reply = await _agent(request).chat(body.business_id, body.chat)
        except ChatModelError as exc:
            logger.warning("chat_failed business_id=%s error=%s", body.business_id, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return ChatOut(reply=reply)

    @app.get("/businesses/{business_id}/recommendations")
    async def get_recommendations(business_id: str, request: Request) -> list[dict[str, Any]]:
        recommendations = await _agent(request).get_recommendations(business_id)
        return [item.as_dict() for item in recommendations]

    @app.post("/businesses/{business_id}/recommendations/{recommendation_id}/execute")
    async def execute_recommendation(
        business_id: str,
        recommendation_id: str,
        request: Request,
    ) -> list[dict[str, Any]]:
        try:
            results = await _agent(request).execute_recommendation(business_id, recommendation_id)
        except RecommendationNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return [result.as_dict() for result in results]

    @app.get("/businesses/{business_id}/insights")
    async def get_insights(
        business_id: str,
        request: Request,
        period: str = Query(default="7d", pattern=r"^\d+d$"),
    ) -> dict[str, Any]:
        insights = await _agent(request).generate_insights(business_id, period)
        return insights.as_dict()

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        agent_ = _agent(request)
        return {
            "status": "ok" if agent_.is_running else "unavailable",
            "agent_state": agent_.state.value,
            "pending_tasks": len(agent_.registry),
            "cached_profiles": len(agent_.profiles),
        }

    @app.get("/events")
    async def events(request: Request, limit: int = Query(default=100, ge=1, le=1000)) -> list[dict[str, Any]]:
        items = request.app.state.event_log.items()
        return [item.as_dict() for item in items[-limit:]]

    return app
