"""Conversation models used by ``OrbitAgent.chat``."""

from __future__ import annotations

import asyncio
import logging
import re

import httpx

from orbit.core.errors import ChatModelError, ChatModelMissingAPIKeyError
from orbit.core.models import BusinessProfile

logger = logging.getLogger(__name__)


def system_prompt(profile: BusinessProfile, tone: str) -> str:
    preferences = profile.preferences
    return (
        f"You are the assistant of {profile.name}, a {profile.industry} business"
        f"{f' in {profile.location}' if profile.location else ''}. "
        f"Audience: {profile.target_audience}. Speak in a {preferences.tone} tone using "
        f"{preferences.language} language. Role: {tone}."
    )


class NullConversationModel:
    """Offline model returning a canned answer; used when no provider is configured."""

    async def generate_response(
        self,
        prompt: str,
        history: list[dict[str, str]],
        profile: BusinessProfile,
        tone: str,
    ) -> str:
        return f"Thanks for your message to {profile.name}! We'll get back to you shortly."


class OpenRouterConversationModel:
    """OpenRouter chat completion client with short timeout and single retry."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout_s: float = 5.0,
        temperature: float = 0.7,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._model = model.strip()
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._temperature = temperature
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    async def generate_response(
        self,
        prompt: str,
        history: list[dict[str, str]],
        profile: BusinessProfile,
        tone: str,
    ) -> str:
        if not self._api_key:
            raise ChatModelMissingAPIKeyError("ORBIT_OPENROUTER_API_KEY is not configured")
        if not self._model:
            raise ChatModelError("ORBIT_OPENROUTER_MODEL is not configured")

        messages = [{"role": "system", "content": system_prompt(profile, tone)}]
        messages.extend(
            {"role": turn.get("role", "user"), "content": turn.get("content", "")} for turn in history
        )
        messages.append({"role": "user", "content": prompt})
        payload = {"model": self._model, "messages": messages, "temperature": self._temperature}
        headers = {"Authorization": f"Bearer {self._api_key}"}

        for attempt in range(2):
            try:
                timeout = httpx.Timeout(self._timeout_s)
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.post(self._base_url, headers=headers, json=payload)
                response.raise_for_status()
                return _extract_content(response.json())
            except httpx.TimeoutException as exc:
                if attempt == 0:
                    logger.warning("chat_model_timeout_retry model=%s", self._model)
                    await asyncio.sleep(0.1)
                    continue
                raise ChatModelError("OpenRouter timeout after retry") from exc
            except httpx.HTTPStatusError as exc:
                excerpt = _excerpt(exc.response.text, limit=500)
                raise ChatModelError(
                    f"OpenRouter request failed (status={exc.response.status_code}, body={excerpt!r})"
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise ChatModelError(f"OpenRouter request failed: {exc}") from exc

        raise ChatModelError("OpenRouter request failed unexpectedly")


def _extract_content(body: object) -> str:
    if not isinstance(body, dict):
        raise ChatModelError("OpenRouter response is not an object")
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ChatModelError("OpenRouter response without choices")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise ChatModelError("OpenRouter response without message payload")
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ChatModelError("OpenRouter returned empty content")
    return content.strip()


def _excerpt(raw_text: str, *, limit: int) -> str:
    compact = re.sub(r"\s+", " ", raw_text).strip()
    return compact[:limit] if compact else "<empty>"
