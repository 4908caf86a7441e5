"""
OpenAI Chat & Moderation Adapters

Thin httpx clients for:
1. Chat completions (JSON mode for evaluation, free text for replies/rewards)
2. Moderation

Errors are normalized into the provider error taxonomy (app.core.exceptions)
so callers decide about retries and fallbacks.
"""
import json
import logging
from typing import List, Optional

import httpx

from ..config import settings
from ..core.exceptions import (
    ProviderPermanentError,
    ProviderTimeoutError,
    classify_http_error,
)
from .ai_base import ChatMessage, ChatService, ModerationResult, ModerationService

logger = logging.getLogger(__name__)


def _headers() -> dict:
    return {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }


async def _post_json(provider: str, url: str, payload: dict, timeout: float) -> dict:
    """POST and return the decoded body, raising provider errors on failure."""
    if not settings.openai_api_key:
        raise ProviderPermanentError(provider, "OPENAI_API_KEY is missing")
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, headers=_headers(), json=payload)
            resp.raise_for_status()
            return resp.json()
    except httpx.TimeoutException:
        raise ProviderTimeoutError(provider, timeout)
    except (httpx.HTTPError, ValueError) as e:
        raise classify_http_error(provider, e)


class OpenAIChatService(ChatService):
    """Chat completions via the OpenAI REST API"""

    def __init__(self):
        self.api_url = f"{settings.openai_api_base.rstrip('/')}/chat/completions"
        self.default_model = settings.chat_model

    @property
    def name(self) -> str:
        return "OpenAI Chat"

    def is_available(self) -> bool:
        return bool(settings.openai_api_key)

    async def _complete(
        self,
        messages: List[ChatMessage],
        model: Optional[str],
        temperature: float,
        max_tokens: int,
        timeout: Optional[float],
        json_mode: bool,
    ) -> str:
        payload = {
            "model": model or self.default_model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        timeout = timeout or settings.reply_timeout
        logger.debug("[OpenAI] chat model=%s messages=%d json=%s", payload["model"], len(messages), json_mode)
        result = await _post_json(self.name, self.api_url, payload, timeout)

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderPermanentError(self.name, "malformed completion payload")
        if not content:
            raise ProviderPermanentError(self.name, "empty completion")
        return content

    async def complete_json(
        self,
        messages: List[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
        timeout: Optional[float] = None,
    ) -> dict:
        content = await self._complete(messages, model, temperature, max_tokens, timeout, json_mode=True)
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            raise ProviderPermanentError(self.name, "completion is not valid JSON")
        if not isinstance(data, dict):
            raise ProviderPermanentError(self.name, "completion JSON is not an object")
        return data

    async def complete_text(
        self,
        messages: List[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 200,
        timeout: Optional[float] = None,
    ) -> str:
        content = await self._complete(messages, model, temperature, max_tokens, timeout, json_mode=False)
        return content.strip()


class OpenAIModerationService(ModerationService):
    """OpenAI moderation endpoint"""

    def __init__(self):
        self.api_url = f"{settings.openai_api_base.rstrip('/')}/moderations"
        self.model = settings.moderation_model

    @property
    def name(self) -> str:
        return "OpenAI Moderation"

    async def moderate(self, text: str) -> ModerationResult:
        payload = {"model": self.model, "input": text}
        result = await _post_json(self.name, self.api_url, payload, settings.moderation_timeout)
        try:
            first = result["results"][0]
        except (KeyError, IndexError, TypeError):
            raise ProviderPermanentError(self.name, "malformed moderation payload")
        categories = {k: bool(v) for k, v in (first.get("categories") or {}).items()}
        return ModerationResult(flagged=bool(first.get("flagged")), categories=categories)


# Global singletons
openai_chat_service = OpenAIChatService()
openai_moderation_service = OpenAIModerationService()
