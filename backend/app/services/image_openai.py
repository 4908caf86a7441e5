"""
OpenAI Image Adapter

Generates portrait images through the OpenAI images endpoint and returns the
decoded PNG bytes. A refusal on safety grounds surfaces as ContentFilteredError
so the reward orchestrator can retry with a more conservative prompt.
"""
import base64
import binascii
import logging

import httpx

from ..config import settings
from ..core.exceptions import (
    ContentFilteredError,
    ProviderPermanentError,
    ProviderTimeoutError,
    classify_http_error,
)
from .ai_base import ImageService

logger = logging.getLogger(__name__)

_FILTER_MARKERS = ("content_policy_violation", "safety system", "moderation_blocked")


def _is_content_filtered(resp: httpx.Response) -> bool:
    if resp.status_code != 400:
        return False
    try:
        err = (resp.json() or {}).get("error") or {}
    except ValueError:
        return False
    text = f"{err.get('code', '')} {err.get('type', '')} {err.get('message', '')}".lower()
    return any(m in text for m in _FILTER_MARKERS)


class OpenAIImageService(ImageService):
    """Text-to-image via OpenAI"""

    def __init__(self):
        self.api_url = f"{settings.openai_api_base.rstrip('/')}/images/generations"
        self.model = settings.image_model
        self.size = settings.image_size

    @property
    def name(self) -> str:
        return "OpenAI Images"

    def is_available(self) -> bool:
        return bool(settings.openai_api_key)

    async def synthesize(self, prompt: str) -> bytes:
        if not self.is_available():
            raise ProviderPermanentError(self.name, "OPENAI_API_KEY is missing")

        headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        payload = {"model": self.model, "prompt": prompt, "size": self.size, "n": 1}
        if self.model.startswith("dall-e"):
            # gpt-image models always return base64; dall-e defaults to URLs
            payload["response_format"] = "b64_json"
        timeout = settings.image_timeout

        logger.info("[Image] generating with %s (%d chars prompt)", self.model, len(prompt))
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(self.api_url, headers=headers, json=payload)
                if _is_content_filtered(resp):
                    raise ContentFilteredError(self.name)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException:
            raise ProviderTimeoutError(self.name, timeout)
        except (httpx.HTTPError, ValueError) as e:
            raise classify_http_error(self.name, e)

        try:
            b64 = data["data"][0]["b64_json"]
            return base64.b64decode(b64)
        except (KeyError, IndexError, TypeError, binascii.Error):
            raise ProviderPermanentError(self.name, "no image in response")


# Global singleton
openai_image_service = OpenAIImageService()
