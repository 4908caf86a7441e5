import re
import httpx
import asyncio
import logging
from typing import AsyncGenerator
from app.config import settings  # ✅ Use unified config.py settings
from app.core.exceptions import ProviderPermanentError, ProviderTimeoutError, classify_http_error
from app.core.retry import BackoffPolicy, with_retry
from app.services.ai_base import VoiceService

logger = logging.getLogger(__name__)

MAX_VOICE_TEXT_LENGTH = 5000

# Emoji / pictograph ranges; read aloud they come out as gibberish
_EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F700-\U0001F77F"  # alchemical
    "\U0001F780-\U0001F7FF"  # geometric shapes extended
    "\U0001F800-\U0001F8FF"  # supplemental arrows-c
    "\U0001F900-\U0001F9FF"  # supplemental symbols & pictographs
    "\U0001FA00-\U0001FA6F"  # chess
    "\U0001FA70-\U0001FAFF"  # pictographs extended-a
    "☀-⛿"          # misc symbols
    "✀-➿"          # dingbats
    "︀-️"          # variation selectors
    "\U0001F1E6-\U0001F1FF"  # regional indicators (flags)
    "\U000E0020-\U000E007F"  # tags
    "]"
)


def strip_emojis(text: str) -> str:
    return _EMOJI_RE.sub("", text or "").strip()


def validate_voice_text(text: str) -> str:
    """
    Check text before sending it to ElevenLabs

    Returns the trimmed text; raises ValueError when empty or over 5000 chars.
    """
    if not isinstance(text, str):
        raise ValueError("Text must be a non-empty string")
    trimmed = text.strip()
    if not trimmed:
        raise ValueError("Text cannot be empty or whitespace only")
    if len(trimmed) > MAX_VOICE_TEXT_LENGTH:
        raise ValueError(f"Text too long (max {MAX_VOICE_TEXT_LENGTH} characters)")
    return trimmed


async def _stream_elevenlabs(
    text: str,
    voice_id: str,
    stability: float = 0.5,
    similarity_boost: float = 0.75,
    timeout: float | None = None,
) -> AsyncGenerator[bytes, None]:
    """
    Call ElevenLabs API for streaming TTS

    Parameters:
    - text: Text to synthesize
    - voice_id: ElevenLabs voice ID
    - stability: Stability (0-1), higher = more stable, lower = more expressive
    - similarity_boost: Similarity boost (0-1), similarity to original voice
    - timeout: per-request timeout in seconds

    Configuration source: app.config.settings
    - eleven_api_base: API base URL
    - eleven_api_key: API key
    - eleven_model_id: model
    """
    if not settings.eleven_api_key:
        raise ProviderPermanentError("ElevenLabs", "ELEVENLABS_API_KEY is missing")

    url = f"{settings.eleven_api_base}/text-to-speech/{voice_id}/stream"
    headers = {
        "xi-api-key": settings.eleven_api_key,
        "accept": "audio/mpeg",
        "content-type": "application/json",
    }
    payload = {
        "text": text,
        "model_id": settings.eleven_model_id,
        "voice_settings": {
            "stability": stability,
            "similarity_boost": similarity_boost,
        },
    }

    logger.info("[tts] HTTP POST %s voice=%s chars=%d", url, voice_id, len(text))
    async with httpx.AsyncClient(timeout=timeout) as client:
        async with client.stream("POST", url, headers=headers, json=payload) as resp:
            resp.raise_for_status()
            async for chunk in resp.aiter_bytes():
                if chunk:
                    yield chunk
                await asyncio.sleep(0)


class ElevenLabsVoiceService(VoiceService):
    """Reward voice lines through ElevenLabs"""

    def __init__(self, policy: BackoffPolicy | None = None):
        self.voice_id = settings.eleven_voice_id
        self.timeout = settings.voice_timeout
        self.policy = policy or BackoffPolicy(max_attempts=3, initial_delay=1.0)

    @property
    def name(self) -> str:
        return "ElevenLabs"

    def is_available(self) -> bool:
        return bool(settings.eleven_api_key) and bool(self.voice_id)

    async def _synthesize_once(self, text: str) -> bytes:
        chunks = []
        try:
            async for chunk in _stream_elevenlabs(text, self.voice_id, timeout=self.timeout):
                chunks.append(chunk)
        except httpx.TimeoutException:
            raise ProviderTimeoutError(self.name, self.timeout)
        except httpx.HTTPError as e:
            raise classify_http_error(self.name, e)

        audio = b"".join(chunks)
        if not audio:
            raise ProviderPermanentError(self.name, "empty audio received")
        return audio

    async def synthesize(self, text: str) -> bytes:
        clean = validate_voice_text(strip_emojis(text))
        audio = await with_retry(
            lambda attempt: self._synthesize_once(clean),
            policy=self.policy,
            label="voice",
        )
        logger.info("[tts] voice generated (%.2f KB)", len(audio) / 1024)
        return audio


# Global singleton
elevenlabs_voice_service = ElevenLabsVoiceService()
