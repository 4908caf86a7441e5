"""
AI Provider Factory

Single place that decides which concrete adapter backs each capability.
Routers receive these through FastAPI dependencies (app.api.v1.deps), which
is also where tests override them with fakes.
"""
import logging

from .ai_base import AssetStorage, ChatService, ImageService, ModerationService, VoiceService
from .image_openai import openai_image_service
from .openai_client import openai_chat_service, openai_moderation_service
from .storage_local import local_asset_storage
from .tts_elevenlabs import elevenlabs_voice_service

logger = logging.getLogger(__name__)


def get_chat_service() -> ChatService:
    """
    Chat completions (evaluation, persona replies, reward text)

    Note:
    - Need to configure OPENAI_API_KEY in .env; without it every call raises
      ProviderPermanentError and the callers fall back
    """
    if not openai_chat_service.is_available():
        logger.warning("[Providers] %s not configured (OPENAI_API_KEY missing)", openai_chat_service.name)
    return openai_chat_service


def get_moderation_service() -> ModerationService:
    return openai_moderation_service


def get_voice_service() -> VoiceService:
    return elevenlabs_voice_service


def get_image_service() -> ImageService:
    return openai_image_service


def get_asset_storage() -> AssetStorage:
    return local_asset_storage
