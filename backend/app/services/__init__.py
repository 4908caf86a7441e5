"""
Services Module

Scoring, progression and reward pipeline, plus adapters for external services:
- Chat / Moderation / Images: OpenAI
- TTS (Text-to-Speech): ElevenLabs
- Asset storage: local media directory
"""

# Capability interfaces
from .ai_base import (
    AssetStorage,
    ChatMessage,
    ChatService,
    EvaluationContext,
    ImageService,
    ModerationResult,
    ModerationService,
    QualityAnalysis,
    VoiceService,
)
from .provider_factory import (
    get_asset_storage,
    get_chat_service,
    get_image_service,
    get_moderation_service,
    get_voice_service,
)

# Scoring pipeline
from .safety_gate import SafetyGate, SafetyVerdict
from .quality_evaluator import QualityEvaluator
from .persona_reply import PersonaReplyGenerator
from .game_service import GameService, RoundLocks, ScoreResult
from .round_store import RoundStore

# Rewards and progression
from .reward_service import RewardFlights, RewardOrchestrator, RewardOutcome
from .persona_pool import PersonaPool
from .progress import apply_round_completion, progress_summary

__all__ = [
    # Interfaces
    "AssetStorage",
    "ChatMessage",
    "ChatService",
    "EvaluationContext",
    "ImageService",
    "ModerationResult",
    "ModerationService",
    "QualityAnalysis",
    "VoiceService",
    # Providers
    "get_asset_storage",
    "get_chat_service",
    "get_image_service",
    "get_moderation_service",
    "get_voice_service",
    # Scoring
    "SafetyGate",
    "SafetyVerdict",
    "QualityEvaluator",
    "PersonaReplyGenerator",
    "GameService",
    "RoundLocks",
    "ScoreResult",
    "RoundStore",
    # Rewards / progress
    "RewardFlights",
    "RewardOrchestrator",
    "RewardOutcome",
    "PersonaPool",
    "apply_round_completion",
    "progress_summary",
]
