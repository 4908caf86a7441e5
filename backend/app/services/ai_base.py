"""
AI Capability Abstract Interfaces

The game core talks to external collaborators only through these interfaces:
- ChatService: structured (JSON) and free-text completions
- ModerationService: safety classification
- VoiceService: text-to-speech
- ImageService: text-to-image
- AssetStorage: persisting generated media and handing back a URL

Concrete adapters live next to this module (openai_client, image_openai,
tts_elevenlabs, storage_local); tests swap them for fakes.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ChatMessage:
    """One turn passed to a chat model"""
    role: str  # "system" | "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ModerationResult:
    """Raw moderation verdict"""
    flagged: bool
    categories: Dict[str, bool] = field(default_factory=dict)


@dataclass
class EvaluationContext:
    """What the evaluator knows about the round when scoring a message"""
    persona_name: str
    persona_style: Optional[str] = None
    persona_description: Optional[str] = None
    current_meter: int = 20
    message_count: int = 0


@dataclass
class QualityAnalysis:
    """
    Validated evaluator output

    delta is an int in [-8, 8]; category is one of CATEGORIES;
    reasoning is 10-200 characters.
    """
    delta: int
    category: str
    reasoning: str

    def to_dict(self) -> dict:
        return {"delta": self.delta, "category": self.category, "reasoning": self.reasoning}


CATEGORIES = ("excellent", "good", "neutral", "poor", "bad")


class ChatService(ABC):
    """Chat-completion capability"""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def complete_json(
        self,
        messages: List[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
        timeout: Optional[float] = None,
    ) -> dict:
        """
        Structured output (JSON mode).

        Raises:
        - ProviderTransientError / ProviderTimeoutError: retryable failures
        - ProviderPermanentError: bad request or unparseable payload
        """
        pass

    @abstractmethod
    async def complete_text(
        self,
        messages: List[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 200,
        timeout: Optional[float] = None,
    ) -> str:
        pass


class ModerationService(ABC):
    """Safety classification capability"""

    @abstractmethod
    async def moderate(self, text: str) -> ModerationResult:
        pass


class VoiceService(ABC):
    """Text-to-speech capability"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Return encoded audio (audio/mpeg)."""
        pass


class ImageService(ABC):
    """Text-to-image capability"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def synthesize(self, prompt: str) -> bytes:
        """
        Return encoded image bytes (PNG).

        Raises:
        - ContentFilteredError: the provider refused the prompt
        """
        pass


class AssetStorage(ABC):
    """Where generated media ends up"""

    @abstractmethod
    async def save(self, key: str, data: bytes, content_type: str) -> str:
        """Persist `data` under `key` and return a public URL."""
        pass

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Remove an asset previously returned by save(); False if it was not ours."""
        pass
