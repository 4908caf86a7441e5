"""
Reward Orchestrator

Generates the text / voice / photo bundle unlocked by a won round.

Flow for one round:
1. persona reward cache hit -> copy it onto this round, done
2. text (required): validated, retried with linear backoff
3. voice + photo concurrently, both optional
   - photo retries on a 1s, 2s ladder; after a content-filter refusal the
     prompt is made more conservative
   - a photo that never succeeds removes the pool persona ("cursed" persona)
4. cache the bundle on the persona only when the photo exists
5. save the reward (one per round)

Concurrent requests for the same round share one in-flight generation
(RewardFlights), and the unique round key on Reward settles races across
processes.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

from ..config import settings
from ..core import reward_status
from ..core.exceptions import (
    ContentFilteredError,
    NotFoundError,
    RewardGenerationError,
    StateConflictError,
)
from ..core.retry import BackoffPolicy, is_retryable_error, with_retry
from ..models import GameRound, Reward
from . import success_meter
from .ai_base import AssetStorage, ChatMessage, ChatService, ImageService, VoiceService
from .round_store import RoundStore
from .storage_local import generate_asset_key

logger = logging.getLogger(__name__)

TEXT_POLICY = BackoffPolicy.linear(0.5, max_attempts=3)
IMAGE_POLICY = BackoffPolicy.ladder(1.0, 2.0)

MIN_REWARD_WORDS = 10
MAX_REWARD_WORDS = 60

NSFW_KEYWORDS = (
    "nude", "naked", "sex", "fuck", "dick", "cock", "pussy",
    "porn", "explicit", "nsfw", "breast", "nipple", "penis",
    "vagina", "cum", "orgasm", "masturbat",
)

REWARD_TEXT_PROMPT = (
    "The conversation went so well that you are completely won over. Write one short, "
    "flirtatious voice message to the person who charmed you. Speak in first person, "
    "playful and warm, hint at wanting to see them again, keep it suggestive at most and "
    "never explicit. 15 to 50 words. No emojis, no hashtags, no quotation marks, no stage "
    "directions. Return only the message."
)

DESCRIPTION_PLACEHOLDER = "<girl-description>"

REWARD_PHOTO_PROMPT = (
    "Candid smartphone selfie sent to someone she has a crush on. <girl-description>. "
    "She is smiling at the camera, slightly shy, soft golden-hour light, shallow depth "
    "of field, photorealistic, natural skin texture, portrait 3:4."
)

CONSERVATIVE_SUFFIX = (
    " Fully clothed in a casual everyday outfit, friendly and wholesome, "
    "public setting, no suggestive pose."
)


class RewardTextRejected(ValueError):
    """Generated reward text failed validation."""


def check_reward_text(text: Optional[str]) -> Optional[str]:
    """
    Return the reason the text is unusable, or None when it is fine.
    """
    if not text or not text.strip():
        return "Empty reward text"
    words = len(text.split())
    if words < MIN_REWARD_WORDS:
        return f"Too short: {words} words"
    if words > MAX_REWARD_WORDS:
        return f"Too long: {words} words"
    lower = text.lower()
    if any(k in lower for k in NSFW_KEYWORDS):
        return "Contains explicit/NSFW content"
    return None


def _text_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RewardTextRejected) or is_retryable_error(exc)


def build_photo_prompt(description: str, conservative: bool = False) -> str:
    prompt = REWARD_PHOTO_PROMPT.replace(DESCRIPTION_PLACEHOLDER, description.strip().rstrip("."))
    if DESCRIPTION_PLACEHOLDER in prompt:
        raise ValueError("Failed to substitute persona description in prompt")
    if conservative:
        prompt += CONSERVATIVE_SUFFIX
    return prompt


def _ms_since(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


@dataclass
class RewardOutcome:
    reward: Reward
    created: bool  # False when an already existing reward was returned
    from_cache: bool = False

    def to_dict(self) -> dict:
        return serialize_reward(self.reward)


def serialize_reward(reward: Reward) -> dict:
    return {
        "id": str(reward.id),
        "roundId": str(reward.round_id),
        "rewardText": reward.text,
        "rewardVoiceUrl": reward.voice_url,
        "rewardImageUrl": reward.image_url,
        "generationTimeMs": reward.generation_time_ms,
        "breakdown": reward.breakdown or {},
        "fromCache": reward.from_cache,
        "createdAt": reward.created_at.isoformat() if reward.created_at else None,
    }


class RewardFlights:
    """
    In-flight reward generations keyed by round id.

    Process-scoped (app.state.reward_flights). The first caller starts the
    task, later callers await the same task. Entries disappear when the task
    finishes.
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Future] = {}

    async def run(self, key, factory: Callable[[], Awaitable["RewardOutcome"]]) -> Tuple["RewardOutcome", bool]:
        """Returns (outcome, joined); joined is True for callers that did not start the task."""
        key = str(key)
        task = self._tasks.get(key)
        joined = task is not None
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        # Shielded so a disconnecting client does not cancel the shared generation
        return await asyncio.shield(task), joined

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key) -> bool:
        return str(key) in self._tasks


class RewardOrchestrator:
    def __init__(
        self,
        chat: ChatService,
        voice: VoiceService | None,
        images: ImageService | None,
        storage: AssetStorage,
        store: RoundStore,
        status: reward_status.RewardStatusRegistry,
        flights: RewardFlights,
        text_model: str | None = None,
        text_timeout: float | None = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.chat = chat
        self.voice = voice
        self.images = images
        self.storage = storage
        self.store = store
        self.status = status
        self.flights = flights
        self.text_model = text_model or settings.reward_text_model
        self.text_timeout = text_timeout or settings.reward_text_timeout
        self.sleep = sleep

    # ---------------- public ----------------

    async def generate_reward(self, round_id) -> RewardOutcome:
        """
        Produce (or return) the reward for a won round.

        An existing reward is returned with created=False rather than raising.

        Raises:
            NotFoundError: unknown round
            StateConflictError: the round is not won
            RewardGenerationError: the reward text could not be produced
        """
        game_round = await self.store.load_round(round_id)
        if game_round is None:
            raise NotFoundError("Round not found", context={"round_id": str(round_id)})
        if game_round.result != success_meter.RESULT_WIN:
            raise StateConflictError(
                "Rewards are only available for won rounds",
                code="ROUND_NOT_WON",
                context={"round_id": str(round_id), "result": game_round.result},
            )

        existing = await self.store.load_reward(game_round.id)
        if existing is not None:
            return RewardOutcome(existing, created=False, from_cache=existing.from_cache)

        outcome, joined = await self.flights.run(game_round.id, lambda: self._generate(game_round))
        if joined:
            return RewardOutcome(outcome.reward, created=False, from_cache=outcome.from_cache)
        return outcome

    def get_status(self, round_id) -> Optional[reward_status.RewardStatus]:
        return self.status.get(str(round_id))

    # ---------------- pipeline ----------------

    async def _generate(self, game_round: GameRound) -> RewardOutcome:
        rid = str(game_round.id)
        started = time.perf_counter()
        self.status.set(rid, reward_status.GENERATING, "Checking reward cache")

        cached = await self.store.load_persona_reward(game_round.persona_id)
        if cached:
            logger.info("[Reward] round=%s served from persona cache (%s)", rid, game_round.persona_id)
            reward, created = await self.store.save_reward(game_round.id, {
                "text": cached["text"],
                "voice_url": cached["voice_url"],
                "image_url": cached["image_url"],
                "generation_time_ms": _ms_since(started),
                "breakdown": {"textMs": 0, "voiceMs": 0, "imageMs": 0},
                "from_cache": True,
            })
            self.status.set(rid, reward_status.COMPLETED, "Reward loaded from cache")
            return RewardOutcome(reward, created=created, from_cache=True)

        # Text is mandatory
        self.status.set(
            rid, reward_status.GENERATING, "Writing her message",
            attempt=1, max_attempts=TEXT_POLICY.max_attempts,
        )
        text_start = time.perf_counter()
        try:
            text = await self.generate_text(
                game_round.persona_name, game_round.persona_style or "playful", round_id=rid,
            )
        except Exception as e:
            self.status.set(rid, reward_status.FAILED, "Could not write the reward message")
            logger.error("[Reward] round=%s text generation failed: %s", rid, e)
            raise RewardGenerationError(
                f"Failed to generate valid reward text after {TEXT_POLICY.max_attempts} attempts: {e}",
                context={"round_id": rid},
            ) from e
        text_ms = _ms_since(text_start)

        self.status.set(rid, reward_status.GENERATING, "Recording voice and photo")
        voice_res, image_res = await asyncio.gather(
            self._timed(self.generate_voice(text, rid)),
            self._timed(self.generate_image(game_round.persona_description, rid)),
            return_exceptions=True,
        )

        voice_url, voice_ms = None, 0
        if isinstance(voice_res, BaseException):
            logger.warning("[Reward] round=%s voice generation failed: %s", rid, voice_res)
        else:
            voice_url, voice_ms = voice_res

        image_url, image_ms, image_failed = None, 0, False
        if isinstance(image_res, BaseException):
            image_failed = True
            logger.error("[Reward] round=%s photo generation failed after retries: %s", rid, image_res)
        else:
            image_url, image_ms = image_res

        if image_failed and game_round.persona_id is not None:
            await self._drop_cursed_persona(game_round)
        elif image_url and game_round.persona_id is not None:
            await self.store.cache_persona_reward(game_round.persona_id, text, voice_url, image_url)

        reward, created = await self.store.save_reward(game_round.id, {
            "text": text,
            "voice_url": voice_url,
            "image_url": image_url,
            "generation_time_ms": _ms_since(started),
            "breakdown": {"textMs": text_ms, "voiceMs": voice_ms, "imageMs": image_ms},
            "from_cache": False,
        })
        if not created:
            logger.warning("[Reward] round=%s already had a reward, generated assets were not used", rid)

        self.status.set(rid, reward_status.COMPLETED, "Reward ready")
        logger.info(
            "[Reward] round=%s done in %dms (text %dms, voice %s, photo %s)",
            rid, reward.generation_time_ms, text_ms,
            "ok" if voice_url else "none", "ok" if image_url else "none",
        )
        return RewardOutcome(reward, created=created, from_cache=False)

    async def _timed(self, coro) -> Tuple[Optional[str], int]:
        start = time.perf_counter()
        value = await coro
        return value, _ms_since(start)

    async def _drop_cursed_persona(self, game_round: GameRound) -> None:
        logger.warning(
            "[Reward] persona %s (%s) keeps failing photo generation, removing it from the pool",
            game_round.persona_name, game_round.persona_id,
        )
        try:
            await self.store.delete_persona_assets(game_round.persona_id)
        except Exception as e:
            logger.error("[Reward] cleanup of persona %s failed: %s", game_round.persona_id, e)

    # ---------------- assets ----------------

    async def generate_text(self, persona_name: str, persona_style: str, round_id: str | None = None) -> str:
        messages = [
            ChatMessage(
                "system",
                f"You are {persona_name}, a {persona_style} woman who has been successfully "
                f"charmed through conversation.",
            ),
            ChatMessage("user", REWARD_TEXT_PROMPT),
        ]

        async def attempt(n: int) -> str:
            raw = await self.chat.complete_text(
                messages,
                model=self.text_model,
                temperature=0.9,
                max_tokens=100,
                timeout=self.text_timeout,
            )
            text = (raw or "").strip()
            reason = check_reward_text(text)
            if reason:
                raise RewardTextRejected(reason)
            return text

        def on_retry(next_attempt: int, err: BaseException, delay: float) -> None:
            if round_id:
                self.status.set(
                    round_id, reward_status.RETRYING, f"Rewriting her message ({err})",
                    attempt=next_attempt, max_attempts=TEXT_POLICY.max_attempts,
                )

        return await with_retry(
            attempt,
            policy=TEXT_POLICY,
            is_retryable=_text_retryable,
            on_retry=on_retry,
            sleep=self.sleep,
            label="reward-text",
        )

    async def generate_voice(self, text: str, round_id: str) -> Optional[str]:
        """Voice URL, or None when the voice capability is not configured."""
        if self.voice is None or not self.voice.is_available():
            logger.info("[Reward] voice service unavailable, skipping voice")
            return None
        audio = await self.voice.synthesize(text)
        return await self.storage.save(generate_asset_key("rewards/audio", round_id), audio, "audio/mpeg")

    async def generate_image(self, description: Optional[str], round_id: str) -> Optional[str]:
        """
        Photo URL, or None when there is nothing to draw or no image capability.

        Raises the last provider error once IMAGE_POLICY is exhausted; a photo
        that was generated but could not be stored comes back as None.
        """
        if not description:
            logger.warning("[Reward] round=%s has no persona description, skipping photo", round_id)
            return None
        if self.images is None or not self.images.is_available():
            logger.info("[Reward] image service unavailable, skipping photo")
            return None

        filtered = False

        async def attempt(n: int) -> bytes:
            return await self.images.synthesize(build_photo_prompt(description, conservative=filtered))

        def on_retry(next_attempt: int, err: BaseException, delay: float) -> None:
            nonlocal filtered
            if isinstance(err, ContentFilteredError):
                filtered = True
            self.status.set(
                round_id, reward_status.RETRYING, "Retaking her photo",
                attempt=next_attempt, max_attempts=IMAGE_POLICY.max_attempts,
            )

        data = await with_retry(
            attempt,
            policy=IMAGE_POLICY,
            on_retry=on_retry,
            sleep=self.sleep,
            label=f"reward-photo:{round_id}",
        )
        # Storage failures never count against the persona
        try:
            return await self.storage.save(generate_asset_key("rewards/images", round_id), data, "image/png")
        except Exception as e:
            logger.error("[Reward] round=%s photo generated but could not be stored: %s", round_id, e)
            return None
