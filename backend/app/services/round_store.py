"""
Round Store

Persistence operations used by the scoring pipeline and the reward
orchestrator, on top of the Tortoise models:

- load_round / list_messages
- save_round_progress: conditional update, only while the round has no result
- append_message
- load_reward / save_reward (idempotent on round_id)
- load_persona_reward / cache_persona_reward (persona reward cache)
- delete_persona_assets (cursed persona cleanup)
"""
import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Tuple

from tortoise.exceptions import IntegrityError

from ..config import settings
from ..core.exceptions import StateConflictError
from ..models import GameRound, Message, PersonaProfile, Reward
from .ai_base import AssetStorage

logger = logging.getLogger(__name__)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class RoundStore:
    def __init__(self, storage: AssetStorage | None = None):
        self.storage = storage

    # ---------------- rounds ----------------

    async def load_round(self, round_id, user_id=None) -> Optional[GameRound]:
        filters: Dict[str, Any] = {"id": round_id}
        if user_id is not None:
            filters["user_id"] = user_id
        return await GameRound.get_or_none(**filters)

    async def save_round_progress(
        self,
        round_id,
        patch: Dict[str, Any],
        expected_message_count: int | None = None,
    ) -> None:
        """
        Apply `patch` to an active round.

        The update is filtered on `result IS NULL` (and on the message count the
        caller scored against, when given), so a terminal result is written at
        most once and a stale scorer cannot overwrite a newer state.

        Raises:
            StateConflictError: no active round matched
        """
        query = GameRound.filter(id=round_id, result__isnull=True)
        if expected_message_count is not None:
            query = query.filter(message_count=expected_message_count)
        updated = await query.update(**patch)
        if not updated:
            raise StateConflictError(
                "Round is already completed or was modified concurrently",
                code="ROUND_ALREADY_COMPLETED",
                context={"round_id": str(round_id)},
            )

    # ---------------- messages ----------------

    async def list_messages(self, round_id) -> List[Message]:
        return await Message.filter(round_id=round_id).order_by("seq")

    async def append_message(self, round_id, role: str, content: str, **fields) -> Message:
        last = await Message.filter(round_id=round_id).order_by("-seq").first()
        seq = (last.seq if last else 0) + 1
        return await Message.create(round_id=round_id, seq=seq, role=role, content=content, **fields)

    # ---------------- rewards ----------------

    async def load_reward(self, round_id) -> Optional[Reward]:
        return await Reward.get_or_none(round_id=round_id)

    async def save_reward(self, round_id, data: Dict[str, Any]) -> Tuple[Reward, bool]:
        """
        Upsert keyed by round.

        Returns (reward, created). When another writer won the race the existing
        row is returned with created=False.
        """
        existing = await Reward.get_or_none(round_id=round_id)
        if existing:
            return existing, False
        try:
            reward = await Reward.create(round_id=round_id, **data)
            return reward, True
        except IntegrityError:
            existing = await Reward.get_or_none(round_id=round_id)
            if existing is None:
                raise
            logger.info("[Store] reward for round %s already written by a concurrent request", round_id)
            return existing, False

    async def load_persona_reward(self, persona_id) -> Optional[Dict[str, Any]]:
        if persona_id is None:
            return None
        persona = await PersonaProfile.get_or_none(id=persona_id)
        if not persona or not persona.rewards_generated or not persona.reward_text:
            return None
        return {
            "text": persona.reward_text,
            "voice_url": persona.reward_voice_url,
            "image_url": persona.reward_image_url,
        }

    async def cache_persona_reward(self, persona_id, text: str, voice_url: str | None, image_url: str | None) -> bool:
        updated = await PersonaProfile.filter(id=persona_id).update(
            rewards_generated=True,
            reward_text=text,
            reward_voice_url=voice_url,
            reward_image_url=image_url,
            reward_generated_at=utcnow(),
        )
        return bool(updated)

    async def delete_persona_assets(self, persona_id) -> bool:
        """
        Delete a pool persona's portrait and cached reward assets and drop it
        from the pool. Rounds keep their persona snapshot (FK is SET NULL).
        """
        persona = await PersonaProfile.get_or_none(id=persona_id)
        if persona is None:
            return False

        if self.storage is not None:
            for url in {persona.image_url, persona.reward_voice_url, persona.reward_image_url}:
                if not url or url == settings.placeholder_portrait_url:
                    continue
                try:
                    await self.storage.delete(url)
                except Exception as e:
                    logger.warning("[Store] could not delete asset %s: %s", url, e)

        await persona.delete()
        logger.info("[Store] removed persona %s (%s) from pool", persona.name, persona_id)
        return True
