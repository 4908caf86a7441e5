"""
Game Service (message scoring pipeline)

score_message runs one user message through the round:

1. validate the text
2. first message only: generic opener -> ghosted (forced loss)
3. debug bypass code (admin + flag) -> forced win
4. Safety Gate -> unsafe -> forced loss
5. Quality Evaluator -> raw delta
6. Combo Engine amplifies the delta with the combo level in effect before
   this message; the raw delta then advances/holds/breaks the combo
7. Success Meter transition
8. persona reply (a failure here aborts the request with no state change)
9. persist: conditional round update, messages, progress on completion

Scoring for one round is serialized with RoundLocks in-process, and the
conditional update on (result IS NULL, message_count) rejects stale writers
across processes.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..config import settings
from ..core.exceptions import NotFoundError, StateConflictError, UnsafeContentError, ValidationError
from ..core.locks import KeyedLocks
from ..models import GameRound, Message, User
from . import combo, success_meter, xp
from .ai_base import ChatMessage, EvaluationContext, QualityAnalysis
from .persona_reply import PersonaReplyGenerator
from .progress import CompletionOutcome, apply_round_completion
from .quality_evaluator import QualityEvaluator
from .round_store import RoundStore, utcnow
from .safety_gate import SafetyGate

logger = logging.getLogger(__name__)

GHOSTED_REASON = "ghosted"
GHOSTED_MESSAGE = "You got ghosted..."
UNSAFE_SYSTEM_REPLY = "That was inappropriate. Game over."

GENERIC_OPENERS = (
    "hi", "hey", "hello", "sup", "yo", "heya", "hiya",
    "whats up", "what's up", "wassup", "whatsup", "wazzup",
    "how are you", "hows it going", "how's it going",
    "hru", "wyd", "hey there", "hi there", "hello there",
)
_TRAILING_PUNCT_RE = re.compile(r"[?!.]+$")


def validate_user_message(message, max_length: int | None = None) -> str:
    """
    Return the trimmed message or raise ValidationError.
    """
    max_length = max_length or settings.max_message_length
    if not isinstance(message, str) or not message:
        raise ValidationError("Message must be a non-empty string")
    trimmed = message.strip()
    if not trimmed:
        raise ValidationError("Message cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"Message too long (max {max_length} characters)")
    return trimmed


def is_generic_opener(message: str) -> bool:
    """'hey', 'hi there!', 'what's up?' ... with nothing else worth answering"""
    text = _TRAILING_PUNCT_RE.sub("", (message or "").lower().strip())
    if text in GENERIC_OPENERS:
        return True
    if len(text) < 15:
        for opener in GENERIC_OPENERS:
            if text.startswith(opener) and len(text[len(opener):].strip()) < 3:
                return True
    return False


class RoundLocks(KeyedLocks):
    """
    Per-round asyncio locks.

    Process-scoped: created at startup (app.state.round_locks) and injected.
    """


@dataclass
class ScoreResult:
    round_id: str
    status: str  # active | won | lost
    previous_meter: int
    meter: int
    delta: int  # applied to the meter (after combo)
    raw_delta: int
    category: Optional[str]
    reasoning: Optional[str]
    combo: int
    highest_combo: int
    user_message: Message
    reply: Optional[Message] = None
    system_reply: Optional[str] = None
    instant_fail: bool = False
    fail_reason: Optional[str] = None
    ghosted: bool = False
    debug_bypass: bool = False
    message_xp: int = 0
    completion: Optional[CompletionOutcome] = None

    @property
    def won(self) -> bool:
        return self.status == success_meter.WON

    def to_dict(self) -> dict:
        reply = None
        if self.reply is not None:
            reply = serialize_message(self.reply)
        elif self.system_reply:
            reply = {"id": "system", "role": "assistant", "content": self.system_reply}
        return {
            "roundId": self.round_id,
            "status": self.status,
            "result": success_meter.result_for_status(self.status),
            "meter": self.meter,
            "delta": self.delta,
            "category": self.category,
            "successMeter": {
                "previous": self.previous_meter,
                "delta": self.delta,
                "rawDelta": self.raw_delta,
                "current": self.meter,
                "category": self.category,
                "reasoning": self.reasoning,
            },
            "combo": combo.describe(self.combo),
            "highestCombo": self.highest_combo,
            "userMessage": serialize_message(self.user_message),
            "aiResponse": reply,
            "instantFail": self.instant_fail,
            "failReason": self.fail_reason,
            "ghosted": self.ghosted,
            "messageXp": self.message_xp,
            "roundXp": self.completion.to_dict() if self.completion else None,
        }


def serialize_message(m: Message) -> dict:
    return {
        "id": str(m.id),
        "seq": m.seq,
        "role": m.role,
        "content": m.content,
        "delta": m.delta,
        "rawDelta": m.raw_delta,
        "meterAfter": m.meter_after,
        "category": m.category,
        "reasoning": m.reasoning,
        "comboAfter": m.combo_after,
        "xpEarned": m.xp_earned,
        "isInstantFail": m.is_instant_fail,
        "failReason": m.fail_reason,
        "createdAt": m.created_at.isoformat() if m.created_at else None,
    }


def evaluation_context(game_round: GameRound, meter: int | None = None) -> EvaluationContext:
    return EvaluationContext(
        persona_name=game_round.persona_name,
        persona_style=game_round.persona_style,
        persona_description=game_round.persona_description,
        current_meter=game_round.meter if meter is None else meter,
        message_count=game_round.message_count,
    )


class GameService:
    def __init__(
        self,
        store: RoundStore,
        gate: SafetyGate,
        evaluator: QualityEvaluator,
        replier: PersonaReplyGenerator,
        locks: RoundLocks,
        enable_ghosting: bool | None = None,
        enable_debug_bypass: bool | None = None,
        debug_bypass_code: str | None = None,
    ):
        self.store = store
        self.gate = gate
        self.evaluator = evaluator
        self.replier = replier
        self.locks = locks
        self.enable_ghosting = settings.enable_ghosting if enable_ghosting is None else enable_ghosting
        self.enable_debug_bypass = (
            settings.enable_debug_bypass if enable_debug_bypass is None else enable_debug_bypass
        )
        self.debug_bypass_code = debug_bypass_code or settings.debug_bypass_code

    # ---------------- public ----------------

    async def score_message(self, round_id, user: User, text) -> ScoreResult:
        """
        Raises:
            ValidationError: bad message text
            NotFoundError: round missing or owned by someone else
            StateConflictError: round already completed
            ProviderError: the persona reply could not be produced
        """
        message = validate_user_message(text)

        async with self.locks.hold(round_id):
            game_round = await self.store.load_round(round_id, user_id=user.id)
            if game_round is None:
                raise NotFoundError("Round not found", context={"round_id": str(round_id)})
            if game_round.result is not None:
                raise StateConflictError(
                    "Round already completed",
                    code="ROUND_ALREADY_COMPLETED",
                    context={"round_id": str(round_id), "result": game_round.result},
                )

            if self.enable_ghosting and game_round.message_count == 0 and is_generic_opener(message):
                return await self._ghost(game_round, message)

            if self._bypass_allowed(user, message):
                return await self._debug_win(game_round, message)

            try:
                await self._screen(message)
            except UnsafeContentError as e:
                return await self._instant_fail(game_round, message, e)

            return await self._score(game_round, user, message)

    # ---------------- branches ----------------

    async def _screen(self, message: str) -> None:
        verdict = await self.gate.evaluate(message)
        if not verdict.safe:
            raise UnsafeContentError(verdict.reason or "offensive", verdict.detail)

    def _bypass_allowed(self, user: User, message: str) -> bool:
        if not success_meter.is_debug_bypass(message, self.debug_bypass_code):
            return False
        if not self.enable_debug_bypass:
            return False
        if getattr(user, "role", "user") != "admin":
            logger.warning("[Game] debug bypass attempted by non-admin user %s", user.id)
            return False
        return True

    async def _score(self, game_round: GameRound, user: User, message: str) -> ScoreResult:
        stored = await self.store.list_messages(game_round.id)
        history = [ChatMessage(m.role, m.content) for m in stored]
        context = evaluation_context(game_round)

        analysis: QualityAnalysis = await self.evaluator.analyze(message, history, context)

        combo_before = combo.clamp_level(game_round.combo)
        applied = combo.amplify(analysis.delta, combo_before)
        combo_after = combo.advance(combo_before, analysis.delta)
        step = success_meter.transition(game_round.meter, applied)

        level = xp.level_for_xp(user.total_xp)
        msg_xp = xp.message_xp(analysis.delta, level)

        # Reply before any write: a failed reply leaves the round untouched
        reply_text = await self.replier.reply_to(
            message, history, evaluation_context(game_round, step.meter_after), analysis.delta,
        )

        highest = max(game_round.highest_combo, combo_after)
        patch = {
            "meter": step.meter_after,
            "combo": combo_after,
            "highest_combo": highest,
            "message_count": game_round.message_count + 1,
            "message_xp_sum": game_round.message_xp_sum + msg_xp,
        }
        result = success_meter.result_for_status(step.status)
        if result:
            patch["result"] = result
            patch["completed_at"] = utcnow()
        await self.store.save_round_progress(game_round.id, patch, expected_message_count=game_round.message_count)

        user_msg = await self.store.append_message(
            game_round.id, "user", message,
            delta=step.applied_delta,
            raw_delta=analysis.delta,
            meter_after=step.meter_after,
            category=analysis.category,
            reasoning=analysis.reasoning,
            combo_after=combo_after,
            xp_earned=msg_xp,
        )
        reply_msg = await self.store.append_message(
            game_round.id, "assistant", reply_text, meter_after=step.meter_after,
        )

        logger.info(
            "[Game] round=%s meter %d -> %d (raw %+d, applied %+d, combo %d -> %d) status=%s",
            game_round.id, step.meter_before, step.meter_after, analysis.delta,
            step.applied_delta, combo_before, combo_after, step.status,
        )

        completion = None
        if step.is_terminal:
            game_round.message_xp_sum = patch["message_xp_sum"]
            completion = await apply_round_completion(game_round, won=step.status == success_meter.WON)

        return ScoreResult(
            round_id=str(game_round.id),
            status=step.status,
            previous_meter=step.meter_before,
            meter=step.meter_after,
            delta=step.applied_delta,
            raw_delta=analysis.delta,
            category=analysis.category,
            reasoning=analysis.reasoning,
            combo=combo_after,
            highest_combo=highest,
            user_message=user_msg,
            reply=reply_msg,
            message_xp=msg_xp,
            completion=completion,
        )

    async def _instant_fail(self, game_round: GameRound, message: str, err: UnsafeContentError) -> ScoreResult:
        step = success_meter.force_loss(game_round.meter, reason="unsafe")
        logger.warning("[Game] round=%s instant fail (%s)", game_round.id, err.reason)
        user_msg = await self._finish_forced(
            game_round, message, step,
            message_fields={
                "meter_after": step.meter_after,
                "is_instant_fail": True,
                "fail_reason": err.reason,
            },
        )
        completion = await apply_round_completion(game_round, won=False)
        return ScoreResult(
            round_id=str(game_round.id),
            status=step.status,
            previous_meter=step.meter_before,
            meter=step.meter_after,
            delta=step.applied_delta,
            raw_delta=0,
            category=None,
            reasoning=err.detail,
            combo=0,
            highest_combo=game_round.highest_combo,
            user_message=user_msg,
            system_reply=UNSAFE_SYSTEM_REPLY,
            instant_fail=True,
            fail_reason=err.reason,
            completion=completion,
        )

    async def _ghost(self, game_round: GameRound, message: str) -> ScoreResult:
        step = success_meter.force_loss(game_round.meter, reason=GHOSTED_REASON)
        logger.info("[Game] round=%s generic opener, user got ghosted", game_round.id)
        user_msg = await self._finish_forced(
            game_round, message, step,
            message_fields={
                "delta": step.applied_delta,
                "meter_after": step.meter_after,
                "category": "bad",
                "reasoning": "Generic opener - ghosted",
                "is_instant_fail": True,
                "fail_reason": GHOSTED_REASON,
            },
        )
        completion = await apply_round_completion(game_round, won=False)
        return ScoreResult(
            round_id=str(game_round.id),
            status=step.status,
            previous_meter=step.meter_before,
            meter=step.meter_after,
            delta=step.applied_delta,
            raw_delta=step.applied_delta,
            category="bad",
            reasoning=GHOSTED_MESSAGE,
            combo=0,
            highest_combo=game_round.highest_combo,
            user_message=user_msg,
            instant_fail=True,
            fail_reason=GHOSTED_REASON,
            ghosted=True,
            completion=completion,
        )

    async def _debug_win(self, game_round: GameRound, message: str) -> ScoreResult:
        step = success_meter.force_win(game_round.meter)
        logger.warning("[Game] round=%s debug bypass code used, forcing win", game_round.id)
        user_msg = await self._finish_forced(
            game_round, message, step,
            message_fields={
                "delta": step.applied_delta,
                "meter_after": step.meter_after,
                "category": "excellent",
                "reasoning": "Debug bypass code",
            },
        )
        reply_msg = await self.store.append_message(
            game_round.id, "assistant", success_meter.DEBUG_BYPASS_REPLY, meter_after=step.meter_after,
        )
        completion = await apply_round_completion(game_round, won=True)
        return ScoreResult(
            round_id=str(game_round.id),
            status=step.status,
            previous_meter=step.meter_before,
            meter=step.meter_after,
            delta=step.applied_delta,
            raw_delta=0,
            category="excellent",
            reasoning="Debug bypass code",
            combo=combo.clamp_level(game_round.combo),
            highest_combo=game_round.highest_combo,
            user_message=user_msg,
            reply=reply_msg,
            debug_bypass=True,
            completion=completion,
        )

    async def _finish_forced(
        self,
        game_round: GameRound,
        message: str,
        step: success_meter.MeterTransition,
        message_fields: dict,
    ) -> Message:
        """Write the terminal state of a forced outcome (no message XP)."""
        patch = {
            "meter": step.meter_after,
            "message_count": game_round.message_count + 1,
            "result": success_meter.result_for_status(step.status),
            "completed_at": utcnow(),
        }
        if step.status == success_meter.LOST:
            patch["combo"] = 0
        await self.store.save_round_progress(game_round.id, patch, expected_message_count=game_round.message_count)
        return await self.store.append_message(game_round.id, "user", message, **message_fields)
