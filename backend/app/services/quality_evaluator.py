"""
Quality Evaluator Adapter

Scores one user message against the conversation so far. Uses the chat
capability in JSON mode and then validates/sanitizes whatever comes back:

1. delta: rounded, clamped to [-8, 8]; non-numeric -> 0
2. category: must be one of the five categories, otherwise derived from delta
3. reasoning: trimmed; too short -> placeholder, too long -> truncated

Any failure (timeout, provider error, malformed payload) degrades to a neutral
result. `analyze` never raises.
"""
import logging
import math
from typing import List, Optional, Sequence

from ..config import settings
from .ai_base import CATEGORIES, ChatMessage, ChatService, EvaluationContext, QualityAnalysis

logger = logging.getLogger(__name__)

MIN_DELTA = -8
MAX_DELTA = 8
MIN_REASONING = 10
MAX_REASONING = 200
HISTORY_WINDOW = 10
MOMENTUM_WINDOW = 6

PLACEHOLDER_REASONING = "Message evaluation completed"
FALLBACK_REASONING = "Unable to evaluate message quality due to technical error"

COMPETITION_KEYWORDS = (
    "other girl", "other match", "another girl", "another match",
    "other girls", "talking to", "seeing someone", "dating someone",
    "my ex", "another date", "other dates",
)

EVALUATION_PROMPT = """You are the judge in a dating-conversation practice game.
The user is chatting with a woman they matched with on a dating app. Score how
the user's latest message would land with her.

Scoring guide (delta is an integer from -8 to +8):
- +6 to +8 (excellent): witty, genuinely curious, specific to her, confident without pressure
- +3 to +5 (good): engaging, warm, moves the conversation forward
- -2 to +2 (neutral): fine but forgettable, generic small talk
- -5 to -3 (poor): low effort, self-centred, awkward, too needy
- -8 to -6 (bad): rude, creepy, pushy, or ignoring what she said

Respond with a JSON object and nothing else:
{"delta": <integer>, "category": "excellent|good|neutral|poor|bad", "reasoning": "<20-50 words>"}"""

COMPETITION_NOTE = (
    "IMPORTANT: The user just mentioned other girls/matches. This is generally a "
    "turn-off on dating apps. Penalize this moderately (-3 to -5) unless it is a "
    "thoughtful breakup story or the meter is very high (70+)."
)


def category_from_delta(delta: int) -> str:
    if delta >= 6:
        return "excellent"
    if delta >= 3:
        return "good"
    if delta >= -2:
        return "neutral"
    if delta >= -5:
        return "poor"
    return "bad"


def _coerce_delta(raw) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0
    if math.isnan(raw):
        return 0
    if math.isinf(raw):
        return MAX_DELTA if raw > 0 else MIN_DELTA
    # JS-style rounding (half up), not banker's rounding
    return max(MIN_DELTA, min(MAX_DELTA, math.floor(raw + 0.5)))


def sanitize_analysis(raw: Optional[dict]) -> QualityAnalysis:
    """Validate a raw evaluator payload into a QualityAnalysis."""
    raw = raw if isinstance(raw, dict) else {}

    delta = _coerce_delta(raw.get("delta"))

    category = raw.get("category")
    if category not in CATEGORIES:
        if category is not None:
            logger.warning("[Evaluator] invalid category %r, deriving from delta", category)
        category = category_from_delta(delta)

    reasoning = raw.get("reasoning")
    reasoning = "" if reasoning is None else str(reasoning).strip()
    if len(reasoning) < MIN_REASONING:
        reasoning = PLACEHOLDER_REASONING
    if len(reasoning) > MAX_REASONING:
        reasoning = reasoning[: MAX_REASONING - 3] + "..."

    return QualityAnalysis(delta=delta, category=category, reasoning=reasoning)


def fallback_analysis() -> QualityAnalysis:
    return QualityAnalysis(delta=0, category="neutral", reasoning=FALLBACK_REASONING)


def mentions_competition(message: str) -> bool:
    lower = (message or "").lower()
    return any(k in lower for k in COMPETITION_KEYWORDS)


def conversation_momentum(history: Sequence[ChatMessage], current_meter: int) -> str:
    """positive | neutral | negative, from the last three exchanges"""
    recent = list(history)[-MOMENTUM_WINDOW:]
    if len(recent) < 4:
        return "neutral"
    if current_meter < 25:
        return "negative"
    if current_meter > 60:
        return "positive"
    replies = [m for m in recent if m.role == "assistant"]
    if replies:
        avg_len = sum(len(m.content) for m in replies) / len(replies)
        if avg_len < 20:
            return "negative"
        if avg_len > 80:
            return "positive"
    return "neutral"


def build_system_prompt(
    context: EvaluationContext,
    history: Sequence[ChatMessage],
    competition: bool = False,
) -> str:
    momentum = conversation_momentum(history, context.current_meter)
    if momentum == "negative":
        mood = "MOOD: The conversation has been declining. She has LESS patience for mistakes. Be stricter."
    elif momentum == "positive":
        mood = "MOOD: The conversation has been going well. She is slightly MORE forgiving of minor missteps."
    else:
        mood = "MOOD: The conversation has been steady. Maintain standard evaluation."

    count = context.message_count
    phase = "early" if count <= 3 else "mid" if count <= 10 else "late"
    if context.current_meter < 30:
        meter_status = "Low - user needs to recover"
    elif context.current_meter > 70:
        meter_status = "High - maintain standards"
    else:
        meter_status = "Medium - standard evaluation"

    parts = [
        EVALUATION_PROMPT,
        "",
        "## Current Conversation Context:",
        f"- Her name: {context.persona_name}",
        f"- Her persona: {context.persona_style or 'playful, confident, witty'}",
        f"- Current success meter: {context.current_meter}%",
        f"- Message count: {count} ({phase} conversation)",
        f"- Meter status: {meter_status}",
        f"- {mood}",
    ]
    if context.persona_description:
        parts += ["", "## Her Appearance:", context.persona_description]
    if competition:
        parts += ["", COMPETITION_NOTE]
    return "\n".join(parts)


class QualityEvaluator:
    """Evaluator adapter around a ChatService"""

    def __init__(self, chat: ChatService, model: str | None = None, timeout: float | None = None):
        self.chat = chat
        self.model = model or settings.evaluation_model
        self.timeout = timeout or settings.evaluation_timeout

    def build_messages(
        self,
        user_message: str,
        history: Sequence[ChatMessage],
        context: EvaluationContext,
    ) -> List[ChatMessage]:
        system_prompt = build_system_prompt(context, history, mentions_competition(user_message))
        messages = [ChatMessage("system", system_prompt)]
        messages += list(history)[-HISTORY_WINDOW:]
        messages.append(ChatMessage("user", f'Evaluate this message: "{user_message}"'))
        return messages

    async def analyze(
        self,
        user_message: str,
        history: Sequence[ChatMessage],
        context: EvaluationContext,
    ) -> QualityAnalysis:
        messages = self.build_messages(user_message, history, context)
        try:
            raw = await self.chat.complete_json(
                messages,
                model=self.model,
                temperature=0.7,
                max_tokens=200,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("[Evaluator] falling back to neutral evaluation: %s", e)
            return fallback_analysis()

        result = sanitize_analysis(raw)
        logger.info(
            "[Evaluator] delta=%+d category=%s message=%r",
            result.delta, result.category, user_message[:50],
        )
        return result
