"""
Persona Reply Generation

Produces the persona's answer to a scored user message. The tone follows
the meter and the quality of the last message.
"""
import logging
from typing import List, Sequence

from ..config import settings
from .ai_base import ChatMessage, ChatService, EvaluationContext

logger = logging.getLogger(__name__)

MAX_REPLY_LENGTH = 300
HISTORY_WINDOW = 10

PERSONA_INSTRUCTIONS = """You are playing a woman on a dating app who matched with the user.
Text like a real person: short messages, casual tone, occasional emoji, no essays.
Your interest follows how well the user is doing; you are never obliged to be nice
to someone who is boring or rude. Keep it flirty but tasteful."""


def delta_guidance(delta: int) -> str:
    if delta >= 5:
        return "The user's last message was excellent - show enthusiasm and warmth"
    if delta >= 2:
        return "The user's last message was good - respond positively"
    if delta >= -1:
        return "The user's last message was okay - maintain conversation"
    if delta >= -4:
        return "The user's last message was poor - be less engaged"
    return "The user's last message was bad - respond coolly or dismissively"


def build_reply_prompt(context: EvaluationContext, delta: int) -> str:
    name = context.persona_name
    style = context.persona_style or "playful, confident, witty"
    lines = [
        PERSONA_INSTRUCTIONS,
        "",
        "## Your Character Context:",
        f"- Your name: {name}",
        f"- Your persona: {style}",
        f"- Current success meter: {context.current_meter}%",
        f"- Message count: {context.message_count}",
    ]
    if context.persona_description:
        lines += ["", "## Your Appearance:", context.persona_description]
    lines += [
        "",
        "## Message Quality Context:",
        delta_guidance(delta),
        "",
        "## Important Reminders:",
        f"- Respond as {name} would, staying true to your {style} personality",
        "- If the meter is low (<30%), be less engaged and more dismissive",
        "- If the meter is high (>70%), be warmer and show genuine interest",
        "- At 80%+, drop hints about wanting to meet in person",
        "- Never break character or mention you're an AI",
        "",
        f"Respond naturally to the user's message as {name}. Just provide your response, nothing else.",
    ]
    return "\n".join(lines)


def truncate_reply(text: str) -> str:
    text = (text or "").strip()
    if len(text) > MAX_REPLY_LENGTH:
        logger.warning("[Reply] response too long (%d chars), trimming", len(text))
        return text[: MAX_REPLY_LENGTH - 3] + "..."
    return text


class PersonaReplyGenerator:
    """generate_reply(system_prompt, history) on top of a ChatService"""

    def __init__(self, chat: ChatService, model: str | None = None, timeout: float | None = None):
        self.chat = chat
        self.model = model or settings.chat_model
        self.timeout = timeout or settings.reply_timeout

    async def generate_reply(self, system_prompt: str, history: Sequence[ChatMessage]) -> str:
        """
        Raises:
        - ProviderError when the chat capability fails; replies have no fallback
        """
        messages: List[ChatMessage] = [ChatMessage("system", system_prompt)]
        messages += list(history)[-(HISTORY_WINDOW + 1):]
        text = await self.chat.complete_text(
            messages,
            model=self.model,
            temperature=0.8,
            max_tokens=200,
            timeout=self.timeout,
        )
        return truncate_reply(text)

    async def reply_to(
        self,
        user_message: str,
        history: Sequence[ChatMessage],
        context: EvaluationContext,
        delta: int,
    ) -> str:
        prompt = build_reply_prompt(context, delta)
        return await self.generate_reply(prompt, list(history) + [ChatMessage("user", user_message)])
