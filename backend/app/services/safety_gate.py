# backend/app/services/safety_gate.py
"""
Safety Gate (message screening before evaluation)

Features:
1. Gibberish heuristics (entropy, repeated characters, keyboard mashing,
   vowel ratio, special characters), local and cheap, always run first
2. External moderation call, mapped onto a small set of fail reasons
3. Fail open: a moderation outage never blocks a message

The gate only returns a verdict. Forcing the round to `lost` is the caller's job.
"""
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional

from ..config import settings
from ..core.retry import call_with_timeout
from .ai_base import ModerationService

logger = logging.getLogger(__name__)

REASON_EMPTY = "empty"
REASON_GIBBERISH = "gibberish"
REASON_HARASSMENT = "harassment"
REASON_HATE = "hate"
REASON_SEXUAL = "sexual"
REASON_VIOLENCE = "violence"
REASON_OFFENSIVE = "offensive"

# First match wins, in this order
_MODERATION_PRIORITY = (
    (REASON_HARASSMENT, ("harassment", "harassment/threatening"), "Harassment or threatening language detected"),
    (REASON_HATE, ("hate", "hate/threatening"), "Hate speech detected"),
    (REASON_SEXUAL, ("sexual", "sexual/minors"), "Explicitly sexual or inappropriate content detected"),
    (REASON_VIOLENCE, ("violence", "violence/graphic"), "Violent or graphic content detected"),
)

MAX_NORMALIZED_ENTROPY = 0.95
_ALPHABET_ENTROPY = math.log2(26)

_REPEATED_CHAR_RE = re.compile(r"(.)\1{7,}")
_KEYBOARD_RE = re.compile(r"[qwfpgjluy]{5,}|[asdrtzxcvbn]{5,}|[zxcvbnm]{5,}", re.IGNORECASE)
_KEYBOARD_WORDS_RE = re.compile(r"\b(qwerty|asdf|zxcv)\b", re.IGNORECASE)
_CONSONANT_RE = re.compile(r"[bcdfghjklmnpqrstvwxyz]", re.IGNORECASE)
_VOWEL_RE = re.compile(r"[aeiou]", re.IGNORECASE)
_SPECIAL_RE = re.compile(r"[^a-zA-Z0-9\s.,!?'\"]")
_SYMBOLS_ONLY_RE = re.compile(r"^[^a-zA-Z0-9\s]+$")


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    reason: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {"safe": self.safe, "reasonKind": self.reason, "detail": self.detail}


SAFE = SafetyVerdict(safe=True)


def shannon_entropy(text: str) -> float:
    """Entropy in bits per character"""
    if not text:
        return 0.0
    n = len(text)
    return -sum((c / n) * math.log2(c / n) for c in Counter(text).values())


class SafetyGate:
    """
    Message screening

    Uses local heuristics first and the moderation capability second.
    """

    def __init__(self, moderation: ModerationService | None, timeout: float | None = None):
        self.moderation = moderation
        self.timeout = timeout or settings.moderation_timeout

    async def evaluate(self, message: str) -> SafetyVerdict:
        trimmed = (message or "").strip()
        if not trimmed:
            return SafetyVerdict(False, REASON_EMPTY, "Message is empty")

        gibberish = self.check_gibberish(trimmed)
        if gibberish["is_gibberish"]:
            logger.info("[SafetyGate] gibberish (%s): %r", gibberish["rule"], trimmed[:50])
            return SafetyVerdict(False, REASON_GIBBERISH, "Message appears to be nonsense or gibberish")

        return await self._check_moderation(trimmed)

    # ---------------- heuristics ----------------

    def check_gibberish(self, text: str) -> Dict:
        """
        Run all local checks, stop at the first hit

        Returns:
            {"is_gibberish": bool, "rule": str | None}
        """
        # Very short messages are only gibberish when they are pure symbols
        if len(text) <= 2:
            hit = bool(_SYMBOLS_ONLY_RE.match(text))
            return {"is_gibberish": hit, "rule": "symbols_only" if hit else None}

        for check in (
            self._check_entropy,
            self._check_repeated_chars,
            self._check_keyboard_mashing,
            self._check_vowel_ratio,
            self._check_special_chars,
        ):
            rule = check(text)
            if rule:
                return {"is_gibberish": True, "rule": rule}
        return {"is_gibberish": False, "rule": None}

    def _check_entropy(self, text: str) -> Optional[str]:
        normalized = shannon_entropy(text) / _ALPHABET_ENTROPY
        return "entropy" if normalized > MAX_NORMALIZED_ENTROPY else None

    def _check_repeated_chars(self, text: str) -> Optional[str]:
        return "repeated_chars" if _REPEATED_CHAR_RE.search(text) else None

    def _check_keyboard_mashing(self, text: str) -> Optional[str]:
        if not _KEYBOARD_RE.search(text) or _KEYBOARD_WORDS_RE.search(text):
            return None
        words = text.lower().split()
        mashed = [w for w in words if len(w) > 4 and _KEYBOARD_RE.search(w)]
        if words and len(mashed) / len(words) > 0.5:
            return "keyboard_mashing"
        return None

    def _check_vowel_ratio(self, text: str) -> Optional[str]:
        consonants = len(_CONSONANT_RE.findall(text))
        vowels = len(_VOWEL_RE.findall(text))
        letters = consonants + vowels
        if letters >= 8 and vowels / letters < 0.15 and consonants > 8:
            return "vowel_ratio"
        return None

    def _check_special_chars(self, text: str) -> Optional[str]:
        if len(text) <= 5:
            return None
        ratio = len(_SPECIAL_RE.findall(text)) / len(text)
        return "special_chars" if ratio > 0.4 else None

    # ---------------- moderation ----------------

    async def _check_moderation(self, text: str) -> SafetyVerdict:
        if self.moderation is None:
            return SAFE
        try:
            result = await call_with_timeout(
                self.moderation.moderate(text), self.timeout, "moderation",
            )
        except Exception as e:
            # Fail open
            logger.warning("[SafetyGate] moderation failed, allowing message through: %s", e)
            return SAFE

        if not result.flagged:
            return SAFE

        categories = result.categories or {}
        for reason, keys, detail in _MODERATION_PRIORITY:
            if any(categories.get(k) for k in keys):
                return SafetyVerdict(False, reason, detail)
        return SafetyVerdict(False, REASON_OFFENSIVE, "Content flagged by moderation system")
