"""
Unit tests for services.quality_evaluator module.
Tests payload sanitising, prompt building and the neutral fallback.
"""
import pytest
from app.core.exceptions import ProviderTimeoutError
from app.services.ai_base import ChatMessage, EvaluationContext
from app.services.quality_evaluator import (
    COMPETITION_NOTE,
    FALLBACK_REASONING,
    PLACEHOLDER_REASONING,
    QualityEvaluator,
    category_from_delta,
    conversation_momentum,
    sanitize_analysis,
)


CONTEXT = EvaluationContext(persona_name="Luna", persona_style="playful", persona_description=None)


class TestSanitize:
    """Tests for sanitize_analysis."""

    def test_valid_payload_passes_through(self):
        """Well-formed payloads are kept as is."""
        result = sanitize_analysis({"delta": 5, "category": "good", "reasoning": "Warm and curious question"})
        assert (result.delta, result.category) == (5, "good")
        assert result.reasoning == "Warm and curious question"

    @pytest.mark.parametrize("raw,expected", [
        (12, 8),
        (-20, -8),
        (4.5, 5),
        (-4.5, -4),
        (2.4, 2),
        ("5", 0),
        (None, 0),
        (True, 0),
        (float("nan"), 0),
    ])
    def test_delta_coercion(self, raw, expected):
        """Deltas are rounded half up and clamped to [-8, 8]; junk is 0."""
        assert sanitize_analysis({"delta": raw}).delta == expected

    def test_invalid_category_is_derived(self):
        """Unknown categories are recomputed from the delta."""
        assert sanitize_analysis({"delta": 7, "category": "amazing"}).category == "excellent"
        assert sanitize_analysis({"delta": -4}).category == "poor"

    def test_reasoning_bounds(self):
        """Too short gets a placeholder, too long is trimmed to 200 chars."""
        assert sanitize_analysis({"delta": 0, "reasoning": "ok"}).reasoning == PLACEHOLDER_REASONING
        long = sanitize_analysis({"delta": 0, "reasoning": "x" * 500}).reasoning
        assert len(long) == 200
        assert long.endswith("...")

    def test_non_dict_payload(self):
        """A list or None becomes a neutral analysis."""
        result = sanitize_analysis(["not", "a", "dict"])
        assert result.delta == 0
        assert result.category == "neutral"

    def test_category_thresholds(self):
        """Category bands."""
        assert [category_from_delta(d) for d in (8, 6, 5, 3, 2, -2, -3, -5, -6)] == [
            "excellent", "excellent", "good", "good", "neutral", "neutral", "poor", "poor", "bad",
        ]


class TestPrompt:
    """Tests for prompt construction."""

    def test_competition_note_added(self, fake):
        """Mentioning other matches adds the competition instruction."""
        evaluator = QualityEvaluator(fake.Chat())
        messages = evaluator.build_messages("I'm also talking to another girl lol", [], CONTEXT)
        assert COMPETITION_NOTE in messages[0].content

    def test_history_window(self, fake):
        """Only the last 10 history messages are sent."""
        evaluator = QualityEvaluator(fake.Chat())
        history = [ChatMessage("user" if i % 2 else "assistant", f"message {i}") for i in range(30)]
        messages = evaluator.build_messages("hello again", history, CONTEXT)
        assert len(messages) == 12
        assert messages[1].content == "message 20"
        assert messages[-1].content == 'Evaluate this message: "hello again"'

    def test_momentum(self):
        """Low meter after a few exchanges reads as negative momentum."""
        history = [ChatMessage("user", "hey"), ChatMessage("assistant", "hi")] * 2
        assert conversation_momentum(history, 20) == "negative"
        assert conversation_momentum(history, 65) == "positive"
        assert conversation_momentum(history[:2], 20) == "neutral"


class TestAnalyze:
    """Tests for QualityEvaluator.analyze."""

    @pytest.mark.asyncio
    async def test_returns_sanitized_result(self, fake):
        """Provider JSON is sanitized."""
        chat = fake.Chat(json_responses=[{"delta": 9, "category": "excellent", "reasoning": "Playful callback to her joke"}])
        result = await QualityEvaluator(chat).analyze("You still owe me that taco", [], CONTEXT)
        assert result.delta == 8
        assert len(chat.json_calls) == 1

    @pytest.mark.asyncio
    async def test_provider_failure_is_neutral(self, fake):
        """Any provider failure degrades to delta 0 instead of raising."""
        chat = fake.Chat(json_responses=[ProviderTimeoutError("OpenAI", 15)])
        result = await QualityEvaluator(chat).analyze("How was your weekend?", [], CONTEXT)
        assert result.delta == 0
        assert result.category == "neutral"
        assert result.reasoning == FALLBACK_REASONING
