"""
Unit tests for services.game_service module.
Tests the scoring pipeline end to end against an in-memory database:
win and loss runs, ghosting, instant fail, debug bypass and failure handling.
"""
import asyncio
import pytest
from app.core.exceptions import NotFoundError, ProviderError, ProviderTransientError, StateConflictError, ValidationError
from app.models.message import Message
from app.models.round import GameRound
from app.models.user import User
from app.services.ai_base import ModerationResult
from app.services.game_service import (
    GameService,
    RoundLocks,
    UNSAFE_SYSTEM_REPLY,
    is_generic_opener,
    validate_user_message,
)
from app.services.persona_reply import PersonaReplyGenerator
from app.services.quality_evaluator import QualityEvaluator
from app.services.round_store import RoundStore
from app.services.safety_gate import SafetyGate


MESSAGES = [
    "Do you like board games?",
    "I love hiking on weekends",
    "Your smile is lovely",
    "Tell me about your dog",
    "Coffee or tea person?",
    "I make a mean lasagna",
    "We should cook together",
    "Pick a day this week",
]


def evaluations(*deltas):
    return [{"delta": d, "category": "good", "reasoning": "Engaging and specific message"} for d in deltas]


def build_service(fake, chat=None, moderation=None, **options):
    chat = chat or fake.Chat()
    return GameService(
        store=RoundStore(fake.Storage()),
        gate=SafetyGate(moderation or fake.Moderation()),
        evaluator=QualityEvaluator(chat),
        replier=PersonaReplyGenerator(chat),
        locks=RoundLocks(),
        **options,
    )


class TestMessageChecks:
    """Tests for validate_user_message and is_generic_opener."""

    def test_validation(self):
        """Messages are trimmed; empty and long ones are rejected."""
        assert validate_user_message("  hello you  ") == "hello you"
        # symbol soup is left to the safety gate
        assert validate_user_message("!!!!@@@@####$$$$") == "!!!!@@@@####$$$$"
        for bad in ("", "    ", "x" * 501, None):
            with pytest.raises(ValidationError):
                validate_user_message(bad, max_length=500)

    @pytest.mark.parametrize("text,expected", [
        ("hey", True),
        ("Hi there!", True),
        ("what's up?", True),
        ("hey :)", True),
        ("Hey, I saw you like climbing", False),
        ("Do you like board games?", False),
    ])
    def test_generic_openers(self, text, expected):
        """Bare greetings are generic; anything with substance is not."""
        assert is_generic_opener(text) is expected


class TestScoreMessage:
    """Tests for GameService.score_message."""

    @pytest.mark.asyncio
    async def test_winning_round(self, db, fake, create_user, create_round):
        """Eight good messages from 20 reach 100 with the combo amplifying deltas."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat(json_responses=evaluations(5, 7, 7, 5, 7, 7, 5, 7))
        service = build_service(fake, chat=chat)

        results = []
        for text in MESSAGES:
            results.append(await service.score_message(r.id, user, text))

        assert [res.delta for res in results] == [5, 8, 9, 8, 12, 14, 10, 14]
        assert [res.meter for res in results] == [25, 33, 42, 50, 62, 76, 86, 100]
        assert [res.status for res in results[:-1]] == ["active"] * 7
        last = results[-1]
        assert last.won
        assert last.combo == 5
        assert last.highest_combo == 5
        assert sum(res.message_xp for res in results) == 81
        assert last.completion.breakdown.win_xp == 50
        assert last.completion.breakdown.streak_multiplier == pytest.approx(1.1)
        assert last.completion.breakdown.total_xp == 144

        stored = await GameRound.get(id=r.id)
        assert stored.result == "win"
        assert stored.meter == 100
        assert stored.message_count == 8
        assert stored.message_xp_sum == 81
        assert stored.xp_gained == 144
        assert stored.completed_at is not None
        assert await Message.filter(round_id=r.id).count() == 16

        player = await User.get(id=user.id)
        assert player.total_xp == 144
        assert (player.total_wins, player.current_streak, player.best_streak) == (1, 1, 1)

        data = last.to_dict()
        assert data["status"] == "won"
        assert data["result"] == "win"
        assert data["successMeter"]["rawDelta"] == 7
        assert data["roundXp"]["totalXp"] == 144
        assert data["aiResponse"]["role"] == "assistant"

    @pytest.mark.asyncio
    async def test_losing_round(self, db, fake, create_user, create_round):
        """Bad messages from 50 drain the meter; the seventh drops it to the loss zone."""
        user = await create_user(current_streak=3, best_streak=3)
        r = await create_round(user, meter=50)
        chat = fake.Chat(json_responses=evaluations(-4, -5, -8, -8, -8, -8, -8))
        service = build_service(fake, chat=chat)

        results = []
        for text in MESSAGES[:7]:
            results.append(await service.score_message(r.id, user, text))

        assert [res.meter for res in results] == [46, 41, 33, 25, 17, 9, 1]
        assert results[5].status == "active"
        assert results[6].status == "lost"
        assert all(res.message_xp == 0 for res in results)
        assert results[6].completion.breakdown.total_xp == 0

        player = await User.get(id=user.id)
        assert player.total_losses == 1
        assert player.current_streak == 0
        assert player.best_streak == 3

    @pytest.mark.asyncio
    async def test_negative_delta_breaks_combo(self, db, fake, create_user, create_round):
        """The combo built by good messages resets on the first negative one."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat(json_responses=evaluations(5, 5, -2))
        service = build_service(fake, chat=chat)

        first = await service.score_message(r.id, user, MESSAGES[0])
        second = await service.score_message(r.id, user, MESSAGES[1])
        third = await service.score_message(r.id, user, MESSAGES[2])

        assert (first.combo, second.combo, third.combo) == (1, 2, 0)
        assert second.delta == 6
        assert third.delta == -2
        assert third.highest_combo == 2

    @pytest.mark.asyncio
    async def test_generic_opener_gets_ghosted(self, db, fake, create_user, create_round):
        """A bare 'hey' as the first message ends the round without any AI call."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat()
        service = build_service(fake, chat=chat, enable_ghosting=True)

        result = await service.score_message(r.id, user, "hey!")

        assert result.ghosted
        assert result.status == "lost"
        assert result.meter == 0
        assert result.delta == -20
        assert result.fail_reason == "ghosted"
        assert chat.json_calls == [] and chat.text_calls == []

        stored = await GameRound.get(id=r.id)
        assert stored.result == "lose"
        msg = await Message.get(round_id=r.id)
        assert msg.is_instant_fail and msg.fail_reason == "ghosted"

    @pytest.mark.asyncio
    async def test_ghosting_only_applies_to_first_message(self, db, fake, create_user, create_round):
        """Later greetings are scored like any other message."""
        user = await create_user()
        r = await create_round(user, message_count=2)
        service = build_service(fake, enable_ghosting=True)

        result = await service.score_message(r.id, user, "hey!")

        assert not result.ghosted
        assert result.status == "active"

    @pytest.mark.asyncio
    async def test_unsafe_message_is_instant_fail(self, db, fake, create_user, create_round):
        """Flagged content ends the round with a system reply and no XP."""
        user = await create_user()
        r = await create_round(user, meter=80, combo=3)
        moderation = fake.Moderation(ModerationResult(flagged=True, categories={"harassment": True}))
        chat = fake.Chat()
        service = build_service(fake, chat=chat, moderation=moderation)

        result = await service.score_message(r.id, user, "You are worthless to me")

        assert result.instant_fail
        assert result.fail_reason == "harassment"
        assert (result.status, result.meter, result.delta, result.combo) == ("lost", 0, -80, 0)
        assert result.to_dict()["aiResponse"]["content"] == UNSAFE_SYSTEM_REPLY
        assert chat.json_calls == []
        assert result.completion.breakdown.total_xp == 0

        assert await Message.filter(round_id=r.id).count() == 1
        stored = await GameRound.get(id=r.id)
        assert (stored.result, stored.combo) == ("lose", 0)

    @pytest.mark.asyncio
    async def test_symbol_soup_is_instant_fail(self, db, fake, create_user, create_round):
        """Gibberish reaches the safety gate and ends the round, it is not a 400."""
        user = await create_user()
        r = await create_round(user, meter=40)
        moderation = fake.Moderation()
        chat = fake.Chat()
        service = build_service(fake, chat=chat, moderation=moderation)

        result = await service.score_message(r.id, user, "@@@@ #### $$$$ %%%%")

        assert result.instant_fail
        assert result.fail_reason == "gibberish"
        assert (result.status, result.meter) == ("lost", 0)
        assert chat.json_calls == []
        assert moderation.calls == []

        stored = await GameRound.get(id=r.id)
        assert (stored.result, stored.meter) == ("lose", 0)
        msg = await Message.get(round_id=r.id, role="user")
        assert (msg.is_instant_fail, msg.fail_reason) == (True, "gibberish")

    @pytest.mark.asyncio
    async def test_debug_bypass_for_admin(self, db, fake, create_user, create_round):
        """Admins with the flag on win instantly with the code."""
        admin = await create_user(role="admin")
        r = await create_round(admin)
        chat = fake.Chat()
        service = build_service(fake, chat=chat, enable_debug_bypass=True, debug_bypass_code="AEZAKMI")

        result = await service.score_message(r.id, admin, "aezakmi")

        assert result.debug_bypass
        assert result.won
        assert result.meter == 100
        assert result.message_xp == 0
        assert result.completion.breakdown.message_xp_sum == 0
        assert chat.json_calls == []

    @pytest.mark.asyncio
    async def test_debug_bypass_ignored_for_players(self, db, fake, create_user, create_round):
        """The code is an ordinary message for everyone else."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat()
        service = build_service(fake, chat=chat, enable_debug_bypass=True, debug_bypass_code="AEZAKMI")

        result = await service.score_message(r.id, user, "AEZAKMI")

        assert not result.debug_bypass
        assert result.status == "active"
        assert len(chat.json_calls) == 1

    @pytest.mark.asyncio
    async def test_completed_round_is_rejected(self, db, fake, create_user, create_round):
        """No scoring after a terminal result."""
        user = await create_user()
        r = await create_round(user, result="win", meter=100)
        service = build_service(fake)

        with pytest.raises(StateConflictError) as info:
            await service.score_message(r.id, user, MESSAGES[0])
        assert info.value.code == "ROUND_ALREADY_COMPLETED"

    @pytest.mark.asyncio
    async def test_foreign_round_is_not_found(self, db, fake, create_user, create_round):
        """Players only score their own rounds."""
        owner = await create_user()
        other = await create_user()
        r = await create_round(owner)

        with pytest.raises(NotFoundError):
            await build_service(fake).score_message(r.id, other, MESSAGES[0])

    @pytest.mark.asyncio
    async def test_reply_failure_changes_nothing(self, db, fake, create_user, create_round):
        """Without a persona reply the round and history stay untouched."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat(
            json_responses=evaluations(6),
            text_responses=[ProviderTransientError("fake-chat", "HTTP 503", status_code=503)],
        )
        service = build_service(fake, chat=chat)

        with pytest.raises(ProviderError):
            await service.score_message(r.id, user, MESSAGES[0])

        stored = await GameRound.get(id=r.id)
        assert (stored.meter, stored.combo, stored.message_count) == (20, 0, 0)
        assert await Message.filter(round_id=r.id).count() == 0

    @pytest.mark.asyncio
    async def test_evaluator_failure_is_neutral(self, db, fake, create_user, create_round):
        """A broken evaluation scores 0 and the round goes on."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat(json_responses=[RuntimeError("bad JSON")])
        service = build_service(fake, chat=chat)

        result = await service.score_message(r.id, user, MESSAGES[0])

        assert (result.delta, result.meter, result.status) == (0, 20, "active")

    @pytest.mark.asyncio
    async def test_concurrent_messages_are_serialized(self, db, fake, create_user, create_round):
        """Two messages sent at once are both scored, one after the other."""
        user = await create_user()
        r = await create_round(user)
        chat = fake.Chat(json_responses=evaluations(2, 2))
        service = build_service(fake, chat=chat)

        results = await asyncio.gather(
            service.score_message(r.id, user, MESSAGES[0]),
            service.score_message(r.id, user, MESSAGES[1]),
        )

        assert sorted(res.meter for res in results) == [22, 24]
        stored = await GameRound.get(id=r.id)
        assert (stored.message_count, stored.meter) == (2, 24)
        seqs = await Message.filter(round_id=r.id).values_list("seq", flat=True)
        assert sorted(seqs) == [1, 2, 3, 4]
        assert len(service.locks) == 0

    @pytest.mark.asyncio
    async def test_invalid_message(self, db, fake, create_user, create_round):
        """Whitespace-only input is rejected before touching the round."""
        user = await create_user()
        r = await create_round(user)

        with pytest.raises(ValidationError):
            await build_service(fake).score_message(r.id, user, "   ")
