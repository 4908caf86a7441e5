"""
Unit tests for services.xp module.
Tests the level curve, message/win XP, streak multiplier and round totals.
"""
import pytest
from app.services import xp


class TestLevelCurve:
    """Tests for xp_for_level / level_for_xp."""

    def test_known_thresholds(self):
        """Level 1 is free, level 2 needs 83 XP, level 99 is the last rung."""
        assert xp.xp_for_level(1) == 0
        assert xp.xp_for_level(2) == 83
        assert xp.xp_for_level(10) == 1154
        assert xp.xp_for_level(99) == 13034431

    def test_round_trip_every_level(self):
        """level_for_xp(xp_for_level(L)) == L for 1..99."""
        for level in range(1, 100):
            assert xp.level_for_xp(xp.xp_for_level(level)) == level

    def test_just_below_threshold(self):
        """One XP short of a level stays on the previous level."""
        assert xp.level_for_xp(82) == 1
        assert xp.level_for_xp(83) == 2

    def test_clamps(self):
        """0 XP is level 1; huge XP caps at 99; garbage is 0."""
        assert xp.level_for_xp(0) == 1
        assert xp.level_for_xp(10 ** 12) == 99
        assert xp.level_for_xp(None) == 1
        assert xp.level_for_xp(float("nan")) == 1
        assert xp.level_for_xp(-50) == 1
        assert xp.xp_for_level(150) == xp.xp_for_level(99)
        assert xp.xp_for_level(0) == 0


class TestMessageAndWinXp:
    """Tests for per-message and win XP."""

    @pytest.mark.parametrize("delta,expected", [(1, 2), (2, 2), (3, 4), (4, 4), (5, 7), (6, 7), (7, 12), (8, 12)])
    def test_tiers_at_level_one(self, delta, expected):
        """Base tiers apply unscaled at level 1."""
        assert xp.message_xp(delta, 1) == expected

    def test_non_positive_delta_earns_nothing(self):
        """Zero and negative deltas give no XP."""
        assert xp.message_xp(0, 50) == 0
        assert xp.message_xp(-8, 50) == 0

    def test_level_scaling(self):
        """floor(12 * 50^0.15) = 21."""
        assert xp.message_xp(8, 50) == 21

    def test_win_xp(self):
        """floor(50 * L^0.25)."""
        assert xp.win_xp(1) == 50
        assert xp.win_xp(16) == 100
        assert xp.win_xp(99) == 157


class TestStreak:
    """Tests for the streak multiplier."""

    def test_values(self):
        """1.0 at zero, +0.1 per win, 2.0 from ten on."""
        assert xp.streak_multiplier(0) == 1.0
        assert xp.streak_multiplier(1) == pytest.approx(1.1)
        assert xp.streak_multiplier(9) == pytest.approx(1.9)
        assert xp.streak_multiplier(10) == 2.0
        assert xp.streak_multiplier(15) == 2.0
        assert xp.streak_multiplier(-2) == 1.0


class TestRoundXp:
    """Tests for round totals."""

    def test_multiplier_applies_to_total_only(self):
        """floor((sum + win) * mult), not per message."""
        breakdown = xp.compute_round_xp([5, 7, 7, 5, 7, 7, 5, 7], won=True, streak=1, level=1)
        assert breakdown.message_xp_sum == 81
        assert breakdown.win_xp == 50
        assert breakdown.total_xp == 144

    def test_loss_has_no_win_xp_or_multiplier(self):
        """A lost round keeps message XP only."""
        breakdown = xp.compute_round_xp([5, -3, 2], won=False, streak=7, level=1)
        assert breakdown.win_xp == 0
        assert breakdown.streak_multiplier == 1.0
        assert breakdown.total_xp == 9

    def test_to_dict_is_camel_case(self):
        """Wire format uses camelCase keys."""
        d = xp.compute_round_xp([], won=True, streak=10, level=1).to_dict()
        assert d == {"messageXpSum": 0, "winXp": 50, "streakMultiplier": 2.0, "totalXp": 100}


class TestXpInfo:
    """Tests for progress-bar data and formatting."""

    def test_mid_level_progress(self):
        """Halfway between level 1 (0) and level 2 (83)."""
        info = xp.xp_info(40)
        assert info["level"] == 1
        assert info["xpToNextLevel"] == 43
        assert info["progress"] == pytest.approx(40 / 83 * 100)
        assert info["nextLevelXp"] == 83

    def test_max_level(self):
        """Level 99 shows a full bar."""
        info = xp.xp_info(20_000_000)
        assert info["level"] == 99
        assert info["progress"] == 100.0
        assert info["xpToNextLevel"] == 0

    def test_format(self):
        """Thousands separators."""
        assert xp.format_xp(1234567) == "1,234,567"
        assert xp.format_xp(None) == "0"
