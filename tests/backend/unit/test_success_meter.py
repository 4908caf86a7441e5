"""
Unit tests for services.success_meter module.
Tests clamping, status derivation and the forced branches.
"""
import pytest
from app.services import success_meter as sm


class TestApplyDelta:
    """Tests for bounded meter arithmetic."""

    @pytest.mark.parametrize("meter,delta,expected", [
        (95, 8, 100),
        (3, -8, 0),
        (50, 0, 50),
        (20, 14, 34),
    ])
    def test_clamped(self, meter, delta, expected):
        """Result always lands in [0, 100]."""
        assert sm.apply_delta(meter, delta) == expected

    def test_garbage_inputs_are_zero(self):
        """None / NaN are treated as 0 rather than raising."""
        assert sm.apply_delta(None, 5) == 5
        assert sm.apply_delta(40, float("nan")) == 40


class TestDeriveStatus:
    """Tests for status boundaries."""

    def test_boundaries(self):
        """100 wins, 5 loses, 6 stays active, saturating input still wins."""
        assert sm.derive_status(100) == sm.WON
        assert sm.derive_status(101) == sm.WON
        assert sm.derive_status(5) == sm.LOST
        assert sm.derive_status(0) == sm.LOST
        assert sm.derive_status(6) == sm.ACTIVE
        assert sm.derive_status(99) == sm.ACTIVE

    def test_result_mapping(self):
        """Statuses map onto stored round results."""
        assert sm.result_for_status(sm.WON) == "win"
        assert sm.result_for_status(sm.LOST) == "lose"
        assert sm.result_for_status(sm.ACTIVE) is None


class TestTransition:
    """Tests for one full meter step."""

    def test_overshoot_clamps_then_wins(self):
        """98 + 8 = 106 clamps to 100 and resolves to won."""
        step = sm.transition(98, 8)
        assert step.meter_after == 100
        assert step.applied_delta == 2
        assert step.status == sm.WON
        assert step.is_terminal

    def test_active_step(self):
        """A mid-range step stays active."""
        step = sm.transition(20, 5)
        assert (step.meter_before, step.meter_after, step.status) == (20, 25, sm.ACTIVE)
        assert not step.is_terminal

    def test_force_loss_zeroes_meter(self):
        """Unsafe path skips delta arithmetic."""
        step = sm.force_loss(64, reason="unsafe")
        assert step.meter_after == 0
        assert step.applied_delta == -64
        assert step.status == sm.LOST
        assert step.forced == "unsafe"

    def test_force_win_fills_meter(self):
        """Debug bypass jumps to 100."""
        step = sm.force_win(20)
        assert step.meter_after == 100
        assert step.applied_delta == 80
        assert step.status == sm.WON
        assert step.forced == "debug_bypass"


class TestDebugBypass:
    """Tests for bypass code matching."""

    def test_exact_case_insensitive_match(self):
        """Whole message must equal the code, ignoring case and outer spaces."""
        assert sm.is_debug_bypass("aezakmi", "AEZAKMI")
        assert sm.is_debug_bypass("  AEZAKMI ", "AEZAKMI")

    def test_partial_match_is_not_bypass(self):
        """Code inside a longer message does not count."""
        assert not sm.is_debug_bypass("AEZAKMI please", "AEZAKMI")
        assert not sm.is_debug_bypass("", "AEZAKMI")
        assert not sm.is_debug_bypass("AEZAKMI", "")
