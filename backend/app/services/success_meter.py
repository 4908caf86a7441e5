"""
Success Meter State Machine

The meter is a bounded 0-100 value. Every scored message moves it; the round
status is derived from the clamped value:

    active --(meter >= 100)--> won
    active --(meter <= 5)----> lost

`won` and `lost` are terminal. Two branches skip delta arithmetic entirely:
the unsafe-message path (forced loss, meter 0) and the debug bypass
(forced win, meter 100, scripted reply).
"""
import math
from dataclasses import dataclass
from typing import Optional

METER_MIN = 0
METER_MAX = 100
WIN_THRESHOLD = 100
LOSS_THRESHOLD = 5

ACTIVE = "active"
WON = "won"
LOST = "lost"

# round.result values stored in the database
RESULT_WIN = "win"
RESULT_LOSE = "lose"

DEBUG_BYPASS_REPLY = (
    "Wait... did you just... 🤯 Okay I'm absolutely blown away. "
    "You're incredible! Let's meet up! 💕"
)


@dataclass(frozen=True)
class MeterTransition:
    """Result of applying one message to the meter"""
    meter_before: int
    meter_after: int
    applied_delta: int
    status: str
    forced: Optional[str] = None  # "unsafe" | "ghosted" | "debug_bypass"

    @property
    def is_terminal(self) -> bool:
        return self.status != ACTIVE


def _as_number(value, default: float = 0) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(v):
        return default
    return v


def apply_delta(current_meter, delta) -> int:
    """clamp(current + delta, 0, 100)"""
    total = _as_number(current_meter) + _as_number(delta)
    return int(max(METER_MIN, min(METER_MAX, total)))


def derive_status(meter) -> str:
    value = _as_number(meter)
    if value >= WIN_THRESHOLD:
        return WON
    if value <= LOSS_THRESHOLD:
        return LOST
    return ACTIVE


def result_for_status(status: str) -> Optional[str]:
    """Map a meter status onto the stored round result (None while active)."""
    if status == WON:
        return RESULT_WIN
    if status == LOST:
        return RESULT_LOSE
    return None


def transition(current_meter, delta) -> MeterTransition:
    """Clamp first, then check status, so an overshoot to 106 still resolves to won."""
    before = apply_delta(current_meter, 0)
    after = apply_delta(before, delta)
    return MeterTransition(
        meter_before=before,
        meter_after=after,
        applied_delta=after - before,
        status=derive_status(after),
    )


def force_loss(current_meter, reason: str = "unsafe") -> MeterTransition:
    before = apply_delta(current_meter, 0)
    return MeterTransition(
        meter_before=before,
        meter_after=METER_MIN,
        applied_delta=METER_MIN - before,
        status=LOST,
        forced=reason,
    )


def force_win(current_meter) -> MeterTransition:
    """
    Debug bypass branch.

    Deliberate escape hatch for QA/demo: an exact match of the configured code
    wins the round outright. Callers must gate it behind configuration and role.
    """
    before = apply_delta(current_meter, 0)
    return MeterTransition(
        meter_before=before,
        meter_after=METER_MAX,
        applied_delta=METER_MAX - before,
        status=WON,
        forced="debug_bypass",
    )


def is_debug_bypass(message: str, code: str) -> bool:
    """Exact, case-insensitive match against the bypass code."""
    if not message or not code:
        return False
    return message.strip().upper() == code.strip().upper()
