"""
XP & Leveling Engine

Level range is 1-99 on a RuneScape-style curve:

    xp_for_level(L) = floor( sum_{i=1}^{L-1} floor(i + 300 * 2^(i/7)) / 4 )

Every function here is total: None/NaN/garbage XP inputs are treated as 0 and
levels are clamped, nothing raises.
"""
import bisect
import math
from dataclasses import dataclass, asdict
from typing import Iterable, List

MIN_LEVEL = 1
MAX_LEVEL = 99

# Message XP base value by |delta|
MSG_BASE_TIERS = (
    (7, 12),  # 7-8
    (5, 7),   # 5-6
    (3, 4),   # 3-4
    (1, 2),   # 1-2
)
MSG_EXPONENT = 0.15
WIN_BASE = 50
WIN_EXPONENT = 0.25
STREAK_STEP = 0.1
STREAK_CAP = 2.0
STREAK_CAP_AT = 10


def _safe_number(value) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v):
        return 0.0
    return v


def _safe_level(level) -> int:
    v = _safe_number(level)
    if math.isinf(v):
        return MAX_LEVEL if v > 0 else MIN_LEVEL
    return max(MIN_LEVEL, min(MAX_LEVEL, int(v)))


def _build_table() -> List[int]:
    # _XP_TABLE[L - 1] == xp_for_level(L)
    table = [0]
    points = 0
    for i in range(1, MAX_LEVEL):
        points += math.floor(i + 300 * 2 ** (i / 7))
        table.append(math.floor(points / 4))
    return table


_XP_TABLE = _build_table()


def xp_for_level(level) -> int:
    """Total XP required to reach `level`; 0 below level 1, clamped at 99."""
    v = _safe_number(level)
    if v < MIN_LEVEL:
        return 0
    return _XP_TABLE[_safe_level(v) - 1]


def level_for_xp(total_xp) -> int:
    """Highest level whose threshold does not exceed `total_xp` (binary search)."""
    xp = _safe_number(total_xp)
    if xp < 0:
        return MIN_LEVEL
    return bisect.bisect_right(_XP_TABLE, xp)


def base_xp_for_delta(delta) -> int:
    magnitude = abs(_safe_number(delta))
    for threshold, base in MSG_BASE_TIERS:
        if magnitude >= threshold:
            return base
    return 0


def message_xp(delta, player_level) -> int:
    """floor(base * L^0.15); zero for non-positive deltas"""
    d = _safe_number(delta)
    if d <= 0:
        return 0
    return math.floor(base_xp_for_delta(d) * _safe_level(player_level) ** MSG_EXPONENT)


def win_xp(player_level) -> int:
    return math.floor(WIN_BASE * _safe_level(player_level) ** WIN_EXPONENT)


def streak_multiplier(consecutive_wins) -> float:
    """1.0 at 0, +0.1 per win, capped at 2.0 from 10 wins on"""
    n = _safe_number(consecutive_wins)
    if n <= 0:
        return 1.0
    if n >= STREAK_CAP_AT:
        return STREAK_CAP
    return 1.0 + (int(n) * STREAK_STEP)


def round_total_xp(message_xp_sum, win_xp_value, multiplier) -> int:
    """The streak multiplier applies to the round total only."""
    base = _safe_number(message_xp_sum) + _safe_number(win_xp_value)
    mult = _safe_number(multiplier) or 1.0
    return math.floor(base * mult)


@dataclass
class XpBreakdown:
    message_xp_sum: int
    win_xp: int
    streak_multiplier: float
    total_xp: int

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "messageXpSum": d["message_xp_sum"],
            "winXp": d["win_xp"],
            "streakMultiplier": d["streak_multiplier"],
            "totalXp": d["total_xp"],
        }


def compute_round_xp(message_deltas: Iterable, won: bool, streak, level) -> XpBreakdown:
    """
    XP for a whole round.

    Parameters:
    - message_deltas: raw evaluator deltas of the round's user messages
    - won: whether the round was won
    - streak: consecutive wins including this one (ignored on a loss)
    - level: player level at round start
    """
    msg_sum = sum(message_xp(d, level) for d in message_deltas)
    w = win_xp(level) if won else 0
    mult = streak_multiplier(streak) if won else 1.0
    return XpBreakdown(
        message_xp_sum=msg_sum,
        win_xp=w,
        streak_multiplier=mult,
        total_xp=round_total_xp(msg_sum, w, mult),
    )


def xp_info(total_xp) -> dict:
    """Progress-bar data for a player's total XP."""
    safe_xp = _safe_number(total_xp)
    if math.isinf(safe_xp):
        safe_xp = 0.0
    if safe_xp == int(safe_xp):
        safe_xp = int(safe_xp)

    level = level_for_xp(safe_xp)
    current_level_xp = xp_for_level(level)
    next_level_xp = current_level_xp if level >= MAX_LEVEL else xp_for_level(level + 1)

    if level >= MAX_LEVEL:
        progress = 100.0
        to_next = 0
    else:
        progress = (safe_xp - current_level_xp) / (next_level_xp - current_level_xp) * 100
        to_next = next_level_xp - safe_xp

    return {
        "level": level,
        "totalXp": safe_xp,
        "xpToNextLevel": to_next,
        "progress": progress,
        "currentLevelXp": current_level_xp,
        "nextLevelXp": next_level_xp,
    }


def format_xp(xp) -> str:
    """1234567 -> '1,234,567'"""
    v = _safe_number(xp)
    if math.isinf(v):
        return "0"
    if v == int(v):
        return f"{int(v):,}"
    return f"{v:,}"
