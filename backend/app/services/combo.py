"""
Combo Engine

Rewards consecutive strong messages with an increasing multiplier on the
Success Meter:
- delta >= +3 advances the combo (capped at level 5)
- delta 0..+2 holds it
- delta < 0 breaks it back to 0

Pure functions, no I/O. Inputs out of range are clamped, never rejected.
"""
import math
from typing import Dict

MAX_COMBO_LEVEL = 5
COMBO_ADVANCE_THRESHOLD = 3
MAX_DELTA_AFTER_COMBO = 14

COMBO_MULTIPLIERS: Dict[int, float] = {
    0: 1.0,
    1: 1.2,
    2: 1.4,
    3: 1.6,
    4: 1.8,
    5: 2.0,  # ON FIRE
}

_DEFAULT_THEME = {
    "bg": "bg-neutral-800/50",
    "text": "text-neutral-400",
    "glow": "shadow-none",
}

COMBO_THEMES: Dict[int, Dict[str, str]] = {
    0: _DEFAULT_THEME,
    1: {"bg": "bg-blue-500/20", "text": "text-blue-400", "glow": "shadow-lg shadow-blue-500/20"},
    2: {"bg": "bg-purple-500/20", "text": "text-purple-400", "glow": "shadow-lg shadow-purple-500/30"},
    3: {"bg": "bg-orange-500/20", "text": "text-orange-400", "glow": "shadow-lg shadow-orange-500/40"},
    4: {"bg": "bg-red-500/20", "text": "text-red-400", "glow": "shadow-lg shadow-red-500/50"},
    5: {
        "bg": "bg-gradient-to-r from-orange-500/30 via-red-500/30 to-yellow-500/30",
        "text": "text-yellow-300",
        "glow": "shadow-xl shadow-orange-500/60",
    },
}


def clamp_level(combo_level) -> int:
    """Coerce any input to an integer combo level in [0, 5]."""
    try:
        value = float(combo_level)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return MAX_COMBO_LEVEL if value > 0 else 0
    return max(0, min(MAX_COMBO_LEVEL, int(value)))


def multiplier(combo_level) -> float:
    return COMBO_MULTIPLIERS[clamp_level(combo_level)]


def amplify(delta: int, combo_level) -> int:
    """
    Apply the combo multiplier to a delta.

    Non-positive deltas are returned untouched. Positive ones are multiplied,
    floored and capped at +14.
    """
    if isinstance(delta, float) and not math.isfinite(delta):
        return 0
    if delta <= 0:
        return delta
    boosted = math.floor(delta * multiplier(combo_level))
    return min(boosted, MAX_DELTA_AFTER_COMBO)


def advance(current_combo, delta: int) -> int:
    """Next combo level after a message with this (raw) delta."""
    current = clamp_level(current_combo)
    if delta < 0:
        return 0
    if delta >= COMBO_ADVANCE_THRESHOLD:
        return min(current + 1, MAX_COMBO_LEVEL)
    return current


def replay(deltas) -> int:
    """Recompute the combo level from a sequence of raw deltas."""
    level = 0
    for d in deltas:
        level = advance(level, d)
    return level


# ---------------- presentation helpers ----------------

def display_text(combo_level) -> str:
    level = clamp_level(combo_level)
    if level == 0:
        return "Combo: 0"
    if level == MAX_COMBO_LEVEL:
        return "ON FIRE!"
    return f"Combo: x{level}"


def tooltip(combo_level) -> str:
    level = clamp_level(combo_level)
    mult = f"{multiplier(level):g}"
    if level == 0:
        return "Success Meter unaffected"
    if level == MAX_COMBO_LEVEL:
        return f"Success Meter x{mult} - You're on fire!"
    return f"Success Meter x{mult}"


def color_theme(combo_level) -> Dict[str, str]:
    return dict(COMBO_THEMES.get(clamp_level(combo_level), _DEFAULT_THEME))


def describe(combo_level) -> dict:
    """Bundle of display metadata for API responses."""
    level = clamp_level(combo_level)
    return {
        "level": level,
        "multiplier": multiplier(level),
        "displayText": display_text(level),
        "tooltip": tooltip(level),
        "theme": color_theme(level),
    }
