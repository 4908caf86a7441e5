"""
Player Progress

Applies a finished round to the player's aggregate (rounds, wins, losses,
streaks, XP) and records the XP breakdown on the round.
"""
import logging
from dataclasses import dataclass

from tortoise.expressions import F

from ..core.locks import KeyedLocks
from ..models import GameRound, User
from . import xp

logger = logging.getLogger(__name__)

# One completion at a time per player inside this process; the counters
# themselves are incremented in SQL so other processes never lose an update.
player_locks = KeyedLocks()


@dataclass
class CompletionOutcome:
    won: bool
    breakdown: xp.XpBreakdown
    xp_before: int
    xp_after: int
    level_before: int
    level_after: int
    current_streak: int
    best_streak: int

    @property
    def leveled_up(self) -> bool:
        return self.level_after > self.level_before

    def to_dict(self) -> dict:
        return {
            "won": self.won,
            **self.breakdown.to_dict(),
            "xpBefore": self.xp_before,
            "xpAfter": self.xp_after,
            "levelBefore": self.level_before,
            "levelAfter": self.level_after,
            "leveledUp": self.leveled_up,
            "currentStreak": self.current_streak,
            "bestStreak": self.best_streak,
        }


async def apply_round_completion(game_round: GameRound, won: bool) -> CompletionOutcome:
    """
    Must be called exactly once per round, right after its terminal result was
    written (the conditional update in RoundStore guarantees that).

    Win XP uses the level at round start and the streak including this win.
    Two rounds of the same player finishing together are applied one after
    the other.
    """
    async with player_locks.hold(game_round.user_id):
        return await _apply_completion(game_round, won)


async def _apply_completion(game_round: GameRound, won: bool) -> CompletionOutcome:
    user = await User.get(id=game_round.user_id)

    xp_before = int(user.total_xp or 0)
    level = xp.level_for_xp(xp_before)

    if won:
        streak = user.current_streak + 1
        best = max(user.best_streak, streak)
    else:
        streak = 0
        best = user.best_streak

    msg_sum = int(game_round.message_xp_sum or 0)
    win_xp = xp.win_xp(level) if won else 0
    mult = xp.streak_multiplier(streak) if won else 1.0
    breakdown = xp.XpBreakdown(
        message_xp_sum=msg_sum,
        win_xp=win_xp,
        streak_multiplier=mult,
        total_xp=xp.round_total_xp(msg_sum, win_xp, mult),
    )
    xp_after = xp_before + breakdown.total_xp

    await User.filter(id=user.id).update(
        total_xp=F("total_xp") + breakdown.total_xp,
        total_rounds=F("total_rounds") + 1,
        total_wins=F("total_wins") + (1 if won else 0),
        total_losses=F("total_losses") + (0 if won else 1),
        current_streak=streak,
        best_streak=best,
    )

    await GameRound.filter(id=game_round.id).update(
        win_xp=breakdown.win_xp,
        streak_multiplier=breakdown.streak_multiplier,
        xp_gained=breakdown.total_xp,
        xp_before=xp_before,
        xp_after=xp_after,
    )

    outcome = CompletionOutcome(
        won=won,
        breakdown=breakdown,
        xp_before=xp_before,
        xp_after=xp_after,
        level_before=level,
        level_after=xp.level_for_xp(xp_after),
        current_streak=streak,
        best_streak=best,
    )
    logger.info(
        "[Progress] user=%s round=%s won=%s +%d XP (level %d -> %d, streak %d)",
        user.id, game_round.id, won, breakdown.total_xp,
        outcome.level_before, outcome.level_after, streak,
    )
    return outcome


def progress_summary(user: User) -> dict:
    info = xp.xp_info(user.total_xp)
    return {
        **info,
        "totalXpFormatted": xp.format_xp(info["totalXp"]),
        "totalRounds": user.total_rounds,
        "totalWins": user.total_wins,
        "totalLosses": user.total_losses,
        "currentStreak": user.current_streak,
        "bestStreak": user.best_streak,
        "winRate": round(user.total_wins / user.total_rounds * 100, 1) if user.total_rounds else 0.0,
    }
