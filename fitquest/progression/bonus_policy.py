"""
Streak bonus policy

Streak length maps to an XP bonus tier:
- 30+ days: gold, +25%
- 14+ days: silver, +15%
- 7+ days: bronze, +10%
- otherwise: none
"""
from typing import NamedTuple, Optional

GOLD_THRESHOLD = 30
SILVER_THRESHOLD = 14
BRONZE_THRESHOLD = 7


class StreakBonus(NamedTuple):
    tier: str  # none/bronze/silver/gold
    percent: int


def get_streak_bonus(streak_days: int) -> StreakBonus:
    """Bonus tier and percentage for a streak length"""
    if streak_days >= GOLD_THRESHOLD:
        return StreakBonus("gold", 25)
    if streak_days >= SILVER_THRESHOLD:
        return StreakBonus("silver", 15)
    if streak_days >= BRONZE_THRESHOLD:
        return StreakBonus("bronze", 10)
    return StreakBonus("none", 0)


def days_until_next_tier(streak_days: int) -> Optional[int]:
    """Days left until the next bonus tier, or None at gold"""
    if streak_days >= GOLD_THRESHOLD:
        return None
    if streak_days >= SILVER_THRESHOLD:
        return GOLD_THRESHOLD - streak_days
    if streak_days >= BRONZE_THRESHOLD:
        return SILVER_THRESHOLD - streak_days
    return BRONZE_THRESHOLD - streak_days


def streak_bonus_multiplier(streak_days: int) -> float:
    """XP multiplier for a streak length (1.0 when no bonus applies)"""
    return 1 + get_streak_bonus(streak_days).percent / 100
