"""
Streak & Perfect-Day Tracking

A streak day is a day whose daily log shows every core quest completed.
Streaks are never incremented in place: they are rebuilt from the user's
daily logs (newest first, one year lookback) every time they change.

Rules:
- No log today or yesterday: the streak is broken (0)
- Walking back from the newest log, two or more missing calendar days in a
  row end the streak (a single missing day is tolerated)
- A day with core quests left incomplete ends the streak
- Perfect days only count until the first non-perfect day of the walk;
  older perfect days after that are not counted
- longest_streak never decreases
"""

from datetime import date
from typing import List, Optional
import logging

from pydantic import BaseModel

from fitquest.db import queries
from fitquest.exceptions import RecordNotFoundError
from fitquest.models.quest import DailyLog
from fitquest.observability.metrics import streak_recalculations_total
from fitquest.progression.bonus_policy import days_until_next_tier, get_streak_bonus
from fitquest.progression.tables import DEFAULT_TABLES, ProgressionTables
from fitquest.utils.datetime_helpers import days_between, get_today_date, previous_day

logger = logging.getLogger(__name__)


class StreakCalculation(BaseModel):
    current_streak: int = 0
    perfect_streak: int = 0
    streak_start_date: Optional[date] = None


class StreakInfo(BaseModel):
    current_streak: int
    longest_streak: int
    perfect_streak: int
    bonus_tier: str
    bonus_percent: int
    streak_start_date: Optional[date] = None
    days_until_next_tier: Optional[int] = None


def compute_streak(logs: List[DailyLog], today: date) -> StreakCalculation:
    """
    Rebuild streak state from daily logs

    Args:
        logs: Daily logs ordered by date, newest first
        today: The user's current calendar date

    Returns:
        StreakCalculation with current streak, perfect streak and start date
    """
    if not logs:
        return StreakCalculation()

    most_recent = logs[0]
    days_since_last_log = days_between(most_recent.log_date, today)

    # Missing both today and yesterday breaks the chain
    if days_since_last_log > 1:
        return StreakCalculation()

    current_streak = 0
    perfect_streak = 0
    streak_start_date = None
    perfect_streak_broken = False

    expected_date = today if days_since_last_log == 0 else most_recent.log_date

    for log in logs:
        if days_between(log.log_date, expected_date) > 1:
            break

        core_done = (
            log.core_quests_total > 0
            and log.core_quests_completed >= log.core_quests_total
        )
        if not core_done:
            break

        current_streak += 1
        streak_start_date = log.log_date

        if log.is_perfect_day and not perfect_streak_broken:
            perfect_streak += 1
        else:
            perfect_streak_broken = True

        expected_date = previous_day(log.log_date)

    return StreakCalculation(
        current_streak=current_streak,
        perfect_streak=perfect_streak,
        streak_start_date=streak_start_date,
    )


async def calculate_streak(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES
) -> StreakCalculation:
    """
    Calculate a user's streak from stored daily logs

    Args:
        user_id: User ID
        timezone: IANA timezone used to resolve "today" (user's stored zone if None)
        tables: Tuning tables (lookback window)
    """
    if timezone is None:
        timezone = await queries.get_user_timezone(user_id)

    logs = await queries.get_recent_daily_logs(user_id, limit=tables.streak_lookback_days)
    result = compute_streak(logs, get_today_date(timezone))

    streak_recalculations_total.inc()
    logger.debug(
        f"Calculated streak for user {user_id}: current={result.current_streak}, "
        f"perfect={result.perfect_streak}, start={result.streak_start_date}"
    )
    return result


def _build_streak_info(
    current_streak: int,
    longest_streak: int,
    perfect_streak: int,
    streak_start_date: Optional[date]
) -> StreakInfo:
    bonus = get_streak_bonus(current_streak)
    return StreakInfo(
        current_streak=current_streak,
        longest_streak=longest_streak,
        perfect_streak=perfect_streak,
        bonus_tier=bonus.tier,
        bonus_percent=bonus.percent,
        streak_start_date=streak_start_date,
        days_until_next_tier=days_until_next_tier(current_streak),
    )


async def update_user_streak(user_id: str, timezone: Optional[str] = None) -> StreakInfo:
    """
    Recalculate and store a user's streaks

    Raises:
        RecordNotFoundError: If the user does not exist
    """
    calculation = await calculate_streak(user_id, timezone)

    state = await queries.update_user_streak_state(
        user_id,
        current_streak=calculation.current_streak,
        perfect_streak=calculation.perfect_streak,
    )
    if state is None:
        raise RecordNotFoundError(
            "User not found",
            record_type="User",
            record_id=user_id,
            user_id=user_id,
            operation="update_user_streak",
        )

    logger.info(
        f"Updated streak for user {user_id}: current={state.current_streak}, "
        f"longest={state.longest_streak}, perfect={state.perfect_streak}"
    )

    return _build_streak_info(
        state.current_streak,
        state.longest_streak,
        state.perfect_streak,
        calculation.streak_start_date,
    )


async def get_streak_info(user_id: str, timezone: Optional[str] = None) -> StreakInfo:
    """
    Get a user's stored streaks without updating them

    Raises:
        RecordNotFoundError: If the user does not exist
    """
    state = await queries.get_user_progression(user_id)
    if state is None:
        raise RecordNotFoundError(
            "User not found",
            record_type="User",
            record_id=user_id,
            user_id=user_id,
            operation="get_streak_info",
        )

    calculation = await calculate_streak(user_id, timezone)

    return _build_streak_info(
        state.current_streak,
        state.longest_streak,
        state.perfect_streak,
        calculation.streak_start_date,
    )


def format_streak_display(info: StreakInfo) -> str:
    """
    Format streak info for chat display

    Args:
        info: Streak info from get_streak_info()/update_user_streak()

    Returns:
        Formatted multi-line string
    """
    if info.current_streak == 0:
        line = "No active streak. Complete today's core quests to start one! 💪"
        if info.longest_streak > 0:
            line += f" (best: {info.longest_streak})"
        return line

    lines = [f"🔥 Streak: {info.current_streak} days"]

    if info.longest_streak > info.current_streak:
        lines.append(f"🏆 Best: {info.longest_streak} days")
    if info.perfect_streak > 0:
        lines.append(f"⭐ Perfect days in a row: {info.perfect_streak}")
    if info.bonus_percent > 0:
        lines.append(f"🎖️ {info.bonus_tier.capitalize()} bonus: +{info.bonus_percent}% XP")
    if info.days_until_next_tier is not None:
        lines.append(f"⏳ {info.days_until_next_tier} days to next bonus tier")

    return "\n".join(lines)
