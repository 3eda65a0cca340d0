"""
Rotating Quest Selector

From day 8 of their account, a user gets one supplementary "rotating"
quest per day, drawn from the rotating template pool by weighted roulette:

    weight = base frequency tier (3 high, 2 medium, 1 low; unknown ids 1)
    x 0.1  if the template was used in the last 3 days
    x 1.5  if the template trains the user's weakest stat
    x 1.3  if the template is preferred for today's weekday

Rotating quests never affect the streak. Once assigned, an unfinished one
keeps the day from being perfect.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Dict, List, Optional, Sequence, TypeVar
import logging
import math
import random

from pydantic import BaseModel

from fitquest.db import queries
from fitquest.models.quest import QuestTemplate, QuestView, StatType, UserStats
from fitquest.models.requirement import target_of
from fitquest.observability.metrics import quest_lifecycle_events_total, rotating_quest_selections_total
from fitquest.progression.tables import DEFAULT_TABLES, ProgressionTables
from fitquest.utils.datetime_helpers import day_of_week, get_today_date, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tie-break order when two stats share the lowest value
STAT_ORDER = (StatType.STR, StatType.AGI, StatType.VIT, StatType.DISC)


class RotatingUnlockStatus(BaseModel):
    unlocked: bool
    current_day: int
    unlock_day: int
    days_remaining: int


# ==========================================
# Unlock gate
# ==========================================

def day_count_since(created_at: datetime, now: Optional[datetime] = None) -> int:
    """Days (rounded up) between account creation and now"""
    now = now or now_utc()
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=dt_timezone.utc)
    elapsed = abs(now - created_at)
    return math.ceil(elapsed / timedelta(days=1))


async def get_user_day_count(user_id: str) -> int:
    """How many days a user has been playing (0 for unknown users)"""
    created_at = await queries.get_user_created_at(user_id)
    if created_at is None:
        return 0
    return day_count_since(created_at)


async def has_unlocked_rotating_quests(
    user_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> bool:
    return await get_user_day_count(user_id) >= tables.rotating_unlock_day


async def get_rotating_quest_unlock_status(
    user_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> RotatingUnlockStatus:
    """Unlock state and progress toward the rotating quest slot"""
    day_count = await get_user_day_count(user_id)
    return RotatingUnlockStatus(
        unlocked=day_count >= tables.rotating_unlock_day,
        current_day=day_count,
        unlock_day=tables.rotating_unlock_day,
        days_remaining=max(0, tables.rotating_unlock_day - day_count),
    )


# ==========================================
# Weighting
# ==========================================

def get_weakest_stat(stats: UserStats) -> StatType:
    """Lowest stat; ties go to the earliest of STR, AGI, VIT, DISC"""
    values = {
        StatType.STR: stats.str,
        StatType.AGI: stats.agi,
        StatType.VIT: stats.vit,
        StatType.DISC: stats.disc,
    }
    # sorted() is stable, so STAT_ORDER breaks ties
    return sorted(STAT_ORDER, key=lambda stat: values[stat])[0]


def calculate_quest_weight(
    template_id: str,
    recent_template_ids: Sequence[str],
    weakest_stat: StatType,
    weekday: int,
    tables: ProgressionTables = DEFAULT_TABLES
) -> float:
    """
    Selection weight of one rotating template

    Args:
        template_id: Candidate template
        recent_template_ids: Templates used in the last few days
        weakest_stat: User's weakest stat
        weekday: 0 = Sunday ... 6 = Saturday
    """
    weight = tables.base_frequency_weights.get(template_id, 1)

    if template_id in recent_template_ids:
        weight *= tables.recency_penalty

    if template_id in tables.stat_to_quests.get(weakest_stat, ()):
        weight *= tables.weak_stat_boost

    if template_id in tables.day_of_week_preferences.get(weekday, ()):
        weight *= tables.day_preference_boost

    return weight


def weighted_random_select(
    items: List[T],
    weights: Dict[str, float],
    rng: random.Random = random,
    key=lambda item: item.id
) -> Optional[T]:
    """
    Cumulative-weight roulette draw

    Items missing from ``weights`` weigh 1. Falls back to a uniform pick when
    all weights are 0, and to the last item if rounding leaves no winner.
    """
    if not items:
        return None

    total_weight = sum(weights.get(key(item), 1) for item in items)

    if total_weight == 0:
        return items[rng.randrange(len(items))]

    remaining = rng.random() * total_weight
    for item in items:
        remaining -= weights.get(key(item), 1)
        if remaining <= 0:
            return item

    return items[-1]


# ==========================================
# Selection
# ==========================================

async def get_recent_rotating_quest_ids(
    user_id: str,
    rotating_template_ids: List[str],
    timezone: Optional[str] = None,
    days: int = 3
) -> List[str]:
    """Rotating template IDs the user had on any of the previous ``days`` days"""
    today = get_today_date(timezone)
    recent_dates = [today - timedelta(days=i) for i in range(1, days + 1)]
    return await queries.get_template_ids_used_on_dates(user_id, recent_dates, rotating_template_ids)


async def select_rotating_quest(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES,
    rng: random.Random = random
) -> Optional[QuestTemplate]:
    """
    Pick today's rotating template for a user

    Returns:
        The selected template, or None if locked or the pool is empty
    """
    if not await has_unlocked_rotating_quests(user_id, tables):
        return None

    templates = await queries.get_rotating_templates(tables.rotating_prefix)
    if not templates:
        return None

    stats = await queries.get_user_stats(user_id)
    weakest_stat = get_weakest_stat(stats)
    recent_ids = await get_recent_rotating_quest_ids(
        user_id,
        [t.id for t in templates],
        timezone,
        days=tables.recent_rotation_days,
    )
    weekday = day_of_week(get_today_date(timezone))

    weights = {
        template.id: calculate_quest_weight(template.id, recent_ids, weakest_stat, weekday, tables)
        for template in templates
    }
    logger.debug(f"Rotating quest weights for user {user_id}: {weights}")

    return weighted_random_select(templates, weights, rng)


async def get_today_rotating_quest(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES,
    rng: random.Random = random
) -> Optional[QuestView]:
    """
    Get or assign today's rotating quest

    Repeated calls on the same day return the same quest.

    Returns:
        QuestView tagged is_rotating, or None if locked or the pool is empty
    """
    today = get_today_date(timezone)
    templates = await queries.get_rotating_templates(tables.rotating_prefix)
    template_ids = [t.id for t in templates]

    existing = await queries.find_log_for_templates(user_id, today, template_ids)
    if existing is not None:
        log, template = existing
        return QuestView.from_parts(log, template, is_rotating=True)

    selected = await select_rotating_quest(user_id, timezone, tables, rng)
    if selected is None:
        return None

    log = await queries.insert_quest_log(
        user_id,
        selected.id,
        today,
        target_value=target_of(selected.requirement),
    )
    if log is None:
        # Assigned by a concurrent request
        existing = await queries.find_log_for_templates(user_id, today, template_ids)
        if existing is None:
            return None
        log, selected = existing
    else:
        rotating_quest_selections_total.labels(template_id=selected.id).inc()
        quest_lifecycle_events_total.labels(action="instantiate").inc()
        await queries.refresh_perfect_day(user_id, today)
        logger.info(f"Assigned rotating quest {selected.id} to user {user_id} for {today}")

    return QuestView.from_parts(log, selected, is_rotating=True)
