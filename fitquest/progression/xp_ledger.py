"""
XP Ledger and Leveling

Every XP change is an append-only ledger event; the user's total is only
ever moved through this module. Quest resets write a negative removal
event instead of editing past awards.

Leveling Curve:
- Level 1-5 (Bronze): 100 XP per level
- Level 6-15 (Silver): 200 XP per level
- Level 16-30 (Gold): 500 XP per level
- Level 31+ (Platinum): 1000 XP per level

Award Rules:
- Quest completion: template base XP (scaled by progress for partial completion)
- Streak bonus: +10/15/25% at bronze/silver/gold streak tiers
"""

from typing import Dict, Optional
import logging
import math

from fitquest.db import queries
from fitquest.exceptions import RecordNotFoundError, ValidationError
from fitquest.observability.metrics import xp_ledger_events_total
from fitquest.progression.bonus_policy import get_streak_bonus, streak_bonus_multiplier

logger = logging.getLogger(__name__)

SOURCE_QUEST_COMPLETION = "QUEST_COMPLETION"
SOURCE_MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


def calculate_level_from_xp(total_xp: int) -> Dict[str, any]:
    """
    Calculate level and tier from total XP

    Returns:
        {
            'current_level': int,
            'level_tier': str (bronze/silver/gold/platinum),
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_next_level': int
        }
    """
    level = 1
    xp_needed = 0
    xp_remaining = max(0, total_xp)

    # (level cap for tier, xp per level)
    for tier_cap, xp_per_level in ((5, 100), (15, 200), (30, 500)):
        while level < tier_cap and xp_remaining >= xp_per_level:
            xp_remaining -= xp_per_level
            level += 1
            xp_needed += xp_per_level

    while xp_remaining >= 1000:
        xp_remaining -= 1000
        level += 1
        xp_needed += 1000

    if level <= 5:
        tier, xp_for_next_level = "bronze", 100
    elif level <= 15:
        tier, xp_for_next_level = "silver", 200
    elif level <= 30:
        tier, xp_for_next_level = "gold", 500
    else:
        tier, xp_for_next_level = "platinum", 1000

    return {
        "current_level": level,
        "level_tier": tier,
        "xp_in_current_level": xp_remaining,
        "xp_to_next_level": xp_for_next_level - xp_remaining,
        "total_xp_for_next_level": xp_needed + xp_for_next_level,
    }


def level_for_xp(total_xp: int) -> int:
    return calculate_level_from_xp(total_xp)["current_level"]


def apply_streak_bonus(base_amount: int, streak_days: int) -> int:
    """XP after the streak bonus multiplier (floored)"""
    return math.floor(base_amount * streak_bonus_multiplier(streak_days))


async def award_quest_xp(
    user_id: str,
    source_id: Optional[str],
    base_amount: int,
    description: str,
    streak_days: int = 0
) -> Dict[str, any]:
    """
    Award XP for a quest completion, applying the streak bonus

    Args:
        user_id: User ID
        source_id: Quest log ID
        base_amount: XP before the streak bonus
        description: Human-readable description
        streak_days: User's current streak (selects the bonus tier)

    Returns:
        {
            'xp_awarded': int,       # after bonus
            'base_amount': int,
            'bonus_tier': str,
            'leveled_up': bool,
            'old_level': int,
            'new_level': int,
            'new_total_xp': int
        }

    Raises:
        RecordNotFoundError: If the user does not exist
    """
    final_amount = apply_streak_bonus(base_amount, streak_days)

    event = await queries.append_xp_event(
        user_id,
        source=SOURCE_QUEST_COMPLETION,
        source_id=source_id,
        base_amount=base_amount,
        final_amount=final_amount,
        description=description,
        level_for=level_for_xp,
    )
    if event is None:
        raise RecordNotFoundError(
            "User not found",
            record_type="User",
            record_id=user_id,
            user_id=user_id,
            operation="award_quest_xp",
        )

    xp_ledger_events_total.labels(direction="award").inc()
    leveled_up = event["level_after"] > event["level_before"]

    logger.info(
        f"Awarded {final_amount} XP ({base_amount} base) to user {user_id} for {source_id}. "
        f"Total: {event['total_xp_after']} XP, Level: {event['level_after']}"
    )
    if leveled_up:
        logger.info(f"User {user_id} leveled up from {event['level_before']} to {event['level_after']}!")

    return {
        "xp_awarded": final_amount,
        "base_amount": base_amount,
        "bonus_tier": get_streak_bonus(streak_days).tier,
        "leveled_up": leveled_up,
        "old_level": event["level_before"],
        "new_level": event["level_after"],
        "new_total_xp": event["total_xp_after"],
    }


async def create_xp_removal_event(
    user_id: str,
    source: str,
    source_id: Optional[str],
    amount: int,
    description: str
) -> Dict[str, any]:
    """
    Record an XP removal (e.g. quest reset) as a negative ledger event

    The user's total never drops below 0; earlier events are untouched.

    Raises:
        ValidationError: If amount is not positive
        RecordNotFoundError: If the user does not exist
    """
    if amount <= 0:
        raise ValidationError(
            "Amount must be positive (it will be subtracted)",
            field="amount",
            value=amount,
            user_id=user_id,
            operation="create_xp_removal_event",
        )

    event = await queries.append_xp_event(
        user_id,
        source=source,
        source_id=source_id,
        base_amount=-amount,
        final_amount=-amount,
        description=description,
        level_for=level_for_xp,
    )
    if event is None:
        raise RecordNotFoundError(
            "User not found",
            record_type="User",
            record_id=user_id,
            user_id=user_id,
            operation="create_xp_removal_event",
        )

    xp_ledger_events_total.labels(direction="removal").inc()
    logger.info(
        f"Removed {amount} XP from user {user_id} ({description}). "
        f"Total: {event['total_xp_after']} XP, Level: {event['level_after']}"
    )

    return {
        "xp_removed": amount,
        "level_changed": event["level_after"] != event["level_before"],
        "new_level": event["level_after"],
        "new_total_xp": event["total_xp_after"],
    }
