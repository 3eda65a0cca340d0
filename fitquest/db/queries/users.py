"""User progression, stats and baseline queries"""
import logging
from datetime import datetime
from typing import Optional

from fitquest.db.connection import db
from fitquest.models.quest import BaselineAssessment, UserProgressionState, UserStats

logger = logging.getLogger(__name__)


async def get_user_progression(user_id: str) -> Optional[UserProgressionState]:
    """Get the progression columns of a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id AS user_id, level, total_xp, current_streak, longest_streak, perfect_streak
                FROM users
                WHERE id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return UserProgressionState.model_validate(row) if row else None


async def update_user_streak_state(
    user_id: str,
    current_streak: int,
    perfect_streak: int
) -> Optional[UserProgressionState]:
    """
    Store recomputed streaks; longest_streak only ever grows

    Returns:
        The updated state, or None if the user does not exist
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE users
                SET current_streak = %s,
                    perfect_streak = %s,
                    longest_streak = GREATEST(longest_streak, %s),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s
                RETURNING id AS user_id, level, total_xp, current_streak, longest_streak, perfect_streak
                """,
                (current_streak, perfect_streak, current_streak, user_id)
            )
            row = await cur.fetchone()
            await conn.commit()
            return UserProgressionState.model_validate(row) if row else None


async def get_user_stats(user_id: str) -> UserStats:
    """Get a user's STR/AGI/VIT/DISC (all 10 when the user is unknown)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT str, agi, vit, disc FROM users WHERE id = %s",
                (user_id,)
            )
            row = await cur.fetchone()
            return UserStats.model_validate(row) if row else UserStats()


async def get_user_created_at(user_id: str) -> Optional[datetime]:
    """Get the account creation timestamp of a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT created_at FROM users WHERE id = %s",
                (user_id,)
            )
            row = await cur.fetchone()
            return row["created_at"] if row else None


async def get_user_timezone(user_id: str) -> Optional[str]:
    """Get the IANA timezone stored for a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT timezone FROM users WHERE id = %s",
                (user_id,)
            )
            row = await cur.fetchone()
            return row["timezone"] if row else None


async def get_baseline_assessment(user_id: str) -> Optional[BaselineAssessment]:
    """Get a user's onboarding baseline assessment"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, daily_steps_baseline, workouts_per_week,
                       protein_grams_baseline, sleep_hours_baseline
                FROM baseline_assessments
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return BaselineAssessment.model_validate(row) if row else None


async def get_user_ids_with_targets() -> list[str]:
    """Get every user that owns at least one adapted target"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT DISTINCT user_id FROM adapted_targets ORDER BY user_id"
            )
            rows = await cur.fetchall()
            return [row["user_id"] for row in rows]
