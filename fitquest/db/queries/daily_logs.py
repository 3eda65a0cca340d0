"""Daily aggregate (daily_logs) queries"""
import logging
from datetime import date

from fitquest.db.connection import db
from fitquest.models.quest import DailyLog

logger = logging.getLogger(__name__)

_DAILY_COLUMNS = """
    id, user_id, log_date, core_quests_total, core_quests_completed,
    bonus_quests_completed, xp_earned, is_perfect_day
"""

# A perfect day needs every core quest done and no DAILY quest of that day left
# incomplete (bonus and rotating included). Params: (user_id, log_date)
REFRESH_PERFECT_DAY_SQL = """
    UPDATE daily_logs d
    SET is_perfect_day = (
            d.core_quests_total > 0
            AND d.core_quests_completed >= d.core_quests_total
            AND NOT EXISTS (
                SELECT 1
                FROM quest_logs q
                JOIN quest_templates t ON t.id = q.template_id
                WHERE q.user_id = d.user_id
                  AND q.quest_date = d.log_date
                  AND t.type = 'DAILY'
                  AND q.status <> 'COMPLETED'
            )
        ),
        updated_at = CURRENT_TIMESTAMP
    WHERE d.user_id = %s AND d.log_date = %s
"""


async def upsert_daily_log(user_id: str, log_date: date, core_quests_total: int) -> DailyLog:
    """
    Get or create the daily aggregate for (user, date), refreshing the core total

    The stored total never drops below the completed count.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO daily_logs (user_id, log_date, core_quests_total)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, log_date) DO UPDATE SET
                    core_quests_total = GREATEST(EXCLUDED.core_quests_total, daily_logs.core_quests_completed),
                    updated_at = CURRENT_TIMESTAMP
                RETURNING {_DAILY_COLUMNS}
                """,
                (user_id, log_date, core_quests_total)
            )
            row = await cur.fetchone()
            await conn.commit()
            return DailyLog.model_validate(row)


async def get_recent_daily_logs(user_id: str, limit: int = 365) -> list[DailyLog]:
    """Get a user's daily aggregates, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_DAILY_COLUMNS}
                FROM daily_logs
                WHERE user_id = %s
                ORDER BY log_date DESC
                LIMIT %s
                """,
                (user_id, limit)
            )
            rows = await cur.fetchall()
            return [DailyLog.model_validate(row) for row in rows]


async def refresh_perfect_day(user_id: str, log_date: date) -> None:
    """Recompute is_perfect_day after quests were added to or removed from a day"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(REFRESH_PERFECT_DAY_SQL, (user_id, log_date))
            await conn.commit()
