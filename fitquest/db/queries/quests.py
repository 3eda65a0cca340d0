"""Quest template and quest log queries"""
import logging
from datetime import date
from typing import Callable, Optional

from psycopg.types.json import Jsonb

from fitquest.db.connection import db
from fitquest.db.queries.daily_logs import REFRESH_PERFECT_DAY_SQL
from fitquest.db.queries.xp import insert_xp_event
from fitquest.models.quest import QuestLog, QuestTemplate

logger = logging.getLogger(__name__)

_TEMPLATE_COLUMNS = """
    id, name, description, type, category, requirement, base_xp, stat_type,
    stat_bonus, allow_partial, min_partial_percent, is_core, is_active
"""

_LOG_COLUMNS = """
    id, user_id, template_id, quest_date, status, current_value, target_value,
    completion_percent, completed_at, xp_awarded
"""


def _template_from_row(row: dict) -> QuestTemplate:
    return QuestTemplate.model_validate(row)


def _log_from_row(row: dict) -> QuestLog:
    return QuestLog.model_validate(row)


def _split_joined_row(row: dict) -> tuple[QuestLog, QuestTemplate]:
    """Split a quest_logs JOIN quest_templates row (template columns prefixed t_)"""
    template = {k[2:]: v for k, v in row.items() if k.startswith("t_")}
    log = {k: v for k, v in row.items() if not k.startswith("t_")}
    return _log_from_row(log), _template_from_row(template)


_JOINED_SELECT = """
    SELECT q.id, q.user_id, q.template_id, q.quest_date, q.status, q.current_value,
           q.target_value, q.completion_percent, q.completed_at, q.xp_awarded,
           t.id AS t_id, t.name AS t_name, t.description AS t_description,
           t.type AS t_type, t.category AS t_category, t.requirement AS t_requirement,
           t.base_xp AS t_base_xp, t.stat_type AS t_stat_type, t.stat_bonus AS t_stat_bonus,
           t.allow_partial AS t_allow_partial, t.min_partial_percent AS t_min_partial_percent,
           t.is_core AS t_is_core, t.is_active AS t_is_active
    FROM quest_logs q
    JOIN quest_templates t ON t.id = q.template_id
"""


# ==========================================
# Quest Templates
# ==========================================

async def get_quest_template(template_id: str) -> Optional[QuestTemplate]:
    """Get a quest template by ID"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"SELECT {_TEMPLATE_COLUMNS} FROM quest_templates WHERE id = %s",
                (template_id,)
            )
            row = await cur.fetchone()
            return _template_from_row(row) if row else None


async def get_active_core_templates() -> list[QuestTemplate]:
    """Get active core DAILY templates"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TEMPLATE_COLUMNS}
                FROM quest_templates
                WHERE is_active = TRUE AND is_core = TRUE AND type = 'DAILY'
                ORDER BY id
                """
            )
            rows = await cur.fetchall()
            return [_template_from_row(row) for row in rows]


async def get_active_templates() -> list[QuestTemplate]:
    """Get every active template (the catalog), core first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TEMPLATE_COLUMNS}
                FROM quest_templates
                WHERE is_active = TRUE
                ORDER BY is_core DESC, type, id
                """
            )
            rows = await cur.fetchall()
            return [_template_from_row(row) for row in rows]


async def get_rotating_templates(prefix: str) -> list[QuestTemplate]:
    """
    Get active, non-core templates that belong to the rotating pool

    Args:
        prefix: ID prefix that marks a template as rotating (e.g. 'rotating-')
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TEMPLATE_COLUMNS}
                FROM quest_templates
                WHERE is_active = TRUE AND is_core = FALSE AND id LIKE %s
                ORDER BY id
                """,
                (prefix + "%",)
            )
            rows = await cur.fetchall()
            return [_template_from_row(row) for row in rows]


async def save_quest_template(template: QuestTemplate) -> None:
    """Insert or update a quest template (seeding/admin use)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO quest_templates
                    (id, name, description, type, category, requirement, base_xp, stat_type,
                     stat_bonus, allow_partial, min_partial_percent, is_core, is_active)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    type = EXCLUDED.type,
                    category = EXCLUDED.category,
                    requirement = EXCLUDED.requirement,
                    base_xp = EXCLUDED.base_xp,
                    stat_type = EXCLUDED.stat_type,
                    stat_bonus = EXCLUDED.stat_bonus,
                    allow_partial = EXCLUDED.allow_partial,
                    min_partial_percent = EXCLUDED.min_partial_percent,
                    is_core = EXCLUDED.is_core,
                    is_active = EXCLUDED.is_active,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    template.id,
                    template.name,
                    template.description,
                    template.type.value,
                    template.category,
                    Jsonb(template.requirement.model_dump(exclude_none=True)),
                    template.base_xp,
                    template.stat_type.value,
                    template.stat_bonus,
                    template.allow_partial,
                    template.min_partial_percent,
                    template.is_core,
                    template.is_active,
                )
            )
            await conn.commit()


# ==========================================
# Quest Logs
# ==========================================

async def insert_quest_log(
    user_id: str,
    template_id: str,
    quest_date: date,
    target_value: float
) -> Optional[QuestLog]:
    """
    Create an ACTIVE quest log unless one already exists for (user, template, date)

    The unique constraint decides; no prior read is involved.

    Returns:
        The new QuestLog, or None if the row already existed
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO quest_logs
                    (user_id, template_id, quest_date, status, current_value, target_value, completion_percent)
                VALUES (%s, %s, %s, 'ACTIVE', 0, %s, 0)
                ON CONFLICT (user_id, template_id, quest_date) DO NOTHING
                RETURNING {_LOG_COLUMNS}
                """,
                (user_id, template_id, quest_date, target_value)
            )
            row = await cur.fetchone()
            await conn.commit()

            if not row:
                logger.debug(
                    f"Quest log already exists for user {user_id}, template {template_id} on {quest_date}"
                )
                return None
            return _log_from_row(row)


async def get_quest_log_for_date(
    user_id: str,
    template_id: str,
    quest_date: date
) -> Optional[QuestLog]:
    """Get the quest log for (user, template, date)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_LOG_COLUMNS}
                FROM quest_logs
                WHERE user_id = %s AND template_id = %s AND quest_date = %s
                """,
                (user_id, template_id, quest_date)
            )
            row = await cur.fetchone()
            return _log_from_row(row) if row else None


async def get_quest_log_with_template(
    quest_log_id: str,
    user_id: str
) -> Optional[tuple[QuestLog, QuestTemplate]]:
    """Get a user's quest log joined with its template"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                _JOINED_SELECT + " WHERE q.id = %s AND q.user_id = %s",
                (quest_log_id, user_id)
            )
            row = await cur.fetchone()
            return _split_joined_row(row) if row else None


async def get_daily_quests_for_date(
    user_id: str,
    quest_date: date
) -> list[tuple[QuestLog, QuestTemplate]]:
    """Get a user's DAILY quest logs (core, bonus and rotating) for a date"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                _JOINED_SELECT
                + " WHERE q.user_id = %s AND q.quest_date = %s AND t.type = 'DAILY'"
                + " ORDER BY t.is_core DESC, q.created_at",
                (user_id, quest_date)
            )
            rows = await cur.fetchall()
            return [_split_joined_row(row) for row in rows]


async def get_template_ids_for_date(user_id: str, quest_date: date) -> set[str]:
    """Template IDs the user has a log for on ``quest_date``"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT DISTINCT template_id
                FROM quest_logs
                WHERE user_id = %s AND quest_date = %s
                """,
                (user_id, quest_date)
            )
            rows = await cur.fetchall()
            return {row["template_id"] for row in rows}


async def get_quest_logs_since(
    user_id: str,
    template_id: str,
    since: date
) -> list[QuestLog]:
    """Get a user's logs for one template dated on or after ``since``, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_LOG_COLUMNS}
                FROM quest_logs
                WHERE user_id = %s AND template_id = %s AND quest_date >= %s
                ORDER BY quest_date DESC
                """,
                (user_id, template_id, since)
            )
            rows = await cur.fetchall()
            return [_log_from_row(row) for row in rows]


async def get_template_ids_used_on_dates(
    user_id: str,
    dates: list[date],
    template_ids: list[str]
) -> list[str]:
    """Get template IDs (restricted to ``template_ids``) with a log on any of ``dates``"""
    if not dates or not template_ids:
        return []

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT template_id
                FROM quest_logs
                WHERE user_id = %s
                  AND quest_date = ANY(%s)
                  AND template_id = ANY(%s)
                """,
                (user_id, dates, template_ids)
            )
            rows = await cur.fetchall()
            return [row["template_id"] for row in rows]


async def find_log_for_templates(
    user_id: str,
    quest_date: date,
    template_ids: list[str]
) -> Optional[tuple[QuestLog, QuestTemplate]]:
    """Get the first log on ``quest_date`` whose template is in ``template_ids``"""
    if not template_ids:
        return None

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                _JOINED_SELECT
                + " WHERE q.user_id = %s AND q.quest_date = %s AND q.template_id = ANY(%s)"
                + " ORDER BY q.created_at LIMIT 1",
                (user_id, quest_date, template_ids)
            )
            row = await cur.fetchone()
            return _split_joined_row(row) if row else None


async def delete_quest_log(quest_log_id: str) -> bool:
    """
    Hard-delete a quest log that is not COMPLETED

    Returns:
        True if a row was deleted
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM quest_logs WHERE id = %s AND status <> 'COMPLETED'",
                (quest_log_id,)
            )
            deleted = cur.rowcount > 0
            await conn.commit()
            return deleted


async def apply_quest_completion(
    quest_log_id: str,
    user_id: str,
    quest_date: date,
    is_core: bool,
    current_value: float,
    completion_percent: float,
    completed: bool,
    xp_awarded: int
) -> bool:
    """
    Record progress on an ACTIVE quest log and, on completion, roll it into
    the day's aggregate - all in one transaction

    Returns:
        False if the log was no longer ACTIVE (nothing written)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE quest_logs
                SET status = CASE WHEN %s THEN 'COMPLETED' ELSE status END,
                    current_value = %s,
                    completion_percent = %s,
                    completed_at = CASE WHEN %s THEN CURRENT_TIMESTAMP ELSE NULL END,
                    xp_awarded = %s,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND user_id = %s AND status = 'ACTIVE'
                """,
                (
                    completed,
                    current_value,
                    completion_percent,
                    completed,
                    xp_awarded if completed and xp_awarded > 0 else None,
                    quest_log_id,
                    user_id,
                )
            )
            if cur.rowcount == 0:
                await conn.rollback()
                return False

            if completed:
                await cur.execute(
                    """
                    INSERT INTO daily_logs (user_id, log_date)
                    VALUES (%s, %s)
                    ON CONFLICT (user_id, log_date) DO NOTHING
                    """,
                    (user_id, quest_date)
                )
                if is_core:
                    increment = "core_quests_completed = LEAST(core_quests_completed + 1, core_quests_total)"
                else:
                    increment = "bonus_quests_completed = bonus_quests_completed + 1"
                await cur.execute(
                    f"""
                    UPDATE daily_logs
                    SET {increment},
                        xp_earned = xp_earned + %s,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s AND log_date = %s
                    """,
                    (xp_awarded, user_id, quest_date)
                )
                await cur.execute(REFRESH_PERFECT_DAY_SQL, (user_id, quest_date))

            await conn.commit()
            return True


async def apply_quest_reset(
    quest_log_id: str,
    user_id: str,
    quest_date: date,
    is_core: bool,
    xp_removed: int,
    xp_source: str = "MANUAL_ADJUSTMENT",
    xp_description: str = "",
    level_for: Optional[Callable[[int], int]] = None
) -> bool:
    """
    Revert a COMPLETED quest log to ACTIVE, take it back out of the day's
    aggregate and write the XP removal event - all in one transaction

    The removal event is written when ``xp_removed`` is positive and
    ``level_for`` is given.

    Returns:
        False if the log was no longer COMPLETED (nothing written)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE quest_logs
                SET status = 'ACTIVE',
                    current_value = 0,
                    completion_percent = 0,
                    completed_at = NULL,
                    xp_awarded = NULL,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND user_id = %s AND status = 'COMPLETED'
                """,
                (quest_log_id, user_id)
            )
            if cur.rowcount == 0:
                await conn.rollback()
                return False

            counter = "core_quests_completed" if is_core else "bonus_quests_completed"
            await cur.execute(
                f"""
                UPDATE daily_logs
                SET {counter} = GREATEST(0, {counter} - 1),
                    xp_earned = GREATEST(0, xp_earned - %s),
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = %s AND log_date = %s
                """,
                (xp_removed, user_id, quest_date)
            )
            await cur.execute(REFRESH_PERFECT_DAY_SQL, (user_id, quest_date))

            if xp_removed > 0 and level_for is not None:
                event = await insert_xp_event(
                    cur, user_id, xp_source, quest_log_id,
                    -xp_removed, -xp_removed, xp_description, level_for,
                )
                if event is None:
                    await conn.rollback()
                    return False

            await conn.commit()
            return True
