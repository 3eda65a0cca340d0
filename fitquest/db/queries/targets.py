"""Adapted target queries"""
import logging
from typing import Optional

from fitquest.db.connection import db
from fitquest.models.quest import AdaptedTarget

logger = logging.getLogger(__name__)

_TARGET_COLUMNS = """
    id, user_id, quest_template_id, base_target, adapted_target, manual_override,
    version, completion_rate, average_achievement, last_adapted_at
"""


async def get_adapted_target_row(user_id: str, template_id: str) -> Optional[AdaptedTarget]:
    """Get the stored adapted target for (user, template)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TARGET_COLUMNS}
                FROM adapted_targets
                WHERE user_id = %s AND quest_template_id = %s
                """,
                (user_id, template_id)
            )
            row = await cur.fetchone()
            return AdaptedTarget.model_validate(row) if row else None


async def create_adapted_target(
    user_id: str,
    template_id: str,
    base_target: float,
    adapted_target: float
) -> AdaptedTarget:
    """
    Create the adapted target row for (user, template)

    If a concurrent request created it first, the existing row is returned
    unchanged.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO adapted_targets (user_id, quest_template_id, base_target, adapted_target)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, quest_template_id) DO NOTHING
                RETURNING {_TARGET_COLUMNS}
                """,
                (user_id, template_id, base_target, adapted_target)
            )
            row = await cur.fetchone()

            if not row:
                await cur.execute(
                    f"""
                    SELECT {_TARGET_COLUMNS}
                    FROM adapted_targets
                    WHERE user_id = %s AND quest_template_id = %s
                    """,
                    (user_id, template_id)
                )
                row = await cur.fetchone()
            else:
                logger.info(
                    f"Created adapted target for user {user_id}, template {template_id}: {adapted_target}"
                )

            await conn.commit()
            return AdaptedTarget.model_validate(row)


async def get_all_adapted_targets(user_id: str) -> list[AdaptedTarget]:
    """Get every adapted target of a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TARGET_COLUMNS}
                FROM adapted_targets
                WHERE user_id = %s
                ORDER BY quest_template_id
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [AdaptedTarget.model_validate(row) for row in rows]


async def compare_and_set_adapted_target(
    target_id: str,
    expected_version: int,
    new_target: float,
    completion_rate: float,
    average_achievement: float
) -> bool:
    """
    Store a recalibrated target only if the row is still at ``expected_version``
    and is not under manual override

    Returns:
        False if another writer changed the row first (nothing written)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE adapted_targets
                SET adapted_target = %s,
                    version = version + 1,
                    completion_rate = %s,
                    average_achievement = %s,
                    last_adapted_at = CURRENT_TIMESTAMP,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s
                  AND version = %s
                  AND manual_override = FALSE
                """,
                (new_target, completion_rate, average_achievement, target_id, expected_version)
            )
            updated = cur.rowcount > 0
            await conn.commit()
            return updated


async def set_manual_target(target_id: str, new_target: float) -> AdaptedTarget:
    """Store a user-chosen target and freeze automatic recalibration"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                UPDATE adapted_targets
                SET adapted_target = %s,
                    manual_override = TRUE,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s
                RETURNING {_TARGET_COLUMNS}
                """,
                (new_target, target_id)
            )
            row = await cur.fetchone()
            await conn.commit()
            return AdaptedTarget.model_validate(row)


async def clear_manual_override(target_id: str) -> AdaptedTarget:
    """Resume automatic recalibration for a target"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                UPDATE adapted_targets
                SET manual_override = FALSE,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s
                RETURNING {_TARGET_COLUMNS}
                """,
                (target_id,)
            )
            row = await cur.fetchone()
            await conn.commit()
            return AdaptedTarget.model_validate(row)
