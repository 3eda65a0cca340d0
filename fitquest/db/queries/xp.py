"""XP ledger queries (append-only xp_events)"""
import logging
from typing import Callable, Optional

from psycopg import AsyncCursor

from fitquest.db.connection import db

logger = logging.getLogger(__name__)


async def insert_xp_event(
    cur: AsyncCursor,
    user_id: str,
    source: str,
    source_id: Optional[str],
    base_amount: int,
    final_amount: int,
    description: str,
    level_for: Callable[[int], int]
) -> Optional[dict]:
    """
    Write an XP event and apply it to the user's total on an open cursor

    The caller owns the transaction (commit/rollback). The user row is
    locked until then.

    Returns:
        The stored event row, or None if the user does not exist
    """
    await cur.execute(
        "SELECT total_xp, level FROM users WHERE id = %s FOR UPDATE",
        (user_id,)
    )
    user = await cur.fetchone()
    if not user:
        return None

    total_before = int(user["total_xp"])
    total_after = max(0, total_before + final_amount)
    level_before = user["level"]
    level_after = level_for(total_after)

    await cur.execute(
        """
        INSERT INTO xp_events
            (user_id, source, source_id, base_amount, final_amount, level_before,
             level_after, total_xp_before, total_xp_after, description)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id, user_id, source, source_id, base_amount, final_amount,
                  level_before, level_after, total_xp_before, total_xp_after,
                  description, created_at
        """,
        (
            user_id, source, source_id, base_amount, final_amount, level_before,
            level_after, total_before, total_after, description,
        )
    )
    event = await cur.fetchone()

    await cur.execute(
        """
        UPDATE users
        SET total_xp = %s, level = %s, updated_at = CURRENT_TIMESTAMP
        WHERE id = %s
        """,
        (total_after, level_after, user_id)
    )
    return dict(event)


async def append_xp_event(
    user_id: str,
    source: str,
    source_id: Optional[str],
    base_amount: int,
    final_amount: int,
    description: str,
    level_for: Callable[[int], int]
) -> Optional[dict]:
    """
    Append an XP event and apply it to the user's total in one transaction

    Args:
        user_id: User ID
        source: Source tag ('QUEST_COMPLETION', 'MANUAL_ADJUSTMENT', ...)
        source_id: ID of the originating record (e.g. quest log)
        base_amount: Amount before modifiers (negative for removals)
        final_amount: Amount applied to the total (negative for removals)
        description: Human-readable description
        level_for: Maps a total XP value to a level

    Returns:
        The stored event row, or None if the user does not exist
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            event = await insert_xp_event(
                cur, user_id, source, source_id, base_amount, final_amount, description, level_for
            )
            if event is None:
                await conn.rollback()
                return None

            await conn.commit()
            return event
