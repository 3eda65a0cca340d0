"""
Weekly Target Adaptation Job

Runs the adaptive target calibration cycle for every user that owns
adapted targets. Different users are processed concurrently (bounded by
ADAPTATION_CONCURRENCY); each user's targets are processed one at a time
and a user is never scheduled twice in the same run.

A failure for one user is logged and counted but does not stop the run.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from fitquest.config import ADAPTATION_CONCURRENCY
from fitquest.db import queries
from fitquest.models.quest import AdaptationCycleResult
from fitquest.observability.metrics import errors_total
from fitquest.progression.tables import DEFAULT_TABLES, ProgressionTables
from fitquest.progression.target_calibrator import run_adaptation_cycle

logger = logging.getLogger(__name__)


class AdaptationJobSummary(BaseModel):
    users_processed: int = 0
    users_failed: int = 0
    targets_adapted: int = 0
    targets_unchanged: int = 0
    failed_user_ids: List[str] = Field(default_factory=list)
    cycles: List[AdaptationCycleResult] = Field(default_factory=list)


async def run_weekly_adaptation(
    user_ids: Optional[Iterable[str]] = None,
    concurrency: int = ADAPTATION_CONCURRENCY,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptationJobSummary:
    """
    Recalibrate targets for a set of users

    Args:
        user_ids: Users to process (every user with adapted targets if None)
        concurrency: Maximum number of users processed at once
        tables: Tuning tables passed to the calibrator

    Returns:
        AdaptationJobSummary with per-user cycle results
    """
    if user_ids is None:
        user_ids = await queries.get_user_ids_with_targets()

    # Duplicates would race on the same target rows
    unique_ids = list(dict.fromkeys(user_ids))
    semaphore = asyncio.Semaphore(max(1, concurrency))

    logger.info(f"Starting target adaptation for {len(unique_ids)} users (concurrency={concurrency})")

    async def _run_for_user(user_id: str) -> Optional[AdaptationCycleResult]:
        async with semaphore:
            try:
                return await run_adaptation_cycle(user_id, tables)
            except Exception as e:
                errors_total.labels(error_type=type(e).__name__, component="scheduler").inc()
                logger.error(f"Target adaptation failed for user {user_id}: {e}", exc_info=True)
                return None

    results = await asyncio.gather(*(_run_for_user(user_id) for user_id in unique_ids))

    summary = AdaptationJobSummary()
    for user_id, cycle in zip(unique_ids, results):
        if cycle is None:
            summary.users_failed += 1
            summary.failed_user_ids.append(user_id)
            continue
        summary.users_processed += 1
        summary.targets_adapted += cycle.adapted
        summary.targets_unchanged += cycle.unchanged
        summary.cycles.append(cycle)

    logger.info(
        f"Target adaptation complete: {summary.users_processed} users processed, "
        f"{summary.users_failed} failed, {summary.targets_adapted} targets adapted"
    )
    return summary
