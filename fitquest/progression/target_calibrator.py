"""
Adaptive Target Calibrator

Personalizes numeric quest targets per user. A target row is created the
first time it is needed, seeded from the onboarding baseline, and
recalibrated periodically from the trailing quest history:

- Exceeding by more than 25% while completing more than 80%: +10% (rounded up)
- Under 70% achievement while completing less than 50%: -10% (rounded down)

Both checks run in that order and the second one wins when both trigger.
Results are always clamped to the metric's bounds. A manual override
freezes recalibration until it is cleared.
"""

from datetime import timedelta
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import List, Optional, Tuple
import logging
import math

from pydantic import BaseModel

from fitquest.db import queries
from fitquest.exceptions import RecordNotFoundError, ValidationError
from fitquest.models.quest import (
    AdaptationCycleResult,
    AdaptationResult,
    AdaptedTarget,
    BaselineAssessment,
    QuestLog,
    QuestStatus,
)
from fitquest.models.requirement import metric_of, target_of
from fitquest.observability.metrics import adaptation_cycle_duration_seconds, target_adaptations_total
from fitquest.progression.tables import DEFAULT_TABLES, ProgressionTables, TargetBounds
from fitquest.utils.datetime_helpers import get_today_date

logger = logging.getLogger(__name__)

REASON_MANUAL_OVERRIDE = "Manual override active"
REASON_INSUFFICIENT_DATA = "Insufficient data (need 7+ days)"
REASON_STRUGGLING = "Struggling at current target"
REASON_NO_CHANGE = "No change needed"
REASON_CONCURRENT_CHANGE = "Target changed concurrently"

RAISE_FACTOR = Decimal("1.1")
LOWER_FACTOR = Decimal("0.9")
INITIAL_STEPS_FACTOR = Decimal("1.2")
INITIAL_PROTEIN_FACTOR = Decimal("1.1")


class PerformanceSummary(BaseModel):
    sample_count: int = 0
    completion_rate: float = 0.0
    average_achievement: float = 0.0


# ==========================================
# Pure calculations
# ==========================================

def _scale(value: float, factor: Decimal, rounding: str) -> float:
    scaled = (Decimal(str(value)) * factor).to_integral_value(rounding=rounding)
    return float(scaled)


def calculate_initial_target(
    requirement,
    baseline: Optional[BaselineAssessment],
    tables: ProgressionTables = DEFAULT_TABLES
) -> float:
    """
    Compute a starting target from the user's baseline assessment

    Falls back to the requirement's own target when there is no baseline or
    the metric has no heuristic. The result is clamped to the metric bounds.
    """
    metric = metric_of(requirement)
    default_target = target_of(requirement)
    bounds = tables.bounds_for(metric)

    if baseline is None:
        return bounds.clamp(default_target)

    key = metric.lower()

    if key == "steps":
        steps = _scale(baseline.daily_steps_baseline or 5000, INITIAL_STEPS_FACTOR, ROUND_CEILING)
        target = min(steps, tables.default_target_for(metric, default_target))
    elif key == "workout_minutes":
        workouts = baseline.workouts_per_week or 0
        if workouts >= 5:
            target = 45
        elif workouts >= 3:
            target = 30
        elif workouts >= 1:
            target = 20
        else:
            target = 15
    elif key == "protein_grams":
        protein = _scale(baseline.protein_grams_baseline or 100, INITIAL_PROTEIN_FACTOR, ROUND_CEILING)
        target = min(protein, tables.default_target_for(metric, default_target))
    elif key == "sleep_hours":
        sleep = baseline.sleep_hours_baseline or 6
        target = 7 if sleep >= 7 else min(sleep + 0.5, 7)
    elif key == "active_minutes":
        # Daily steps stand in for general activity level
        steps = baseline.daily_steps_baseline or 5000
        if steps >= 12000:
            target = 60
        elif steps >= 8000:
            target = 45
        elif steps >= 5000:
            target = 30
        else:
            target = 20
    else:
        target = default_target

    return bounds.clamp(target)


def summarize_performance(logs: List[QuestLog]) -> PerformanceSummary:
    """
    Summarize a window of quest logs

    completion_rate is the share of COMPLETED logs; average_achievement is the
    mean of current_value / target_value (a zero target counts as 0).
    """
    if not logs:
        return PerformanceSummary()

    completed = sum(1 for log in logs if log.status == QuestStatus.COMPLETED)

    total_achievement = 0.0
    for log in logs:
        if log.target_value:
            total_achievement += (log.current_value or 0) / log.target_value

    return PerformanceSummary(
        sample_count=len(logs),
        completion_rate=completed / len(logs),
        average_achievement=total_achievement / len(logs),
    )


def decide_adaptation(
    current: float,
    performance: PerformanceSummary,
    bounds: TargetBounds
) -> Tuple[float, str]:
    """
    Apply the raise/lower rules to a target

    Returns:
        (new_target, reason), new_target clamped to bounds
    """
    new_target = current
    reason = REASON_NO_CHANGE

    if performance.average_achievement > 1.25 and performance.completion_rate > 0.8:
        new_target = _scale(current, RAISE_FACTOR, ROUND_CEILING)
        exceeded_by = math.floor((performance.average_achievement - 1) * 100 + 0.5)
        reason = f"Exceeding target by {exceeded_by}%"

    # Evaluated after the raise and overrides it when both hold
    if performance.average_achievement < 0.7 and performance.completion_rate < 0.5:
        new_target = _scale(current, LOWER_FACTOR, ROUND_FLOOR)
        reason = REASON_STRUGGLING

    return bounds.clamp(new_target), reason


# ==========================================
# Stored targets
# ==========================================

async def _require_template(template_id: str, user_id: str, operation: str):
    template = await queries.get_quest_template(template_id)
    if template is None:
        raise RecordNotFoundError(
            "Quest template not found",
            record_type="QuestTemplate",
            record_id=template_id,
            user_id=user_id,
            operation=operation,
        )
    return template


async def get_adapted_target(
    user_id: str,
    template_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptedTarget:
    """
    Get the user's target for a template, creating it from the baseline
    on first use

    Raises:
        RecordNotFoundError: If the template does not exist
    """
    existing = await queries.get_adapted_target_row(user_id, template_id)
    if existing is not None:
        return existing

    template = await _require_template(template_id, user_id, "get_adapted_target")
    baseline = await queries.get_baseline_assessment(user_id)
    initial_target = calculate_initial_target(template.requirement, baseline, tables)

    return await queries.create_adapted_target(
        user_id,
        template_id,
        base_target=target_of(template.requirement),
        adapted_target=initial_target,
    )


async def get_all_adapted_targets(user_id: str) -> List[AdaptedTarget]:
    """Get every stored target of a user"""
    return await queries.get_all_adapted_targets(user_id)


async def adapt_target(
    user_id: str,
    template_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptationResult:
    """
    Recalibrate one target from the trailing window of quest logs

    The stored value is replaced only if it still holds what was read here;
    a concurrent writer makes this call a no-op.

    Raises:
        RecordNotFoundError: If the template does not exist
    """
    target = await get_adapted_target(user_id, template_id, tables)
    current = target.adapted_target

    if target.manual_override:
        target_adaptations_total.labels(outcome="skipped_override").inc()
        return AdaptationResult(
            template_id=template_id,
            old_target=current,
            new_target=current,
            reason=REASON_MANUAL_OVERRIDE,
        )

    timezone = await queries.get_user_timezone(user_id)
    since = get_today_date(timezone) - timedelta(days=tables.adaptation_window_days)
    logs = await queries.get_quest_logs_since(user_id, template_id, since)
    performance = summarize_performance(logs)

    if performance.sample_count < tables.min_adaptation_samples:
        logger.debug(
            f"Skipping adaptation for user {user_id}, template {template_id}: "
            f"{performance.sample_count} samples"
        )
        target_adaptations_total.labels(outcome="skipped_insufficient").inc()
        return AdaptationResult(
            template_id=template_id,
            old_target=current,
            new_target=current,
            reason=REASON_INSUFFICIENT_DATA,
        )

    template = await _require_template(template_id, user_id, "adapt_target")
    bounds = tables.bounds_for(metric_of(template.requirement))
    new_target, reason = decide_adaptation(current, performance, bounds)

    if new_target == current:
        target_adaptations_total.labels(outcome="unchanged").inc()
        return AdaptationResult(
            template_id=template_id,
            old_target=current,
            new_target=current,
            reason=reason,
        )

    stored = await queries.compare_and_set_adapted_target(
        str(target.id),
        expected_version=target.version,
        new_target=new_target,
        completion_rate=performance.completion_rate,
        average_achievement=performance.average_achievement,
    )
    if not stored:
        logger.warning(
            f"Target for user {user_id}, template {template_id} changed during adaptation; skipped"
        )
        target_adaptations_total.labels(outcome="conflict").inc()
        return AdaptationResult(
            template_id=template_id,
            old_target=current,
            new_target=current,
            reason=REASON_CONCURRENT_CHANGE,
        )

    target_adaptations_total.labels(outcome="raised" if new_target > current else "lowered").inc()
    logger.info(
        f"Adapted target for user {user_id}, template {template_id}: "
        f"{current} -> {new_target} ({reason})"
    )
    return AdaptationResult(
        template_id=template_id,
        old_target=current,
        new_target=new_target,
        reason=reason,
    )


async def set_manual_target(
    user_id: str,
    template_id: str,
    new_target: float,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptedTarget:
    """
    Set a user-chosen target and pause automatic recalibration

    Raises:
        RecordNotFoundError: If the template does not exist
        ValidationError: If the target is outside the metric bounds
    """
    template = await _require_template(template_id, user_id, "set_manual_target")
    bounds = tables.bounds_for(metric_of(template.requirement))

    if not bounds.contains(new_target):
        raise ValidationError(
            f"Target must be between {_format_bound(bounds.min)} and {_format_bound(bounds.max)}",
            field="target",
            value=new_target,
            user_id=user_id,
            operation="set_manual_target",
        )

    existing = await get_adapted_target(user_id, template_id, tables)
    updated = await queries.set_manual_target(str(existing.id), new_target)

    logger.info(f"Manual target for user {user_id}, template {template_id} set to {new_target}")
    return updated


async def clear_manual_override(
    user_id: str,
    template_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptedTarget:
    """Resume automatic recalibration of a target"""
    existing = await get_adapted_target(user_id, template_id, tables)
    updated = await queries.clear_manual_override(str(existing.id))

    logger.info(f"Cleared manual override for user {user_id}, template {template_id}")
    return updated


async def run_adaptation_cycle(
    user_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> AdaptationCycleResult:
    """Recalibrate every stored target of one user, one at a time"""
    cycle = AdaptationCycleResult(user_id=user_id)

    with adaptation_cycle_duration_seconds.time():
        for target in await get_all_adapted_targets(user_id):
            result = await adapt_target(user_id, target.quest_template_id, tables)
            cycle.results.append(result)
            if result.changed:
                cycle.adapted += 1
            else:
                cycle.unchanged += 1

    logger.info(
        f"Adaptation cycle for user {user_id}: {cycle.adapted} adapted, {cycle.unchanged} unchanged"
    )
    return cycle


def _format_bound(value: float) -> str:
    if math.isinf(value):
        return "Infinity"
    return f"{value:g}"
