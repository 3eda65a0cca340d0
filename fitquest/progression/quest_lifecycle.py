"""
Quest Lifecycle Manager

Moves a user's daily quest logs through their states:

    (none) --activate/instantiate--> ACTIVE --progress--> COMPLETED
    COMPLETED --reset--> ACTIVE
    ACTIVE --remove/deactivate--> (deleted)

Core quests are instantiated automatically every day and can never be
removed. Completion and reset update the day's aggregate in the same
transaction as the quest log; XP only moves through the ledger.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging
import math

from pydantic import BaseModel, Field

from fitquest.db import queries
from fitquest.exceptions import QuestStateError, RecordNotFoundError
from fitquest.models.quest import QuestLog, QuestStatus, QuestTemplate, QuestType, QuestView
from fitquest.models.requirement import NumericRequirement, evaluate_requirement, target_of
from fitquest.observability.metrics import quest_lifecycle_events_total, xp_ledger_events_total
from fitquest.progression import rotating_quests, target_calibrator
from fitquest.progression.rotating_quests import RotatingUnlockStatus
from fitquest.progression.streak_system import update_user_streak
from fitquest.progression.tables import DEFAULT_TABLES, ProgressionTables
from fitquest.progression.xp_ledger import SOURCE_MANUAL_ADJUSTMENT, award_quest_xp, level_for_xp
from fitquest.utils.datetime_helpers import get_today_date, now_utc

logger = logging.getLogger(__name__)


class QuestProgressResult(BaseModel):
    quest: QuestView
    xp_awarded: int = 0
    leveled_up: bool = False
    new_level: Optional[int] = None


class QuestResetResult(BaseModel):
    quest: QuestView
    xp_removed: int = 0


class QuestRemovalResult(BaseModel):
    removed: bool
    message: str


class QuestCatalogEntry(BaseModel):
    template: QuestTemplate
    is_active_today: bool = False
    is_rotating: bool = False


class TodayQuests(BaseModel):
    core_quests: List[QuestView] = Field(default_factory=list)
    all_quests: List[QuestView] = Field(default_factory=list)
    rotating_quest: Optional[QuestView] = None
    rotating_unlock_status: RotatingUnlockStatus


async def _resolve_timezone(user_id: str, timezone: Optional[str]) -> Optional[str]:
    if timezone is not None:
        return timezone
    return await queries.get_user_timezone(user_id)


async def _require_quest(quest_log_id: str, user_id: str, operation: str) -> tuple[QuestLog, QuestTemplate]:
    found = await queries.get_quest_log_with_template(quest_log_id, user_id)
    if found is None:
        raise RecordNotFoundError(
            "Quest not found",
            record_type="QuestLog",
            record_id=quest_log_id,
            user_id=user_id,
            operation=operation,
        )
    return found


async def _require_template(template_id: str, user_id: str, operation: str) -> QuestTemplate:
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


def _is_rotating(template: QuestTemplate, tables: ProgressionTables) -> bool:
    return template.id.startswith(tables.rotating_prefix)


# ==========================================
# Today's quests
# ==========================================

async def _core_target(user_id: str, template: QuestTemplate, tables: ProgressionTables) -> float:
    """Numeric core quests use the user's calibrated target"""
    if isinstance(template.requirement, NumericRequirement):
        adapted = await target_calibrator.get_adapted_target(user_id, template.id, tables)
        return adapted.adapted_target
    return target_of(template.requirement)


async def get_today_quests(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES
) -> List[QuestView]:
    """
    Get today's DAILY quests, creating any missing core quest logs first

    Also makes sure today's daily aggregate exists with the current core
    quest count. One quest per template is returned (oldest log wins).
    """
    timezone = await _resolve_timezone(user_id, timezone)
    today = get_today_date(timezone)

    core_templates = await queries.get_active_core_templates()
    existing = await queries.get_daily_quests_for_date(user_id, today)
    existing_ids = {template.id for _, template in existing}

    created = 0
    for template in core_templates:
        if template.id in existing_ids:
            continue
        target = await _core_target(user_id, template, tables)
        if await queries.insert_quest_log(user_id, template.id, today, target) is not None:
            created += 1

    await queries.upsert_daily_log(user_id, today, len(core_templates))

    if created:
        quest_lifecycle_events_total.labels(action="instantiate").inc(created)
        await queries.refresh_perfect_day(user_id, today)
        logger.info(f"Created {created} core quest logs for user {user_id} on {today}")

    rows = await queries.get_daily_quests_for_date(user_id, today) if created else existing

    seen = set()
    quests = []
    for log, template in rows:
        if template.id in seen:
            continue
        seen.add(template.id)
        quests.append(QuestView.from_parts(log, template, is_rotating=_is_rotating(template, tables)))

    return quests


async def get_today_quests_with_rotating(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES
) -> TodayQuests:
    """Today's quests plus the rotating quest slot and its unlock status"""
    timezone = await _resolve_timezone(user_id, timezone)
    unlock_status = await rotating_quests.get_rotating_quest_unlock_status(user_id, tables)

    rotating_quest = None
    if unlock_status.unlocked:
        # Assigned before listing so it shows up in all_quests
        rotating_quest = await rotating_quests.get_today_rotating_quest(user_id, timezone, tables)

    all_quests = await get_today_quests(user_id, timezone, tables)

    return TodayQuests(
        core_quests=[q for q in all_quests if q.is_core],
        all_quests=all_quests,
        rotating_quest=rotating_quest,
        rotating_unlock_status=unlock_status,
    )


async def get_quest_by_id(
    quest_log_id: str,
    user_id: str,
    tables: ProgressionTables = DEFAULT_TABLES
) -> QuestView:
    """
    Get one of the user's quests

    Raises:
        RecordNotFoundError: If the quest does not exist for this user
    """
    log, template = await _require_quest(quest_log_id, user_id, "get_quest_by_id")
    return QuestView.from_parts(log, template, is_rotating=_is_rotating(template, tables))


async def get_all_quest_templates(
    user_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES
) -> List[QuestCatalogEntry]:
    """
    List the active template catalog, flagging templates the user has a quest for today

    This is what drives activate_quest/deactivate_quest_by_template.
    """
    timezone = await _resolve_timezone(user_id, timezone)
    today = get_today_date(timezone)

    templates = await queries.get_active_templates()
    active_today = await queries.get_template_ids_for_date(user_id, today)

    return [
        QuestCatalogEntry(
            template=template,
            is_active_today=template.id in active_today,
            is_rotating=_is_rotating(template, tables),
        )
        for template in templates
    ]


# ==========================================
# Activation and removal
# ==========================================

async def _check_rotating_slot(
    user_id: str,
    template: QuestTemplate,
    today: date,
    tables: ProgressionTables
) -> None:
    """A rotating template fills the single rotating slot, which opens on the unlock day"""
    if not await rotating_quests.has_unlocked_rotating_quests(user_id, tables):
        raise QuestStateError(
            f"Rotating quests unlock on day {tables.rotating_unlock_day}",
            user_id=user_id,
            operation="activate_quest",
            context={"template_id": template.id},
        )

    pool = await queries.get_rotating_templates(tables.rotating_prefix)
    existing = await queries.find_log_for_templates(user_id, today, [t.id for t in pool])
    if existing is not None:
        _, assigned = existing
        raise QuestStateError(
            "Quest already active" if assigned.id == template.id
            else f"Today's rotating quest is already {assigned.name}",
            user_id=user_id,
            operation="activate_quest",
            context={"template_id": template.id, "assigned_template_id": assigned.id},
        )


async def activate_quest(
    user_id: str,
    template_id: str,
    timezone: Optional[str] = None,
    tables: ProgressionTables = DEFAULT_TABLES
) -> QuestView:
    """
    Add a DAILY quest to the user's day

    Raises:
        RecordNotFoundError: If the template does not exist
        QuestStateError: If the template is not DAILY, the quest is already active
            today, or it is a rotating template while the rotating slot is locked or filled
    """
    template = await _require_template(template_id, user_id, "activate_quest")

    if template.type != QuestType.DAILY:
        quest_type = template.type.value
        raise QuestStateError(
            f"Cannot activate {quest_type} quest as a daily quest. "
            f"{quest_type} quests have their own tracking system.",
            user_id=user_id,
            operation="activate_quest",
            context={"template_id": template_id},
        )

    timezone = await _resolve_timezone(user_id, timezone)
    today = get_today_date(timezone)

    if _is_rotating(template, tables):
        await _check_rotating_slot(user_id, template, today, tables)

    log = await queries.insert_quest_log(user_id, template.id, today, target_of(template.requirement))
    if log is None:
        raise QuestStateError(
            "Quest already active",
            user_id=user_id,
            operation="activate_quest",
            context={"template_id": template_id},
        )

    await queries.refresh_perfect_day(user_id, today)

    quest_lifecycle_events_total.labels(action="activate").inc()
    logger.info(f"Activated quest {template.id} for user {user_id} on {today}")

    return QuestView.from_parts(log, template, is_rotating=_is_rotating(template, tables))


async def remove_quest(quest_log_id: str, user_id: str) -> QuestRemovalResult:
    """
    Delete a non-core, uncompleted quest from the user's day

    Raises:
        RecordNotFoundError: If the quest does not exist for this user
        QuestStateError: If the quest is core or completed
    """
    log, template = await _require_quest(quest_log_id, user_id, "remove_quest")

    if template.is_core:
        raise QuestStateError(
            "Core quests cannot be removed",
            quest_id=quest_log_id,
            status=log.status.value,
            user_id=user_id,
            operation="remove_quest",
        )

    completed_message = "Cannot remove a completed quest. Reset it first if you want to remove it."
    if log.status == QuestStatus.COMPLETED:
        raise QuestStateError(
            completed_message,
            quest_id=quest_log_id,
            status=log.status.value,
            user_id=user_id,
            operation="remove_quest",
        )

    if not await queries.delete_quest_log(quest_log_id):
        # Completed between the read and the delete
        raise QuestStateError(
            completed_message,
            quest_id=quest_log_id,
            status=QuestStatus.COMPLETED.value,
            user_id=user_id,
            operation="remove_quest",
        )

    await queries.refresh_perfect_day(user_id, log.quest_date)

    quest_lifecycle_events_total.labels(action="remove").inc()
    logger.info(f"Removed quest {template.id} ({quest_log_id}) for user {user_id}")

    return QuestRemovalResult(removed=True, message=f"Quest removed: {template.name}")


async def deactivate_quest_by_template(
    template_id: str,
    user_id: str,
    timezone: Optional[str] = None
) -> QuestRemovalResult:
    """
    Delete today's log of a non-core template

    Raises:
        RecordNotFoundError: If the template does not exist
        QuestStateError: If the template is core, not active today, or completed
    """
    template = await _require_template(template_id, user_id, "deactivate_quest_by_template")

    if template.is_core:
        raise QuestStateError(
            "Core quests cannot be deactivated",
            user_id=user_id,
            operation="deactivate_quest_by_template",
            context={"template_id": template_id},
        )

    timezone = await _resolve_timezone(user_id, timezone)
    today = get_today_date(timezone)

    log = await queries.get_quest_log_for_date(user_id, template_id, today)
    if log is None:
        raise QuestStateError(
            "Quest is not active for today",
            user_id=user_id,
            operation="deactivate_quest_by_template",
            context={"template_id": template_id},
        )

    completed_message = "Cannot deactivate a completed quest. Reset it first if you want to remove it."
    if log.status == QuestStatus.COMPLETED or not await queries.delete_quest_log(str(log.id)):
        raise QuestStateError(
            completed_message,
            quest_id=str(log.id),
            status=QuestStatus.COMPLETED.value,
            user_id=user_id,
            operation="deactivate_quest_by_template",
        )

    await queries.refresh_perfect_day(user_id, today)

    quest_lifecycle_events_total.labels(action="deactivate").inc()
    logger.info(f"Deactivated quest {template_id} for user {user_id} on {today}")

    return QuestRemovalResult(removed=True, message=f"Quest deactivated: {template.name}")


# ==========================================
# Progress and reset
# ==========================================

def _requirement_for_log(template: QuestTemplate, log: QuestLog):
    """Evaluate numeric quests against the target snapshotted on the log"""
    requirement = template.requirement
    if isinstance(requirement, NumericRequirement) and log.target_value > 0:
        return requirement.model_copy(update={"value": log.target_value})
    return requirement


async def update_quest_progress(
    quest_log_id: str,
    user_id: str,
    data: Dict[str, Any]
) -> QuestProgressResult:
    """
    Report metric values for an ACTIVE quest and complete it if they qualify

    Full completion awards the template's base XP. Templates that allow
    partial completion complete at ``min_partial_percent`` progress and
    award base XP scaled by progress. XP goes through the ledger with the
    user's streak bonus.

    Raises:
        RecordNotFoundError: If the quest does not exist for this user
        QuestStateError: If the quest is not ACTIVE
    """
    log, template = await _require_quest(quest_log_id, user_id, "update_quest_progress")

    if log.status != QuestStatus.ACTIVE:
        raise QuestStateError(
            "Quest is not active",
            quest_id=quest_log_id,
            status=log.status.value,
            user_id=user_id,
            operation="update_quest_progress",
        )

    requirement = _requirement_for_log(template, log)
    result = evaluate_requirement(requirement, data)

    completed = False
    xp_awarded = 0
    description = None

    if result.met:
        completed = True
        xp_awarded = template.base_xp
        description = f"Completed quest: {template.name}"
    elif template.allow_partial and result.progress >= (template.min_partial_percent or 50):
        completed = True
        xp_awarded = math.floor(template.base_xp * result.progress / 100)
        description = f"Partially completed quest: {template.name} ({math.floor(result.progress)}%)"

    if isinstance(requirement, NumericRequirement):
        current_value = float(data.get(requirement.metric) or 0)
    else:
        current_value = 1.0 if result.met else 0.0

    applied = await queries.apply_quest_completion(
        quest_log_id,
        user_id,
        log.quest_date,
        is_core=template.is_core,
        current_value=current_value,
        completion_percent=result.progress,
        completed=completed,
        xp_awarded=xp_awarded,
    )
    if not applied:
        raise QuestStateError(
            "Quest is not active",
            quest_id=quest_log_id,
            user_id=user_id,
            operation="update_quest_progress",
        )

    updated_log = log.model_copy(update={
        "status": QuestStatus.COMPLETED if completed else log.status,
        "current_value": current_value,
        "completion_percent": result.progress,
        "completed_at": now_utc() if completed else None,
        "xp_awarded": xp_awarded if completed and xp_awarded > 0 else None,
    })
    progress_result = QuestProgressResult(
        quest=QuestView.from_parts(updated_log, template, is_rotating=_is_rotating(template, DEFAULT_TABLES))
    )

    if not completed:
        logger.debug(f"Progress on quest {quest_log_id} for user {user_id}: {result.progress:.0f}%")
        return progress_result

    action = "complete" if result.met else "partial_complete"
    quest_lifecycle_events_total.labels(action=action).inc()
    logger.info(f"User {user_id} completed quest {template.id} ({action}, {xp_awarded} base XP)")

    if xp_awarded > 0:
        state = await queries.get_user_progression(user_id)
        award = await award_quest_xp(
            user_id,
            quest_log_id,
            xp_awarded,
            description,
            streak_days=state.current_streak if state else 0,
        )
        progress_result.xp_awarded = award["xp_awarded"]
        progress_result.leveled_up = award["leveled_up"]
        progress_result.new_level = award["new_level"]

    await update_user_streak(user_id)

    return progress_result


async def reset_quest(quest_log_id: str, user_id: str) -> QuestResetResult:
    """
    Revert a COMPLETED quest to ACTIVE and take back its XP

    The log, the day's aggregate and the XP removal ledger event are
    written in one transaction.

    Raises:
        RecordNotFoundError: If the quest does not exist for this user
        QuestStateError: If the quest is not COMPLETED
    """
    log, template = await _require_quest(quest_log_id, user_id, "reset_quest")

    not_completed_message = "Quest is not completed - cannot reset"
    if log.status != QuestStatus.COMPLETED:
        raise QuestStateError(
            not_completed_message,
            quest_id=quest_log_id,
            status=log.status.value,
            user_id=user_id,
            operation="reset_quest",
        )

    xp_to_remove = log.xp_awarded or 0

    applied = await queries.apply_quest_reset(
        quest_log_id,
        user_id,
        log.quest_date,
        is_core=template.is_core,
        xp_removed=xp_to_remove,
        xp_source=SOURCE_MANUAL_ADJUSTMENT,
        xp_description=f"Quest reset: {template.name}",
        level_for=level_for_xp,
    )
    if not applied:
        raise QuestStateError(
            not_completed_message,
            quest_id=quest_log_id,
            user_id=user_id,
            operation="reset_quest",
        )

    if xp_to_remove > 0:
        xp_ledger_events_total.labels(direction="removal").inc()

    if template.is_core:
        await update_user_streak(user_id)

    quest_lifecycle_events_total.labels(action="reset").inc()
    logger.info(f"Reset quest {template.id} ({quest_log_id}) for user {user_id}, removed {xp_to_remove} XP")

    reset_log = log.model_copy(update={
        "status": QuestStatus.ACTIVE,
        "current_value": 0,
        "completion_percent": 0,
        "completed_at": None,
        "xp_awarded": None,
    })
    return QuestResetResult(
        quest=QuestView.from_parts(reset_log, template, is_rotating=_is_rotating(template, DEFAULT_TABLES)),
        xp_removed=xp_to_remove,
    )
