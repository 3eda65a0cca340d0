"""
Schema setup and quest template seeding

Seeding is idempotent: templates are upserted by their fixed IDs, so
re-running updates copy and tuning in place without creating duplicates.
"""
import logging
from pathlib import Path
from typing import Iterable, List

from fitquest.db.connection import db
from fitquest.db.queries import save_quest_template
from fitquest.models.quest import QuestTemplate, StatType
from fitquest.models.requirement import BooleanRequirement, CompoundRequirement, NumericRequirement
from fitquest.progression.tables import RotatingQuestIds

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def _numeric(metric: str, value: float, unit: str, operator: str = "gte") -> NumericRequirement:
    return NumericRequirement(metric=metric, operator=operator, value=value, unit=unit)


def _flag(metric: str) -> BooleanRequirement:
    return BooleanRequirement(metric=metric, expected=True)


CORE_TEMPLATES: List[QuestTemplate] = [
    QuestTemplate(
        id="core-daily-steps",
        name="Daily Steps",
        description="Walk 10,000 steps to keep your agility sharp.",
        category="MOVEMENT",
        requirement=_numeric("steps", 10000, "steps"),
        base_xp=50,
        stat_type=StatType.AGI,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=50,
        is_core=True,
    ),
    QuestTemplate(
        id="core-workout-complete",
        name="Workout Complete",
        description="Complete at least 30 minutes of exercise.",
        category="STRENGTH",
        requirement=_numeric("workout_minutes", 30, "minutes"),
        base_xp=75,
        stat_type=StatType.STR,
        stat_bonus=2,
        allow_partial=True,
        min_partial_percent=50,
        is_core=True,
    ),
    QuestTemplate(
        id="core-protein-target",
        name="Protein Target",
        description="Consume at least 100g of protein today.",
        category="NUTRITION",
        requirement=_numeric("protein_grams", 100, "grams"),
        base_xp=50,
        stat_type=StatType.VIT,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=75,
        is_core=True,
    ),
    QuestTemplate(
        id="core-quality-sleep",
        name="Quality Sleep",
        description="Get at least 7 hours of sleep.",
        category="RECOVERY",
        requirement=_numeric("sleep_hours", 7, "hours"),
        base_xp=50,
        stat_type=StatType.VIT,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=70,
        is_core=True,
    ),
    QuestTemplate(
        id="core-alcohol-free",
        name="Alcohol-Free Day",
        description="No alcohol consumption today. Discipline is key.",
        category="DISCIPLINE",
        requirement=_flag("no_alcohol"),
        base_xp=40,
        stat_type=StatType.DISC,
        stat_bonus=1,
        is_core=True,
    ),
]

BONUS_TEMPLATES: List[QuestTemplate] = [
    QuestTemplate(
        id="bonus-meditation-session",
        name="Meditation Session",
        description="Complete a 10-minute meditation session.",
        category="RECOVERY",
        requirement=_numeric("meditation_minutes", 10, "minutes"),
        base_xp=30,
        stat_type=StatType.DISC,
    ),
    QuestTemplate(
        id="bonus-step-champion",
        name="Step Champion",
        description="Walk 15,000 steps - go beyond the basics.",
        category="MOVEMENT",
        requirement=_numeric("steps", 15000, "steps"),
        base_xp=35,
        stat_type=StatType.AGI,
    ),
    QuestTemplate(
        id="bonus-compound-movement",
        name="Compound Movement Challenge",
        description="Complete a full-body circuit in under 20 minutes.",
        category="STRENGTH",
        requirement=CompoundRequirement(operator="and", requirements=[
            _flag("workout_completed"),
            _numeric("workout_minutes", 20, "minutes", operator="lte"),
        ]),
        base_xp=35,
        stat_type=StatType.STR,
        stat_bonus=1,
    ),
]

ROTATING_TEMPLATES: List[QuestTemplate] = [
    # VIT
    QuestTemplate(
        id=RotatingQuestIds.HYDRATION,
        name="Hydration",
        description="Water intake affects everything. Drink 8 glasses today.",
        category="NUTRITION",
        requirement=_numeric("water_glasses", 8, "glasses"),
        base_xp=15,
        stat_type=StatType.VIT,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=50,
    ),
    QuestTemplate(
        id=RotatingQuestIds.ALCOHOL_FREE,
        name="Alcohol-Free",
        description="No alcohol consumption today. Discipline over desire.",
        category="DISCIPLINE",
        requirement=_flag("no_alcohol"),
        base_xp=15,
        stat_type=StatType.VIT,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.COLD_EXPOSURE,
        name="Cold Exposure",
        description="Cold shower or ice bath.",
        category="RECOVERY",
        requirement=_flag("cold_exposure"),
        base_xp=25,
        stat_type=StatType.VIT,
        stat_bonus=2,
    ),
    QuestTemplate(
        id=RotatingQuestIds.NO_SUGAR,
        name="No Added Sugar",
        description="Avoid all added sugar today.",
        category="NUTRITION",
        requirement=_flag("no_added_sugar"),
        base_xp=20,
        stat_type=StatType.VIT,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.MEAL_PREP,
        name="Meal Prep",
        description="Prepare tomorrow's meals today.",
        category="NUTRITION",
        requirement=_flag("meal_prep_completed"),
        base_xp=15,
        stat_type=StatType.VIT,
        stat_bonus=1,
    ),
    # AGI
    QuestTemplate(
        id=RotatingQuestIds.STRETCH,
        name="Stretch Session",
        description="Complete a 10-minute stretch routine.",
        category="RECOVERY",
        requirement=_numeric("stretch_minutes", 10, "minutes"),
        base_xp=15,
        stat_type=StatType.AGI,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=50,
    ),
    QuestTemplate(
        id=RotatingQuestIds.MORNING_MOVEMENT,
        name="Morning Movement",
        description="Start the day with 10 minutes of activity before 9 AM.",
        category="MOVEMENT",
        requirement=CompoundRequirement(operator="and", requirements=[
            _numeric("morning_activity_minutes", 10, "minutes"),
            _flag("activity_before_9am"),
        ]),
        base_xp=20,
        stat_type=StatType.AGI,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.SOCIAL_MOVEMENT,
        name="Social Movement",
        description="Exercise with someone today.",
        category="MOVEMENT",
        requirement=_flag("social_exercise"),
        base_xp=25,
        stat_type=StatType.AGI,
        stat_bonus=2,
    ),
    QuestTemplate(
        id=RotatingQuestIds.NATURE_TIME,
        name="Nature Time",
        description="Spend 20 minutes outdoors.",
        category="MOVEMENT",
        requirement=_numeric("outdoor_minutes", 20, "minutes"),
        base_xp=15,
        stat_type=StatType.AGI,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=50,
    ),
    QuestTemplate(
        id=RotatingQuestIds.WALKING_MEETING,
        name="Walking Meeting",
        description="Walk during a call or meeting.",
        category="MOVEMENT",
        requirement=_flag("walking_meeting"),
        base_xp=20,
        stat_type=StatType.AGI,
        stat_bonus=1,
    ),
    # DISC
    QuestTemplate(
        id=RotatingQuestIds.SCREEN_SUNSET,
        name="Screen Sunset",
        description="No screens after 9 PM.",
        category="DISCIPLINE",
        requirement=_flag("no_screens_after_9pm"),
        base_xp=15,
        stat_type=StatType.DISC,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.MEDITATION,
        name="Meditation",
        description="Complete a 5-minute meditation session.",
        category="RECOVERY",
        requirement=_numeric("meditation_minutes", 5, "minutes"),
        base_xp=15,
        stat_type=StatType.DISC,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.GRATITUDE_LOG,
        name="Gratitude Log",
        description="Write 3 things you are grateful for.",
        category="DISCIPLINE",
        requirement=_numeric("gratitude_items", 3, "items"),
        base_xp=10,
        stat_type=StatType.DISC,
        stat_bonus=1,
    ),
    QuestTemplate(
        id=RotatingQuestIds.DEEP_WORK,
        name="Deep Work",
        description="Complete a 90-minute focused work block.",
        category="DISCIPLINE",
        requirement=_numeric("deep_work_minutes", 90, "minutes"),
        base_xp=20,
        stat_type=StatType.DISC,
        stat_bonus=1,
        allow_partial=True,
        min_partial_percent=60,
    ),
    # STR
    QuestTemplate(
        id=RotatingQuestIds.POSTURE_CHECK,
        name="Posture Check",
        description="Complete 5 minutes of posture correction exercises.",
        category="STRENGTH",
        requirement=_numeric("posture_exercise_minutes", 5, "minutes"),
        base_xp=10,
        stat_type=StatType.STR,
        stat_bonus=1,
    ),
]

ALL_TEMPLATES: List[QuestTemplate] = CORE_TEMPLATES + BONUS_TEMPLATES + ROTATING_TEMPLATES


async def apply_schema(path: Path = SCHEMA_PATH) -> None:
    """Create tables and constraints (statements are IF NOT EXISTS)"""
    sql = path.read_text()
    async with db.connection() as conn:
        await conn.execute(sql)
        await conn.commit()
    logger.info(f"Applied schema from {path.name}")


async def seed_quest_templates(templates: Iterable[QuestTemplate] = ALL_TEMPLATES) -> int:
    """
    Upsert quest templates

    Returns:
        Number of templates written
    """
    count = 0
    for template in templates:
        await save_quest_template(template)
        count += 1

    logger.info(f"Seeded {count} quest templates")
    return count
