"""Quest, daily log and progression models"""
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fitquest.models.requirement import Requirement


class QuestType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    DUNGEON = "DUNGEON"
    BOSS = "BOSS"


class QuestStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class StatType(str, Enum):
    STR = "STR"
    AGI = "AGI"
    VIT = "VIT"
    DISC = "DISC"


class QuestTemplate(BaseModel):
    """Static quest definition, seeded per season"""
    id: str
    name: str
    description: str = ""
    type: QuestType = QuestType.DAILY
    category: str
    requirement: Requirement
    base_xp: int
    stat_type: StatType
    stat_bonus: int = 0
    allow_partial: bool = False
    min_partial_percent: Optional[int] = 50
    is_core: bool = False
    is_active: bool = True


class QuestLog(BaseModel):
    """One user's instance of a template on one calendar date"""
    id: UUID
    user_id: str
    template_id: str
    quest_date: date
    status: QuestStatus = QuestStatus.ACTIVE
    current_value: float = 0
    target_value: float  # Snapshot at creation
    completion_percent: float = 0
    completed_at: Optional[datetime] = None
    xp_awarded: Optional[int] = None


class DailyLog(BaseModel):
    """Per-user, per-date quest aggregate"""
    id: Optional[UUID] = None
    user_id: str
    log_date: date
    core_quests_total: int = 0
    core_quests_completed: int = 0
    bonus_quests_completed: int = 0
    xp_earned: int = 0
    is_perfect_day: bool = False


class AdaptedTarget(BaseModel):
    """Personalized numeric goal for a (user, template) pair"""
    id: UUID
    user_id: str
    quest_template_id: str
    base_target: float
    adapted_target: float
    manual_override: bool = False
    version: int = 1
    completion_rate: Optional[float] = None
    average_achievement: Optional[float] = None
    last_adapted_at: Optional[datetime] = None


class UserProgressionState(BaseModel):
    """Progression columns of the user record"""
    user_id: str
    level: int = 1
    total_xp: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    perfect_streak: int = 0


class UserStats(BaseModel):
    """RPG stats used for weak-stat targeting"""
    str: int = 10
    agi: int = 10
    vit: int = 10
    disc: int = 10


class BaselineAssessment(BaseModel):
    """Onboarding self-assessment used to seed initial targets"""
    user_id: str
    daily_steps_baseline: Optional[int] = None
    workouts_per_week: Optional[int] = None
    protein_grams_baseline: Optional[int] = None
    sleep_hours_baseline: Optional[float] = None


class QuestView(BaseModel):
    """Quest log joined with its template, as returned to callers"""
    id: UUID
    template_id: str
    name: str
    description: str = ""
    type: QuestType
    category: str
    requirement: Requirement
    base_xp: int
    stat_type: StatType
    stat_bonus: int = 0
    allow_partial: bool = False
    min_partial_percent: Optional[int] = 50
    is_core: bool = False
    status: QuestStatus
    current_value: float = 0
    target_value: float
    completion_percent: float = 0
    completed_at: Optional[datetime] = None
    xp_awarded: Optional[int] = None
    quest_date: date
    is_rotating: bool = False

    @classmethod
    def from_parts(cls, log: QuestLog, template: QuestTemplate, is_rotating: bool = False) -> "QuestView":
        return cls(
            id=log.id,
            template_id=template.id,
            name=template.name,
            description=template.description,
            type=template.type,
            category=template.category,
            requirement=template.requirement,
            base_xp=template.base_xp,
            stat_type=template.stat_type,
            stat_bonus=template.stat_bonus,
            allow_partial=template.allow_partial,
            min_partial_percent=template.min_partial_percent,
            is_core=template.is_core,
            status=log.status,
            current_value=log.current_value,
            target_value=log.target_value,
            completion_percent=log.completion_percent,
            completed_at=log.completed_at,
            xp_awarded=log.xp_awarded,
            quest_date=log.quest_date,
            is_rotating=is_rotating,
        )


class AdaptationResult(BaseModel):
    """Outcome of one recalibration attempt"""
    template_id: str
    old_target: float
    new_target: float
    reason: str

    @property
    def changed(self) -> bool:
        return self.old_target != self.new_target


class AdaptationCycleResult(BaseModel):
    """Outcome of recalibrating every target of one user"""
    user_id: str
    adapted: int = 0
    unchanged: int = 0
    results: list[AdaptationResult] = Field(default_factory=list)
