"""Pydantic models for the progression engine"""
from fitquest.models.requirement import (
    NumericRequirement,
    BooleanRequirement,
    CompoundRequirement,
    Requirement,
    RequirementResult,
    parse_requirement,
    metric_of,
    target_of,
    evaluate_requirement,
)
from fitquest.models.quest import (
    QuestType,
    QuestStatus,
    StatType,
    QuestTemplate,
    QuestLog,
    DailyLog,
    AdaptedTarget,
    UserProgressionState,
    UserStats,
    BaselineAssessment,
    QuestView,
    AdaptationResult,
    AdaptationCycleResult,
)

__all__ = [
    "NumericRequirement",
    "BooleanRequirement",
    "CompoundRequirement",
    "Requirement",
    "RequirementResult",
    "parse_requirement",
    "metric_of",
    "target_of",
    "evaluate_requirement",
    "QuestType",
    "QuestStatus",
    "StatType",
    "QuestTemplate",
    "QuestLog",
    "DailyLog",
    "AdaptedTarget",
    "UserProgressionState",
    "UserStats",
    "BaselineAssessment",
    "QuestView",
    "AdaptationResult",
    "AdaptationCycleResult",
]
