"""
Progression tuning tables

All numeric policy lives in one frozen ``ProgressionTables`` value.
``DEFAULT_TABLES`` holds the production values; calibrator and selector
functions take a ``tables=`` keyword so tests and experiments can pass a
different set without touching module state.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from fitquest.models.quest import StatType

ROTATING_TEMPLATE_PREFIX = "rotating-"


class RotatingQuestIds:
    """Template IDs of the rotating quest pool"""
    HYDRATION = "rotating-hydration"
    STRETCH = "rotating-stretch"
    ALCOHOL_FREE = "rotating-alcohol-free"
    SCREEN_SUNSET = "rotating-screen-sunset"
    MORNING_MOVEMENT = "rotating-morning-movement"
    MEDITATION = "rotating-meditation"
    COLD_EXPOSURE = "rotating-cold-exposure"
    SOCIAL_MOVEMENT = "rotating-social-movement"
    NO_SUGAR = "rotating-no-sugar"
    GRATITUDE_LOG = "rotating-gratitude-log"
    DEEP_WORK = "rotating-deep-work"
    NATURE_TIME = "rotating-nature-time"
    POSTURE_CHECK = "rotating-posture-check"
    MEAL_PREP = "rotating-meal-prep"
    WALKING_MEETING = "rotating-walking-meeting"


@dataclass(frozen=True)
class TargetBounds:
    min: float
    max: float

    def clamp(self, value: float) -> float:
        return min(max(value, self.min), self.max)

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


UNBOUNDED = TargetBounds(min=0, max=float("inf"))


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class ProgressionTables:
    """Immutable tuning data for calibration and rotation"""

    # Keyed by upper-case metric name
    target_bounds: Mapping[str, TargetBounds]
    default_targets: Mapping[str, float]

    # Rotating quest selection
    base_frequency_weights: Mapping[str, float]
    day_of_week_preferences: Mapping[int, tuple[str, ...]]  # 0 = Sunday
    stat_to_quests: Mapping[StatType, tuple[str, ...]]

    rotating_unlock_day: int = 8
    recent_rotation_days: int = 3
    recency_penalty: float = 0.1
    weak_stat_boost: float = 1.5
    day_preference_boost: float = 1.3

    # Calibration
    adaptation_window_days: int = 14
    min_adaptation_samples: int = 7

    # Streaks
    streak_lookback_days: int = 365

    rotating_prefix: str = field(default=ROTATING_TEMPLATE_PREFIX)

    def bounds_for(self, metric: str) -> TargetBounds:
        return self.target_bounds.get(metric.upper(), UNBOUNDED)

    def default_target_for(self, metric: str, fallback: float) -> float:
        return self.default_targets.get(metric.upper(), fallback)


_ids = RotatingQuestIds

DEFAULT_TABLES = ProgressionTables(
    target_bounds=_frozen({
        "STEPS": TargetBounds(3000, 15000),
        "WORKOUT_MINUTES": TargetBounds(10, 90),
        "PROTEIN_GRAMS": TargetBounds(50, 250),
        "SLEEP_HOURS": TargetBounds(5, 10),
        "ACTIVE_MINUTES": TargetBounds(15, 120),
        "CALORIES_BURNED": TargetBounds(100, 1000),
    }),
    default_targets=_frozen({
        "STEPS": 10000,
        "WORKOUT_MINUTES": 30,
        "PROTEIN_GRAMS": 150,
        "SLEEP_HOURS": 7,
        "ACTIVE_MINUTES": 30,
        "CALORIES_BURNED": 300,
    }),
    base_frequency_weights=_frozen({
        # High
        _ids.HYDRATION: 3,
        _ids.STRETCH: 3,
        _ids.GRATITUDE_LOG: 3,
        _ids.POSTURE_CHECK: 3,
        # Medium
        _ids.ALCOHOL_FREE: 2,
        _ids.SCREEN_SUNSET: 2,
        _ids.MORNING_MOVEMENT: 2,
        _ids.MEDITATION: 2,
        _ids.NATURE_TIME: 2,
        _ids.DEEP_WORK: 2,
        # Low
        _ids.COLD_EXPOSURE: 1,
        _ids.SOCIAL_MOVEMENT: 1,
        _ids.NO_SUGAR: 1,
        _ids.MEAL_PREP: 1,
        _ids.WALKING_MEETING: 1,
    }),
    day_of_week_preferences=_frozen({
        0: (_ids.SOCIAL_MOVEMENT, _ids.NATURE_TIME),     # Sunday
        1: (_ids.MEDITATION, _ids.DEEP_WORK),            # Monday
        2: (_ids.STRETCH, _ids.POSTURE_CHECK),           # Tuesday
        3: (_ids.HYDRATION, _ids.MEAL_PREP),             # Wednesday
        4: (_ids.DEEP_WORK, _ids.WALKING_MEETING),       # Thursday
        5: (_ids.ALCOHOL_FREE, _ids.SCREEN_SUNSET),      # Friday
        6: (_ids.COLD_EXPOSURE, _ids.SOCIAL_MOVEMENT),   # Saturday
    }),
    stat_to_quests=_frozen({
        StatType.VIT: (
            _ids.HYDRATION,
            _ids.ALCOHOL_FREE,
            _ids.COLD_EXPOSURE,
            _ids.NO_SUGAR,
            _ids.MEAL_PREP,
        ),
        StatType.AGI: (
            _ids.STRETCH,
            _ids.MORNING_MOVEMENT,
            _ids.SOCIAL_MOVEMENT,
            _ids.NATURE_TIME,
            _ids.WALKING_MEETING,
        ),
        StatType.DISC: (
            _ids.SCREEN_SUNSET,
            _ids.MEDITATION,
            _ids.GRATITUDE_LOG,
            _ids.DEEP_WORK,
        ),
        StatType.STR: (_ids.POSTURE_CHECK,),
    }),
)
