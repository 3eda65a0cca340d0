"""
Prometheus metrics for the progression engine.

Metrics by category:
- Quest lifecycle: activations, completions, resets, removals
- Calibration: target adaptation outcomes
- Rotation: which rotating templates get selected
- Streaks: recalculations
- XP ledger: award and removal events
- Errors: failures by type and component

Metrics are exposed through prometheus_client's HTTP server when
ENABLE_METRICS is set (see fitquest.main).
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Quest Lifecycle Metrics
# =============================================================================

quest_lifecycle_events_total = Counter(
    "quest_lifecycle_events_total",
    "Quest lifecycle transitions",
    ["action"],  # action: activate/complete/partial_complete/reset/remove/deactivate/instantiate
)

# =============================================================================
# Calibration Metrics
# =============================================================================

target_adaptations_total = Counter(
    "target_adaptations_total",
    "Adaptive target recalibration outcomes",
    ["outcome"],  # outcome: raised/lowered/unchanged/skipped_override/skipped_insufficient/conflict
)

adaptation_cycle_duration_seconds = Histogram(
    "adaptation_cycle_duration_seconds",
    "Time to recalibrate all targets of one user",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
)

# =============================================================================
# Rotating Quest Metrics
# =============================================================================

rotating_quest_selections_total = Counter(
    "rotating_quest_selections_total",
    "Rotating quest templates selected for a day",
    ["template_id"],
)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_recalculations_total = Counter(
    "streak_recalculations_total",
    "Streak recomputations from daily logs",
)

# =============================================================================
# XP Ledger Metrics
# =============================================================================

xp_ledger_events_total = Counter(
    "xp_ledger_events_total",
    "XP ledger events written",
    ["direction"],  # direction: award/removal
)

# =============================================================================
# Error Metrics
# =============================================================================

errors_total = Counter(
    "errors_total",
    "Total errors by type and component",
    ["error_type", "component"],  # component: lifecycle/calibrator/scheduler/...
)
