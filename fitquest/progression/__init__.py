"""
Progression engine for FitQuest

This package holds the rules that turn quest activity into progress:
- Streak and perfect-day tracking
- Adaptive (per-user) quest targets
- Rotating quest selection
- Quest lifecycle (activate, complete, reset, remove)
- Streak bonus tiers and the XP ledger
"""

from fitquest.progression.bonus_policy import get_streak_bonus, days_until_next_tier
from fitquest.progression.streak_system import calculate_streak, update_user_streak, get_streak_info
from fitquest.progression.target_calibrator import (
    get_adapted_target,
    adapt_target,
    set_manual_target,
    clear_manual_override,
    run_adaptation_cycle,
)
from fitquest.progression.rotating_quests import get_today_rotating_quest, get_rotating_quest_unlock_status
from fitquest.progression.quest_lifecycle import (
    activate_quest,
    reset_quest,
    remove_quest,
    deactivate_quest_by_template,
    get_all_quest_templates,
    get_today_quests,
    get_today_quests_with_rotating,
    update_quest_progress,
)

__all__ = [
    "get_streak_bonus",
    "days_until_next_tier",
    "calculate_streak",
    "update_user_streak",
    "get_streak_info",
    "get_adapted_target",
    "adapt_target",
    "set_manual_target",
    "clear_manual_override",
    "run_adaptation_cycle",
    "get_today_rotating_quest",
    "get_rotating_quest_unlock_status",
    "activate_quest",
    "reset_quest",
    "remove_quest",
    "deactivate_quest_by_template",
    "get_all_quest_templates",
    "get_today_quests",
    "get_today_quests_with_rotating",
    "update_quest_progress",
]
