"""
Database queries - Re-export all functions so callers can use
'from fitquest.db import queries' and 'queries.<function>'.

Module organization:
- quests.py: Quest templates, quest logs, completion/reset transactions
- daily_logs.py: Daily aggregates and perfect-day maintenance
- targets.py: Adapted targets (calibration)
- users.py: Progression state, stats, account age, baseline assessments
- xp.py: Append-only XP ledger
"""

# Quest operations
from fitquest.db.queries.quests import (
    get_quest_template,
    get_active_templates,
    get_active_core_templates,
    get_rotating_templates,
    save_quest_template,
    insert_quest_log,
    get_quest_log_for_date,
    get_quest_log_with_template,
    get_daily_quests_for_date,
    get_template_ids_for_date,
    get_quest_logs_since,
    get_template_ids_used_on_dates,
    find_log_for_templates,
    delete_quest_log,
    apply_quest_completion,
    apply_quest_reset,
)

# Daily aggregate operations
from fitquest.db.queries.daily_logs import (
    upsert_daily_log,
    get_recent_daily_logs,
    refresh_perfect_day,
)

# Adapted target operations
from fitquest.db.queries.targets import (
    get_adapted_target_row,
    create_adapted_target,
    get_all_adapted_targets,
    compare_and_set_adapted_target,
    set_manual_target,
    clear_manual_override,
)

# User operations
from fitquest.db.queries.users import (
    get_user_progression,
    update_user_streak_state,
    get_user_stats,
    get_user_created_at,
    get_user_timezone,
    get_baseline_assessment,
    get_user_ids_with_targets,
)

# XP ledger operations
from fitquest.db.queries.xp import (
    append_xp_event,
)

__all__ = [
    # Quests
    "get_quest_template",
    "get_active_templates",
    "get_active_core_templates",
    "get_rotating_templates",
    "save_quest_template",
    "insert_quest_log",
    "get_quest_log_for_date",
    "get_quest_log_with_template",
    "get_daily_quests_for_date",
    "get_template_ids_for_date",
    "get_quest_logs_since",
    "get_template_ids_used_on_dates",
    "find_log_for_templates",
    "delete_quest_log",
    "apply_quest_completion",
    "apply_quest_reset",
    # Daily logs
    "upsert_daily_log",
    "get_recent_daily_logs",
    "refresh_perfect_day",
    # Targets
    "get_adapted_target_row",
    "create_adapted_target",
    "get_all_adapted_targets",
    "compare_and_set_adapted_target",
    "set_manual_target",
    "clear_manual_override",
    # Users
    "get_user_progression",
    "update_user_streak_state",
    "get_user_stats",
    "get_user_created_at",
    "get_user_timezone",
    "get_baseline_assessment",
    "get_user_ids_with_targets",
    # XP ledger
    "append_xp_event",
]
