"""Unit tests for the Rotating Quest Selector (fitquest/progression/rotating_quests.py)"""
import dataclasses
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from conftest import make_log, make_template
from fitquest.models.quest import StatType, UserStats
from fitquest.models.requirement import BooleanRequirement
from fitquest.progression.rotating_quests import (
    calculate_quest_weight,
    day_count_since,
    get_rotating_quest_unlock_status,
    get_today_rotating_quest,
    get_weakest_stat,
    select_rotating_quest,
    weighted_random_select,
)
from fitquest.progression.tables import DEFAULT_TABLES, RotatingQuestIds
from fitquest.utils.datetime_helpers import get_today_date

PATCH = 'fitquest.progression.rotating_quests'
WEDNESDAY = 3


class StubRng:
    """Deterministic stand-in for the random module"""

    def __init__(self, value: float = 0.0, index: int = 0):
        self.value = value
        self.index = index

    def random(self) -> float:
        return self.value

    def randrange(self, stop: int) -> int:
        return self.index


def _rotating(template_id: str, stat_type: StatType = StatType.VIT):
    return make_template(
        template_id,
        requirement=BooleanRequirement(metric=template_id.removeprefix("rotating-").replace("-", "_")),
        is_core=False,
        base_xp=25,
        stat_type=stat_type,
    )


ROTATING_POOL = [
    _rotating(RotatingQuestIds.HYDRATION),
    _rotating(RotatingQuestIds.STRETCH, StatType.AGI),
    _rotating(RotatingQuestIds.MEDITATION, StatType.DISC),
]


# ============================================================================
# Unlock Gate Tests
# ============================================================================

def test_day_count_since_rounds_up():
    """Test partial days count as a full day"""
    now = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)

    assert day_count_since(now - timedelta(days=5), now) == 5
    assert day_count_since(now - timedelta(days=7, hours=1), now) == 8
    assert day_count_since(now, now) == 0


def test_day_count_since_naive_timestamp_is_utc():
    """Test naive creation timestamps are read as UTC"""
    now = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)

    assert day_count_since(datetime(2026, 3, 16, 12, 0), now) == 2


@pytest.mark.asyncio
async def test_get_rotating_quest_unlock_status_locked(account_created_days_ago):
    """Test a young account reports the days left until unlock"""
    with patch(f'{PATCH}.queries.get_user_created_at',
               AsyncMock(return_value=account_created_days_ago(4.5))):
        status = await get_rotating_quest_unlock_status("user-123")

    assert status.unlocked is False
    assert status.current_day == 5
    assert status.unlock_day == 8
    assert status.days_remaining == 3


@pytest.mark.asyncio
async def test_get_rotating_quest_unlock_status_unknown_user():
    """Test unknown users are treated as day 0"""
    with patch(f'{PATCH}.queries.get_user_created_at', AsyncMock(return_value=None)):
        status = await get_rotating_quest_unlock_status("ghost")

    assert status.current_day == 0
    assert status.days_remaining == 8


# ============================================================================
# Weighting Tests
# ============================================================================

@pytest.mark.parametrize("stats,expected", [
    (UserStats(str=12, agi=5, vit=8, disc=9), StatType.AGI),
    (UserStats(str=10, agi=10, vit=10, disc=10), StatType.STR),
    (UserStats(str=12, agi=7, vit=7, disc=7), StatType.AGI),
    (UserStats(str=12, agi=11, vit=9, disc=9), StatType.VIT),
])
def test_get_weakest_stat_ties_use_fixed_order(stats, expected):
    """Test the lowest stat wins and ties follow STR, AGI, VIT, DISC"""
    assert get_weakest_stat(stats) == expected


def test_calculate_quest_weight_applies_all_modifiers():
    """Test recency, weak stat and weekday multipliers stack"""
    # Hydration: high tier (3), VIT quest, preferred on Wednesday
    weight = calculate_quest_weight(
        RotatingQuestIds.HYDRATION,
        [RotatingQuestIds.HYDRATION],
        StatType.VIT,
        WEDNESDAY,
    )

    assert weight == pytest.approx(3 * 0.1 * 1.5 * 1.3)


def test_calculate_quest_weight_unknown_template_defaults_to_one():
    """Test templates missing from the frequency table weigh 1"""
    assert calculate_quest_weight("rotating-new", [], StatType.STR, 0) == 1


def test_day_preferred_template_outweighs_recent_one():
    """Test a weekday favorite beats yesterday's quest by 13:1 at equal tiers"""
    tables = dataclasses.replace(
        DEFAULT_TABLES,
        base_frequency_weights={"rotating-a": 1, "rotating-b": 1, "rotating-c": 1},
        day_of_week_preferences={WEDNESDAY: ("rotating-a",)},
        stat_to_quests={},
    )
    recent = ["rotating-b"]

    preferred = calculate_quest_weight("rotating-a", recent, StatType.STR, WEDNESDAY, tables)
    recently_used = calculate_quest_weight("rotating-b", recent, StatType.STR, WEDNESDAY, tables)
    neutral = calculate_quest_weight("rotating-c", recent, StatType.STR, WEDNESDAY, tables)

    assert preferred / recently_used == pytest.approx(13)
    assert neutral == 1


# ============================================================================
# Roulette Tests
# ============================================================================

def test_weighted_random_select_walks_cumulative_weights():
    """Test the draw lands on the item whose cumulative weight covers it"""
    items = ["a", "b", "c"]
    weights = {"a": 1, "b": 2, "c": 3}

    assert weighted_random_select(items, weights, StubRng(0.0), key=str) == "a"
    assert weighted_random_select(items, weights, StubRng(0.5), key=str) == "b"
    assert weighted_random_select(items, weights, StubRng(0.9), key=str) == "c"


def test_weighted_random_select_unknown_ids_weigh_one():
    """Test items missing from the weights map count as weight 1"""
    assert weighted_random_select(["a", "x"], {"a": 1}, StubRng(0.75), key=str) == "x"


def test_weighted_random_select_zero_total_is_uniform():
    """Test all-zero weights fall back to a uniform index"""
    items = ["a", "b", "c"]

    assert weighted_random_select(items, {"a": 0, "b": 0, "c": 0}, StubRng(index=2), key=str) == "c"


def test_weighted_random_select_falls_back_to_last_item():
    """Test an overshooting draw still returns a candidate"""
    items = ["a", "b"]

    assert weighted_random_select(items, {"a": 1, "b": 1}, StubRng(1.5), key=str) == "b"


def test_weighted_random_select_empty():
    """Test an empty pool returns None"""
    assert weighted_random_select([], {}) is None


# ============================================================================
# Selection Tests
# ============================================================================

@pytest.mark.asyncio
async def test_select_rotating_quest_reads_recent_window(account_created_days_ago):
    """Test selection checks the previous three days and returns a pool member"""
    used_on_dates = AsyncMock(return_value=[RotatingQuestIds.HYDRATION])

    with patch(f'{PATCH}.queries.get_user_created_at', AsyncMock(return_value=account_created_days_ago(20))), \
         patch(f'{PATCH}.queries.get_rotating_templates', AsyncMock(return_value=ROTATING_POOL)), \
         patch(f'{PATCH}.queries.get_user_stats', AsyncMock(return_value=UserStats())), \
         patch(f'{PATCH}.queries.get_template_ids_used_on_dates', used_on_dates):
        selected = await select_rotating_quest("user-123", "UTC", rng=StubRng(0.0))

    # Hydration is penalized but still first in iteration order
    assert selected.id == RotatingQuestIds.HYDRATION

    today = get_today_date("UTC")
    args = used_on_dates.call_args.args
    assert args[0] == "user-123"
    assert args[1] == [today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=3)]
    assert args[2] == [t.id for t in ROTATING_POOL]


@pytest.mark.asyncio
async def test_select_rotating_quest_locked(account_created_days_ago):
    """Test locked accounts never reach the template pool"""
    get_templates = AsyncMock()

    with patch(f'{PATCH}.queries.get_user_created_at', AsyncMock(return_value=account_created_days_ago(3))), \
         patch(f'{PATCH}.queries.get_rotating_templates', get_templates):
        assert await select_rotating_quest("user-123", "UTC") is None

    get_templates.assert_not_called()


@pytest.mark.asyncio
async def test_get_today_rotating_quest_before_unlock(account_created_days_ago):
    """Test a 5-day-old account gets no rotating quest"""
    insert = AsyncMock()

    with patch(f'{PATCH}.queries.get_rotating_templates', AsyncMock(return_value=ROTATING_POOL)), \
         patch(f'{PATCH}.queries.find_log_for_templates', AsyncMock(return_value=None)), \
         patch(f'{PATCH}.queries.get_user_created_at', AsyncMock(return_value=account_created_days_ago(5))), \
         patch(f'{PATCH}.queries.insert_quest_log', insert):
        result = await get_today_rotating_quest("user-123", "UTC")

    assert result is None
    insert.assert_not_called()


@pytest.mark.asyncio
async def test_get_today_rotating_quest_returns_existing_assignment():
    """Test an existing assignment is returned without drawing again"""
    template = ROTATING_POOL[1]
    log = make_log(template.id, target_value=1)
    select = AsyncMock()

    with patch(f'{PATCH}.queries.get_rotating_templates', AsyncMock(return_value=ROTATING_POOL)), \
         patch(f'{PATCH}.queries.find_log_for_templates', AsyncMock(return_value=(log, template))), \
         patch(f'{PATCH}.select_rotating_quest', select):
        result = await get_today_rotating_quest("user-123", "UTC")

    assert result.id == log.id
    assert result.template_id == template.id
    assert result.is_rotating is True
    select.assert_not_called()


@pytest.mark.asyncio
async def test_get_today_rotating_quest_assigns_new_quest():
    """Test a fresh assignment is stored and refreshes the perfect-day flag"""
    template = ROTATING_POOL[0]
    log = make_log(template.id, target_value=1)
    insert = AsyncMock(return_value=log)
    refresh = AsyncMock()
    today = get_today_date("UTC")

    with patch(f'{PATCH}.queries.get_rotating_templates', AsyncMock(return_value=ROTATING_POOL)), \
         patch(f'{PATCH}.queries.find_log_for_templates', AsyncMock(return_value=None)), \
         patch(f'{PATCH}.select_rotating_quest', AsyncMock(return_value=template)), \
         patch(f'{PATCH}.queries.insert_quest_log', insert), \
         patch(f'{PATCH}.queries.refresh_perfect_day', refresh):
        result = await get_today_rotating_quest("user-123", "UTC")

    assert result.template_id == template.id
    assert result.is_rotating is True
    insert.assert_awaited_once_with("user-123", template.id, today, target_value=1)
    refresh.assert_awaited_once_with("user-123", today)


@pytest.mark.asyncio
async def test_get_today_rotating_quest_concurrent_assignment_wins():
    """Test losing the insert race returns the assignment that was stored"""
    stored_template = ROTATING_POOL[2]
    stored_log = make_log(stored_template.id, target_value=1)
    find = AsyncMock(side_effect=[None, (stored_log, stored_template)])
    refresh = AsyncMock()

    with patch(f'{PATCH}.queries.get_rotating_templates', AsyncMock(return_value=ROTATING_POOL)), \
         patch(f'{PATCH}.queries.find_log_for_templates', find), \
         patch(f'{PATCH}.select_rotating_quest', AsyncMock(return_value=ROTATING_POOL[0])), \
         patch(f'{PATCH}.queries.insert_quest_log', AsyncMock(return_value=None)), \
         patch(f'{PATCH}.queries.refresh_perfect_day', refresh):
        result = await get_today_rotating_quest("user-123", "UTC")

    assert result.id == stored_log.id
    assert result.template_id == stored_template.id
    refresh.assert_not_called()
