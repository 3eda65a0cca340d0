"""Unit tests for database queries (fitquest/db/queries/)"""
import pytest
from datetime import date
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fitquest.db import queries
from fitquest.db.connection import Database
from fitquest.exceptions import ConnectionError
from fitquest.models.quest import AdaptedTarget, QuestLog, QuestStatus

QUEST_DATE = date(2026, 3, 18)


def _log_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "user_id": "user-123",
        "template_id": "core-steps",
        "quest_date": QUEST_DATE,
        "status": "ACTIVE",
        "current_value": 0,
        "target_value": 10000,
        "completion_percent": 0,
        "completed_at": None,
        "xp_awarded": None,
    }
    row.update(overrides)
    return row


def _target_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "user_id": "user-123",
        "quest_template_id": "core-steps",
        "base_target": 10000,
        "adapted_target": 8000,
        "manual_override": False,
        "version": 1,
        "completion_rate": None,
        "average_achievement": None,
        "last_adapted_at": None,
    }
    row.update(overrides)
    return row


# ============================================================================
# Connection Tests
# ============================================================================

@pytest.mark.asyncio
async def test_connection_without_pool_fails_fast():
    """Test using the database before init_pool raises ConnectionError"""
    database = Database("postgresql://localhost/unused")

    with pytest.raises(ConnectionError):
        async with database.connection():
            pass


# ============================================================================
# Quest Log Tests
# ============================================================================

@pytest.mark.asyncio
async def test_insert_quest_log_creates_row(mock_db, mock_db_cursor):
    """Test a new quest log is returned as a model"""
    mock_db_cursor.fetchone.return_value = _log_row()

    log = await queries.insert_quest_log("user-123", "core-steps", QUEST_DATE, 10000)

    assert isinstance(log, QuestLog)
    assert log.status == QuestStatus.ACTIVE
    sql, params = mock_db_cursor.execute.call_args[0]
    assert "ON CONFLICT (user_id, template_id, quest_date) DO NOTHING" in sql
    assert params == ("user-123", "core-steps", QUEST_DATE, 10000)
    mock_db.commit.assert_called_once()


@pytest.mark.asyncio
async def test_insert_quest_log_conflict_returns_none(mock_db, mock_db_cursor):
    """Test an existing (user, template, date) row yields None"""
    mock_db_cursor.fetchone.return_value = None

    log = await queries.insert_quest_log("user-123", "core-steps", QUEST_DATE, 10000)

    assert log is None


@pytest.mark.asyncio
async def test_delete_quest_log_skips_completed(mock_db, mock_db_cursor):
    """Test deleting reports False when no uncompleted row matched"""
    mock_db_cursor.rowcount = 0

    deleted = await queries.delete_quest_log("log-1")

    assert deleted is False
    sql = mock_db_cursor.execute.call_args[0][0]
    assert "status <> 'COMPLETED'" in sql


@pytest.mark.asyncio
async def test_get_template_ids_used_on_dates_empty_input():
    """Test empty filters short-circuit without a connection"""
    with patch('fitquest.db.queries.quests.db.connection') as mock_connection:
        assert await queries.get_template_ids_used_on_dates("user-123", [], ["rotating-a"]) == []
        assert await queries.get_template_ids_used_on_dates("user-123", [QUEST_DATE], []) == []

    mock_connection.assert_not_called()


@pytest.mark.asyncio
async def test_get_template_ids_for_date(mock_db, mock_db_cursor):
    """Test today's template IDs come back as a set"""
    mock_db_cursor.fetchall = AsyncMock(return_value=[{"template_id": "core-steps"}, {"template_id": "bonus-a"}])

    ids = await queries.get_template_ids_for_date("user-123", QUEST_DATE)

    assert ids == {"core-steps", "bonus-a"}
    sql, params = mock_db_cursor.execute.call_args[0]
    assert "WHERE user_id = %s AND quest_date = %s" in sql
    assert params == ("user-123", QUEST_DATE)


# ============================================================================
# Completion and Reset Transaction Tests
# ============================================================================

@pytest.mark.asyncio
async def test_apply_quest_completion_core_updates_aggregate(mock_db, mock_db_cursor):
    """Test completing a core quest updates log, aggregate and perfect day together"""
    applied = await queries.apply_quest_completion(
        "log-1", "user-123", QUEST_DATE,
        is_core=True, current_value=12000, completion_percent=100, completed=True, xp_awarded=50,
    )

    assert applied is True
    statements = [call[0][0] for call in mock_db_cursor.execute.call_args_list]
    assert len(statements) == 4
    assert "UPDATE quest_logs" in statements[0]
    assert "INSERT INTO daily_logs" in statements[1]
    assert "core_quests_completed = LEAST(core_quests_completed + 1, core_quests_total)" in statements[2]
    assert "is_perfect_day" in statements[3]
    mock_db.commit.assert_called_once()
    mock_db.rollback.assert_not_called()


@pytest.mark.asyncio
async def test_apply_quest_completion_progress_only(mock_db, mock_db_cursor):
    """Test recording progress without completion leaves the aggregate alone"""
    applied = await queries.apply_quest_completion(
        "log-1", "user-123", QUEST_DATE,
        is_core=True, current_value=4000, completion_percent=40, completed=False, xp_awarded=0,
    )

    assert applied is True
    assert mock_db_cursor.execute.call_count == 1
    params = mock_db_cursor.execute.call_args[0][1]
    assert params[4] is None  # xp_awarded stays NULL


@pytest.mark.asyncio
async def test_apply_quest_completion_not_active_rolls_back(mock_db, mock_db_cursor):
    """Test a log that is no longer ACTIVE writes nothing"""
    mock_db_cursor.rowcount = 0

    applied = await queries.apply_quest_completion(
        "log-1", "user-123", QUEST_DATE,
        is_core=False, current_value=1, completion_percent=100, completed=True, xp_awarded=30,
    )

    assert applied is False
    assert mock_db_cursor.execute.call_count == 1
    mock_db.rollback.assert_called_once()
    mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_apply_quest_reset_not_completed_rolls_back(mock_db, mock_db_cursor):
    """Test resetting a log that is not COMPLETED writes nothing"""
    mock_db_cursor.rowcount = 0

    applied = await queries.apply_quest_reset("log-1", "user-123", QUEST_DATE, is_core=True, xp_removed=50)

    assert applied is False
    mock_db.rollback.assert_called_once()
    mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_apply_quest_reset_bonus_decrements_bonus_counter(mock_db, mock_db_cursor):
    """Test resetting a bonus quest takes it out of the bonus count"""
    applied = await queries.apply_quest_reset("log-1", "user-123", QUEST_DATE, is_core=False, xp_removed=30)

    assert applied is True
    statements = [call[0][0] for call in mock_db_cursor.execute.call_args_list]
    assert "bonus_quests_completed = GREATEST(0, bonus_quests_completed - 1)" in statements[1]
    assert mock_db_cursor.execute.call_args_list[1][0][1] == (30, "user-123", QUEST_DATE)
    mock_db.commit.assert_called_once()


@pytest.mark.asyncio
async def test_apply_quest_reset_writes_xp_removal_in_same_transaction(mock_db, mock_db_cursor):
    """Test the log reset and its XP removal event commit together"""
    stored_event = {"id": uuid4(), "total_xp_before": 80, "total_xp_after": 30}
    mock_db_cursor.fetchone = AsyncMock(side_effect=[{"total_xp": 80, "level": 1}, stored_event])

    applied = await queries.apply_quest_reset(
        "log-1", "user-123", QUEST_DATE,
        is_core=True,
        xp_removed=50,
        xp_source="MANUAL_ADJUSTMENT",
        xp_description="Quest reset: Daily Steps",
        level_for=lambda xp: 1,
    )

    assert applied is True
    statements = [call[0][0] for call in mock_db_cursor.execute.call_args_list]
    assert len(statements) == 6
    assert "UPDATE quest_logs" in statements[0]
    assert "FOR UPDATE" in statements[3]
    assert "INSERT INTO xp_events" in statements[4]
    assert "UPDATE users" in statements[5]
    insert_params = mock_db_cursor.execute.call_args_list[4][0][1]
    assert insert_params[:5] == ("user-123", "MANUAL_ADJUSTMENT", "log-1", -50, -50)
    mock_db.commit.assert_called_once()
    mock_db.rollback.assert_not_called()


@pytest.mark.asyncio
async def test_apply_quest_reset_rolls_back_when_ledger_write_fails(mock_db, mock_db_cursor):
    """Test a failed XP removal leaves the completed quest untouched"""
    mock_db_cursor.fetchone = AsyncMock(return_value=None)

    applied = await queries.apply_quest_reset(
        "log-1", "user-123", QUEST_DATE, is_core=True, xp_removed=50, level_for=lambda xp: 1,
    )

    assert applied is False
    mock_db.rollback.assert_called_once()
    mock_db.commit.assert_not_called()


# ============================================================================
# Adapted Target Tests
# ============================================================================

@pytest.mark.asyncio
async def test_create_adapted_target_returns_existing_on_conflict(mock_db, mock_db_cursor):
    """Test a concurrently created target is returned unchanged"""
    existing = _target_row(adapted_target=9000)
    mock_db_cursor.fetchone = AsyncMock(side_effect=[None, existing])

    target = await queries.create_adapted_target("user-123", "core-steps", base_target=10000, adapted_target=7200)

    assert isinstance(target, AdaptedTarget)
    assert target.adapted_target == 9000
    assert mock_db_cursor.execute.call_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("rowcount,expected", [(1, True), (0, False)])
async def test_compare_and_set_adapted_target(mock_db, mock_db_cursor, rowcount, expected):
    """Test the write only counts when the row version still matched"""
    mock_db_cursor.rowcount = rowcount

    stored = await queries.compare_and_set_adapted_target(
        "target-1", expected_version=4, new_target=7.9, completion_rate=0.9, average_achievement=1.4,
    )

    assert stored is expected
    sql, params = mock_db_cursor.execute.call_args[0]
    assert "AND version = %s" in sql
    assert "version = version + 1" in sql
    assert "AND adapted_target =" not in sql
    assert "AND manual_override = FALSE" in sql
    assert params == (7.9, 0.9, 1.4, "target-1", 4)


# ============================================================================
# XP Ledger Tests
# ============================================================================

@pytest.mark.asyncio
async def test_append_xp_event_unknown_user(mock_db, mock_db_cursor):
    """Test appending for a missing user writes nothing"""
    mock_db_cursor.fetchone.return_value = None

    event = await queries.append_xp_event(
        "ghost", "QUEST_COMPLETION", "log-1", 50, 50, "Completed quest", level_for=lambda xp: 1,
    )

    assert event is None
    assert mock_db_cursor.execute.call_count == 1
    mock_db.rollback.assert_called_once()


@pytest.mark.asyncio
async def test_append_xp_event_never_drops_below_zero(mock_db, mock_db_cursor):
    """Test removals floor the stored total at 0"""
    stored_event = {"id": uuid4(), "total_xp_before": 30, "total_xp_after": 0}
    mock_db_cursor.fetchone = AsyncMock(side_effect=[{"total_xp": 30, "level": 1}, stored_event])

    event = await queries.append_xp_event(
        "user-123", "MANUAL_ADJUSTMENT", "log-1", -50, -50, "Quest reset", level_for=lambda xp: 1,
    )

    assert event == stored_event
    insert_params = mock_db_cursor.execute.call_args_list[1][0][1]
    assert insert_params[7] == 30   # total_xp_before
    assert insert_params[8] == 0    # total_xp_after
    update_params = mock_db_cursor.execute.call_args_list[2][0][1]
    assert update_params == (0, 1, "user-123")
    mock_db.commit.assert_called_once()
