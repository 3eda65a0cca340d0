"""Global test fixtures and utilities for fitquest tests"""
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fitquest.db.connection import db
from fitquest.models.quest import (
    DailyLog,
    QuestLog,
    QuestStatus,
    QuestTemplate,
    QuestType,
    StatType,
)
from fitquest.models.requirement import BooleanRequirement, NumericRequirement


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock database cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    cursor.rowcount = 1
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock pooled connection whose cursor() yields mock_db_cursor"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    conn.cursor.return_value.__aexit__.return_value = False
    conn.commit = AsyncMock()
    conn.rollback = AsyncMock()
    return conn


@pytest.fixture
def mock_db(mock_db_connection):
    """Patch db.connection() to hand out mock_db_connection"""
    with patch.object(db, "connection") as mock_connection:
        mock_connection.return_value.__aenter__.return_value = mock_db_connection
        mock_connection.return_value.__aexit__.return_value = False
        yield mock_db_connection


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


# ============================================================================
# Quest Fixtures
# ============================================================================

def make_template(
    template_id: str = "core-steps",
    requirement=None,
    quest_type: QuestType = QuestType.DAILY,
    is_core: bool = True,
    base_xp: int = 50,
    stat_type: StatType = StatType.AGI,
    **kwargs
) -> QuestTemplate:
    """Build a quest template with sensible defaults"""
    if requirement is None:
        requirement = NumericRequirement(metric="steps", value=10000)
    return QuestTemplate(
        id=template_id,
        name=kwargs.pop("name", template_id.replace("-", " ").title()),
        type=quest_type,
        category=kwargs.pop("category", "movement"),
        requirement=requirement,
        base_xp=base_xp,
        stat_type=stat_type,
        is_core=is_core,
        **kwargs
    )


def make_log(
    template_id: str = "core-steps",
    status: QuestStatus = QuestStatus.ACTIVE,
    quest_date: date = None,
    target_value: float = 10000,
    current_value: float = 0,
    user_id: str = "user-123",
    **kwargs
) -> QuestLog:
    """Build a quest log with sensible defaults"""
    return QuestLog(
        id=kwargs.pop("id", uuid4()),
        user_id=user_id,
        template_id=template_id,
        quest_date=quest_date or date.today(),
        status=status,
        current_value=current_value,
        target_value=target_value,
        **kwargs
    )


def make_daily_logs(
    today: date,
    days: int,
    incomplete_offsets=(),
    imperfect_offsets=(),
    user_id: str = "user-123",
    core_total: int = 3
) -> list[DailyLog]:
    """Consecutive daily logs ending today, newest first"""
    logs = []
    for offset in range(days):
        completed = 0 if offset in incomplete_offsets else core_total
        logs.append(DailyLog(
            user_id=user_id,
            log_date=today - timedelta(days=offset),
            core_quests_total=core_total,
            core_quests_completed=completed,
            is_perfect_day=completed == core_total and offset not in imperfect_offsets,
        ))
    return logs


@pytest.fixture
def steps_template():
    return make_template()


@pytest.fixture
def bonus_template():
    return make_template(
        "bonus-no-alcohol",
        requirement=BooleanRequirement(metric="no_alcohol"),
        is_core=False,
        base_xp=30,
        stat_type=StatType.VIT,
    )


@pytest.fixture
def account_created_days_ago():
    """Factory: account creation timestamp N days in the past"""
    def _created(days: float) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=days)
    return _created
