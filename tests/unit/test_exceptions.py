"""Unit tests for custom exception hierarchy"""
import pytest
import psycopg
from datetime import datetime
from psycopg_pool import PoolTimeout

from fitquest.exceptions import (
    FitQuestError,
    ValidationError,
    QuestStateError,
    DatabaseError,
    ConnectionError,
    QueryError,
    RecordNotFoundError,
    ConfigurationError,
    wrap_external_exception
)


class TestFitQuestError:
    """Test base exception class"""

    def test_basic_exception(self):
        """Test basic exception creation"""
        error = FitQuestError("Test error")
        assert error.message == "Test error"
        assert error.user_message == "An error occurred. Please try again."
        assert error.request_id is not None
        assert isinstance(error.timestamp, datetime)
        assert error.http_status == 500

    def test_exception_with_context(self):
        """Test exception with full context"""
        error = FitQuestError(
            message="Quest log insert failed",
            user_id="user-123",
            operation="activate_quest",
            context={"template_id": "core-steps"},
            user_message="Could not activate your quest"
        )
        assert error.user_id == "user-123"
        assert error.operation == "activate_quest"
        assert error.context["template_id"] == "core-steps"
        assert error.user_message == "Could not activate your quest"

    def test_exception_with_cause(self):
        """Test exception wrapping another exception"""
        original_error = ValueError("Invalid value")
        error = FitQuestError(
            message="Validation failed",
            cause=original_error
        )
        assert error.cause == original_error

    def test_to_dict(self):
        """Test exception serialization"""
        error = FitQuestError(
            message="Test error",
            user_id="user-123"
        )
        error_dict = error.to_dict()
        assert error_dict["error"] == "FitQuestError"
        assert error_dict["message"] == "Test error"
        assert error_dict["user_message"] == "An error occurred. Please try again."
        assert "request_id" in error_dict
        assert "timestamp" in error_dict


class TestClientErrors:
    """Test validation and quest state errors"""

    def test_validation_error(self):
        """Test validation error with field"""
        error = ValidationError(
            message="Target must be between 3000 and 15000",
            field="target",
            value=20000
        )
        assert error.field == "target"
        assert error.value == 20000
        assert "Invalid target" in error.user_message
        assert error.http_status == 400

    def test_quest_state_error(self):
        """Test quest state error keeps quest context and shows its message"""
        error = QuestStateError(
            "Quest is not completed - cannot reset",
            quest_id="log-1",
            status="ACTIVE",
            context={"template_id": "core-steps"}
        )
        assert error.quest_id == "log-1"
        assert error.status == "ACTIVE"
        assert error.context["template_id"] == "core-steps"
        assert error.context["quest_id"] == "log-1"
        assert error.user_message == "Quest is not completed - cannot reset"
        assert error.http_status == 400


class TestDatabaseErrors:
    """Test database-related errors"""

    def test_connection_error(self):
        """Test connection error"""
        error = ConnectionError()
        assert "connection" in error.message.lower()
        assert "database" in error.user_message.lower()
        assert error.http_status == 500

    def test_query_error(self):
        """Test query error"""
        error = QueryError(
            message="Query failed",
            query="SELECT * FROM quest_logs"
        )
        assert error.query == "SELECT * FROM quest_logs"

    def test_record_not_found(self):
        """Test record not found"""
        error = RecordNotFoundError(
            message="Quest not found",
            record_type="QuestLog",
            record_id="log-1"
        )
        assert error.record_type == "QuestLog"
        assert error.record_id == "log-1"
        assert error.user_message == "QuestLog not found."
        assert error.http_status == 404
        assert isinstance(error, DatabaseError)


class TestConfigurationError:
    """Test configuration errors"""

    def test_configuration_error(self):
        """Test configuration error keeps the offending key"""
        error = ConfigurationError(
            message="DATABASE_URL is required",
            config_key="DATABASE_URL"
        )
        assert error.config_key == "DATABASE_URL"
        assert "not properly configured" in error.user_message


class TestWrapExternalException:
    """Test exception wrapping"""

    def test_passes_through_own_errors(self):
        """Test FitQuestError subclasses are returned unchanged"""
        original = QuestStateError("Quest already active")
        assert wrap_external_exception(original, operation="activate_quest") is original

    @pytest.mark.parametrize("error", [
        psycopg.OperationalError("server closed the connection"),
        PoolTimeout("couldn't get a connection after 30.00 sec"),
    ])
    def test_wraps_connection_failures(self, error):
        """Test connection-level driver errors become ConnectionError"""
        wrapped = wrap_external_exception(error, operation="database", user_id="user-123")

        assert isinstance(wrapped, ConnectionError)
        assert wrapped.cause is error
        assert wrapped.user_id == "user-123"

    def test_wraps_query_failures(self):
        """Test other driver errors become QueryError"""
        error = psycopg.errors.UniqueViolation("duplicate key value")

        wrapped = wrap_external_exception(error, operation="database")

        assert isinstance(wrapped, QueryError)
        assert "Database query failed" in wrapped.message

    def test_wraps_unknown_errors(self):
        """Test unrelated errors fall back to the base class"""
        wrapped = wrap_external_exception(RuntimeError("boom"), operation="run_adaptation_cycle")

        assert type(wrapped) is FitQuestError
        assert wrapped.message == "run_adaptation_cycle failed: boom"
