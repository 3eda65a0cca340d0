"""
Standardized exception hierarchy for the FitQuest progression engine
Provides rich context, consistent logging, and user-friendly error messages

The route layer maps these onto responses using ``http_status``:
- 400: state conflicts and validation failures
- 404: missing quest logs, templates, targets or users
- 500: backing store unavailable or failing
"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class FitQuestError(Exception):
    """
    Base exception for all FitQuest errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise FitQuestError(
            message="Failed to create quest log",
            user_id="user-123",
            operation="activate_quest",
            context={"template_id": "core-steps"}
        )
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.utcnow()

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,  # Avoid conflict with logging's 'context'
            "timestamp": self.timestamp.isoformat()
        }

        # Client errors are expected traffic; only store failures are errors
        log = logger.error if self.http_status >= 500 else logger.warning

        if self.cause:
            log_data["cause"] = str(self.cause)
            log(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            log(f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(FitQuestError):
    """
    Raised when input fails validation

    Examples:
    - Manual target outside the metric's bounds
    - Malformed requirement DSL
    - Non-positive XP removal amount

    Example:
        raise ValidationError(
            message="Target must be between 3000 and 15000",
            field="target",
            value=20000,
            user_id="user-123"
        )
    """

    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Quest State Errors
# ==========================================

class QuestStateError(FitQuestError):
    """
    Raised when an operation conflicts with the current quest state

    Examples:
    - Activating a quest that is already active today
    - Resetting a quest that is not completed
    - Removing a core or completed quest
    - Activating a non-DAILY quest as a daily quest
    """

    http_status = 400

    def __init__(
        self,
        message: str,
        quest_id: Optional[str] = None,
        status: Optional[str] = None,
        **kwargs
    ):
        self.quest_id = quest_id
        self.status = status
        context = kwargs.pop("context", None) or {}
        context.update({"quest_id": quest_id, "status": status})
        super().__init__(
            message=message,
            user_message=message,
            context=context,
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(FitQuestError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed or was never initialized"""

    def __init__(self, message: str = "Database connection required", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your progress. Please try again.",
            context={"query": query},
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested database record does not exist"""

    http_status = 404

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(FitQuestError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> FitQuestError:
    """
    Wrap driver exceptions (psycopg, psycopg_pool) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate FitQuestError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="insert_quest_log",
                user_id="user-123",
                context={"template_id": "core-steps"}
            )
    """
    import psycopg
    from psycopg_pool import PoolTimeout

    if isinstance(error, FitQuestError):
        return error

    if isinstance(error, (psycopg.OperationalError, PoolTimeout)):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # Generic fallback
    return FitQuestError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
