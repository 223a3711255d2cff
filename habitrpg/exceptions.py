"""
Standardized exception hierarchy for habitrpg
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class HabitRPGError(Exception):
    """
    Base exception for all habitrpg errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise HabitRPGError(
            message="Failed to save habit",
            user_id=42,
            operation="create_habit",
            context={"title": "Read"}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[int] = None,
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
        self.timestamp = datetime.now(timezone.utc)

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
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(HabitRPGError):
    """
    Raised when user input fails validation

    Examples:
    - Username with forbidden characters
    - Stats period outside 1-365 days
    - Hard delete without matching confirmation

    Example:
        raise ValidationError(
            message="Username must be between 3 and 50 characters",
            field="username",
            value="ab"
        )
    """

    log_level = logging.INFO

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
            user_message=message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Gamification Errors
# ==========================================

class LimitReachedError(HabitRPGError):
    """A ceiling (max XP, max active habits) would be exceeded"""

    log_level = logging.WARNING

    def __init__(self, message: str, limit: Optional[str] = None, **kwargs):
        self.limit = limit
        super().__init__(
            message=message,
            user_message=message,
            context={"limit": limit},
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(HabitRPGError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
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
        context = {"query": query, **(kwargs.pop("context", None) or {})}
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context=context,
            **kwargs
        )


class TransientError(DatabaseError):
    """Storage failure that is safe to retry (serialization failure, deadlock, lost connection)"""

    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            user_message="The server is busy. Please try again.",
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested database record does not exist or is not owned by the caller"""

    log_level = logging.INFO

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[Any] = None,
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
# Authentication
# ==========================================

class AuthenticationError(HabitRPGError):
    """Missing, malformed or expired credentials"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Authentication failed",
        user_message: str = "Invalid or missing user authentication",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message=user_message,
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(HabitRPGError):
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
    user_id: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None
) -> HabitRPGError:
    """
    Wrap psycopg exceptions into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate HabitRPGError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="complete_habit", user_id=42)
    """
    import psycopg
    from psycopg import errors as pg_errors

    if isinstance(error, (pg_errors.SerializationFailure, pg_errors.DeadlockDetected)):
        return TransientError(
            message=f"Transaction conflict: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.OperationalError):
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
            context=context,
            cause=error
        )

    # Generic fallback
    else:
        return HabitRPGError(
            message=f"{operation} failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
