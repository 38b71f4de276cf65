"""
Standardized exception hierarchy for SwingBuddy
Provides rich context, consistent logging, and localized user-facing messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class SwingBuddyError(Exception):
    """
    Base exception for all SwingBuddy errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - Translation key for the message shown to the user
    - Structured context
    - Automatic logging at a level matching the error's severity

    Example:
        raise SwingBuddyError(
            message="Failed to save context",
            user_id=123456,
            operation="save_context",
            context={"scenario": "onboarding"}
        )
    """

    # Logging level used when the error is created
    severity: int = logging.ERROR
    # Whether the caller may retry the operation
    recoverable: bool = False
    # Key in the translation table rendered to the user
    translation_key: str = "errors.generic"

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
            "error_context": self.context,  # Avoid conflict with logging's 'context'
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.severity,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause if self.severity >= logging.ERROR else None
            )
        else:
            logger.log(self.severity, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logs and admin reports"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "translation_key": self.translation_key,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(SwingBuddyError):
    """System configuration is invalid or missing. Fatal at startup."""

    severity = logging.CRITICAL

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The bot is not properly configured. Please contact an administrator.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# External Service Errors
# ==========================================

class ExternalServiceError(SwingBuddyError):
    """
    Base class for failures of collaborators we do not control
    (Redis, PostgreSQL, the CAS oracle, the Telegram API)
    """

    recoverable = True
    translation_key = "errors.try_again"

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.service = service
        self.status_code = status_code
        kwargs.setdefault(
            "user_message",
            "Something went wrong on our side. Please try again in a moment."
        )
        context = kwargs.pop("context", None) or {}
        context.update({"service": service, "status_code": status_code})
        super().__init__(message=message, context=context, **kwargs)


class TransientError(ExternalServiceError):
    """
    Transport failure, timeout or store unavailability.

    Never converted into a ban decision: anti-spam callers treat it as "unknown".
    """

    severity = logging.WARNING


class ProtocolError(ExternalServiceError):
    """Malformed response from an external service"""

    severity = logging.WARNING


class DatabaseError(TransientError):
    """Relational store failure"""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        self.query = query
        context = kwargs.pop("context", None) or {}
        context["query"] = query
        super().__init__(message=message, service="postgresql", context=context, **kwargs)


# ==========================================
# User Input & Dialog Errors
# ==========================================

class ValidationError(SwingBuddyError):
    """
    Raised when user input fails the validation rule of the current step

    The dialog does not advance; the user sees the localized template named
    by ``error_key`` (or ``message`` when there is no template).

    Example:
        raise ValidationError(
            message="Name should be 2-50 characters, letters and spaces only",
            field="name_input",
            value="A",
            error_key="onboarding.invalid_name"
        )
    """

    severity = logging.INFO
    recoverable = True
    translation_key = "errors.invalid_input"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        error_key: Optional[str] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        self.error_key = error_key
        super().__init__(
            message=message,
            user_message=message,
            context={"field": field, "value": value, "error_key": error_key},
            **kwargs
        )


class InvalidStateTransition(SwingBuddyError):
    """A transition not declared by the scenario, or a stale button press"""

    severity = logging.WARNING
    translation_key = "errors.generic"

    def __init__(
        self,
        message: Optional[str] = None,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        **kwargs
    ):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message=message or f"Invalid state transition: {from_state} -> {to_state}",
            context={"from": from_state, "to": to_state},
            **kwargs
        )


class ContextLimitError(SwingBuddyError):
    """Conversation context would exceed its size or expiry limits"""

    severity = logging.ERROR

    def __init__(self, message: str, limit: Optional[str] = None, **kwargs):
        self.limit = limit
        super().__init__(message=message, context={"limit": limit}, **kwargs)


# ==========================================
# Lookup Errors
# ==========================================

class RecordNotFoundError(SwingBuddyError):
    """Requested user, group or event does not exist"""

    severity = logging.INFO
    translation_key = "errors.not_found"

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
            user_message=f"{(record_type or 'record').capitalize()} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Authorization & Throttling
# ==========================================

class PermissionDeniedError(SwingBuddyError):
    """User lacks permission for requested operation"""

    severity = logging.WARNING
    translation_key = "errors.access_denied"

    def __init__(
        self,
        message: str = "Insufficient permissions",
        required: Optional[str] = None,
        **kwargs
    ):
        self.required = required
        super().__init__(
            message=message,
            user_message="You don't have permission to do that.",
            context={"required": required},
            **kwargs
        )


class RateLimitExceededError(SwingBuddyError):
    """Too many requests from one identifier within the window"""

    severity = logging.WARNING
    recoverable = True
    translation_key = "errors.rate_limited"

    def __init__(
        self,
        identifier: str,
        retry_after: Optional[int] = None,
        **kwargs
    ):
        self.identifier = identifier
        self.retry_after = retry_after
        super().__init__(
            message=f"Rate limit exceeded for {identifier}",
            user_message="You're going too fast. Please slow down.",
            context={"identifier": identifier, "retry_after": retry_after},
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
) -> SwingBuddyError:
    """
    Wrap external exceptions (psycopg, redis, httpx, telegram) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate SwingBuddyError subclass

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="create_user", user_id=123456)
    """
    # Import here to avoid circular dependencies
    import httpx
    import psycopg
    import redis.exceptions
    import telegram.error

    if isinstance(error, SwingBuddyError):
        return error

    # Database errors
    if isinstance(error, psycopg.Error):
        return DatabaseError(
            message=f"Database operation failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Redis errors
    if isinstance(error, redis.exceptions.RedisError):
        return TransientError(
            message=f"Redis operation failed: {str(error)}",
            service="redis",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # HTTP errors
    if isinstance(error, httpx.TimeoutException):
        return TransientError(
            message=f"API request timed out: {str(error)}",
            service="http",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, httpx.HTTPStatusError):
        return TransientError(
            message=f"API returned error: {error.response.status_code}",
            service="http",
            status_code=error.response.status_code,
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, httpx.HTTPError):
        return TransientError(
            message=f"API request failed: {str(error)}",
            service="http",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Telegram errors
    if isinstance(error, telegram.error.TelegramError):
        return TransientError(
            message=f"Telegram API call failed: {str(error)}",
            service="telegram",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return SwingBuddyError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
