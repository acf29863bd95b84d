"""
Stampede Guard Exceptions

Domain-specific exceptions for memoization, key resolution and locking.
Callers of a cached operation only ever see ConfigurationError,
ExpressionError or the operation's own exception; store and lock service
failures are degraded by the orchestrator.
"""

from typing import Optional, Any, Dict


class StampedeGuardException(Exception):
    """Base exception for cache-guard errors.

    Carries a stable error code and structured details so callers can log
    and map errors without parsing messages.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        if original_error:
            self.details["original_error"] = str(original_error)
            self.details["original_error_type"] = type(original_error).__name__
        super().__init__(self.message)
        if original_error:
            self.__cause__ = original_error


class ConfigurationError(StampedeGuardException):
    """Raised when a cacheable declaration is invalid.

    Detected before any cache or lock interaction and never retried.
    """

    def __init__(
        self,
        message: str,
        cache_name: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if cache_name:
            details["cache_name"] = cache_name
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code="CACHE_CONFIGURATION_ERROR",
            details=details,
            original_error=original_error,
        )


class ExpressionError(StampedeGuardException):
    """Raised when a key, condition or unless expression cannot be evaluated."""

    def __init__(
        self,
        message: str,
        expression: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if expression is not None:
            details["expression"] = expression

        super().__init__(
            message=message,
            error_code="CACHE_EXPRESSION_ERROR",
            details=details,
            original_error=original_error,
        )


class CacheUnavailableError(StampedeGuardException):
    """Raised by cache stores when the backing store cannot be reached."""

    def __init__(
        self,
        message: str = "Cache store unavailable",
        operation: Optional[str] = None,
        cache_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if cache_name:
            details["cache_name"] = cache_name

        super().__init__(
            message=message,
            error_code="CACHE_UNAVAILABLE",
            details=details,
            original_error=original_error,
        )


class LockServiceUnavailableError(StampedeGuardException):
    """Raised by mutex services when the lock backend cannot be reached."""

    def __init__(
        self,
        lock_name: str,
        message: str = "Lock service unavailable",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code="LOCK_SERVICE_UNAVAILABLE",
            details={"lock_name": lock_name},
            original_error=original_error,
        )


class CircuitBreakerOpenError(CacheUnavailableError):
    """Raised when the store circuit breaker is open."""

    def __init__(self, message: str = "Cache store circuit breaker is open"):
        super().__init__(message=message)
        self.error_code = "CACHE_CIRCUIT_BREAKER_OPEN"
        self.details["service_status"] = "unavailable"


class SerializationError(StampedeGuardException):
    """Raised when a value cannot be encoded for, or decoded from, the store."""

    def __init__(
        self,
        message: str,
        serializer: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if serializer:
            details["serializer"] = serializer

        super().__init__(
            message=message,
            error_code="CACHE_SERIALIZATION_ERROR",
            details=details,
            original_error=original_error,
        )
