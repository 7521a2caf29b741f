"""
Application error types and retry mechanisms for DevPulse.

This module provides the single application error type carried through
services and routes, the closed set of machine-readable error codes, retry
delay calculation, and the error envelope used by API responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in API envelopes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"
    AI_PROCESSING_ERROR = "AI_PROCESSING_ERROR"
    GITHUB_API_ERROR = "GITHUB_API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


DEFAULT_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.AI_SERVICE_UNAVAILABLE: 503,
    ErrorCode.AI_PROCESSING_ERROR: 500,
    ErrorCode.GITHUB_API_ERROR: 502,
    ErrorCode.NETWORK_ERROR: 503,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
}


class AppError(Exception):
    """Application error with an HTTP status and a machine-readable code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or DEFAULT_STATUS[code]
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for the response envelope."""
        error: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error

    def __repr__(self) -> str:
        return f"AppError({self.code.value}, {self.message!r}, {self.status_code})"


def create_app_error(
    code: ErrorCode, message: str, details: Optional[Any] = None
) -> AppError:
    """Create an application error using the default status for its code."""
    return AppError(code, message, DEFAULT_STATUS[code], details)


def error_code_for_status(status_code: int) -> ErrorCode:
    """Map an HTTP status code to the closest error code."""
    mapping = {
        400: ErrorCode.BAD_REQUEST,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        405: ErrorCode.METHOD_NOT_ALLOWED,
        422: ErrorCode.BAD_REQUEST,
        429: ErrorCode.RATE_LIMITED,
        502: ErrorCode.GITHUB_API_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }
    return mapping.get(status_code, ErrorCode.INTERNAL_SERVER_ERROR)


class RetryStrategy(Enum):
    """Retry strategies for failed operations."""

    IMMEDIATE = "immediate"  # Retry immediately
    EXPONENTIAL_BACKOFF = "exponential_backoff"  # Wait 1s, 2s, 4s, 8s...
    LINEAR_BACKOFF = "linear_backoff"  # Wait 1s, 2s, 3s, 4s...
    CUSTOM = "custom"  # Custom retry schedule


class RetryHandler:
    """General-purpose retry delay calculation."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF,
        custom_delays: Optional[List[float]] = None,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.strategy = strategy
        self.custom_delays = custom_delays

    def calculate_retry_delay(self, retry_count: int) -> float:
        """Calculate delay before the given (zero-based) retry."""
        if self.strategy == RetryStrategy.IMMEDIATE:
            return 0.0
        elif self.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            return float(self.base_delay * (2**retry_count))
        elif self.strategy == RetryStrategy.LINEAR_BACKOFF:
            return float(self.base_delay * (retry_count + 1))
        if self.custom_delays:
            return float(
                self.custom_delays[min(retry_count, len(self.custom_delays) - 1)]
            )
        return float(self.base_delay)

    def can_retry(self, retry_count: int) -> bool:
        """Check whether another attempt is allowed."""
        return retry_count < self.max_retries


def create_error_response(
    code: ErrorCode,
    message: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """Create the error envelope returned by the API."""
    error: Dict[str, Any] = {"code": code.value, "message": message}
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
