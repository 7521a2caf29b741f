"""
Logging configuration for DevPulse using structlog.

This module provides structured logging configuration for development consoles
and JSON log shipping in production, plus a dedicated security event logger.
"""

import asyncio
import contextvars
import functools
import logging
import socket
import sys
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog

from .config import get_config

# Set per request by the API middleware
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def _add_request_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add the current request ID for request tracing."""
    request_id = request_id_var.get()
    if request_id is not None:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _add_service_metadata(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add service metadata for log filtering."""
    config = get_config()

    event_dict.update(
        {
            "service_name": "devpulse",
            "service_version": "0.1.0",
            "environment": config.environment.value,
            "hostname": _get_hostname(),
        }
    )

    return event_dict


@functools.lru_cache(maxsize=1)
def _get_hostname() -> str:
    """Get hostname for logging."""
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


def setup_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
) -> None:
    """
    Set up structured logging for DevPulse.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON logs; defaults to LOG_JSON_OUTPUT
    """
    config = get_config()

    log_level = level or config.logging.level
    if json_output is None:
        json_output = config.logging.json_output

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_request_id,
        _add_service_metadata,
    ]

    if json_output or config.is_production():
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    logger = structlog.get_logger(__name__)
    logger.debug("Logging initialized", level=log_level, json_output=json_output)


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, dotted by area (e.g. "analytics.burnout")

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


def _log_timing(
    logger: Any, name: str, start_time: float, error: Optional[Exception] = None
) -> None:
    elapsed = time.perf_counter() - start_time
    if error is None:
        logger.info(
            "Function completed",
            function=name,
            execution_time=elapsed,
            event_type="function_completion",
        )
    else:
        logger.error(
            "Function failed",
            function=name,
            execution_time=elapsed,
            error_type=type(error).__name__,
            error_message=str(error),
            event_type="function_error",
        )


def log_performance(func_name: Optional[str] = None) -> Callable:
    """
    Log function performance with structured data.

    Works for both coroutines and plain functions.

    Args:
        func_name: Optional custom name for the function
    """

    def decorator(func: Callable) -> Callable:
        name = func_name or func.__name__
        logger = structlog.get_logger("performance")

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _log_timing(logger, name, start_time, e)
                    raise
                _log_timing(logger, name, start_time)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_timing(logger, name, start_time, e)
                raise
            _log_timing(logger, name, start_time)
            return result

        return wrapper

    return decorator


# Security Logging Components


class SecurityEventType(Enum):
    """Types of security events to log."""

    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    LOGOUT = "logout"
    ACCESS_DENIED = "access_denied"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    ROLE_CHANGED = "role_changed"
    SENSITIVE_DATA_ACCESS = "sensitive_data_access"
    DATA_EXPORT = "data_export"
    DATA_DELETION = "data_deletion"
    CONFIGURATION_CHANGE = "configuration_change"


class SecuritySeverity(Enum):
    """Security event severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityLogger:
    """Specialized logger for security events with structured data."""

    def __init__(self) -> None:
        """Initialize security logger."""
        self.logger = structlog.get_logger("security")

    def _get_client_info(self, request: Optional[Any] = None) -> Dict[str, Any]:
        """Extract client information from request."""
        if not request:
            return {}

        client_info = {}

        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_info["ip_address"] = forwarded_for.split(",")[0].strip()
        elif getattr(request, "client", None):
            client_info["ip_address"] = request.client.host
        else:
            client_info["ip_address"] = "unknown"

        client_info["user_agent"] = request.headers.get("user-agent", "unknown")
        return client_info

    def log_security_event(
        self,
        event_type: SecurityEventType,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: SecuritySeverity = SecuritySeverity.MEDIUM,
        request: Optional[Any] = None,
    ) -> str:
        """
        Log a security event with structured data.

        Returns:
            str: Event ID for tracking
        """
        event_id = str(uuid.uuid4())

        log_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": severity.value,
            "user_id": user_id,
            "details": details or {},
            **self._get_client_info(request),
        }

        if severity == SecuritySeverity.CRITICAL:
            self.logger.critical("Security event", **log_data)
        elif severity == SecuritySeverity.HIGH:
            self.logger.error("Security event", **log_data)
        elif severity == SecuritySeverity.MEDIUM:
            self.logger.warning("Security event", **log_data)
        else:
            self.logger.info("Security event", **log_data)

        return event_id

    def log_auth_success(
        self, user_id: str, request: Optional[Any] = None, **details: Any
    ) -> str:
        """Log successful authentication."""
        return self.log_security_event(
            SecurityEventType.AUTH_SUCCESS,
            user_id=user_id,
            request=request,
            details=details,
            severity=SecuritySeverity.LOW,
        )

    def log_auth_failure(
        self, reason: str, request: Optional[Any] = None, **details: Any
    ) -> str:
        """Log failed authentication attempt."""
        return self.log_security_event(
            SecurityEventType.AUTH_FAILURE,
            request=request,
            details={"reason": reason, **details},
            severity=SecuritySeverity.MEDIUM,
        )

    def log_access_denied(
        self,
        user_id: Optional[str],
        resource: str,
        request: Optional[Any] = None,
        **details: Any,
    ) -> str:
        """Log an authorization failure."""
        return self.log_security_event(
            SecurityEventType.ACCESS_DENIED,
            user_id=user_id,
            request=request,
            details={"resource": resource, **details},
            severity=SecuritySeverity.MEDIUM,
        )

    def log_rate_limit_exceeded(
        self, endpoint: str, request: Optional[Any] = None
    ) -> str:
        """Log rate limit violations."""
        return self.log_security_event(
            SecurityEventType.RATE_LIMIT_EXCEEDED,
            request=request,
            details={"endpoint": endpoint},
            severity=SecuritySeverity.MEDIUM,
        )


# Global security logger instance
security_logger = SecurityLogger()
