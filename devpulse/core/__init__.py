"""
Core module for DevPulse.

This module contains the fundamental components of DevPulse including
configuration management, logging setup, error types and resilience utilities.
"""

from .config import DevPulseConfig
from .errors import (
    AppError,
    ErrorCode,
    RetryHandler,
    RetryStrategy,
    create_app_error,
    create_error_response,
)
from .logging import get_logger, setup_logging

__all__ = [
    "DevPulseConfig",
    "setup_logging",
    "get_logger",
    "AppError",
    "ErrorCode",
    "RetryStrategy",
    "RetryHandler",
    "create_app_error",
    "create_error_response",
]
