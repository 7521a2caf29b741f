"""
Database package for DevPulse.

This package provides Tortoise ORM configuration and utilities.
"""

from .tortoise_config import (
    MODEL_MODULES,
    TORTOISE_ORM,
    close_tortoise,
    get_tortoise_config,
    init_tortoise,
)

__all__ = [
    "MODEL_MODULES",
    "TORTOISE_ORM",
    "get_tortoise_config",
    "init_tortoise",
    "close_tortoise",
]
