"""
Configuration package for DevPulse.

This package provides centralized configuration management for all
DevPulse components including API, database, Redis, GitHub, AI and logging
settings.
"""

from .settings import (
    AIConfig,
    APIConfig,
    DatabaseConfig,
    DevPulseConfig,
    EncryptionConfig,
    Environment,
    FeatureFlags,
    GitHubConfig,
    LoggingConfig,
    RedisConfig,
    SecurityConfig,
    get_config,
    reload_config,
    set_config,
)

__all__ = [
    # Main configuration classes
    "DevPulseConfig",
    "Environment",
    # Component configurations
    "AIConfig",
    "APIConfig",
    "DatabaseConfig",
    "EncryptionConfig",
    "FeatureFlags",
    "GitHubConfig",
    "LoggingConfig",
    "RedisConfig",
    "SecurityConfig",
    # Configuration functions
    "get_config",
    "reload_config",
    "set_config",
]
