"""
Unified configuration management for DevPulse.

This module provides a single, environment-aware configuration system that
consolidates all configuration sources into a clean, validated approach.
"""

import os
import secrets
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported environments."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def generate_secure_secret() -> str:
    """Generate a cryptographically secure secret key for development."""
    return secrets.token_urlsafe(32)


class LoggingConfig(BaseSettings):
    """Configuration for logging system."""

    level: str = Field(default="INFO", description="Logging level")
    json_output: bool = Field(default=True, description="Output logs in JSON format")

    model_config = SettingsConfigDict(env_prefix="LOG_")


class DatabaseConfig(BaseSettings):
    """Configuration for database connection."""

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    username: str = Field(default="postgres", description="Database username")
    password: str = Field(default="", description="Database password")
    database: str = Field(default="devpulse", description="Database name")
    url_override: Optional[str] = Field(
        default=None,
        alias="DB_URL",
        description="Full database URL, takes precedence over host/port settings",
    )
    generate_schemas: bool = Field(
        default=False, description="Create missing tables on startup"
    )

    model_config = SettingsConfigDict(env_prefix="DB_", populate_by_name=True)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate database password is not empty in production."""
        if not v and os.getenv("ENVIRONMENT", "development") == "production":
            raise ValueError("Database password is required in production")
        return v

    @property
    def url(self) -> str:
        """Get database connection URL."""
        if self.url_override:
            return self.url_override
        if self.password:
            return (
                f"postgres://{self.username}:{self.password}@"
                f"{self.host}:{self.port}/{self.database}"
            )
        return f"postgres://{self.username}@{self.host}:{self.port}/{self.database}"


class SecurityConfig(BaseSettings):
    """Configuration for security settings."""

    secret_key: str = Field(
        default_factory=lambda: (
            generate_secure_secret()
            if os.getenv("ENVIRONMENT", "development") != "production"
            else os.getenv("SECURITY_SECRET_KEY", "")
        ),
        description="Secret key for JWT tokens (required in production)",
    )
    algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_lifetime_seconds: int = Field(
        default=60 * 60 * 24 * 7, description="Session JWT lifetime in seconds"
    )
    cookie_name: str = Field(default="devpulse_session", description="Session cookie")
    cookie_secure: bool = Field(
        default=False, description="Only send the session cookie over HTTPS"
    )

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate secret key meets security requirements."""
        if not v:
            raise ValueError("Secret key is required")

        if len(v) < 32:
            raise ValueError("Secret key must be at least 32 characters long")

        weak_patterns = [
            "change-in-production",
            "password",
            "123456",
        ]

        if any(pattern in v.lower() for pattern in weak_patterns):
            raise ValueError("Secret key contains weak patterns and is not secure")

        return v


class APIConfig(BaseSettings):
    """Configuration for the API server."""

    host: str = Field(default="127.0.0.1", description="API server host")
    port: int = Field(default=8000, description="API server port")
    reload: bool = Field(default=True, description="Enable auto-reload in development")
    base_url: str = Field(
        default="http://localhost:8000", description="Public base URL of the API"
    )
    dashboard_url: str = Field(
        default="http://localhost:3000/dashboard",
        description="Where users land after signing in",
    )
    cors_origins: List[str] = Field(
        default_factory=list, description="Allowed CORS origins"
    )
    cors_credentials: bool = Field(default=True, description="Allow CORS credentials")
    cors_methods: List[str] = Field(
        default_factory=list, description="Allowed CORS methods"
    )
    rate_limit_requests: int = Field(
        default=120, description="Requests allowed per client per window"
    )
    rate_limit_window: int = Field(
        default=60, description="Rate limit window in seconds"
    )

    model_config = SettingsConfigDict(env_prefix="API_")

    def cors_origins_resolved(self, environment: str = "development") -> List[str]:
        """Get CORS origins based on environment."""
        if self.cors_origins:
            return self.cors_origins

        if environment == "development":
            return [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:8000",
                "http://127.0.0.1:8000",
            ]
        return []

    def cors_methods_resolved(self, environment: str = "development") -> List[str]:
        """Get CORS methods based on environment."""
        if self.cors_methods:
            return self.cors_methods

        if environment == "production":
            return ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
        return ["*"]


class RedisConfig(BaseSettings):
    """Configuration for Redis connection."""

    host: str = Field(default="127.0.0.1", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[str] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    socket_connect_timeout: float = Field(
        default=5.0, description="Redis connection timeout"
    )

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class GitHubConfig(BaseSettings):
    """Configuration for the GitHub OAuth app and REST API."""

    client_id: str = Field(default="", description="GitHub OAuth client id")
    client_secret: str = Field(default="", description="GitHub OAuth client secret")
    api_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )
    authorize_url: str = Field(
        default="https://github.com/login/oauth/authorize",
        description="OAuth authorization endpoint",
    )
    token_url: str = Field(
        default="https://github.com/login/oauth/access_token",
        description="OAuth token endpoint",
    )
    oauth_scope: str = Field(
        default="read:user user:email repo", description="Requested OAuth scopes"
    )
    request_timeout: float = Field(default=15.0, description="HTTP timeout")
    memory_cache_ttl: int = Field(
        default=5 * 60, description="In-process cache TTL in seconds"
    )
    redis_cache_ttl: int = Field(default=15 * 60, description="Redis cache TTL")

    model_config = SettingsConfigDict(env_prefix="GITHUB_")


class AIConfig(BaseSettings):
    """Configuration for the AI completion provider."""

    api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    model: str = Field(default="gpt-4o", description="Completion model")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=1500, description="Maximum tokens to generate")
    availability_cache_seconds: int = Field(
        default=60, description="How long an availability check is trusted"
    )

    model_config = SettingsConfigDict(env_prefix="OPENAI_")


class EncryptionConfig(BaseSettings):
    """Configuration for sensitive field encryption."""

    key: Optional[str] = Field(
        default=None, description="AES-256 key as 64 hexadecimal characters"
    )

    model_config = SettingsConfigDict(env_prefix="ENCRYPTION_")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate the key is 32 bytes of hex."""
        if v is None:
            return v
        try:
            raw = bytes.fromhex(v)
        except ValueError:
            raise ValueError("Encryption key must be hexadecimal")
        if len(raw) != 32:
            raise ValueError("Encryption key must be 32 bytes (64 hex characters)")
        return v


class FeatureFlags(BaseSettings):
    """Feature toggles read from ENABLE_* variables."""

    ai_features: bool = Field(default=False, description="Enable AI insights")
    background_jobs: bool = Field(default=False, description="Enable job processing")
    mock_mode: bool = Field(
        default=False, description="Serve GitHub data from the mock generator"
    )

    model_config = SettingsConfigDict(env_prefix="ENABLE_")


class DevPulseConfig(BaseSettings):
    """Main unified configuration class for DevPulse."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT, description="Current environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configurations
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    features: FeatureFlags = Field(default_factory=FeatureFlags)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Union[str, Environment]) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        if isinstance(v, str):
            try:
                return Environment(v.lower())
            except ValueError:
                raise ValueError(
                    f"Invalid environment: {v}. "
                    f"Must be one of: {[e.value for e in Environment]}"
                )
        raise ValueError(f"Invalid environment type: {type(v)}")

    @field_validator("debug")
    @classmethod
    def validate_debug(cls, v: bool, info: Any) -> bool:
        """Ensure debug is False in production."""
        if v and info.data.get("environment") == Environment.PRODUCTION:
            raise ValueError("Debug mode cannot be enabled in production")
        return v

    def model_post_init(self, __context: Any) -> None:
        """Post-initialization validation."""
        super().model_post_init(__context)
        if self.environment == Environment.PRODUCTION:
            self._validate_production_cors_config()
            if not self.encryption.key:
                raise ValueError(
                    "Production environment requires ENCRYPTION_KEY to be set."
                )

    @property
    def cors_origins_resolved(self) -> List[str]:
        """Get resolved CORS origins for this environment."""
        return self.api.cors_origins_resolved(self.environment.value)

    @property
    def cors_methods_resolved(self) -> List[str]:
        """Get resolved CORS methods for this environment."""
        return self.api.cors_methods_resolved(self.environment.value)

    def _validate_production_cors_config(self) -> None:
        """Validate production CORS configuration security."""
        cors_origins = self.api.cors_origins

        if not cors_origins:
            raise ValueError(
                "Production environment must specify allowed CORS origins. "
                "Set API_CORS_ORIGINS environment variable."
            )

        if "*" in cors_origins:
            raise ValueError(
                "Production environment cannot allow all CORS origins (*). "
                "Please specify allowed origins explicitly."
            )

        for origin in cors_origins:
            if not origin.startswith("https://"):
                raise ValueError(
                    f"Production CORS origin must use HTTPS: {origin}. "
                    "All production origins must be secure."
                )

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING


# Global configuration instance
_config: Optional[DevPulseConfig] = None


def get_config() -> DevPulseConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = DevPulseConfig()
    return _config


def set_config(config: DevPulseConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reload_config() -> DevPulseConfig:
    """Reload configuration from environment variables."""
    global _config
    _config = DevPulseConfig()
    return _config

