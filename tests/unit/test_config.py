"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from devpulse.core.config import (
    APIConfig,
    DevPulseConfig,
    EncryptionConfig,
    Environment,
    FeatureFlags,
    SecurityConfig,
    get_config,
    reload_config,
    set_config,
)

STRONG_SECRET = "x9Vq2LmT7rWz4KpN8sYb3HdF6gJc1QeA"


@pytest.mark.unit
class TestSecurityConfig:
    """Test secret key validation."""

    def test_short_secret_rejected(self) -> None:
        """Test secrets under 32 characters are refused."""
        with pytest.raises(ValidationError):
            SecurityConfig(secret_key="too-short")

    def test_weak_secret_rejected(self) -> None:
        """Test known weak patterns are refused."""
        with pytest.raises(ValidationError):
            SecurityConfig(secret_key="password" + "a" * 40)

    def test_strong_secret_accepted(self) -> None:
        """Test a long random secret passes."""
        assert SecurityConfig(secret_key=STRONG_SECRET).secret_key == STRONG_SECRET


@pytest.mark.unit
class TestEncryptionConfig:
    """Test encryption key validation."""

    def test_key_must_be_hex(self) -> None:
        """Test non-hex keys are refused."""
        with pytest.raises(ValidationError):
            EncryptionConfig(key="g" * 64)

    def test_key_must_be_32_bytes(self) -> None:
        """Test short keys are refused."""
        with pytest.raises(ValidationError):
            EncryptionConfig(key="ab" * 16)

    def test_valid_key(self) -> None:
        """Test a 64 character hex key passes."""
        assert EncryptionConfig(key="0f" * 32).key == "0f" * 32


@pytest.mark.unit
class TestFeatureFlags:
    """Test ENABLE_* flags."""

    def test_flags_read_from_environment(self, monkeypatch) -> None:
        """Test feature flags follow the environment."""
        monkeypatch.setenv("ENABLE_AI_FEATURES", "true")
        monkeypatch.setenv("ENABLE_BACKGROUND_JOBS", "false")

        flags = FeatureFlags()

        assert flags.ai_features is True
        assert flags.background_jobs is False
        assert flags.mock_mode is False


@pytest.mark.unit
class TestDevPulseConfig:
    """Test the unified configuration."""

    def test_environment_parsed_from_string(self) -> None:
        """Test environment names are case-insensitive."""
        config = DevPulseConfig(environment="Testing")
        assert config.environment == Environment.TESTING
        assert config.is_testing()

    def test_development_cors_defaults(self) -> None:
        """Test local origins are allowed in development."""
        api = APIConfig()
        assert "http://localhost:3000" in api.cors_origins_resolved("development")
        assert api.cors_origins_resolved("production") == []
        assert api.cors_methods_resolved("development") == ["*"]

    def test_production_requires_encryption_key(self) -> None:
        """Test production refuses to start without ENCRYPTION_KEY."""
        with pytest.raises(ValueError):
            DevPulseConfig(
                environment="production",
                security=SecurityConfig(secret_key=STRONG_SECRET),
                api=APIConfig(cors_origins=["https://devpulse.example.com"]),
                encryption=EncryptionConfig(key=None),
            )

    def test_production_rejects_wildcard_cors(self) -> None:
        """Test production refuses wildcard origins."""
        with pytest.raises(ValueError):
            DevPulseConfig(
                environment="production",
                security=SecurityConfig(secret_key=STRONG_SECRET),
                api=APIConfig(cors_origins=["*"]),
                encryption=EncryptionConfig(key="0f" * 32),
            )

    def test_production_rejects_insecure_origins(self) -> None:
        """Test production requires https origins."""
        with pytest.raises(ValueError):
            DevPulseConfig(
                environment="production",
                security=SecurityConfig(secret_key=STRONG_SECRET),
                api=APIConfig(cors_origins=["http://devpulse.example.com"]),
                encryption=EncryptionConfig(key="0f" * 32),
            )

    def test_valid_production_config(self) -> None:
        """Test a complete production configuration loads."""
        config = DevPulseConfig(
            environment="production",
            security=SecurityConfig(secret_key=STRONG_SECRET),
            api=APIConfig(cors_origins=["https://devpulse.example.com"]),
            encryption=EncryptionConfig(key="0f" * 32),
        )
        assert config.is_production()
        assert config.cors_origins_resolved == ["https://devpulse.example.com"]

    def test_set_and_reload_config(self) -> None:
        """Test the global configuration can be replaced and reloaded."""
        original = get_config()
        try:
            replacement = DevPulseConfig(environment="testing")
            set_config(replacement)
            assert get_config() is replacement

            reloaded = reload_config()
            assert get_config() is reloaded
            assert reloaded is not replacement
        finally:
            set_config(original)
