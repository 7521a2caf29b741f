"""Tests for structured logging and security events."""

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from devpulse.core.logging import (
    SecurityEventType,
    SecurityLogger,
    SecuritySeverity,
    _add_request_id,
    get_logger,
    log_performance,
    request_id_var,
)


@pytest.mark.unit
class TestLogging:
    """Test logging helpers."""

    def test_get_logger_returns_bound_logger(self) -> None:
        """Test loggers expose the usual level methods."""
        logger = get_logger("analytics.burnout")
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")

    def test_request_id_added_when_set(self) -> None:
        """Test the request id processor uses the context variable."""
        token = request_id_var.set("req-123")
        try:
            event = _add_request_id(None, "info", {"event": "x"})
        finally:
            request_id_var.reset(token)
        assert event["request_id"] == "req-123"

    def test_request_id_absent_outside_requests(self) -> None:
        """Test no request id is added outside a request."""
        assert "request_id" not in _add_request_id(None, "info", {"event": "x"})

    def test_log_performance_sync(self) -> None:
        """Test plain functions are timed and logged."""
        with capture_logs() as logs:

            @log_performance("double")
            def double(x: int) -> int:
                return x * 2

            assert double(4) == 8

        assert logs[0]["function"] == "double"
        assert logs[0]["event_type"] == "function_completion"

    @pytest.mark.asyncio
    async def test_log_performance_async_failure(self) -> None:
        """Test coroutine failures are logged and re-raised."""
        with capture_logs() as logs:

            @log_performance()
            async def explode() -> None:
                raise ValueError("nope")

            with pytest.raises(ValueError):
                await explode()

        assert logs[0]["function"] == "explode"
        assert logs[0]["error_type"] == "ValueError"
        assert logs[0]["log_level"] == "error"


@pytest.mark.unit
class TestSecurityLogger:
    """Test security event logging."""

    def test_event_logged_with_severity_level(self) -> None:
        """Test severity selects the log level."""
        with capture_logs() as logs:
            security = SecurityLogger()
            event_id = security.log_security_event(
                SecurityEventType.ROLE_CHANGED,
                user_id="u1",
                details={"role": "TEAM_LEAD"},
                severity=SecuritySeverity.HIGH,
            )

        assert logs[0]["event_id"] == event_id
        assert logs[0]["event_type"] == "role_changed"
        assert logs[0]["log_level"] == "error"
        assert logs[0]["details"] == {"role": "TEAM_LEAD"}

    def test_client_info_prefers_forwarded_for(self) -> None:
        """Test the first forwarded address is recorded."""
        request = MagicMock()
        request.headers = {
            "x-forwarded-for": "203.0.113.7, 10.0.0.1",
            "user-agent": "pytest",
        }
        with capture_logs() as logs:
            SecurityLogger().log_auth_failure("bad state", request=request)

        assert logs[0]["ip_address"] == "203.0.113.7"
        assert logs[0]["user_agent"] == "pytest"
        assert logs[0]["details"]["reason"] == "bad state"

    def test_access_denied(self) -> None:
        """Test access denials carry the resource."""
        with capture_logs() as logs:
            SecurityLogger().log_access_denied("u1", "team:42")

        assert logs[0]["event_type"] == "access_denied"
        assert logs[0]["details"] == {"resource": "team:42"}
        assert logs[0]["log_level"] == "warning"
