"""Tests for audit logging, sensitive data, system settings and app mode."""

from datetime import datetime, timedelta, timezone

import pytest

from devpulse.core.config import get_config
from devpulse.core.errors import AppError, ErrorCode
from devpulse.core.models.tortoise_models import (
    AppModeType,
    AuditLog,
    MockDataSet,
    SensitiveData,
    SystemSetting,
)
from devpulse.core.services.app_mode_service import AppModeService, serialize_app_mode
from devpulse.core.services.audit_service import AuditService
from devpulse.core.services.sensitive_data_service import SensitiveDataService
from devpulse.core.services.system_settings_service import SystemSettingsService


@pytest.mark.unit
class TestAuditService:
    """Test audit entries and their listing."""

    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, user, admin) -> None:
        """Test filters combine and newest entries come first."""
        audit = AuditService()
        for index in range(3):
            await audit.log(user.id, "DATA_READ", "SENSITIVE_DATA", f"k{index}", "read")
        await audit.log(admin.id, "USER_ROLE_UPDATE", "USER", str(user.id), "promoted")

        result = await audit.list_logs(page=1, limit=2, user_id=user.id)
        roles = await audit.list_logs(action="USER_ROLE_UPDATE")

        assert result["pagination"]["totalCount"] == 3
        assert result["pagination"]["totalPages"] == 2
        assert len(result["logs"]) == 2
        assert roles["logs"][0]["entityType"] == "USER"
        assert roles["logs"][0]["userId"] == str(admin.id)

    @pytest.mark.asyncio
    async def test_entries_without_user(self, db) -> None:
        """Test system actions are recorded without an actor."""
        entry = await AuditService().log(None, "SCHEDULED_CLEANUP", "SYSTEM", "retention", "ran")

        assert entry.user_id is None
        assert (await AuditService().list_logs())["logs"][0]["userId"] is None

    @pytest.mark.asyncio
    async def test_date_range(self, user) -> None:
        """Test entries outside the date range are excluded."""
        audit = AuditService()
        await audit.log(user.id, "DATA_READ", "SENSITIVE_DATA", "k", "read")
        tomorrow = datetime.now(timezone.utc) + timedelta(days=1)

        assert (await audit.list_logs(start_date=tomorrow))["logs"] == []
        assert len((await audit.list_logs(end_date=tomorrow))["logs"]) == 1


@pytest.mark.unit
class TestSensitiveDataService:
    """Test encrypted per-user storage."""

    @pytest.mark.asyncio
    async def test_values_are_encrypted_at_rest(self, user) -> None:
        """Test stored values are encrypted and read back decrypted."""
        service = SensitiveDataService()

        await service.store(user.id, "api_key", "openai", "sk-live-123")

        row = await SensitiveData.get(user_id=user.id, data_key="openai")
        assert row.encrypted_value != "sk-live-123"
        assert await service.retrieve(user.id, "api_key", "openai") == "sk-live-123"
        actions = await AuditLog.filter(entity_type="SENSITIVE_DATA").values_list(
            "action", flat=True
        )
        assert sorted(actions) == ["DATA_READ", "DATA_WRITE"]

    @pytest.mark.asyncio
    async def test_store_overwrites(self, user) -> None:
        """Test storing the same key again replaces the value."""
        service = SensitiveDataService()
        await service.store(user.id, "api_key", "openai", "old")
        await service.store(user.id, "api_key", "openai", "new")

        assert await service.retrieve(user.id, "api_key", "openai") == "new"
        assert await SensitiveData.filter(user_id=user.id).count() == 1

    @pytest.mark.asyncio
    async def test_expired_values_are_removed(self, user) -> None:
        """Test expired values read as missing and are deleted."""
        service = SensitiveDataService()
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        await service.store(user.id, "session", "mobile", "token", expires_at=past)

        assert await service.retrieve(user.id, "session", "mobile") is None
        assert not await SensitiveData.exists(user_id=user.id)

    @pytest.mark.asyncio
    async def test_bulk_reads_skip_expired(self, user) -> None:
        """Test bulk reads and key listing ignore expired values."""
        service = SensitiveDataService()
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        await service.store(user.id, "api_key", "openai", "a")
        await service.store(user.id, "api_key", "anthropic", "b")
        await service.store(user.id, "api_key", "stale", "c", expires_at=past)
        await service.store(user.id, "session", "mobile", "d")

        assert await service.get_all_by_type(user.id, "api_key") == {
            "openai": "a",
            "anthropic": "b",
        }
        assert await service.list_keys(user.id, "api_key") == ["anthropic", "openai"]

    @pytest.mark.asyncio
    async def test_delete(self, user) -> None:
        """Test single and bulk deletion."""
        service = SensitiveDataService()
        await service.store(user.id, "api_key", "openai", "a")
        await service.store(user.id, "session", "mobile", "b")

        assert await service.delete(user.id, "api_key", "openai") is True
        assert await service.delete(user.id, "api_key", "openai") is False
        assert await service.delete_all(user.id) == 1
        assert await AuditLog.exists(action="DATA_DELETE_ALL", user_id=user.id)


@pytest.mark.unit
class TestSystemSettingsService:
    """Test system-wide settings."""

    @pytest.mark.asyncio
    async def test_defaults_without_rows(self, db) -> None:
        """Test built-in defaults apply until a value is stored."""
        settings = SystemSettingsService()

        assert await settings.get("burnout_threshold") == 70
        assert await settings.get("unknown", "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_set_and_get(self, admin) -> None:
        """Test values are JSON encoded and audited."""
        settings = SystemSettingsService()

        await settings.set("burnout_threshold", 80, user_id=admin.id)
        await settings.set("burnout_threshold", 85, user_id=admin.id)

        assert await settings.get("burnout_threshold") == 85
        assert await SystemSetting.all().count() == 1
        entries = await AuditLog.filter(action="UPDATE_SYSTEM_SETTING")
        assert sorted(e.metadata["value"] for e in entries) == [80, 85]

    @pytest.mark.asyncio
    async def test_encrypted_values_are_masked(self, admin) -> None:
        """Test encrypted settings are readable but masked in listings."""
        settings = SystemSettingsService()

        await settings.set("smtp_password", "hunter2", user_id=admin.id, encrypted=True)

        row = await SystemSetting.get(key="smtp_password")
        assert "hunter2" not in row.value
        assert await settings.get("smtp_password") == "hunter2"
        assert (await settings.get_all())["smtp_password"] == "********"
        entry = await AuditLog.get(entity_id="smtp_password")
        assert entry.metadata is None


@pytest.mark.unit
class TestAppModeService:
    """Test the application data mode."""

    @pytest.mark.asyncio
    async def test_default_follows_feature_flag(self, db) -> None:
        """Test the first mode row follows the mock mode flag."""
        get_config().features.mock_mode = True

        assert await AppModeService().is_mock_mode() is True

    @pytest.mark.asyncio
    async def test_live_by_default(self, db) -> None:
        get_config().features.mock_mode = False
        service = AppModeService()

        assert await service.is_mock_mode() is False
        assert await service.get_mock_data_set() is None

    @pytest.mark.asyncio
    async def test_switch_to_mock_with_data_set(self, admin) -> None:
        """Test switching modes attaches the data set and is audited."""
        get_config().features.mock_mode = False
        data_set = await MockDataSet.create(name="Burnout demo", seed=7)
        service = AppModeService()

        mode = await service.set_mode(AppModeType.MOCK, data_set.id, admin.id)

        assert await service.is_mock_mode() is True
        assert (await service.get_mock_data_set()).id == data_set.id
        assert serialize_app_mode(mode)["mode"] == "MOCK"
        entry = await AuditLog.get(action="UPDATE_APP_MODE")
        assert entry.metadata["previousMode"] == "LIVE"

    @pytest.mark.asyncio
    async def test_live_mode_rejects_data_set(self, db) -> None:
        """Test a data set cannot be attached in live mode."""
        data_set = await MockDataSet.create(name="Demo")

        with pytest.raises(AppError) as exc_info:
            await AppModeService().set_mode(AppModeType.LIVE, data_set.id)

        assert exc_info.value.code == ErrorCode.BAD_REQUEST

    @pytest.mark.asyncio
    async def test_unknown_data_set(self, db) -> None:
        with pytest.raises(AppError) as exc_info:
            await AppModeService().set_mode(
                AppModeType.MOCK, "00000000-0000-0000-0000-000000000000"
            )

        assert exc_info.value.code == ErrorCode.NOT_FOUND
