"""System-wide key/value settings stored in the ``system_setting`` table."""

import json
from typing import Any, Dict, Optional, Union
from uuid import UUID

from ..logging import get_logger
from ..models.tortoise_models import SystemSetting
from ..security.encryption import decrypt, encrypt
from .audit_service import AuditService

logger = get_logger("services.system_settings")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "default_role": "DEVELOPER",
    "enable_burnout_alerts": True,
    "burnout_threshold": 70,
    "enable_mock_mode": False,
}


class SystemSettingsService:
    """Read and write JSON-encoded system settings."""

    def __init__(self, audit_service: Optional[AuditService] = None) -> None:
        self.audit = audit_service or AuditService()

    @staticmethod
    def _decode(setting: SystemSetting) -> Any:
        raw = decrypt(setting.value) if setting.is_encrypted else setting.value
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def get(self, key: str, default: Any = None) -> Any:
        setting = await SystemSetting.get_or_none(key=key)
        if setting is None:
            return DEFAULT_SETTINGS.get(key, default)
        return self._decode(setting)

    async def get_all(self) -> Dict[str, Any]:
        """Defaults overlaid with stored values; encrypted values are masked."""
        values = dict(DEFAULT_SETTINGS)
        for setting in await SystemSetting.all():
            values[setting.key] = (
                "********" if setting.is_encrypted else self._decode(setting)
            )
        return values

    async def set(
        self,
        key: str,
        value: Any,
        user_id: Optional[Union[UUID, str]] = None,
        description: Optional[str] = None,
        encrypted: bool = False,
    ) -> SystemSetting:
        raw = json.dumps(value)
        stored = encrypt(raw) if encrypted else raw
        defaults: Dict[str, Any] = {
            "value": stored,
            "is_encrypted": encrypted,
            "last_modified_by": str(user_id) if user_id else None,
        }
        if description is not None:
            defaults["description"] = description
        setting, created = await SystemSetting.update_or_create(
            key=key, defaults=defaults
        )
        await self.audit.log(
            user_id,
            "UPDATE_SYSTEM_SETTING",
            "SYSTEM_SETTING",
            key,
            f"System setting {key} {'created' if created else 'updated'}",
            metadata=None if encrypted else {"key": key, "value": value},
        )
        logger.info("System setting saved", key=key, created=created)
        return setting
