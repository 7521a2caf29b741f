"""
Encrypted per-user key/value storage.

Values are encrypted before they reach the database and every read, write and
delete is recorded in the audit log under the ``SENSITIVE_DATA`` entity type.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Union
from uuid import UUID

from ..logging import get_logger
from ..models.tortoise_models import SensitiveData
from ..security.encryption import decrypt, encrypt
from .audit_service import AuditService

logger = get_logger("services.sensitive_data")

ENTITY_TYPE = "SENSITIVE_DATA"

UserId = Union[UUID, str]


class SensitiveDataService:
    """Store, read and delete encrypted values addressed by (type, key)."""

    def __init__(self, audit_service: Optional[AuditService] = None) -> None:
        self.audit = audit_service or AuditService()

    async def store(
        self,
        user_id: UserId,
        data_type: str,
        data_key: str,
        value: str,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Encrypt and upsert a value."""
        await SensitiveData.update_or_create(
            user_id=user_id,
            data_type=data_type,
            data_key=data_key,
            defaults={"encrypted_value": encrypt(value), "expires_at": expires_at},
        )
        await self.audit.log(
            user_id,
            "DATA_WRITE",
            ENTITY_TYPE,
            f"{user_id}:{data_type}:{data_key}",
            f"Updated sensitive data: {data_type}/{data_key}",
        )

    async def retrieve(
        self, user_id: UserId, data_type: str, data_key: str
    ) -> Optional[str]:
        """Return the decrypted value, or None when missing or expired."""
        row = await SensitiveData.get_or_none(
            user_id=user_id, data_type=data_type, data_key=data_key
        )
        if row is None:
            return None

        if row.expires_at is not None and row.expires_at <= datetime.now(timezone.utc):
            await row.delete()
            logger.info(
                "Expired sensitive data removed",
                user_id=str(user_id),
                data_type=data_type,
            )
            return None

        await self.audit.log(
            user_id,
            "DATA_READ",
            ENTITY_TYPE,
            f"{user_id}:{data_type}:{data_key}",
            f"Read sensitive data: {data_type}/{data_key}",
        )
        return decrypt(row.encrypted_value)

    async def delete(self, user_id: UserId, data_type: str, data_key: str) -> bool:
        """Delete one value; returns whether anything was removed."""
        deleted = await SensitiveData.filter(
            user_id=user_id, data_type=data_type, data_key=data_key
        ).delete()
        if deleted:
            await self.audit.log(
                user_id,
                "DATA_DELETE",
                ENTITY_TYPE,
                f"{user_id}:{data_type}:{data_key}",
                f"Deleted sensitive data: {data_type}/{data_key}",
            )
        return bool(deleted)

    async def get_all_by_type(self, user_id: UserId, data_type: str) -> Dict[str, str]:
        """Decrypt every unexpired value of ``data_type`` keyed by data key."""
        now = datetime.now(timezone.utc)
        rows = await SensitiveData.filter(user_id=user_id, data_type=data_type)
        result = {
            row.data_key: decrypt(row.encrypted_value)
            for row in rows
            if row.expires_at is None or row.expires_at > now
        }
        await self.audit.log(
            user_id,
            "DATA_READ_BULK",
            ENTITY_TYPE,
            f"{user_id}:{data_type}",
            f"Read all sensitive data of type: {data_type}",
        )
        return result

    async def list_keys(self, user_id: UserId, data_type: str) -> List[str]:
        """Keys of the unexpired values of ``data_type``; values stay encrypted."""
        now = datetime.now(timezone.utc)
        rows = await SensitiveData.filter(user_id=user_id, data_type=data_type)
        keys = sorted(
            row.data_key
            for row in rows
            if row.expires_at is None or row.expires_at > now
        )
        await self.audit.log(
            user_id,
            "DATA_READ_BULK",
            ENTITY_TYPE,
            f"{user_id}:{data_type}",
            f"Listed sensitive data keys of type: {data_type}",
        )
        return keys

    async def delete_all(self, user_id: UserId) -> int:
        """Delete every value belonging to the user."""
        deleted = await SensitiveData.filter(user_id=user_id).delete()
        await self.audit.log(
            user_id,
            "DATA_DELETE_ALL",
            ENTITY_TYPE,
            str(user_id),
            "Deleted all sensitive data for user",
        )
        return int(deleted)
