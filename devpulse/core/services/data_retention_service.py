"""Retention policies and the cleanup of rows that outlived them."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import AuditLog, BurnoutMetric, Commit, Issue, PullRequest
from .audit_service import AuditService
from .system_settings_service import SystemSettingsService

logger = get_logger("services.data_retention")

UserId = Union[UUID, str]

SETTING_KEY = "data_retention_policies"

# Entity type -> (model, timestamp field)
RETENTION_TARGETS: Dict[str, Any] = {
    "AuditLog": (AuditLog, "created_at"),
    "BurnoutMetric": (BurnoutMetric, "created_at"),
    "Commit": (Commit, "author_date"),
    "PullRequest": (PullRequest, "created_at"),
    "Issue": (Issue, "created_at"),
}


class RetentionPolicy(BaseModel):
    """How long rows of one entity type are kept."""

    entityType: str
    retentionPeriodDays: int = Field(gt=0)
    archiveBeforeDelete: bool = False


DEFAULT_POLICIES: List[RetentionPolicy] = [
    RetentionPolicy(entityType="AuditLog", retentionPeriodDays=365, archiveBeforeDelete=True),
    RetentionPolicy(entityType="BurnoutMetric", retentionPeriodDays=730, archiveBeforeDelete=True),
    RetentionPolicy(entityType="Commit", retentionPeriodDays=730),
    RetentionPolicy(entityType="PullRequest", retentionPeriodDays=730),
    RetentionPolicy(entityType="Issue", retentionPeriodDays=730),
]


class DataRetentionService:
    def __init__(
        self,
        audit_service: Optional[AuditService] = None,
        settings_service: Optional[SystemSettingsService] = None,
    ) -> None:
        self.audit = audit_service or AuditService()
        self.settings = settings_service or SystemSettingsService(self.audit)

    async def get_policies(self) -> List[RetentionPolicy]:
        stored = await self.settings.get(SETTING_KEY)
        if not stored:
            return list(DEFAULT_POLICIES)
        try:
            return [RetentionPolicy.model_validate(p) for p in stored]
        except ValidationError:
            logger.warning("Stored retention policies are invalid, using defaults")
            return list(DEFAULT_POLICIES)

    async def update_policies(
        self, policies: List[Dict[str, Any]], user_id: UserId
    ) -> List[RetentionPolicy]:
        try:
            parsed = [RetentionPolicy.model_validate(p) for p in policies]
        except ValidationError as e:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "Invalid retention policies", e.errors()
            ) from None
        unknown = [p.entityType for p in parsed if p.entityType not in RETENTION_TARGETS]
        if unknown:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, f"Unsupported entity types: {', '.join(unknown)}"
            )

        dumped = [p.model_dump() for p in parsed]
        await self.settings.set(
            SETTING_KEY,
            dumped,
            user_id=user_id,
            description="Data retention policies configuration",
        )
        await self.audit.log(
            user_id,
            "UPDATE_RETENTION_POLICIES",
            "SYSTEM_SETTING",
            SETTING_KEY,
            "Updated data retention policies",
            metadata={"policies": dumped},
        )
        return parsed

    async def apply_policies(
        self, user_id: UserId, entity_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Delete rows older than each policy's window."""
        policies = await self.get_policies()
        if entity_type:
            policies = [p for p in policies if p.entityType == entity_type]

        results = []
        for policy in policies:
            target = RETENTION_TARGETS.get(policy.entityType)
            if target is None:
                continue
            model, field = target
            cutoff = datetime.now(timezone.utc) - timedelta(
                days=policy.retentionPeriodDays
            )
            query = model.filter(**{f"{field}__lt": cutoff})

            if policy.archiveBeforeDelete:
                await self.audit.log(
                    user_id,
                    "ARCHIVE_EXPIRED_DATA",
                    policy.entityType,
                    "batch",
                    f"Archived expired {policy.entityType} data",
                    metadata={"cutoffDate": cutoff.isoformat()},
                )

            deleted = await query.delete()
            results.append({"entityType": policy.entityType, "deletedCount": deleted})
            await self.audit.log(
                user_id,
                "APPLY_RETENTION_POLICY",
                policy.entityType,
                "batch",
                f"Applied retention policy to {policy.entityType}",
                metadata={
                    "policy": policy.model_dump(),
                    "cutoffDate": cutoff.isoformat(),
                    "deletedCount": deleted,
                },
            )
            logger.info(
                "Retention policy applied",
                entity_type=policy.entityType,
                deleted=deleted,
            )
        return results
