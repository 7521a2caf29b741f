"""
User data deletion.

Hard deletion removes a user's rows in one transaction. Soft deletion
anonymises the account, clears its tokens and deactivates it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from tortoise.transactions import in_transaction

from ..auth.roles import DataPrivacy, UserRole
from ..auth.tortoise_models import User
from ..errors import AppError, ErrorCode, create_app_error
from ..jobs.manager import JobManager, JobPriority, JobType, get_job_manager
from ..logging import SecurityEventType, SecuritySeverity, get_logger, security_logger
from ..models.tortoise_models import (
    AuditLog,
    BurnoutMetric,
    Commit,
    Issue,
    Job,
    PullRequest,
    PullRequestReview,
    Repository,
    SensitiveData,
    TeamMember,
    UserSettings,
)
from .audit_service import AuditService
from .data_export_service import ALL_ENTITY_TYPES, DataExportService

logger = get_logger("services.data_deletion")

UserId = Union[UUID, str]

DELETE_TYPES = ("soft", "hard")


class DataDeletionService:
    """Permanent or anonymising removal of a user's data."""

    def __init__(
        self,
        audit_service: Optional[AuditService] = None,
        export_service: Optional[DataExportService] = None,
        job_manager: Optional[JobManager] = None,
    ) -> None:
        self.audit = audit_service or AuditService()
        self.jobs = job_manager or get_job_manager()
        self.exporter = export_service or DataExportService(self.audit, self.jobs)

    async def can_delete(self, user_id: UserId, requested_by: UserId) -> bool:
        """Users may delete their own data; administrators anyone's."""
        if str(user_id) == str(requested_by):
            return True
        requester = await User.get_or_none(id=requested_by)
        return requester is not None and requester.role == UserRole.ADMINISTRATOR

    async def _hard_delete(
        self, user_id: UserId, entity_types: Optional[List[str]]
    ) -> None:
        async with in_transaction():
            if entity_types:
                by_type = {
                    "BurnoutMetric": BurnoutMetric.filter(user_id=user_id),
                    "PullRequest": PullRequest.filter(author_id=user_id),
                    "Issue": Issue.filter(author_id=user_id),
                    "Commit": Commit.filter(author_id=user_id),
                    "UserSettings": UserSettings.filter(user_id=user_id),
                    "Repository": Repository.filter(owner_id=user_id),
                }
                for entity, query in by_type.items():
                    if entity in entity_types:
                        await query.delete()
                if "User" in entity_types:
                    await User.filter(id=user_id).delete()
                return

            await BurnoutMetric.filter(user_id=user_id).delete()
            await SensitiveData.filter(user_id=user_id).delete()
            await UserSettings.filter(user_id=user_id).delete()
            await TeamMember.filter(user_id=user_id).delete()
            await PullRequestReview.filter(reviewer_user_id=user_id).delete()
            await PullRequest.filter(author_id=user_id).delete()
            await Issue.filter(author_id=user_id).delete()
            await Commit.filter(author_id=user_id).delete()
            await Repository.filter(owner_id=user_id).delete()
            await AuditLog.filter(user_id=user_id).delete()
            await User.filter(id=user_id).delete()

    async def _soft_delete(
        self, user_id: UserId, entity_types: Optional[List[str]]
    ) -> None:
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        async with in_transaction():
            await User.filter(id=user_id).update(
                username=f"deleted-user-{stamp}",
                name="Deleted User",
                email=f"deleted-user-{stamp}@example.com",
                avatar_url=None,
                access_token="",
                refresh_token=None,
                is_active=False,
            )
            await SensitiveData.filter(user_id=user_id).delete()
            if not entity_types or "UserSettings" in entity_types:
                await UserSettings.filter(user_id=user_id).update(
                    email_notifications=False,
                    weekly_reports=False,
                    burnout_alerts=False,
                    data_privacy=DataPrivacy.MINIMAL,
                )

    async def delete_user_data(
        self,
        user_id: UserId,
        requested_by: UserId,
        delete_type: str = "soft",
        reason: Optional[str] = None,
        export_before_delete: bool = True,
        entity_types: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Delete or anonymise a user's data.

        Returns:
            ``{message, exportData}``; exportData is None when not requested
            or when the export failed

        Raises:
            AppError: FORBIDDEN without permission, BAD_REQUEST for an unknown
                delete type, INTERNAL_SERVER_ERROR when deletion fails
        """
        if delete_type not in DELETE_TYPES:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "deleteType must be 'soft' or 'hard'"
            )
        if not await self.can_delete(user_id, requested_by):
            raise create_app_error(
                ErrorCode.FORBIDDEN, "Permission denied for data deletion"
            )

        export_data = None
        if export_before_delete:
            try:
                exported = await self.exporter.export_user_data(
                    user_id,
                    requested_by,
                    entity_types=entity_types or list(ALL_ENTITY_TYPES),
                    format="json",
                )
                export_data = exported["data"]
            except AppError as e:
                logger.warning(
                    "Export before deletion failed",
                    user_id=str(user_id),
                    error=e.message,
                )

        try:
            if delete_type == "hard":
                await self._hard_delete(user_id, entity_types)
            else:
                await self._soft_delete(user_id, entity_types)
        except Exception as e:
            logger.error(
                "User data deletion failed",
                user_id=str(user_id),
                delete_type=delete_type,
                error=str(e),
            )
            await self.audit.log(
                requested_by,
                "DELETE_USER_DATA_FAILED",
                "USER",
                str(user_id),
                "Failed to delete user data",
                metadata={"reason": reason, "deleteType": delete_type, "error": str(e)},
            )
            raise create_app_error(
                ErrorCode.INTERNAL_SERVER_ERROR, "Failed to delete user data"
            ) from e

        # A hard-deleted requester no longer exists to own the audit row
        actor: Optional[UserId] = requested_by
        if delete_type == "hard" and str(user_id) == str(requested_by):
            actor = None
        await self.audit.log(
            actor,
            f"{delete_type.upper()}_DELETE_USER_DATA",
            "USER",
            str(user_id),
            "Permanently deleted user data"
            if delete_type == "hard"
            else "Soft deleted user data",
            metadata={
                "reason": reason,
                "entityTypes": entity_types,
                "exportBeforeDelete": export_before_delete,
            },
        )
        security_logger.log_security_event(
            SecurityEventType.DATA_DELETION,
            user_id=str(requested_by),
            details={"subject": str(user_id), "deleteType": delete_type},
            severity=SecuritySeverity.HIGH,
        )
        return {
            "message": "User data permanently deleted successfully"
            if delete_type == "hard"
            else "User data soft deleted successfully",
            "exportData": export_data,
        }

    async def schedule_deletion(
        self,
        user_id: UserId,
        requested_by: UserId,
        scheduled_date: datetime,
        delete_type: str = "soft",
        reason: Optional[str] = None,
        export_before_delete: bool = True,
        entity_types: Optional[List[str]] = None,
    ) -> Job:
        """Queue a deletion job that becomes due on ``scheduled_date``."""
        if scheduled_date.tzinfo is None:
            scheduled_date = scheduled_date.replace(tzinfo=timezone.utc)
        if scheduled_date <= datetime.now(timezone.utc):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "Scheduled date must be in the future"
            )
        if delete_type not in DELETE_TYPES:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "deleteType must be 'soft' or 'hard'"
            )
        if not await self.can_delete(user_id, requested_by):
            raise create_app_error(
                ErrorCode.FORBIDDEN, "Permission denied for scheduling data deletion"
            )

        delay = (scheduled_date - datetime.now(timezone.utc)).total_seconds()
        job = await self.jobs.add_job(
            JobType.DATA_DELETION,
            {
                "userId": str(user_id),
                "deleteType": delete_type,
                "reason": reason,
                "exportBeforeDelete": export_before_delete,
                "entityTypes": entity_types,
            },
            priority=JobPriority.HIGH,
            delay=delay,
            attempts=1,
            user_id=requested_by,
        )
        await self.audit.log(
            requested_by,
            "SCHEDULE_DATA_DELETION",
            "USER",
            str(user_id),
            f"Scheduled data deletion for {scheduled_date.isoformat()}",
            metadata={"scheduledDate": scheduled_date.isoformat(), "jobId": str(job.id)},
        )
        return job
