"""
User data export.

Exports a user's profile, settings, repositories and activity as JSON or CSV.
PDF exports are queued as background jobs.
"""

import csv
import io
import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID

from ..auth.roles import TeamRole, UserRole
from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..jobs.manager import JobManager, JobPriority, JobType, get_job_manager
from ..logging import get_logger, security_logger, SecurityEventType
from ..models.tortoise_models import (
    BurnoutMetric,
    Issue,
    PullRequest,
    Repository,
    TeamMember,
    UserSettings,
)
from .audit_service import AuditService

logger = get_logger("services.data_export")

UserId = Union[UUID, str]

EXPORT_FORMATS = ("json", "csv", "pdf")

ALL_ENTITY_TYPES = [
    "User",
    "UserSettings",
    "BurnoutMetric",
    "PullRequest",
    "Issue",
    "Repository",
]

USER_FIELDS = (
    "id",
    "username",
    "name",
    "email",
    "avatar_url",
    "role",
    "created_at",
    "updated_at",
)
SETTINGS_FIELDS = (
    "theme",
    "email_notifications",
    "weekly_reports",
    "burnout_alerts",
    "data_privacy",
    "dashboard_layout",
    "selected_repositories",
    "updated_at",
)
REPOSITORY_FIELDS = (
    "id",
    "name",
    "full_name",
    "is_private",
    "description",
    "language",
    "created_at",
    "updated_at",
)
PULL_REQUEST_FIELDS = (
    "id",
    "number",
    "title",
    "state",
    "created_at",
    "updated_at",
    "closed_at",
    "merged_at",
    "additions",
    "deletions",
    "changed_files",
    "comments",
    "review_comments",
    "repository_id",
)
ISSUE_FIELDS = (
    "id",
    "number",
    "title",
    "state",
    "created_at",
    "updated_at",
    "closed_at",
    "comments",
    "labels",
    "repository_id",
)
PERSONAL_FIELDS = ("email", "name", "avatar_url")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{k: _jsonable(v) for k, v in row.items()} for row in rows]


def to_csv(data: Dict[str, List[Dict[str, Any]]]) -> str:
    """One CSV section per entity, headed by ``# <entity>``."""
    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entity_type, rows in data.items():
        if not rows:
            continue
        out.write(f"# {entity_type}\n")
        headers = list(rows[0].keys())
        writer.writerow(headers)
        for row in rows:
            writer.writerow(
                [
                    "" if row.get(h) is None
                    else json.dumps(row[h]) if isinstance(row[h], (dict, list))
                    else row[h]
                    for h in headers
                ]
            )
        out.write("\n")
    return out.getvalue()


class DataExportService:
    """Collects and formats a user's data."""

    def __init__(
        self,
        audit_service: Optional[AuditService] = None,
        job_manager: Optional[JobManager] = None,
    ) -> None:
        self.audit = audit_service or AuditService()
        self.jobs = job_manager or get_job_manager()

    async def can_export(self, user_id: UserId, requested_by: UserId) -> bool:
        """Self, administrators, and leads of a team the user belongs to."""
        if str(user_id) == str(requested_by):
            return True
        requester = await User.get_or_none(id=requested_by)
        if requester is None:
            return False
        if requester.role == UserRole.ADMINISTRATOR:
            return True
        return await TeamMember.exists(
            user_id=requested_by,
            role=TeamRole.LEAD,
            team__members__user_id=user_id,
        )

    async def collect(
        self,
        user_id: UserId,
        entity_types: List[str],
        date_range: Optional[Tuple[datetime, datetime]] = None,
        include_personal_data: bool = True,
        include_repository_data: bool = True,
    ) -> Dict[str, Any]:
        """Gather the requested entities as plain dicts."""
        data: Dict[str, Any] = {}

        if "User" in entity_types:
            rows = await User.filter(id=user_id).values(*USER_FIELDS)
            if rows:
                user = _rows(rows)[0]
                if not include_personal_data:
                    for field in PERSONAL_FIELDS:
                        user.pop(field, None)
                data["user"] = [user]

        if "UserSettings" in entity_types:
            rows = await UserSettings.filter(user_id=user_id).values(*SETTINGS_FIELDS)
            if rows:
                data["userSettings"] = _rows(rows)

        if "BurnoutMetric" in entity_types:
            query = BurnoutMetric.filter(user_id=user_id)
            if date_range:
                query = query.filter(
                    date__gte=date_range[0].date(), date__lte=date_range[1].date()
                )
            rows = await query.order_by("-date").values()
            if rows:
                data["burnoutMetrics"] = _rows(rows)

        if include_repository_data:
            if "Repository" in entity_types:
                rows = await Repository.filter(owner_id=user_id).values(
                    *REPOSITORY_FIELDS
                )
                if rows:
                    data["repositories"] = _rows(rows)

            for entity, model, fields, key in (
                ("PullRequest", PullRequest, PULL_REQUEST_FIELDS, "pullRequests"),
                ("Issue", Issue, ISSUE_FIELDS, "issues"),
            ):
                if entity not in entity_types:
                    continue
                query = model.filter(author_id=user_id)
                if date_range:
                    query = query.filter(
                        created_at__gte=date_range[0], created_at__lte=date_range[1]
                    )
                rows = await query.order_by("-created_at").values(*fields)
                if rows:
                    data[key] = _rows(rows)

        return data

    async def export_user_data(
        self,
        user_id: UserId,
        requested_by: UserId,
        entity_types: Optional[List[str]] = None,
        format: str = "json",
        date_range: Optional[Tuple[datetime, datetime]] = None,
        include_personal_data: bool = True,
        include_repository_data: bool = True,
    ) -> Dict[str, Any]:
        """
        Export a user's data.

        Returns:
            ``{format, filename, data}`` for json/csv, or
            ``{format, filename, jobId, status}`` for pdf
        """
        if format not in EXPORT_FORMATS:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "Format must be one of: json, csv, pdf"
            )
        if not await self.can_export(user_id, requested_by):
            raise create_app_error(
                ErrorCode.FORBIDDEN, "Permission denied for data export"
            )

        entity_types = entity_types or list(ALL_ENTITY_TYPES)
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        filename = f"devpulse-export-{user_id}-{timestamp}.{format}"

        result: Dict[str, Any] = {"format": format, "filename": filename}
        if format == "pdf":
            job = await self.jobs.add_job(
                JobType.DATA_EXPORT,
                {
                    "userId": str(user_id),
                    "entityTypes": entity_types,
                    "format": format,
                    "includePersonalData": include_personal_data,
                    "includeRepositoryData": include_repository_data,
                },
                priority=JobPriority.LOW,
                user_id=requested_by,
            )
            result.update({"jobId": str(job.id), "status": job.status})
        else:
            data = await self.collect(
                user_id,
                entity_types,
                date_range,
                include_personal_data,
                include_repository_data,
            )
            result["data"] = data if format == "json" else to_csv(data)

        await self.audit.log(
            requested_by,
            "EXPORT_USER_DATA",
            "USER",
            str(user_id),
            f"Exported user data in {format} format",
            metadata={
                "entityTypes": entity_types,
                "format": format,
                "dateRange": [d.isoformat() for d in date_range] if date_range else None,
                "includePersonalData": include_personal_data,
                "includeRepositoryData": include_repository_data,
            },
        )
        security_logger.log_security_event(
            SecurityEventType.DATA_EXPORT,
            user_id=str(requested_by),
            details={"subject": str(user_id), "format": format},
        )
        return result
