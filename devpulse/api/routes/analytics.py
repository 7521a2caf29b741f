"""
Analytics endpoints: burnout, productivity, team and trend views.

Every view reads the mirrored GitHub activity and the stored daily metrics.
Work pattern detail is stripped for users who chose minimal data sharing.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core.analytics import (
    TimeRange,
    calculate_burnout_risk,
    calculate_productivity_metrics,
    get_productivity_trends,
    get_team_metrics,
    get_trend_data,
    get_work_pattern_analysis,
    process_and_save_metrics,
)
from ...core.auth.roles import Permissions
from ...core.auth.tortoise_models import User
from ...core.config import get_config
from ...core.dependencies import (
    get_data_access_service,
    get_jobs,
    require_permission,
)
from ...core.errors import ErrorCode, create_app_error
from ...core.jobs import JobManager, JobPriority, JobType
from ...core.logging import get_logger
from ...core.models.tortoise_models import BurnoutMetric
from ...core.services import DataAccessService
from ..models import created, success

router = APIRouter(prefix="/analytics", tags=["analytics"])
logger = get_logger("api.analytics")

DEFAULT_WINDOW_DAYS = 30


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def resolve_time_range(
    start: Optional[datetime], end: Optional[datetime], days: int = DEFAULT_WINDOW_DAYS
) -> TimeRange:
    """Default to the ``days`` ending now; reject inverted ranges."""
    end = _aware(end) if end else datetime.now(timezone.utc)
    start = _aware(start) if start else end - timedelta(days=days)
    if start >= end:
        raise create_app_error(
            ErrorCode.BAD_REQUEST, "startDate must be before endDate"
        )
    return TimeRange(start, end)


def serialize_metric(metric: BurnoutMetric) -> Dict[str, Any]:
    return {
        "id": str(metric.id),
        "userId": str(metric.user_id),
        "repositoryId": str(metric.repository_id),
        "date": metric.date.isoformat(),
        "commitsCount": metric.commits_count,
        "linesAdded": metric.lines_added,
        "linesDeleted": metric.lines_deleted,
        "prsOpened": metric.prs_opened,
        "prsReviewed": metric.prs_reviewed,
        "issuesCreated": metric.issues_created,
        "issuesResolved": metric.issues_resolved,
        "avgCommitTimeHour": metric.avg_commit_time_hour,
        "weekendCommits": metric.weekend_commits,
        "lateNightCommits": metric.late_night_commits,
        "avgPrReviewTimeHours": metric.avg_pr_review_time_hours,
        "avgCommitMessageLength": metric.avg_commit_message_length,
        "codeReviewComments": metric.code_review_comments,
        "burnoutRiskScore": metric.burnout_risk_score,
    }


@router.get("/burnout")
async def get_burnout_risk(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=365),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    user: User = Depends(require_permission(Permissions.VIEW_BURNOUT_PERSONAL)),
    access: DataAccessService = Depends(get_data_access_service),
) -> Dict[str, Any]:
    """
    Burnout risk assessment.

    Team leads may look at members of a team that shares the repository by
    passing ``userId``; everyone else sees only their own assessment.
    """
    if repository_id is None:
        raise create_app_error(ErrorCode.BAD_REQUEST, "Repository ID is required")

    target_id = user_id or user.id
    if not await access.can_access_burnout_data(user.id, target_id, repository_id):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Not allowed to view this user's burnout data"
        )

    assessment = await calculate_burnout_risk(target_id, repository_id, days)
    return success(assessment.to_dict())


@router.get("/productivity")
async def get_productivity(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
    access: DataAccessService = Depends(get_data_access_service),
) -> Dict[str, Any]:
    time_range = resolve_time_range(start_date, end_date)
    metrics = await calculate_productivity_metrics(user.id, time_range, repository_id)
    return success(await access.apply_privacy_filter(user.id, metrics))


@router.get("/personal")
async def get_personal_analytics(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    include_productivity: bool = Query(True, alias="includeProductivity"),
    include_work_patterns: bool = Query(True, alias="includeWorkPatterns"),
    include_burnout: bool = Query(True, alias="includeBurnout"),
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
    access: DataAccessService = Depends(get_data_access_service),
) -> Dict[str, Any]:
    """Productivity, work patterns, trend and burnout in one response."""
    time_range = resolve_time_range(start_date, end_date)
    data: Dict[str, Any] = {
        "userId": str(user.id),
        "timeRange": time_range.to_dict(),
    }
    if include_productivity:
        data["productivity"] = await access.apply_privacy_filter(
            user.id,
            await calculate_productivity_metrics(user.id, time_range, repository_id),
        )
        data["trends"] = await get_productivity_trends(
            user.id, time_range, repository_id
        )
    if include_work_patterns:
        data["workPatterns"] = await access.apply_privacy_filter(
            user.id,
            await get_work_pattern_analysis(user.id, time_range, repository_id),
        )
    if include_burnout:
        assessment = await calculate_burnout_risk(
            user.id, repository_id, time_range.days
        )
        data["burnout"] = assessment.to_dict()
    return success(data)


@router.get("/team")
async def get_team_analytics(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(30, ge=1, le=100, alias="pageSize"),
    user: User = Depends(require_permission(Permissions.VIEW_TEAM_METRICS)),
    access: DataAccessService = Depends(get_data_access_service),
) -> Dict[str, Any]:
    """Team velocity, collaboration and knowledge views with a paged velocity trend."""
    if repository_id is None:
        raise create_app_error(ErrorCode.BAD_REQUEST, "Repository ID is required")
    if not await access.can_access_team_metrics(user.id, repository_id):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Not allowed to view this repository's team metrics"
        )

    time_range = resolve_time_range(start_date, end_date)
    metrics = await get_team_metrics(repository_id, time_range)

    trend = metrics["velocity"].get("historicalTrend", [])
    offset = (page - 1) * page_size
    metrics["velocity"]["historicalTrend"] = trend[offset : offset + page_size]
    metrics["pagination"] = {
        "page": page,
        "pageSize": page_size,
        "totalItems": len(trend),
        "totalPages": math.ceil(len(trend) / page_size),
    }
    return success(metrics)


@router.get("/trends")
async def get_trends(
    metric: str = Query("commits"),
    interval: str = Query("day"),
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
) -> Dict[str, Any]:
    time_range = resolve_time_range(start_date, end_date)
    data = await get_trend_data(
        user.id,
        metric,
        time_range.start,
        time_range.end,
        interval=interval,
        repository_id=repository_id,
    )
    return success(
        {
            "metric": metric,
            "interval": interval,
            "timeRange": time_range.to_dict(),
            "data": data,
        }
    )


@router.get("/metrics")
async def get_metrics(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
) -> Dict[str, Any]:
    """Stored daily metric rows for the current user."""
    time_range = resolve_time_range(start_date, end_date)
    query = BurnoutMetric.filter(
        user_id=user.id,
        date__gte=time_range.start.date(),
        date__lte=time_range.end.date(),
    )
    if repository_id:
        query = query.filter(repository_id=repository_id)
    rows = await query.order_by("date")
    return success({"metrics": [serialize_metric(m) for m in rows], "count": len(rows)})


class MetricsCalculationRequest(BaseModel):
    repositoryId: Optional[UUID] = None
    days: int = Field(DEFAULT_WINDOW_DAYS, ge=1, le=365)


@router.post("/metrics")
async def calculate_metrics(
    request: MetricsCalculationRequest,
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
    jobs: JobManager = Depends(get_jobs),
) -> Any:
    """
    Recalculate daily metrics.

    Queued as a job when background jobs are enabled; otherwise computed
    inline for the given repository.
    """
    if get_config().features.background_jobs:
        job = await jobs.add_job(
            JobType.METRICS_CALCULATION,
            {
                "userId": str(user.id),
                "repositoryId": str(request.repositoryId) if request.repositoryId else None,
                "days": request.days,
            },
            priority=JobPriority.MEDIUM,
            user_id=user.id,
        )
        return created({"jobId": str(job.id), "type": job.type, "status": job.status})

    if request.repositoryId is None:
        raise create_app_error(
            ErrorCode.BAD_REQUEST,
            "repositoryId is required when background jobs are disabled",
        )
    processed = await process_and_save_metrics(
        user.id, request.repositoryId, request.days
    )
    logger.info(
        "Metrics calculated inline",
        user_id=str(user.id),
        repository_id=str(request.repositoryId),
        days=processed,
    )
    return success({"repositoryId": str(request.repositoryId), "daysProcessed": processed})
