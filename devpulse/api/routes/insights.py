"""AI insight endpoints. Each falls back to statistical rules when the model is unavailable."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...core.ai import InsightsService
from ...core.analytics import (
    calculate_burnout_risk,
    calculate_productivity_metrics,
    get_team_metrics,
)
from ...core.auth.roles import Permissions
from ...core.auth.tortoise_models import User
from ...core.dependencies import (
    get_data_access_service,
    get_insights_service,
    require_ai_features,
    require_permission,
)
from ...core.errors import ErrorCode, create_app_error
from ...core.logging import get_logger
from ...core.models.tortoise_models import Retrospective
from ...core.services import DataAccessService
from ..models import created, success
from .analytics import DEFAULT_WINDOW_DAYS, resolve_time_range

router = APIRouter(
    prefix="/insights", tags=["insights"], dependencies=[Depends(require_ai_features)]
)
logger = get_logger("api.insights")


def serialize_retrospective(retrospective: Retrospective) -> Dict[str, Any]:
    return {
        "id": str(retrospective.id),
        "repositoryId": str(retrospective.repository_id),
        "startDate": retrospective.start_date.isoformat(),
        "endDate": retrospective.end_date.isoformat(),
        "positives": retrospective.positives,
        "improvements": retrospective.improvements,
        "actionItems": retrospective.action_items,
        "teamHealth": {
            "score": retrospective.team_health_score,
            "observations": retrospective.observations,
        },
        "recommendations": retrospective.recommendations,
        "createdAt": retrospective.created_at.isoformat()
        if retrospective.created_at
        else None,
    }


async def _team_metrics_for(
    user: User,
    repository_id: Optional[UUID],
    access: DataAccessService,
    start: Optional[datetime],
    end: Optional[datetime],
) -> Dict[str, Any]:
    if repository_id is None:
        raise create_app_error(ErrorCode.BAD_REQUEST, "Repository ID is required")
    if not await access.can_access_team_metrics(user.id, repository_id):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Not allowed to view this repository's team metrics"
        )
    return await get_team_metrics(repository_id, resolve_time_range(start, end))


@router.get("/burnout")
async def get_burnout_insights(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=365),
    user: User = Depends(require_permission(Permissions.VIEW_BURNOUT_PERSONAL)),
    insights: InsightsService = Depends(get_insights_service),
) -> Dict[str, Any]:
    if repository_id is None:
        raise create_app_error(ErrorCode.BAD_REQUEST, "Repository ID is required")
    assessment = (await calculate_burnout_risk(user.id, repository_id, days)).to_dict()
    recommendations = await insights.generate_burnout_recommendations(assessment)
    return success({"burnoutRisk": assessment, "recommendations": recommendations})


@router.get("/productivity")
async def get_productivity_insights(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_permission(Permissions.VIEW_PERSONAL_METRICS)),
    insights: InsightsService = Depends(get_insights_service),
) -> Dict[str, Any]:
    time_range = resolve_time_range(start_date, end_date)
    metrics = await calculate_productivity_metrics(user.id, time_range, repository_id)
    return success(
        {
            "metrics": metrics,
            "insights": await insights.generate_productivity_insights(metrics),
        }
    )


@router.get("/team")
async def get_team_insights(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_permission(Permissions.VIEW_TEAM_METRICS)),
    access: DataAccessService = Depends(get_data_access_service),
    insights: InsightsService = Depends(get_insights_service),
) -> Dict[str, Any]:
    team = await _team_metrics_for(user, repository_id, access, start_date, end_date)
    return success(
        {"metrics": team, "insights": await insights.generate_team_insights(team)}
    )


class RetrospectiveRequest(BaseModel):
    repositoryId: UUID
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None


@router.post("/retrospective")
async def create_retrospective(
    request: RetrospectiveRequest,
    user: User = Depends(require_permission(Permissions.CREATE_RETROSPECTIVES)),
    access: DataAccessService = Depends(get_data_access_service),
    insights: InsightsService = Depends(get_insights_service),
) -> Any:
    """Generate and store a retrospective for the repository and period."""
    team = await _team_metrics_for(
        user, request.repositoryId, access, request.startDate, request.endDate
    )
    generated = await insights.generate_retrospective(team)
    health = generated.get("teamHealth", {})

    retrospective = await Retrospective.create(
        repository_id=request.repositoryId,
        start_date=datetime.fromisoformat(team["timeRange"]["start"]).date(),
        end_date=datetime.fromisoformat(team["timeRange"]["end"]).date(),
        positives=generated.get("positives", []),
        improvements=generated.get("improvements", []),
        action_items=generated.get("actionItems", []),
        observations=health.get("observations", []),
        recommendations=generated.get("recommendations", []),
        team_health_score=float(health.get("score", 0)),
    )
    logger.info(
        "Retrospective created",
        retrospective_id=str(retrospective.id),
        repository_id=str(request.repositoryId),
        user_id=str(user.id),
    )
    return created(serialize_retrospective(retrospective))


@router.get("/retrospective")
async def list_retrospectives(
    repository_id: Optional[UUID] = Query(None, alias="repositoryId"),
    retrospective_id: Optional[UUID] = Query(None, alias="id"),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_permission(Permissions.VIEW_TEAM_METRICS)),
    access: DataAccessService = Depends(get_data_access_service),
) -> Dict[str, Any]:
    """One retrospective by ``id``, or the latest ones for a repository."""
    if retrospective_id is not None:
        retrospective = await Retrospective.get_or_none(id=retrospective_id)
        if retrospective is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "Retrospective not found")
        if not await access.can_access_team_metrics(user.id, retrospective.repository_id):
            raise create_app_error(
                ErrorCode.FORBIDDEN, "Not allowed to view this retrospective"
            )
        return success(serialize_retrospective(retrospective))

    if repository_id is None:
        raise create_app_error(ErrorCode.BAD_REQUEST, "Repository ID is required")
    if not await access.can_access_team_metrics(user.id, repository_id):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Not allowed to view this repository's team metrics"
        )
    rows = (
        await Retrospective.filter(repository_id=repository_id)
        .order_by("-created_at")
        .limit(limit)
    )
    return success([serialize_retrospective(r) for r in rows])
