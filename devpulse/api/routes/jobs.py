"""Background job endpoints."""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core.auth.roles import UserRole, role_at_least
from ...core.auth.tortoise_models import User
from ...core.dependencies import get_current_user, get_jobs, require_background_jobs
from ...core.errors import ErrorCode, create_app_error
from ...core.jobs import JobManager, JobPriority, JobStatus, JobType, serialize_job
from ...core.logging import get_logger
from ...core.models.tortoise_models import Job
from ..models import created, success

router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = get_logger("api.jobs")

# Data lifecycle jobs go through the user data endpoints.
SUBMITTABLE_TYPES = frozenset(
    {
        JobType.REPOSITORY_SYNC,
        JobType.INITIAL_SYNC,
        JobType.INCREMENTAL_SYNC,
        JobType.METRICS_CALCULATION,
        JobType.BURNOUT_ANALYSIS,
        JobType.TEAM_METRICS,
    }
)

MAX_USER_DELAY_SECONDS = 24 * 60 * 60


class JobRequest(BaseModel):
    type: JobType
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(int(JobPriority.MEDIUM), ge=1, le=4)
    delay: float = Field(0, ge=0)


def _is_admin(user: User) -> bool:
    return role_at_least(user.role, UserRole.ADMINISTRATOR)


async def _visible_job(job_id: UUID, user: User, jobs: JobManager) -> Job:
    job = await jobs.get_job(job_id)
    if job is None or (str(job.user_id) != str(user.id) and not _is_admin(user)):
        raise create_app_error(ErrorCode.NOT_FOUND, f"Job {job_id} not found")
    return job


@router.post("", dependencies=[Depends(require_background_jobs)])
async def submit_job(
    request: JobRequest,
    user: User = Depends(get_current_user),
    jobs: JobManager = Depends(get_jobs),
) -> Any:
    """Queue a job on behalf of the current user."""
    if request.type not in SUBMITTABLE_TYPES:
        raise create_app_error(
            ErrorCode.BAD_REQUEST, f"Jobs of type {request.type.value} cannot be submitted"
        )
    if request.delay > MAX_USER_DELAY_SECONDS and not _is_admin(user):
        raise create_app_error(
            ErrorCode.BAD_REQUEST,
            f"Delay cannot exceed {MAX_USER_DELAY_SECONDS} seconds",
        )
    data = dict(request.data)
    if not _is_admin(user) or "userId" not in data:
        data["userId"] = str(user.id)

    job = await jobs.add_job(
        request.type,
        data,
        priority=request.priority,
        delay=request.delay,
        user_id=user.id,
    )
    return created({"jobId": str(job.id), "type": job.type, "status": job.status})


@router.get("")
async def list_jobs(
    status: Optional[JobStatus] = Query(None),
    job_type: Optional[JobType] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    jobs: JobManager = Depends(get_jobs),
) -> Dict[str, Any]:
    """Jobs of the current user; administrators see everyone's."""
    rows = await jobs.list_jobs(
        status=status,
        user_id=None if _is_admin(user) else user.id,
        job_type=job_type,
        limit=limit,
    )
    return success({"jobs": [serialize_job(j) for j in rows], "count": len(rows)})


@router.get("/{job_id}")
async def get_job(
    job_id: UUID,
    user: User = Depends(get_current_user),
    jobs: JobManager = Depends(get_jobs),
) -> Dict[str, Any]:
    return success(serialize_job(await _visible_job(job_id, user, jobs)))


@router.delete("/{job_id}")
async def cancel_job(
    job_id: UUID,
    user: User = Depends(get_current_user),
    jobs: JobManager = Depends(get_jobs),
) -> Dict[str, Any]:
    """Cancel a job that has not started yet."""
    job = await _visible_job(job_id, user, jobs)
    if not await jobs.cancel_job(job.id):
        raise create_app_error(
            ErrorCode.BAD_REQUEST, f"Job {job_id} is {job.status} and cannot be cancelled"
        )
    return success({"jobId": str(job.id), "status": JobStatus.CANCELLED.value})
