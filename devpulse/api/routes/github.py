"""
GitHub repository endpoints.

Lists the user's GitHub repositories, stores which ones to track and starts
syncs. Syncs are queued as jobs when background jobs are enabled and run
inline otherwise.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core.auth.tortoise_models import User
from ...core.config import get_config
from ...core.dependencies import (
    get_current_user,
    get_jobs,
    get_user_service,
)
from ...core.github import get_github_client
from ...core.jobs import JobManager, JobPriority, JobType
from ...core.jobs.processors import INITIAL_SYNC_DAYS, sync_repository
from ...core.logging import get_logger
from ...core.models.tortoise_models import Repository
from ...core.services import UserService
from ..models import created, success

router = APIRouter(prefix="/github", tags=["github"])
logger = get_logger("api.github")

SORT_FIELDS = {
    "updated": "updated_at",
    "created": "created_at",
    "pushed": "pushed_at",
    "name": "name",
    "stars": "stargazers_count",
}


def summarize_repository(data: Dict[str, Any], selected: List[str]) -> Dict[str, Any]:
    return {
        "id": data["id"],
        "name": data["name"],
        "fullName": data["full_name"],
        "description": data.get("description"),
        "isPrivate": data.get("private", False),
        "language": data.get("language"),
        "stars": data.get("stargazers_count", 0),
        "updatedAt": data.get("updated_at"),
        "selected": data["full_name"] in selected,
    }


@router.get("/repositories")
async def list_repositories(
    search: str = Query(""),
    language: str = Query(""),
    sort: str = Query("updated"),
    order: Literal["asc", "desc"] = Query("desc"),
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """The user's GitHub repositories, filtered and sorted, with selection flags."""
    client = await get_github_client(user)
    try:
        repositories = await client.get_user_repositories()
    finally:
        await client.close()

    if search:
        needle = search.lower()
        repositories = [
            r
            for r in repositories
            if needle in r["full_name"].lower()
            or needle in (r.get("description") or "").lower()
        ]
    if language:
        repositories = [
            r for r in repositories if (r.get("language") or "").lower() == language.lower()
        ]

    key = SORT_FIELDS.get(sort, "updated_at")
    repositories = sorted(
        repositories,
        key=lambda r: (r.get(key) is not None, r.get(key) or ""),
        reverse=order == "desc",
    )

    settings = await users.get_or_create_settings(user.id)
    selected = list(settings.selected_repositories or [])
    return success(
        {
            "repositories": [summarize_repository(r, selected) for r in repositories],
            "selected": selected,
            "total": len(repositories),
        }
    )


class RepositorySelection(BaseModel):
    repositories: List[str] = Field(default_factory=list)


@router.post("/repositories/selection")
async def select_repositories(
    selection: RepositorySelection,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    settings = await users.set_selected_repositories(user.id, selection.repositories)
    return success({"selectedRepositories": settings.selected_repositories})


class SyncRequest(BaseModel):
    syncType: Literal["initial", "incremental"] = "incremental"
    repositoryIds: List[UUID] = Field(default_factory=list)
    forceFull: bool = False


async def _sync_inline(user: User, request: SyncRequest) -> List[Dict[str, Any]]:
    if request.repositoryIds:
        names = await Repository.filter(
            id__in=request.repositoryIds, owner_id=user.id
        ).values_list("full_name", flat=True)
    else:
        settings = await UserService().get_or_create_settings(user.id)
        names = list(settings.selected_repositories or [])

    last_synced = {
        r.full_name: r.last_synced_at
        for r in await Repository.filter(full_name__in=list(names))
    }
    results = []
    for full_name in names:
        since: Optional[datetime] = last_synced.get(full_name)
        full = request.syncType == "initial" or request.forceFull or since is None
        if full:
            since = datetime.now(timezone.utc) - timedelta(days=INITIAL_SYNC_DAYS)
        results.append(
            await sync_repository(
                user, full_name, "full" if full else "incremental", since
            )
        )
    return results


@router.post("/repositories/sync")
async def sync_repositories(
    request: SyncRequest,
    user: User = Depends(get_current_user),
    jobs: JobManager = Depends(get_jobs),
) -> Any:
    """Start an initial or incremental sync of the selected repositories."""
    if not get_config().features.background_jobs:
        results = await _sync_inline(user, request)
        logger.info("Inline sync finished", user_id=str(user.id), repositories=len(results))
        return success({"status": "completed", "results": results})

    job_type = (
        JobType.INITIAL_SYNC if request.syncType == "initial" else JobType.INCREMENTAL_SYNC
    )
    job = await jobs.add_job(
        job_type,
        {
            "userId": str(user.id),
            "repositoryIds": [str(r) for r in request.repositoryIds],
            "forceFull": request.forceFull,
        },
        priority=JobPriority.HIGH,
        user_id=user.id,
    )
    return created({"jobId": str(job.id), "type": job.type, "status": job.status})
