"""
Job processors.

Each processor receives the claimed ``Job`` and the ``JobManager`` that runs
it, reads its input from ``job.payload`` (camelCase keys, as submitted
through the API) and returns a JSON-serialisable result. Raising marks the
attempt as failed and lets the manager retry it.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..analytics.burnout import calculate_burnout_risk, save_burnout_risk_score
from ..analytics.data_processor import process_and_save_metrics, process_repository_metrics
from ..analytics.team_collaboration import calculate_and_save_team_metrics
from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..github import GitHubAPI, get_github_client
from ..logging import get_logger, log_performance
from ..models.tortoise_models import (
    Commit,
    Issue,
    Job,
    PullRequest,
    PullRequestReview,
    Repository,
    UserSettings,
)
from ..services.data_deletion_service import DataDeletionService
from ..services.data_export_service import DataExportService
from ..services.repository_service import RepositoryService
from .manager import JobManager, JobPriority, JobType

logger = get_logger("jobs.processors")

INITIAL_SYNC_DAYS = 30
DEFAULT_METRICS_DAYS = 30

Progress = Callable[[int, str], Awaitable[None]]


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """GitHub timestamps (``...Z``) as aware datetimes."""
    if not value:
        return None
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


async def _noop_progress(progress: int, message: str) -> None:
    return None


def _progress_for(job: Job, manager: JobManager) -> Progress:
    async def report(progress: int, message: str) -> None:
        await manager.update_progress(job, progress, message)

    return report


async def _require_user(user_id: Optional[str]) -> User:
    user = await User.get_or_none(id=user_id) if user_id else None
    if user is None:
        raise create_app_error(ErrorCode.NOT_FOUND, f"User {user_id} not found")
    return user


class AuthorResolver:
    """Maps GitHub accounts to ``User`` rows, creating contributor rows on demand."""

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}

    async def resolve(self, account: Optional[Dict[str, Any]]) -> Optional[User]:
        if not account or account.get("id") is None:
            return None
        github_id = int(account["id"])
        if github_id not in self._users:
            user, created = await User.get_or_create(
                github_id=github_id,
                defaults={
                    "username": account.get("login") or str(github_id),
                    "avatar_url": account.get("avatar_url"),
                },
            )
            if created:
                logger.debug("Contributor registered", github_id=github_id)
            self._users[github_id] = user
        return self._users[github_id]


async def _sync_commits(
    client: GitHubAPI,
    repository: Repository,
    since: Optional[datetime],
    incremental: bool,
    authors: AuthorResolver,
) -> Dict[str, int]:
    upstream = await client.get_commits(repository.full_name, since)
    upstream_shas = {c["sha"] for c in upstream}

    deleted = 0
    # An empty listing may be a degraded fallback; never prune on it
    if incremental and since is not None and upstream:
        stored = await Commit.filter(
            repository_id=repository.id, author_date__gte=since
        ).values_list("sha", flat=True)
        removed = [sha for sha in stored if sha not in upstream_shas]
        if removed:
            deleted = await Commit.filter(
                repository_id=repository.id, sha__in=removed
            ).delete()
            logger.info(
                "Removed commits deleted upstream",
                repository=repository.full_name,
                count=deleted,
            )

    known: Set[str] = set(
        await Commit.filter(sha__in=list(upstream_shas)).values_list("sha", flat=True)
    )
    created = 0
    for item in upstream:
        if item["sha"] in known:
            continue
        details = item if "stats" in item else await client.get_commit(
            repository.full_name, item["sha"]
        )
        stats = details.get("stats") or {}
        info = item["commit"]
        author = await authors.resolve(item.get("author"))
        await Commit.create(
            sha=item["sha"],
            message=info.get("message") or "",
            author_name=info["author"].get("name") or "",
            author_email=info["author"].get("email") or "",
            author_date=parse_datetime(info["author"]["date"]),
            committer_name=info["committer"].get("name") or "",
            committer_email=info["committer"].get("email") or "",
            committer_date=parse_datetime(info["committer"]["date"]),
            additions=stats.get("additions", 0),
            deletions=stats.get("deletions", 0),
            repository_id=repository.id,
            author=author,
        )
        created += 1
    return {"fetched": len(upstream), "created": created, "deleted": deleted}


async def _sync_reviews(
    client: GitHubAPI,
    repository: Repository,
    pull_request: PullRequest,
    authors: AuthorResolver,
) -> int:
    reviews = await client.get_pull_request_reviews(
        repository.full_name, pull_request.number
    )
    count = 0
    for review in reviews:
        submitted = parse_datetime(review.get("submitted_at"))
        if submitted is None:
            # Pending reviews have no submission time
            continue
        account = review.get("user") or {}
        reviewer = await authors.resolve(account)
        await PullRequestReview.update_or_create(
            github_id=review["id"],
            defaults={
                "state": review["state"],
                "submitted_at": submitted,
                "pull_request_id": pull_request.id,
                "reviewer": account.get("login") or "ghost",
                "reviewer_user": reviewer,
            },
        )
        count += 1
    return count


async def _sync_pull_requests(
    client: GitHubAPI,
    repository: Repository,
    owner: User,
    since: Optional[datetime],
    incremental: bool,
    authors: AuthorResolver,
) -> Dict[str, int]:
    upstream = await client.get_pull_requests(repository.full_name, "all")

    deleted = 0
    if incremental and since is not None and upstream:
        numbers = {p["number"] for p in upstream}
        stale = await PullRequest.filter(
            repository_id=repository.id, updated_at__gte=since
        ).exclude(number__in=list(numbers)).values_list("id", flat=True)
        if stale:
            deleted = await PullRequest.filter(id__in=list(stale)).delete()

    if since is not None:
        upstream = [
            p for p in upstream
            if (parse_datetime(p.get("updated_at")) or since) >= since
        ]

    known = set(
        await PullRequest.filter(
            github_id__in=[p["id"] for p in upstream]
        ).values_list("github_id", flat=True)
    )
    synced = reviews = 0
    for item in upstream:
        if item["id"] not in known or "additions" not in item:
            details = await client.get_pull_request(repository.full_name, item["number"])
            item = {**item, **details}
        author = await authors.resolve(item.get("user")) or owner
        pull_request, _ = await PullRequest.update_or_create(
            github_id=item["id"],
            defaults={
                "number": item["number"],
                "title": item.get("title") or "",
                "state": item["state"],
                "created_at": parse_datetime(item["created_at"]),
                "updated_at": parse_datetime(item["updated_at"]),
                "closed_at": parse_datetime(item.get("closed_at")),
                "merged_at": parse_datetime(item.get("merged_at")),
                "repository_id": repository.id,
                "author": author,
                "additions": item.get("additions", 0),
                "deletions": item.get("deletions", 0),
                "changed_files": item.get("changed_files", 0),
                "comments": item.get("comments", 0),
                "review_comments": item.get("review_comments", 0),
            },
        )
        reviews += await _sync_reviews(client, repository, pull_request, authors)
        synced += 1
    return {"synced": synced, "reviews": reviews, "deleted": deleted}


async def _sync_issues(
    client: GitHubAPI,
    repository: Repository,
    owner: User,
    since: Optional[datetime],
    incremental: bool,
    authors: AuthorResolver,
) -> Dict[str, int]:
    # The issues endpoint also lists pull requests
    upstream = [
        i for i in await client.get_issues(repository.full_name, "all")
        if "pull_request" not in i
    ]

    deleted = 0
    if incremental and since is not None and upstream:
        numbers = {i["number"] for i in upstream}
        stale = await Issue.filter(
            repository_id=repository.id, updated_at__gte=since
        ).exclude(number__in=list(numbers)).values_list("id", flat=True)
        if stale:
            deleted = await Issue.filter(id__in=list(stale)).delete()

    synced = 0
    for item in upstream:
        updated = parse_datetime(item["updated_at"])
        if since is not None and updated is not None and updated < since:
            continue
        author = await authors.resolve(item.get("user")) or owner
        await Issue.update_or_create(
            github_id=item["id"],
            defaults={
                "number": item["number"],
                "title": item.get("title") or "",
                "state": item["state"],
                "created_at": parse_datetime(item["created_at"]),
                "updated_at": updated,
                "closed_at": parse_datetime(item.get("closed_at")),
                "repository_id": repository.id,
                "author": author,
                "comments": item.get("comments", 0),
                "labels": [
                    label["name"] if isinstance(label, dict) else str(label)
                    for label in item.get("labels", [])
                ],
            },
        )
        synced += 1
    return {"synced": synced, "deleted": deleted}


@log_performance("sync_repository")
async def sync_repository(
    user: User,
    full_name: str,
    sync_type: str = "full",
    since: Optional[datetime] = None,
    client: Optional[GitHubAPI] = None,
    progress: Progress = _noop_progress,
) -> Dict[str, Any]:
    """
    Mirror one repository's GitHub activity into the database.

    A full sync imports everything since ``since``; an incremental sync also
    removes commits, pull requests and issues that disappeared upstream.

    Returns:
        Counts per entity plus the repository id
    """
    own_client = client is None
    client = client or await get_github_client(user)
    incremental = sync_type == "incremental"
    authors = AuthorResolver()
    try:
        await progress(5, f"Fetching repository {full_name}")
        if incremental:
            await client.invalidate_repository_cache(full_name)
        data = await client.get_repository(full_name)
        repository = await RepositoryService().upsert_from_github(data, user.id)

        await progress(20, "Syncing commits")
        commits = await _sync_commits(client, repository, since, incremental, authors)
        await progress(50, "Syncing pull requests")
        pull_requests = await _sync_pull_requests(
            client, repository, user, since, incremental, authors
        )
        await progress(75, "Syncing issues")
        issues = await _sync_issues(client, repository, user, since, incremental, authors)
    finally:
        if own_client:
            await client.close()

    await RepositoryService().mark_synced(repository, datetime.now(timezone.utc))
    logger.info(
        "Repository synced",
        repository=full_name,
        sync_type=sync_type,
        commits=commits["created"],
        pull_requests=pull_requests["synced"],
        issues=issues["synced"],
    )
    return {
        "repositoryId": str(repository.id),
        "repositoryFullName": full_name,
        "syncType": sync_type,
        "commits": commits,
        "pullRequests": pull_requests,
        "issues": issues,
    }


async def process_repository_sync(job: Job, manager: JobManager) -> Dict[str, Any]:
    payload = job.payload
    user = await _require_user(payload.get("userId"))
    full_name = payload.get("repositoryFullName")
    if not full_name:
        raise create_app_error(ErrorCode.BAD_REQUEST, "repositoryFullName is required")

    result = await sync_repository(
        user,
        full_name,
        payload.get("syncType", "full"),
        parse_datetime(payload.get("since")),
        progress=_progress_for(job, manager),
    )
    await manager.add_job(
        JobType.METRICS_CALCULATION,
        {"userId": str(user.id), "repositoryId": result["repositoryId"]},
        priority=JobPriority.MEDIUM,
        user_id=user.id,
    )
    return result


async def _selected_repositories(user: User) -> List[str]:
    settings = await UserSettings.get_or_none(user_id=user.id)
    return list(settings.selected_repositories or []) if settings else []


async def process_initial_sync(job: Job, manager: JobManager) -> Dict[str, Any]:
    """Queue a full sync of the last 30 days for each repository."""
    payload = job.payload
    user = await _require_user(payload.get("userId"))
    await manager.update_progress(job, 10, "Fetching repositories")

    repository_ids = payload.get("repositoryIds") or []
    if repository_ids:
        names = await Repository.filter(
            id__in=repository_ids, owner_id=user.id
        ).values_list("full_name", flat=True)
    else:
        names = await _selected_repositories(user)
        if not names:
            client = await get_github_client(user)
            try:
                names = [r["full_name"] for r in await client.get_user_repositories()]
            finally:
                await client.close()

    since = datetime.now(timezone.utc) - timedelta(days=INITIAL_SYNC_DAYS)
    job_ids = []
    for index, full_name in enumerate(names, start=1):
        queued = await manager.add_job(
            JobType.REPOSITORY_SYNC,
            {
                "userId": str(user.id),
                "repositoryFullName": full_name,
                "syncType": "full",
                "since": since.isoformat(),
            },
            priority=JobPriority.MEDIUM,
            user_id=user.id,
        )
        job_ids.append(str(queued.id))
        await manager.update_progress(
            job, 20 + (index * 80) // len(names), f"Queued sync {index}/{len(names)}"
        )
    return {"repositoryCount": len(names), "jobIds": job_ids}


async def process_incremental_sync(job: Job, manager: JobManager) -> Dict[str, Any]:
    """
    Sync every selected repository in turn.

    Repositories never synced before, or all of them when ``forceFull`` is
    set, get a full 30 day sync. Failures are recorded per repository.
    """
    payload = job.payload
    user = await _require_user(payload.get("userId"))
    force_full = bool(payload.get("forceFull", False))
    await manager.update_progress(job, 10, "Fetching repositories")

    repository_ids = payload.get("repositoryIds") or []
    if repository_ids:
        repositories = await Repository.filter(id__in=repository_ids, owner_id=user.id)
        names = [r.full_name for r in repositories]
    else:
        names = await _selected_repositories(user)
        if not names:
            names = await Repository.filter(owner_id=user.id).values_list(
                "full_name", flat=True
            )
    synced_at = {
        r.full_name: r.last_synced_at
        for r in await Repository.filter(full_name__in=list(names))
    }

    client = await get_github_client(user)
    statuses = []
    try:
        for index, full_name in enumerate(names):
            last_synced = synced_at.get(full_name)
            if force_full or last_synced is None:
                sync_type = "full"
                since = datetime.now(timezone.utc) - timedelta(days=INITIAL_SYNC_DAYS)
            else:
                sync_type, since = "incremental", last_synced
            await manager.update_progress(
                job,
                20 + (index * 70) // max(1, len(names)),
                f"Processing repository {index + 1}/{len(names)}: {full_name}",
            )
            try:
                result = await sync_repository(user, full_name, sync_type, since, client)
                await process_repository_metrics(result["repositoryId"], DEFAULT_METRICS_DAYS)
                statuses.append(
                    {"repositoryFullName": full_name, "status": "completed", "details": result}
                )
            except Exception as e:
                logger.error(
                    "Incremental sync of repository failed",
                    repository=full_name,
                    error=str(e),
                )
                statuses.append(
                    {"repositoryFullName": full_name, "status": "failed", "message": str(e)}
                )
    finally:
        await client.close()

    completed = sum(1 for s in statuses if s["status"] == "completed")
    return {
        "repositoryCount": len(names),
        "completedCount": completed,
        "failedCount": len(statuses) - completed,
        "syncStatus": statuses,
    }


async def _repositories_for(user: User, repository_id: Optional[str]) -> List[Repository]:
    if repository_id:
        repository = await Repository.get_or_none(id=repository_id)
        if repository is None:
            raise create_app_error(
                ErrorCode.NOT_FOUND, f"Repository {repository_id} not found"
            )
        return [repository]
    return await RepositoryService().list_accessible(user.id)


async def process_metrics_calculation(job: Job, manager: JobManager) -> Dict[str, Any]:
    payload = job.payload
    user = await _require_user(payload.get("userId"))
    days = int(payload.get("days", DEFAULT_METRICS_DAYS))
    repositories = await _repositories_for(user, payload.get("repositoryId"))

    processed, failed = [], []
    for index, repository in enumerate(repositories):
        try:
            if payload.get("repositoryId"):
                await process_repository_metrics(repository.id, days)
            else:
                await process_and_save_metrics(user.id, repository.id, days)
            await calculate_and_save_team_metrics(repository.id, days)
            processed.append(str(repository.id))
        except Exception as e:
            logger.error(
                "Metrics calculation failed",
                repository_id=str(repository.id),
                error=str(e),
            )
            failed.append({"repositoryId": str(repository.id), "error": str(e)})
        await manager.update_progress(
            job, ((index + 1) * 100) // len(repositories), f"Processed {repository.full_name}"
        )
    return {"days": days, "processed": processed, "failed": failed}


async def process_burnout_analysis(job: Job, manager: JobManager) -> Dict[str, Any]:
    """Score burnout risk and store it on today's metric row per repository."""
    payload = job.payload
    user = await _require_user(payload.get("userId"))
    days = int(payload.get("days", DEFAULT_METRICS_DAYS))
    today = datetime.now(timezone.utc).date()

    scores = {}
    for repository in await _repositories_for(user, payload.get("repositoryId")):
        assessment = await calculate_burnout_risk(user.id, repository.id, days)
        await save_burnout_risk_score(user.id, repository.id, today, assessment.risk_score)
        scores[str(repository.id)] = assessment.risk_score
    return {"userId": str(user.id), "date": today.isoformat(), "riskScores": scores}


async def process_team_metrics(job: Job, manager: JobManager) -> Dict[str, Any]:
    payload = job.payload
    repository_ids = payload.get("repositoryIds") or (
        [payload["repositoryId"]] if payload.get("repositoryId") else []
    )
    if not repository_ids:
        raise create_app_error(ErrorCode.BAD_REQUEST, "repositoryId is required")
    days = int(payload.get("days", DEFAULT_METRICS_DAYS))

    results = {}
    for repository_id in repository_ids:
        metrics = await calculate_and_save_team_metrics(repository_id, days)
        results[str(repository_id)] = {
            "velocityScore": metrics["velocityScore"],
            "collaborationScore": metrics["collaborationScore"],
            "knowledgeSharingScore": metrics["knowledgeSharingScore"],
        }
    return {"days": days, "repositories": results}


async def process_data_export(job: Job, manager: JobManager) -> Dict[str, Any]:
    """Collect the requested data; the result carries it for download."""
    payload = job.payload
    data = await DataExportService().collect(
        payload["userId"],
        payload.get("entityTypes") or [],
        None,
        payload.get("includePersonalData", True),
        payload.get("includeRepositoryData", True),
    )
    return {"format": payload.get("format", "json"), "data": data}


async def process_data_deletion(job: Job, manager: JobManager) -> Dict[str, Any]:
    payload = job.payload
    requested_by = str(job.user_id) if job.user_id else payload["userId"]
    result = await DataDeletionService().delete_user_data(
        payload["userId"],
        requested_by,
        delete_type=payload.get("deleteType", "soft"),
        reason=payload.get("reason"),
        export_before_delete=payload.get("exportBeforeDelete", True),
        entity_types=payload.get("entityTypes"),
    )
    return {"message": result["message"], "exported": result["exportData"] is not None}


DEFAULT_PROCESSORS = {
    JobType.REPOSITORY_SYNC: process_repository_sync,
    JobType.INITIAL_SYNC: process_initial_sync,
    JobType.INCREMENTAL_SYNC: process_incremental_sync,
    JobType.METRICS_CALCULATION: process_metrics_calculation,
    JobType.BURNOUT_ANALYSIS: process_burnout_analysis,
    JobType.TEAM_METRICS: process_team_metrics,
    JobType.DATA_EXPORT: process_data_export,
    JobType.DATA_DELETION: process_data_deletion,
}


def register_default_processors(manager: JobManager) -> JobManager:
    for job_type, processor in DEFAULT_PROCESSORS.items():
        manager.register(job_type, processor)
    return manager
