"""
Raw GitHub activity to daily burnout metrics.

Every day of the requested range gets one ``DailyMetrics`` entry, including
days without activity, so downstream variance calculations see idle days.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger, log_performance
from ..models.tortoise_models import (
    BurnoutMetric,
    Commit,
    Issue,
    PullRequest,
    PullRequestReview,
    Repository,
)
from ..services.repository_service import RepositoryService

logger = get_logger("analytics.data_processor")

Id = Union[UUID, str]

LATE_NIGHT_START = 22
LATE_NIGHT_END = 6


@dataclass
class DailyMetrics:
    """Activity of one user in one repository on one day."""

    date: date
    commits_count: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    prs_opened: int = 0
    prs_reviewed: int = 0
    issues_created: int = 0
    issues_resolved: int = 0
    avg_commit_time_hour: Optional[float] = None
    weekend_commits: int = 0
    late_night_commits: int = 0
    avg_pr_review_time_hours: Optional[float] = None
    avg_commit_message_length: Optional[int] = None
    code_review_comments: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class ActivityData:
    """A user's raw activity in a repository for a date range."""

    commits: List[Commit] = field(default_factory=list)
    pull_requests: List[PullRequest] = field(default_factory=list)
    reviews: List[PullRequestReview] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)


def is_late_night(hour: int) -> bool:
    return hour >= LATE_NIGHT_START or hour < LATE_NIGHT_END


def is_weekend(moment: Union[date, datetime]) -> bool:
    return moment.weekday() >= 5


def days_in_range(start: datetime, end: datetime) -> List[date]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    days = []
    current = start.date()
    while current <= end.date():
        days.append(current)
        current += timedelta(days=1)
    return days


def _on_day(moment: Optional[datetime], day: date) -> bool:
    return moment is not None and moment.astimezone(timezone.utc).date() == day


def _hours_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() / 3600)


def build_daily_metrics(
    activity: ActivityData, start: datetime, end: datetime
) -> List[DailyMetrics]:
    """Bucket raw activity into one ``DailyMetrics`` per day."""
    result = []
    for day in days_in_range(start, end):
        commits = [c for c in activity.commits if _on_day(c.author_date, day)]
        prs = [p for p in activity.pull_requests if _on_day(p.created_at, day)]
        reviews = [r for r in activity.reviews if _on_day(r.submitted_at, day)]
        created = [i for i in activity.issues if _on_day(i.created_at, day)]
        resolved = [i for i in activity.issues if _on_day(i.closed_at, day)]

        metrics = DailyMetrics(date=day)
        metrics.commits_count = len(commits)
        metrics.lines_added = sum(c.additions for c in commits)
        metrics.lines_deleted = sum(c.deletions for c in commits)
        metrics.prs_opened = len(prs)
        metrics.prs_reviewed = len({r.pull_request_id for r in reviews})
        metrics.issues_created = len(created)
        metrics.issues_resolved = len(resolved)

        if commits:
            hours = [c.author_date.astimezone(timezone.utc).hour for c in commits]
            metrics.avg_commit_time_hour = sum(hours) / len(hours)
            metrics.weekend_commits = sum(1 for c in commits if is_weekend(c.author_date))
            metrics.late_night_commits = sum(1 for h in hours if is_late_night(h))
            metrics.avg_commit_message_length = round(
                sum(len(c.message) for c in commits) / len(commits)
            )

        review_times = [
            _hours_between(p.merged_at, p.created_at) for p in prs if p.merged_at
        ]
        if review_times:
            metrics.avg_pr_review_time_hours = sum(review_times) / len(review_times)

        metrics.code_review_comments = sum(p.review_comments for p in prs)
        result.append(metrics)
    return result


async def fetch_activity(
    user_id: Id, repository_id: Id, start: datetime, end: datetime
) -> ActivityData:
    """Load a user's commits, pull requests, reviews and issues."""
    if not await User.exists(id=user_id):
        raise create_app_error(ErrorCode.NOT_FOUND, f"User {user_id} not found")
    if not await Repository.exists(id=repository_id):
        raise create_app_error(
            ErrorCode.NOT_FOUND, f"Repository {repository_id} not found"
        )

    return ActivityData(
        commits=await Commit.filter(
            repository_id=repository_id,
            author_id=user_id,
            author_date__gte=start,
            author_date__lte=end,
        ),
        pull_requests=await PullRequest.filter(
            repository_id=repository_id,
            author_id=user_id,
            created_at__gte=start,
            created_at__lte=end,
        ),
        reviews=await PullRequestReview.filter(
            reviewer_user_id=user_id,
            pull_request__repository_id=repository_id,
            submitted_at__gte=start,
            submitted_at__lte=end,
        ),
        issues=await Issue.filter(
            repository_id=repository_id,
            author_id=user_id,
            created_at__gte=start,
            created_at__lte=end,
        ),
    )


async def process_user_metrics(
    user_id: Id, repository_id: Id, start: datetime, end: datetime
) -> List[DailyMetrics]:
    activity = await fetch_activity(user_id, repository_id, start, end)
    return build_daily_metrics(activity, start, end)


async def save_burnout_metrics(
    user_id: Id, repository_id: Id, metrics: Sequence[DailyMetrics]
) -> int:
    """Upsert one BurnoutMetric row per day; the stored risk score is kept."""
    for daily in metrics:
        values = asdict(daily)
        day = values.pop("date")
        await BurnoutMetric.update_or_create(
            user_id=user_id,
            repository_id=repository_id,
            date=day,
            defaults=values,
        )
    return len(metrics)


@log_performance("process_and_save_metrics")
async def process_and_save_metrics(
    user_id: Id, repository_id: Id, days: int = 30
) -> int:
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    metrics = await process_user_metrics(user_id, repository_id, start, end)
    return await save_burnout_metrics(user_id, repository_id, metrics)


async def process_repository_metrics(repository_id: Id, days: int = 30) -> int:
    """Recompute daily metrics for every contributor; returns users processed."""
    contributors = await RepositoryService().contributors(repository_id)
    for user in contributors:
        await process_and_save_metrics(user.id, repository_id, days)
    logger.info(
        "Repository metrics processed",
        repository_id=str(repository_id),
        contributors=len(contributors),
        days=days,
    )
    return len(contributors)
