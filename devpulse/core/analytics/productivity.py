"""
Personal productivity metrics.

Operates on a user's commits, pull requests and issues within a time range,
optionally restricted to one repository.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import Commit, Issue, PullRequest, Repository
from .burnout import coefficient_of_variation
from .data_processor import days_in_range, is_weekend

logger = get_logger("analytics.productivity")

Id = Union[UUID, str]

WORKDAY_START_HOUR = 9
WORKDAY_END_HOUR = 17
TREND_THRESHOLD = 10.0


@dataclass
class TimeRange:
    start: datetime
    end: datetime

    @classmethod
    def last_days(cls, days: int) -> "TimeRange":
        end = datetime.now(timezone.utc)
        return cls(end - timedelta(days=days), end)

    @property
    def days(self) -> int:
        return max(1, math.ceil((self.end - self.start).total_seconds() / 86400))

    def previous(self) -> "TimeRange":
        """The period of equal length ending just before this one."""
        length = self.end - self.start
        return TimeRange(self.start - length, self.start - timedelta(microseconds=1))

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class Activity:
    commits: List[Commit]
    pull_requests: List[PullRequest]
    issues: List[Issue]


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def _hours_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() / 3600)


def _avg_rounded(values: Sequence[float]) -> Optional[int]:
    return round(sum(values) / len(values)) if values else None


def _hhmm(minutes: float) -> str:
    hours = int(minutes // 60)
    rest = round(minutes % 60)
    if rest == 60:
        hours, rest = hours + 1, 0
    return f"{hours:02d}:{rest:02d}"


def _minutes(moment: datetime) -> int:
    moment = _utc(moment)
    return moment.hour * 60 + moment.minute


def code_quality_score(
    commits: Sequence[Any], pull_requests: Sequence[Any]
) -> int:
    """Heuristic 0..100 score starting from a neutral 50."""
    score = 50
    count = len(commits)

    message_length = sum(len(c.message) for c in commits) / count if count else 0
    if message_length > 100:
        score += 15
    elif message_length > 50:
        score += 10
    elif message_length > 20:
        score += 5
    elif message_length < 10:
        score -= 10

    size = sum(c.additions + c.deletions for c in commits) / count if count else 0
    if size < 50:
        score += 10
    elif size > 300:
        score -= 10

    reviews = (
        sum(p.review_comments for p in pull_requests) / len(pull_requests)
        if pull_requests
        else 0
    )
    if reviews > 5:
        score += 10
    elif reviews < 1:
        score -= 5

    weekend = sum(1 for c in commits if is_weekend(_utc(c.author_date)))
    if count and weekend / count > 0.3:
        score -= 10

    return min(100, max(0, score))


def commit_frequency(commits: Sequence[Any], time_range: TimeRange) -> List[Dict[str, Any]]:
    counts = {day: 0 for day in days_in_range(time_range.start, time_range.end)}
    for commit in commits:
        day = _utc(commit.author_date).date()
        if day in counts:
            counts[day] += 1
    return [{"date": day.isoformat(), "value": n} for day, n in sorted(counts.items())]


def work_hours_distribution(commits: Sequence[Any]) -> List[Dict[str, int]]:
    counts = [0] * 24
    for commit in commits:
        counts[_utc(commit.author_date).hour] += 1
    return [{"hour": hour, "count": n} for hour, n in enumerate(counts)]


def weekday_distribution(commits: Sequence[Any]) -> List[Dict[str, int]]:
    """Commit counts per weekday, 0 being Sunday."""
    counts = [0] * 7
    for commit in commits:
        counts[(_utc(commit.author_date).weekday() + 1) % 7] += 1
    return [{"day": day, "count": n} for day, n in enumerate(counts)]


def top_languages(
    commits: Sequence[Any], languages: Dict[Any, Optional[str]], limit: int = 5
) -> List[Dict[str, Any]]:
    """Share of commits per repository language."""
    counts: Dict[str, int] = {}
    for commit in commits:
        language = languages.get(commit.repository_id)
        if language:
            counts[language] = counts.get(language, 0) + 1
    total = len(commits)
    ranked = sorted(
        (
            {"language": lang, "percentage": round(n / total, 2) if total else 0}
            for lang, n in counts.items()
        ),
        key=lambda item: item["percentage"],
        reverse=True,
    )
    return ranked[:limit]


def summarize_productivity(
    user_id: Id,
    activity: Activity,
    time_range: TimeRange,
    languages: Optional[Dict[Any, Optional[str]]] = None,
) -> Dict[str, Any]:
    commits, prs, issues = activity.commits, activity.pull_requests, activity.issues
    lines_added = sum(c.additions for c in commits)
    lines_deleted = sum(c.deletions for c in commits)

    return {
        "userId": str(user_id),
        "timeRange": time_range.to_dict(),
        "commitCount": len(commits),
        "linesAdded": lines_added,
        "linesDeleted": lines_deleted,
        "prCount": len(prs),
        "issueCount": len(issues),
        "commitFrequency": commit_frequency(commits, time_range),
        "workHoursDistribution": work_hours_distribution(commits),
        "weekdayDistribution": weekday_distribution(commits),
        "topLanguages": top_languages(commits, languages or {}),
        "avgCommitSize": round((lines_added + lines_deleted) / len(commits))
        if commits
        else 0,
        "avgPrSize": round(sum(p.additions + p.deletions for p in prs) / len(prs))
        if prs
        else 0,
        "avgTimeToMergePr": _avg_rounded(
            [_hours_between(p.merged_at, p.created_at) for p in prs if p.merged_at]
        ),
        "avgTimeToResolveIssue": _avg_rounded(
            [_hours_between(i.closed_at, i.created_at) for i in issues if i.closed_at]
        ),
        "codeQualityScore": code_quality_score(commits, prs),
    }


def consistency_score(calendar: Sequence[Dict[str, Any]]) -> int:
    """Steadier daily volume and start times score higher."""
    if not calendar:
        return 0
    cv = coefficient_of_variation([day["commitCount"] for day in calendar])

    starts = [day["_startMinutes"] for day in calendar if day.get("_startMinutes") is not None]
    if starts:
        mean = sum(starts) / len(starts)
        start_std = math.sqrt(sum((s - mean) ** 2 for s in starts) / len(starts))
    else:
        start_std = 0.0

    cv_factor = max(0.0, 1 - cv)
    start_factor = max(0.0, 1 - start_std / 120)
    return min(100, max(0, round((cv_factor * 0.6 + start_factor * 0.4) * 100)))


def analyze_work_patterns(commits: Sequence[Any]) -> Dict[str, Any]:
    by_day: Dict[str, List[datetime]] = {}
    for commit in sorted(commits, key=lambda c: c.author_date):
        moment = _utc(commit.author_date)
        by_day.setdefault(moment.date().isoformat(), []).append(moment)

    calendar = []
    for day in sorted(by_day):
        times = by_day[day]
        calendar.append(
            {
                "date": day,
                "startTime": times[0].strftime("%H:%M"),
                "endTime": times[-1].strftime("%H:%M"),
                "commitCount": len(times),
                "_startMinutes": _minutes(times[0]),
                "_endMinutes": _minutes(times[-1]),
            }
        )

    starts = [d["_startMinutes"] for d in calendar]
    ends = [d["_endMinutes"] for d in calendar]
    total = len(commits)
    weekend = sum(1 for c in commits if is_weekend(_utc(c.author_date)))
    after_hours = sum(
        1
        for c in commits
        if not WORKDAY_START_HOUR <= _utc(c.author_date).hour < WORKDAY_END_HOUR
    )

    result = {
        "averageStartTime": _hhmm(
            sum(starts) / len(starts) if starts else WORKDAY_START_HOUR * 60
        ),
        "averageEndTime": _hhmm(
            sum(ends) / len(ends) if ends else WORKDAY_END_HOUR * 60
        ),
        "weekendWorkPercentage": round(weekend / total * 100) if total else 0,
        "afterHoursPercentage": round(after_hours / total * 100) if total else 0,
        "consistencyScore": consistency_score(calendar),
    }
    for day in calendar:
        day.pop("_startMinutes")
        day.pop("_endMinutes")
    result["workPatternCalendar"] = calendar
    return result


def productivity_score(metrics: Dict[str, Any]) -> float:
    return (
        metrics["commitCount"]
        + metrics["prCount"] * 5
        + metrics["issueCount"] * 3
        + metrics["codeQualityScore"] * 0.5
    )


def compare_periods(
    previous: Dict[str, Any], current: Dict[str, Any]
) -> Tuple[str, float]:
    """Trend label and percentage change between two basic metric sets."""
    before = productivity_score(previous)
    after = productivity_score(current)
    change = (after - before) / before * 100 if before > 0 else 0.0
    if change > TREND_THRESHOLD:
        trend = "improving"
    elif change < -TREND_THRESHOLD:
        trend = "declining"
    else:
        trend = "stable"
    return trend, round(change, 1)


async def fetch_activity(
    user_id: Id, time_range: TimeRange, repository_id: Optional[Id] = None
) -> Activity:
    scope: Dict[str, Any] = {"author_id": user_id}
    if repository_id:
        scope["repository_id"] = repository_id
    return Activity(
        commits=await Commit.filter(
            **scope,
            author_date__gte=time_range.start,
            author_date__lte=time_range.end,
        ),
        pull_requests=await PullRequest.filter(
            **scope,
            created_at__gte=time_range.start,
            created_at__lte=time_range.end,
        ),
        issues=await Issue.filter(
            **scope,
            created_at__gte=time_range.start,
            created_at__lte=time_range.end,
        ),
    )


async def calculate_productivity_metrics(
    user_id: Id, time_range: TimeRange, repository_id: Optional[Id] = None
) -> Dict[str, Any]:
    if not await User.exists(id=user_id):
        raise create_app_error(ErrorCode.NOT_FOUND, f"User {user_id} not found")

    activity = await fetch_activity(user_id, time_range, repository_id)
    repository_ids = {c.repository_id for c in activity.commits}
    languages = dict(
        await Repository.filter(id__in=list(repository_ids)).values_list(
            "id", "language"
        )
    ) if repository_ids else {}
    return summarize_productivity(user_id, activity, time_range, languages)


async def get_work_pattern_analysis(
    user_id: Id, time_range: TimeRange, repository_id: Optional[Id] = None
) -> Dict[str, Any]:
    scope: Dict[str, Any] = {"author_id": user_id}
    if repository_id:
        scope["repository_id"] = repository_id
    commits = await Commit.filter(
        **scope,
        author_date__gte=time_range.start,
        author_date__lte=time_range.end,
    ).order_by("author_date")
    return analyze_work_patterns(commits)


async def _basic_metrics(
    user_id: Id, time_range: TimeRange, repository_id: Optional[Id]
) -> Dict[str, Any]:
    activity = await fetch_activity(user_id, time_range, repository_id)
    return {
        "commitCount": len(activity.commits),
        "prCount": len(activity.pull_requests),
        "issueCount": len(activity.issues),
        "codeQualityScore": code_quality_score(
            activity.commits, activity.pull_requests
        ),
    }


async def get_productivity_trends(
    user_id: Id, time_range: TimeRange, repository_id: Optional[Id] = None
) -> Dict[str, Any]:
    """Compare the range with the preceding period of equal length."""
    previous_range = time_range.previous()
    previous = await _basic_metrics(user_id, previous_range, repository_id)
    current = await _basic_metrics(user_id, time_range, repository_id)
    trend, change = compare_periods(previous, current)
    logger.debug(
        "Productivity trend computed",
        user_id=str(user_id),
        trend=trend,
        percentage_change=change,
    )
    return {
        "trend": trend,
        "percentageChange": change,
        "comparisonPeriod": {
            "previous": previous_range.to_dict(),
            "current": time_range.to_dict(),
        },
        "metrics": {"previous": previous, "current": current},
    }
