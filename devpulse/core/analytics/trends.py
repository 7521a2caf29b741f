"""Historical trend series for the analytics dashboard."""

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import UUID

from ..errors import ErrorCode, create_app_error
from ..models.tortoise_models import BurnoutMetric, Commit, Issue, PullRequest, TeamInsight

Id = Union[UUID, str]

METRICS = ("commits", "prs", "issues", "burnout", "velocity")
INTERVALS = ("day", "week", "month")

# Count metrics are summed per bucket, score metrics averaged
SCORE_METRICS = ("burnout", "velocity")


def interval_key(moment: Union[date, datetime], interval: str) -> str:
    if interval == "week":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if interval == "month":
        return f"{moment.year}-{moment.month:02d}"
    return moment.strftime("%Y-%m-%d")


def group_by_interval(
    items: Iterable[Any],
    get_date: Callable[[Any], Union[date, datetime]],
    interval: str,
    get_value: Callable[[Any], float] = lambda _: 1,
    average: bool = False,
) -> List[Dict[str, Any]]:
    """Bucket items into ``{date, value}`` points, sorted by bucket."""
    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for item in items:
        key = interval_key(get_date(item), interval)
        totals[key] = totals.get(key, 0) + get_value(item)
        counts[key] = counts.get(key, 0) + 1
    return [
        {
            "date": key,
            "value": round(totals[key] / counts[key], 2) if average else totals[key],
        }
        for key in sorted(totals)
    ]


async def get_trend_data(
    user_id: Id,
    metric: str,
    start: datetime,
    end: datetime,
    interval: str = "day",
    repository_id: Optional[Id] = None,
) -> List[Dict[str, Any]]:
    if metric not in METRICS:
        raise create_app_error(
            ErrorCode.BAD_REQUEST, f"Metric must be one of: {', '.join(METRICS)}"
        )
    if interval not in INTERVALS:
        raise create_app_error(
            ErrorCode.BAD_REQUEST, f"Interval must be one of: {', '.join(INTERVALS)}"
        )

    scope: Dict[str, Any] = {"repository_id": repository_id} if repository_id else {}

    if metric == "commits":
        rows = await Commit.filter(
            author_id=user_id, author_date__gte=start, author_date__lte=end, **scope
        ).order_by("author_date")
        return group_by_interval(rows, lambda r: r.author_date, interval)

    if metric in ("prs", "issues"):
        model = PullRequest if metric == "prs" else Issue
        rows = await model.filter(
            author_id=user_id, created_at__gte=start, created_at__lte=end, **scope
        ).order_by("created_at")
        return group_by_interval(rows, lambda r: r.created_at, interval)

    if metric == "burnout":
        rows = await BurnoutMetric.filter(
            user_id=user_id,
            date__gte=start.date(),
            date__lte=end.date(),
            burnout_risk_score__isnull=False,
            **scope,
        ).order_by("date")
        return group_by_interval(
            rows,
            lambda r: r.date,
            interval,
            lambda r: float(r.burnout_risk_score),
            average=True,
        )

    if not repository_id:
        return []
    rows = await TeamInsight.filter(
        repository_id=repository_id, date__gte=start.date(), date__lte=end.date()
    ).order_by("date")
    return group_by_interval(
        rows,
        lambda r: r.date,
        interval,
        lambda r: float(r.velocity_score),
        average=True,
    )
