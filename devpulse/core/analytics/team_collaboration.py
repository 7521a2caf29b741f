"""
Team analytics for a repository: velocity, collaboration and knowledge spread.

Individual files touched by a commit are not mirrored from GitHub, so the
knowledge and ownership views treat each commit as the unit of ownership.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import (
    Commit,
    Issue,
    PullRequest,
    Repository,
    TeamInsight,
)
from ..services.repository_service import RepositoryService
from .burnout import coefficient_of_variation
from .productivity import TimeRange

logger = get_logger("analytics.team")

Id = Union[UUID, str]

VELOCITY_WEIGHTS = {
    "commit_frequency": 0.25,
    "pr_merge_rate": 0.3,
    "issue_resolution_rate": 0.25,
    "cycle_time": 0.2,
}
COLLABORATION_WEIGHTS = {"review": 0.3, "ownership": 0.4, "network": 0.3}

IDEAL_CYCLE_HOURS = 24
POOR_CYCLE_HOURS = 168
MAX_DAILY_COMMITS = 5


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def _hours_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() / 3600)


def velocity_score(
    commit_frequency: float,
    pr_merge_rate: float,
    issue_resolution_rate: float,
    cycle_time_average: float,
) -> int:
    cycle = _clamp(
        1
        - (cycle_time_average - IDEAL_CYCLE_HOURS)
        / (POOR_CYCLE_HOURS - IDEAL_CYCLE_HOURS)
    )
    score = (
        min(1.0, commit_frequency / MAX_DAILY_COMMITS)
        * VELOCITY_WEIGHTS["commit_frequency"]
        + pr_merge_rate * VELOCITY_WEIGHTS["pr_merge_rate"]
        + issue_resolution_rate * VELOCITY_WEIGHTS["issue_resolution_rate"]
        + cycle * VELOCITY_WEIGHTS["cycle_time"]
    )
    return round(score * 100)


def summarize_velocity(
    commits: Sequence[Any],
    pull_requests: Sequence[Any],
    issues: Sequence[Any],
    time_range: TimeRange,
) -> Dict[str, Any]:
    days = (time_range.end - time_range.start).days + 1
    commit_frequency = len(commits) / max(1, days)

    merged = [p for p in pull_requests if p.merged_at is not None]
    pr_merge_rate = len(merged) / len(pull_requests) if pull_requests else 0.0
    closed = [i for i in issues if i.closed_at is not None]
    issue_resolution_rate = len(closed) / len(issues) if issues else 0.0

    cycle_times = [_hours_between(p.merged_at, p.created_at) for p in merged]
    cycle_time_average = sum(cycle_times) / len(cycle_times) if cycle_times else 0.0

    return {
        "velocityScore": velocity_score(
            commit_frequency, pr_merge_rate, issue_resolution_rate, cycle_time_average
        ),
        "commitFrequency": commit_frequency,
        "prMergeRate": pr_merge_rate,
        "issueResolutionRate": issue_resolution_rate,
        "cycleTimeAverage": cycle_time_average,
    }


def review_distribution(pull_requests: Sequence[Any]) -> List[Dict[str, Any]]:
    """Reviews per known reviewer, most active first."""
    counts: Dict[str, Dict[str, Any]] = {}
    for pr in pull_requests:
        for review in pr.reviews:
            if review.reviewer_user_id is None:
                continue
            key = str(review.reviewer_user_id)
            entry = counts.setdefault(
                key, {"userId": key, "username": review.reviewer, "reviewCount": 0}
            )
            entry["reviewCount"] += 1
    return sorted(counts.values(), key=lambda e: e["reviewCount"], reverse=True)


def ownership_distribution(commits: Sequence[Any]) -> List[Dict[str, Any]]:
    """Units owned per author; a unit's owner is its most frequent committer."""
    per_unit: Dict[str, Dict[str, int]] = {}
    names: Dict[str, str] = {}
    for commit in commits:
        if commit.author is None:
            continue
        user_id = str(commit.author.id)
        names[user_id] = commit.author.username
        authors = per_unit.setdefault(commit.sha, {})
        authors[user_id] = authors.get(user_id, 0) + 1

    owned: Dict[str, int] = {}
    for authors in per_unit.values():
        owner = max(authors.items(), key=lambda item: item[1])[0]
        owned[owner] = owned.get(owner, 0) + 1

    total = len(per_unit)
    return sorted(
        (
            {
                "userId": user_id,
                "username": names.get(user_id, "Unknown"),
                "filesOwned": n,
                "percentage": n / total if total else 0.0,
            }
            for user_id, n in owned.items()
        ),
        key=lambda e: e["filesOwned"],
        reverse=True,
    )


def collaboration_network(pull_requests: Sequence[Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Author to reviewer links; nodes grouped by collaboration volume."""
    nodes: Dict[str, Dict[str, Any]] = {}
    links: Dict[tuple, Dict[str, Any]] = {}
    for pr in pull_requests:
        if pr.author is None:
            continue
        author_id = str(pr.author.id)
        nodes.setdefault(author_id, {"id": author_id, "name": pr.author.username, "group": 1})
        for review in pr.reviews:
            if review.reviewer_user_id is None:
                continue
            reviewer_id = str(review.reviewer_user_id)
            nodes.setdefault(
                reviewer_id, {"id": reviewer_id, "name": review.reviewer, "group": 1}
            )
            link = links.setdefault(
                (author_id, reviewer_id),
                {"source": author_id, "target": reviewer_id, "value": 0},
            )
            link["value"] += 1

    volume: Dict[str, int] = {}
    for link in links.values():
        volume[link["source"]] = volume.get(link["source"], 0) + link["value"]
        volume[link["target"]] = volume.get(link["target"], 0) + link["value"]
    for user_id, count in volume.items():
        nodes[user_id]["group"] = 1 if count > 10 else 2 if count > 5 else 3

    return {"nodes": list(nodes.values()), "links": list(links.values())}


def gini(values: Sequence[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    total = sum(ordered)
    if n == 0 or total == 0:
        return 0.0
    weighted = sum((i + 1) * v for i, v in enumerate(ordered))
    return (2 * weighted) / (n * total) - (n + 1) / n


def collaboration_score(
    reviews: Sequence[Dict[str, Any]],
    ownership: Sequence[Dict[str, Any]],
    network: Dict[str, List[Dict[str, Any]]],
) -> int:
    review_score = (
        _clamp(1 - coefficient_of_variation([r["reviewCount"] for r in reviews]))
        if reviews
        else 0.0
    )
    ownership_score = (
        _clamp(1 - gini([o["percentage"] for o in ownership])) if ownership else 0.0
    )

    network_score = 0.0
    node_count = len(network["nodes"])
    if node_count:
        max_links = node_count * (node_count - 1) / 2
        network_score = len(network["links"]) / max_links if max_links else 0.0

    score = (
        review_score * COLLABORATION_WEIGHTS["review"]
        + ownership_score * COLLABORATION_WEIGHTS["ownership"]
        + network_score * COLLABORATION_WEIGHTS["network"]
    )
    return round(score * 100)


def file_ownership(commits: Sequence[Any]) -> List[Dict[str, Any]]:
    per_unit: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for commit in commits:
        if commit.author is None:
            continue
        user_id = str(commit.author.id)
        entry = per_unit.setdefault(commit.sha, {}).setdefault(
            user_id, {"count": 0, "username": commit.author.username}
        )
        entry["count"] += 1

    result = []
    for unit, authors in per_unit.items():
        total = sum(a["count"] for a in authors.values())
        contributors = sorted(
            (
                {
                    "userId": user_id,
                    "username": a["username"],
                    "contributionPercentage": a["count"] / total if total else 0.0,
                }
                for user_id, a in authors.items()
            ),
            key=lambda c: c["contributionPercentage"],
            reverse=True,
        )
        result.append(
            {
                "filename": unit,
                "owner": contributors[0]["username"] if contributors else "Unknown",
                "ownershipPercentage": contributors[0]["contributionPercentage"]
                if contributors
                else 0.0,
                "contributors": contributors,
            }
        )
    return result


def risk_areas(ownership: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    total = max(1, len(ownership))
    areas = []

    silos = [f for f in ownership if f["ownershipPercentage"] > 0.8]
    if silos:
        areas.append(
            {
                "area": "Knowledge Silos",
                "riskLevel": min(1.0, len(silos) / total),
                "description": f"{len(silos)} files have over 80% ownership by a single developer",
            }
        )

    single = [f for f in ownership if len(f["contributors"]) < 2]
    if single:
        areas.append(
            {
                "area": "Bus Factor Risk",
                "riskLevel": min(1.0, len(single) / total),
                "description": f"{len(single)} files have only one contributor",
            }
        )

    avg_contributors = sum(len(f["contributors"]) for f in ownership) / total
    areas.append(
        {
            "area": "Knowledge Distribution",
            "riskLevel": _clamp(1 - (avg_contributors - 1) / 4),
            "description": f"Average of {avg_contributors:.1f} contributors per file",
        }
    )
    return sorted(areas, key=lambda a: a["riskLevel"], reverse=True)


def knowledge_sharing_score(ownership: Sequence[Dict[str, Any]]) -> int:
    if not ownership:
        return 50
    avg_contributors = sum(len(f["contributors"]) for f in ownership) / len(ownership)
    avg_ownership = sum(f["ownershipPercentage"] for f in ownership) / len(ownership)
    contributor_factor = min(1.0, (avg_contributors - 1) / 4)
    return round((contributor_factor * 0.6 + (1 - avg_ownership) * 0.4) * 100)


async def _require_repository(repository_id: Id) -> Repository:
    repository = await Repository.get_or_none(id=repository_id)
    if repository is None:
        raise create_app_error(
            ErrorCode.NOT_FOUND, f"Repository {repository_id} not found"
        )
    return repository


async def _pull_requests(repository_id: Id, time_range: TimeRange) -> List[PullRequest]:
    return await PullRequest.filter(
        repository_id=repository_id,
        created_at__gte=time_range.start,
        created_at__lte=time_range.end,
    ).prefetch_related("author", "reviews")


async def _commits(repository_id: Id, time_range: TimeRange) -> List[Commit]:
    return await Commit.filter(
        repository_id=repository_id,
        author_date__gte=time_range.start,
        author_date__lte=time_range.end,
    ).prefetch_related("author")


async def get_velocity_trend(
    repository_id: Id, time_range: TimeRange
) -> List[Dict[str, Any]]:
    """Stored daily velocity scores; empty when none were recorded."""
    rows = await TeamInsight.filter(
        repository_id=repository_id,
        date__gte=time_range.start.date(),
        date__lte=time_range.end.date(),
    ).order_by("date")
    return [{"date": r.date.isoformat(), "value": float(r.velocity_score)} for r in rows]


async def calculate_team_velocity(
    repository_id: Id, time_range: TimeRange
) -> Dict[str, Any]:
    await _require_repository(repository_id)
    commits = await Commit.filter(
        repository_id=repository_id,
        author_date__gte=time_range.start,
        author_date__lte=time_range.end,
    )
    pull_requests = await PullRequest.filter(
        repository_id=repository_id,
        created_at__gte=time_range.start,
        created_at__lte=time_range.end,
    )
    issues = await Issue.filter(
        repository_id=repository_id,
        created_at__gte=time_range.start,
        created_at__lte=time_range.end,
    )
    result = summarize_velocity(commits, pull_requests, issues, time_range)
    result["historicalTrend"] = await get_velocity_trend(repository_id, time_range)
    return result


async def analyze_team_collaboration(
    repository_id: Id, time_range: Optional[TimeRange] = None
) -> Dict[str, Any]:
    time_range = time_range or TimeRange.last_days(30)
    await _require_repository(repository_id)
    pull_requests = await _pull_requests(repository_id, time_range)
    commits = await _commits(repository_id, time_range)

    reviews = review_distribution(pull_requests)
    ownership = ownership_distribution(commits)
    network = collaboration_network(pull_requests)
    return {
        "collaborationScore": collaboration_score(reviews, ownership, network),
        "prReviewDistribution": reviews,
        "codeOwnershipDistribution": ownership,
        "collaborationNetwork": network,
    }


async def analyze_knowledge_distribution(
    repository_id: Id, time_range: Optional[TimeRange] = None
) -> Dict[str, Any]:
    time_range = time_range or TimeRange.last_days(30)
    await _require_repository(repository_id)
    ownership = file_ownership(await _commits(repository_id, time_range))
    return {
        "knowledgeSharingScore": knowledge_sharing_score(ownership),
        "fileOwnership": ownership,
        "riskAreas": risk_areas(ownership),
    }


async def get_team_metrics(repository_id: Id, time_range: TimeRange) -> Dict[str, Any]:
    """Bundle velocity, collaboration and knowledge views with activity totals."""
    velocity = await calculate_team_velocity(repository_id, time_range)
    collaboration = await analyze_team_collaboration(repository_id, time_range)
    knowledge = await analyze_knowledge_distribution(repository_id, time_range)

    commits = await Commit.filter(
        repository_id=repository_id,
        author_date__gte=time_range.start,
        author_date__lte=time_range.end,
    )
    member_ids = {c.author_id for c in commits if c.author_id is not None}
    return {
        "repositoryId": str(repository_id),
        "timeRange": time_range.to_dict(),
        "memberCount": len(member_ids),
        "totalCommits": len(commits),
        "totalPRs": await PullRequest.filter(
            repository_id=repository_id,
            created_at__gte=time_range.start,
            created_at__lte=time_range.end,
        ).count(),
        "totalIssues": await Issue.filter(
            repository_id=repository_id,
            created_at__gte=time_range.start,
            created_at__lte=time_range.end,
        ).count(),
        "velocity": velocity,
        "collaboration": collaboration,
        "knowledgeDistribution": knowledge,
    }


async def save_team_metrics(
    repository_id: Id, day: date, metrics: Dict[str, Any]
) -> TeamInsight:
    """Upsert the day's TeamInsight row with scores and activity totals."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    totals = {
        "total_commits": await Commit.filter(
            repository_id=repository_id, author_date__gte=start, author_date__lt=end
        ).count(),
        "total_prs": await PullRequest.filter(
            repository_id=repository_id, created_at__gte=start, created_at__lt=end
        ).count(),
        "total_issues": await Issue.filter(
            repository_id=repository_id, created_at__gte=start, created_at__lt=end
        ).count(),
    }
    insight, _ = await TeamInsight.update_or_create(
        repository_id=repository_id,
        date=day,
        defaults={
            "velocity_score": metrics["velocityScore"],
            "pr_merge_rate": metrics["prMergeRate"],
            "issue_resolution_rate": metrics["issueResolutionRate"],
            "cycle_time_average": metrics["cycleTimeAverage"],
            "collaboration_score": metrics["collaborationScore"],
            "knowledge_sharing_score": metrics["knowledgeSharingScore"],
            "member_count": metrics.get("memberCount", 0),
            **totals,
        },
    )
    logger.info(
        "Team metrics saved",
        repository_id=str(repository_id),
        date=day.isoformat(),
        velocity_score=metrics["velocityScore"],
    )
    return insight


async def calculate_and_save_team_metrics(
    repository_id: Id, days: int = 30
) -> Dict[str, Any]:
    """Run every team calculation over the window and persist today's row."""
    time_range = TimeRange.last_days(days)
    velocity = await calculate_team_velocity(repository_id, time_range)
    collaboration = await analyze_team_collaboration(repository_id, time_range)
    knowledge = await analyze_knowledge_distribution(repository_id, time_range)
    members = await RepositoryService().contributors(repository_id)

    metrics = {
        **{k: v for k, v in velocity.items() if k != "historicalTrend"},
        "collaborationScore": collaboration["collaborationScore"],
        "knowledgeSharingScore": knowledge["knowledgeSharingScore"],
        "memberCount": len(members),
    }
    await save_team_metrics(repository_id, datetime.now(timezone.utc).date(), metrics)
    return metrics
