"""
Burnout risk assessment.

Six factors, each scaled to 0..1 where higher means more risk, are derived
from daily metrics and combined with fixed weights into a 0..100 score.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from ..logging import get_logger
from ..models.tortoise_models import BurnoutMetric

logger = get_logger("analytics.burnout")

Id = Union[UUID, str]

FACTOR_WEIGHTS: Dict[str, float] = {
    "work_hours_pattern": 0.25,
    "code_quality_trend": 0.15,
    "collaboration_level": 0.15,
    "workload_distribution": 0.20,
    "time_to_resolution": 0.10,
    "weekend_work_frequency": 0.15,
}

FACTOR_NAMES: Dict[str, str] = {
    "work_hours_pattern": "Work Hours Pattern",
    "code_quality_trend": "Code Quality Trend",
    "collaboration_level": "Collaboration Level",
    "workload_distribution": "Workload Distribution",
    "time_to_resolution": "Time to Resolution",
    "weekend_work_frequency": "Weekend Work Frequency",
}

# Descriptions for factor > .8, > .6, > .4, > .2, otherwise
FACTOR_DESCRIPTIONS: Dict[str, List[str]] = {
    "work_hours_pattern": [
        "Significant work during late night hours",
        "Frequent work outside normal hours",
        "Some work outside normal hours",
        "Occasional work outside normal hours",
        "Work mostly during normal hours",
    ],
    "code_quality_trend": [
        "Very short commit messages, potential quality issues",
        "Short commit messages, may indicate rushed work",
        "Average commit message quality",
        "Good commit message quality",
        "Excellent commit message quality",
    ],
    "collaboration_level": [
        "Very low collaboration and code review activity",
        "Limited collaboration with team members",
        "Moderate collaboration and code review",
        "Good collaboration with team members",
        "Excellent collaboration and code review practices",
    ],
    "workload_distribution": [
        "Highly uneven workload with significant spikes",
        "Uneven workload distribution",
        "Somewhat uneven workload",
        "Relatively even workload",
        "Very consistent workload distribution",
    ],
    "time_to_resolution": [
        "Very long PR review times (3+ days)",
        "Long PR review times (2-3 days)",
        "Moderate PR review times (1-2 days)",
        "Quick PR review times (12-24 hours)",
        "Very quick PR review times (< 12 hours)",
    ],
    "weekend_work_frequency": [
        "Very frequent weekend work",
        "Regular weekend work",
        "Occasional weekend work",
        "Rare weekend work",
        "Almost no weekend work",
    ],
}

FACTOR_RECOMMENDATIONS: Dict[str, str] = {
    "work_hours_pattern": "Try to limit work during late night hours and establish more regular working hours.",
    "code_quality_trend": "Take more time to write detailed commit messages and focus on code quality.",
    "collaboration_level": "Increase collaboration with team members through more code reviews and discussions.",
    "workload_distribution": "Work on distributing your workload more evenly throughout the week.",
    "time_to_resolution": "Try to reduce PR review times by breaking down changes into smaller, more manageable pieces.",
    "weekend_work_frequency": "Reduce weekend work to ensure proper rest and recovery time.",
}

HIGH_RISK_RECOMMENDATIONS = [
    "Consider taking time off to recharge and prevent burnout.",
    "Discuss workload concerns with your manager or team lead.",
]
MEDIUM_RISK_RECOMMENDATIONS = [
    "Monitor your work patterns and try to maintain better work-life balance.",
    "Consider delegating some tasks or asking for help when needed.",
]
GENERAL_RECOMMENDATIONS = [
    "Regularly review your work patterns and make adjustments as needed.",
    "Take short breaks during the day to maintain focus and productivity.",
    "Maintain open communication with your team about workload and capacity.",
]

DEFAULT_COMMIT_HOUR = 12.0
FULL_CONFIDENCE_DAYS = 14


@dataclass
class BurnoutFactor:
    name: str
    impact: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "impact": self.impact, "description": self.description}


@dataclass
class TrendPoint:
    date: date
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}


@dataclass
class BurnoutAssessment:
    """Result of a burnout risk calculation."""

    risk_score: int
    confidence: float
    key_factors: List[BurnoutFactor]
    recommendations: List[str]
    historical_trend: List[TrendPoint] = field(default_factory=list)
    factors: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "confidence": self.confidence,
            "keyFactors": [f.to_dict() for f in self.key_factors],
            "recommendations": self.recommendations,
            "historicalTrend": [p.to_dict() for p in self.historical_trend],
        }


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def _mean(values: Sequence[float], default: float = 0.0) -> float:
    return sum(values) / len(values) if values else default


def work_hours_pattern(metrics: Sequence[Any]) -> float:
    total = sum(m.commits_count for m in metrics)
    late = sum(m.late_night_commits for m in metrics)
    factor = (late / total if total else 0.0) * 0.7

    hour = _mean(
        [m.avg_commit_time_hour for m in metrics if m.avg_commit_time_hour is not None],
        DEFAULT_COMMIT_HOUR,
    )
    if hour < 9:
        factor += 0.3 * (1 - hour / 9)
    elif hour > 17:
        factor += 0.3 * ((hour - 17) / 7)
    return _clamp(factor)


def code_quality_trend(metrics: Sequence[Any]) -> float:
    length = _mean(
        [
            m.avg_commit_message_length
            for m in metrics
            if m.avg_commit_message_length is not None
        ]
    )
    if length < 10:
        return 0.8
    if length < 20:
        return 0.6
    if length < 50:
        return 0.4
    if length < 100:
        return 0.2
    return 0.1


def collaboration_level(metrics: Sequence[Any]) -> float:
    opened = sum(m.prs_opened for m in metrics)
    reviewed = sum(m.prs_reviewed for m in metrics)
    comments = sum(m.code_review_comments for m in metrics)

    ratio = reviewed / opened if opened else 0.0
    factor = (1 - min(1.0, ratio)) * 0.6

    avg_comments = comments / opened if opened else 0.0
    if avg_comments < 1:
        factor += 0.4
    elif avg_comments < 3:
        factor += 0.3
    elif avg_comments < 5:
        factor += 0.2
    elif avg_comments < 10:
        factor += 0.1
    return _clamp(factor)


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over the mean; 0 when the mean is 0."""
    if not values:
        return 0.0
    mean = _mean(values)
    if mean <= 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean


def workload_distribution(metrics: Sequence[Any]) -> float:
    cv = coefficient_of_variation([m.commits_count for m in metrics])
    if cv > 2:
        return 1.0
    if cv > 1.5:
        return 0.8
    if cv > 1.0:
        return 0.6
    if cv > 0.5:
        return 0.4
    return 0.2


def time_to_resolution(metrics: Sequence[Any]) -> float:
    hours = _mean(
        [
            m.avg_pr_review_time_hours
            for m in metrics
            if m.avg_pr_review_time_hours is not None
        ]
    )
    if hours > 72:
        return 1.0
    if hours > 48:
        return 0.8
    if hours > 24:
        return 0.6
    if hours > 12:
        return 0.4
    if hours > 4:
        return 0.2
    return 0.1


def weekend_work_frequency(metrics: Sequence[Any]) -> float:
    total = sum(m.commits_count for m in metrics)
    ratio = sum(m.weekend_commits for m in metrics) / total if total else 0.0
    if ratio > 0.5:
        return 1.0
    if ratio > 0.3:
        return 0.8
    if ratio > 0.2:
        return 0.6
    if ratio > 0.1:
        return 0.4
    if ratio > 0:
        return 0.2
    return 0.0


FACTOR_FUNCTIONS = {
    "work_hours_pattern": work_hours_pattern,
    "code_quality_trend": code_quality_trend,
    "collaboration_level": collaboration_level,
    "workload_distribution": workload_distribution,
    "time_to_resolution": time_to_resolution,
    "weekend_work_frequency": weekend_work_frequency,
}


def calculate_burnout_factors(metrics: Sequence[Any]) -> Dict[str, float]:
    """All factors; every factor is 0 when there are no metrics."""
    if not metrics:
        return {name: 0.0 for name in FACTOR_WEIGHTS}
    return {name: fn(metrics) for name, fn in FACTOR_FUNCTIONS.items()}


def calculate_risk_score(factors: Dict[str, float]) -> int:
    weighted = sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items())
    return int(_clamp(round(weighted * 100), 0, 100))


def calculate_confidence(metrics: Sequence[Any]) -> float:
    """Data completeness scaled by how many days of data exist."""
    if not metrics:
        return 0.0
    completeness = 0.0
    if any(m.commits_count > 0 for m in metrics):
        completeness += 0.3
    if any(m.prs_opened > 0 or m.prs_reviewed > 0 for m in metrics):
        completeness += 0.3
    if any(m.issues_created > 0 or m.issues_resolved > 0 for m in metrics):
        completeness += 0.2
    if any(
        m.avg_commit_time_hour is not None or m.avg_pr_review_time_hours is not None
        for m in metrics
    ):
        completeness += 0.2
    return _clamp(completeness * min(1.0, len(metrics) / FULL_CONFIDENCE_DAYS))


def describe_factor(name: str, impact: float) -> str:
    tiers = FACTOR_DESCRIPTIONS[name]
    for index, threshold in enumerate((0.8, 0.6, 0.4, 0.2)):
        if impact > threshold:
            return tiers[index]
    return tiers[4]


def get_key_factors(factors: Dict[str, float], limit: int = 3) -> List[BurnoutFactor]:
    """The highest-impact factors, largest first."""
    ranked = sorted(factors.items(), key=lambda item: item[1], reverse=True)
    return [
        BurnoutFactor(FACTOR_NAMES[name], impact, describe_factor(name, impact))
        for name, impact in ranked[:limit]
    ]


def generate_recommendations(factors: Dict[str, float], risk_score: int) -> List[str]:
    recommendations: List[str] = []
    if risk_score > 70:
        recommendations.extend(HIGH_RISK_RECOMMENDATIONS)
    elif risk_score > 50:
        recommendations.extend(MEDIUM_RISK_RECOMMENDATIONS)

    for name in FACTOR_FUNCTIONS:
        if factors.get(name, 0.0) > 0.6:
            recommendations.append(FACTOR_RECOMMENDATIONS[name])

    if len(recommendations) < 3:
        recommendations.extend(GENERAL_RECOMMENDATIONS)
    return recommendations[:5]


def assess_burnout(
    metrics: Sequence[Any], history: Optional[List[TrendPoint]] = None
) -> BurnoutAssessment:
    """Pure assessment over daily metrics."""
    factors = calculate_burnout_factors(metrics)
    risk_score = calculate_risk_score(factors)
    return BurnoutAssessment(
        risk_score=risk_score,
        confidence=calculate_confidence(metrics),
        key_factors=get_key_factors(factors),
        recommendations=generate_recommendations(factors, risk_score),
        historical_trend=history or [],
        factors=factors,
    )


def _metric_query(user_id: Id, repository_id: Optional[Id], start: date, end: date):
    query = BurnoutMetric.filter(user_id=user_id, date__gte=start, date__lte=end)
    if repository_id:
        query = query.filter(repository_id=repository_id)
    return query


async def get_historical_trend(
    user_id: Id, repository_id: Optional[Id], days: int
) -> List[TrendPoint]:
    """Stored risk scores over the window, oldest first."""
    end = datetime.now(timezone.utc).date()
    rows = await _metric_query(
        user_id, repository_id, end - timedelta(days=days), end
    ).filter(burnout_risk_score__isnull=False).order_by("date")
    return [TrendPoint(row.date, float(row.burnout_risk_score)) for row in rows]


async def calculate_burnout_risk(
    user_id: Id, repository_id: Optional[Id] = None, days: int = 30
) -> BurnoutAssessment:
    """Assess a user's burnout risk from stored daily metrics."""
    end = datetime.now(timezone.utc).date()
    metrics = await _metric_query(
        user_id, repository_id, end - timedelta(days=days), end
    ).order_by("date")
    history = await get_historical_trend(user_id, repository_id, days)
    assessment = assess_burnout(metrics, history)
    logger.debug(
        "Burnout risk calculated",
        user_id=str(user_id),
        repository_id=str(repository_id) if repository_id else None,
        days=days,
        risk_score=assessment.risk_score,
        samples=len(metrics),
    )
    return assessment


async def save_burnout_risk_score(
    user_id: Id, repository_id: Id, day: date, risk_score: float
) -> None:
    """Store the score on that day's metric row, creating an empty row if needed."""
    metric, created = await BurnoutMetric.get_or_create(
        user_id=user_id,
        repository_id=repository_id,
        date=day,
        defaults={"burnout_risk_score": risk_score},
    )
    if not created:
        metric.burnout_risk_score = risk_score
        await metric.save(update_fields=["burnout_risk_score"])
