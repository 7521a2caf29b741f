"""
AI insights and recommendations.

Every generator first asks the completion API for a structured answer and
falls back to deterministic rules over the same metrics when AI is disabled,
unavailable or returns something unusable.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..logging import get_logger
from ..models.tortoise_models import Issue, PullRequest, Repository
from .openai_client import OpenAIClient, get_ai_client

logger = get_logger("ai.insights")

INSIGHT_TEMPERATURE = 0.7

DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]

RECOMMENDATIONS_SCHEMA = """
{
  "recommendations": [
    {
      "id": "string",
      "type": "personal",
      "priority": "high|medium|low",
      "title": "string",
      "description": "string",
      "actionItems": ["string", "string", "string"]
    }
  ]
}
"""

INSIGHTS_SCHEMA = """
{
  "insights": [
    {
      "id": "string",
      "type": "%s",
      "title": "string",
      "description": "string",
      "metrics": {"key": number},
      "trend": "improving|stable|declining",
      "confidence": number
    }
  ]
}
"""

RETROSPECTIVE_SCHEMA = """
{
  "retrospective": {
    "positives": ["string", "string", "string"],
    "improvements": ["string", "string", "string"],
    "actionItems": ["string", "string", "string"],
    "teamHealth": {"score": 75, "observations": ["string", "string"]},
    "recommendations": ["string", "string", "string"]
  }
}
"""

FACTOR_RECOMMENDATIONS = {
    "Work Hours Pattern": (
        "Establish Regular Work Hours",
        "Your work hours are irregular, which can contribute to burnout.",
        [
            "Set consistent start and end times for your workday",
            "Avoid working late at night or early in the morning",
            "Use calendar blocking to protect your personal time",
        ],
    ),
    "Weekend Work Frequency": (
        "Protect Your Weekends",
        "Working on weekends reduces recovery time and increases burnout risk.",
        [
            "Commit to keeping weekends work-free",
            "Plan enjoyable activities for your weekends",
            "If weekend work is necessary, compensate with time off during the week",
        ],
    ),
    "Workload Distribution": (
        "Balance Your Workload",
        "Your workload has significant spikes, which can lead to stress and burnout.",
        [
            "Break large tasks into smaller, manageable chunks",
            "Spread deadlines more evenly throughout the week",
            "Learn to say no or negotiate deadlines when your workload is too high",
        ],
    ),
}

RETROSPECTIVE_ACTION_ITEMS = [
    "Schedule regular knowledge sharing sessions to reduce knowledge silos.",
    "Implement a more structured code review process to improve PR merge rate.",
    "Break down larger tasks into smaller, more manageable pieces to improve velocity.",
    "Rotate responsibilities to ensure knowledge is shared across the team.",
    "Set up automated tests to catch issues earlier in the development process.",
]

RETROSPECTIVE_RECOMMENDATIONS = [
    "Focus on knowledge sharing to reduce bus factor risk.",
    "Implement pair programming for complex tasks to improve code quality and knowledge sharing.",
    "Review and optimize the PR review process to reduce cycle time.",
    "Consider team-building activities to strengthen collaboration.",
    "Establish clear coding standards and documentation practices.",
]


def _recommendation(
    rec_id: str, priority: str, title: str, description: str, action_items: List[str]
) -> Dict[str, Any]:
    return {
        "id": rec_id,
        "type": "personal",
        "priority": priority,
        "title": title,
        "description": description,
        "actionItems": list(action_items),
    }


def _percent(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0


def statistical_burnout_recommendations(burnout: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Rule-based recommendations keyed on the risk tier and strong factors."""
    risk_score = burnout["riskScore"]
    recommendations = []

    if risk_score > 70:
        recommendations.append(
            _recommendation(
                "high-risk-1",
                "high",
                "Take Time Off",
                "Your burnout risk is high. Consider taking some time off to recharge.",
                [
                    "Schedule at least 2-3 days off in the next two weeks",
                    "Disconnect completely from work during your time off",
                    "Engage in activities that help you relax and recover",
                ],
            )
        )
        recommendations.append(
            _recommendation(
                "high-risk-2",
                "high",
                "Discuss Workload with Manager",
                "Your current workload may be unsustainable. "
                "Have a conversation about priorities and support.",
                [
                    "Schedule a meeting with your manager to discuss your workload",
                    "Prepare a list of your current tasks and their priorities",
                    "Be clear about what you need to reduce your stress level",
                ],
            )
        )
    elif risk_score > 50:
        recommendations.append(
            _recommendation(
                "medium-risk-1",
                "medium",
                "Improve Work-Life Balance",
                "Your work patterns show signs of potential burnout. "
                "Focus on establishing better boundaries.",
                [
                    "Set specific work hours and stick to them",
                    "Take regular breaks during the day",
                    "Avoid checking work communications during off hours",
                ],
            )
        )
    else:
        recommendations.append(
            _recommendation(
                "low-risk-1",
                "low",
                "Maintain Healthy Habits",
                "Your burnout risk is low. "
                "Keep up the good work by maintaining healthy habits.",
                [
                    "Continue to maintain regular work hours",
                    "Take breaks throughout the day",
                    "Regularly assess your stress levels",
                ],
            )
        )

    for index, factor in enumerate(burnout.get("keyFactors", [])):
        impact = factor["impact"]
        if impact <= 0.6 or factor["name"] not in FACTOR_RECOMMENDATIONS:
            continue
        title, description, items = FACTOR_RECOMMENDATIONS[factor["name"]]
        recommendations.append(
            _recommendation(
                f"factor-{index}",
                "high" if impact > 0.8 else "medium",
                title,
                description,
                items,
            )
        )

    return recommendations[:5]


def statistical_productivity_insights(metrics: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Insights on working hours, code quality and weekly distribution."""
    hours = metrics["workHoursDistribution"]
    total = metrics["commitCount"]

    def hour_count(predicate: Any) -> int:
        return sum(h["count"] for h in hours if predicate(h["hour"]))

    early = hour_count(lambda h: 5 <= h < 9)
    normal = hour_count(lambda h: 9 <= h < 17)
    evening = hour_count(lambda h: 17 <= h < 22)
    late = hour_count(lambda h: h >= 22 or h < 5)
    normal_pct = _percent(normal, total)

    quality = metrics["codeQualityScore"]

    days = metrics["weekdayDistribution"]
    weekday = sum(d["count"] for d in days if 1 <= d["day"] <= 5)
    weekend = sum(d["count"] for d in days if d["day"] in (0, 6))

    return [
        {
            "id": "work-hours-pattern",
            "type": "productivity",
            "title": "Work Hours Pattern",
            "description": (
                "You primarily work during standard business hours, "
                "which is good for work-life balance."
                if normal_pct > 70
                else "A significant portion of your work happens outside standard "
                "business hours, which may affect work-life balance."
            ),
            "metrics": {
                "earlyMorningPercentage": _percent(early, total),
                "normalHoursPercentage": normal_pct,
                "eveningPercentage": _percent(evening, total),
                "lateNightPercentage": _percent(late, total),
            },
            "trend": "stable",
            "confidence": 0.8,
        },
        {
            "id": "code-quality",
            "type": "productivity",
            "title": "Code Quality Assessment",
            "description": (
                "Your code quality score is high, indicating good practices "
                "in your development workflow."
                if quality > 70
                else "There may be opportunities to improve your code quality "
                "through better practices."
            ),
            "metrics": {
                "codeQualityScore": quality,
                "avgCommitSize": metrics.get("avgCommitSize") or 0,
                "avgPrSize": metrics.get("avgPrSize") or 0,
            },
            "trend": "improving" if quality > 60 else "stable",
            "confidence": 0.7,
        },
        {
            "id": "work-distribution",
            "type": "productivity",
            "title": "Weekly Work Distribution",
            "description": (
                "You have a significant amount of weekend work, "
                "which may impact work-life balance."
                if weekend > total * 0.2
                else "Your work is primarily distributed during weekdays, "
                "which is good for work-life balance."
            ),
            "metrics": {
                "weekdayPercentage": _percent(weekday, total),
                "weekendPercentage": _percent(weekend, total),
            },
            "trend": "declining" if weekend > total * 0.3 else "stable",
            "confidence": 0.9,
        },
    ]


def statistical_team_insights(team: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Insights on velocity, collaboration and knowledge spread."""
    velocity = team["velocity"]
    collaboration = team["collaboration"]
    knowledge = team["knowledgeDistribution"]
    velocity_score = velocity["velocityScore"]
    collaboration_score = collaboration["collaborationScore"]
    sharing_score = knowledge["knowledgeSharingScore"]

    return [
        {
            "id": "team-velocity",
            "type": "collaboration",
            "title": "Team Velocity Assessment",
            "description": (
                "The team has a high velocity score, indicating good productivity "
                "and efficiency."
                if velocity_score > 70
                else "The team's velocity could be improved to increase productivity "
                "and efficiency."
            ),
            "metrics": {
                "velocityScore": velocity_score,
                "commitFrequency": velocity["commitFrequency"],
                "prMergeRate": round(velocity["prMergeRate"] * 100),
                "cycleTimeAverage": velocity["cycleTimeAverage"],
            },
            "trend": "improving" if velocity_score > 60 else "stable",
            "confidence": 0.8,
        },
        {
            "id": "collaboration-assessment",
            "type": "collaboration",
            "title": "Team Collaboration Assessment",
            "description": (
                "The team demonstrates strong collaboration patterns with good "
                "distribution of reviews and contributions."
                if collaboration_score > 70
                else "There are opportunities to improve team collaboration through "
                "more balanced review distribution."
            ),
            "metrics": {
                "collaborationScore": collaboration_score,
                "reviewerCount": len(collaboration["prReviewDistribution"]),
                "ownerCount": len(collaboration["codeOwnershipDistribution"]),
            },
            "trend": "improving" if collaboration_score > 60 else "stable",
            "confidence": 0.7,
        },
        {
            "id": "knowledge-distribution",
            "type": "collaboration",
            "title": "Knowledge Distribution Assessment",
            "description": (
                "Knowledge is well distributed across the team, reducing bus factor risk."
                if sharing_score > 70
                else "There may be knowledge silos within the team that could pose risks."
            ),
            "metrics": {
                "knowledgeSharingScore": sharing_score,
                "riskAreaCount": len(knowledge["riskAreas"]),
                "fileCount": len(knowledge["fileOwnership"]),
            },
            "trend": "improving" if sharing_score > 60 else "declining",
            "confidence": 0.75,
        },
    ]


def statistical_retrospective(team: Dict[str, Any]) -> Dict[str, Any]:
    """Retrospective assembled from threshold rules over the team metrics."""
    velocity = team["velocity"]
    velocity_score = velocity["velocityScore"]
    merge_rate = velocity["prMergeRate"]
    cycle_time = velocity["cycleTimeAverage"]
    collaboration_score = team["collaboration"]["collaborationScore"]
    sharing_score = team["knowledgeDistribution"]["knowledgeSharingScore"]

    health = round((velocity_score + collaboration_score + sharing_score) / 3)

    positives = []
    if velocity_score > 70:
        positives.append(
            "The team maintained a high velocity score, demonstrating good productivity."
        )
    if merge_rate > 0.7:
        positives.append(
            f"Strong PR merge rate of {round(merge_rate * 100)}%, "
            "indicating efficient code review processes."
        )
    if collaboration_score > 70:
        positives.append(
            "Good collaboration across the team with balanced code reviews and contributions."
        )
    if sharing_score > 70:
        positives.append(
            "Knowledge is well distributed across the team, reducing bus factor risk."
        )
    if cycle_time < 48:
        positives.append(
            f"Quick cycle time average of {round(cycle_time)} hours "
            "from PR creation to merge."
        )
    if len(positives) < 3:
        positives.extend(
            [
                "Team members contributed consistently throughout the period.",
                "The team successfully closed multiple issues and merged pull requests.",
                "Communication within the team was effective for completing tasks.",
            ]
        )

    improvements = []
    if velocity_score < 60:
        improvements.append(
            "Team velocity could be improved to increase overall productivity."
        )
    if merge_rate < 0.6:
        improvements.append(
            f"PR merge rate of {round(merge_rate * 100)}% indicates potential "
            "bottlenecks in the review process."
        )
    if collaboration_score < 60:
        improvements.append(
            "Collaboration patterns show imbalances in code reviews and contributions."
        )
    if sharing_score < 60:
        improvements.append(
            "Knowledge silos exist within the team, creating potential risks."
        )
    if cycle_time > 72:
        improvements.append(
            f"Long cycle time average of {round(cycle_time)} hours "
            "from PR creation to merge."
        )
    if len(improvements) < 3:
        improvements.extend(
            [
                "Code review process could be more efficient to reduce cycle time.",
                "More balanced distribution of tasks across team members "
                "would improve resilience.",
                "Documentation of code and processes could be improved "
                "for better knowledge sharing.",
            ]
        )

    observations = [
        "The team is performing well overall with good collaboration and productivity."
        if health > 70
        else "The team has several areas for improvement to enhance collaboration "
        "and productivity.",
        "The team prioritizes velocity over collaboration, which may lead to "
        "quality issues over time."
        if velocity_score > collaboration_score
        else "The team has a good balance of velocity and collaboration, "
        "supporting sustainable development.",
    ]

    return {
        "period": team["timeRange"],
        "positives": positives[:5],
        "improvements": improvements[:5],
        "actionItems": RETROSPECTIVE_ACTION_ITEMS[:5],
        "teamHealth": {"score": health, "observations": observations},
        "recommendations": RETROSPECTIVE_RECOMMENDATIONS[:5],
    }


def _burnout_prompt(burnout: Dict[str, Any]) -> str:
    factors = "\n".join(
        f"- {f['name']} (Impact: {round(f['impact'] * 100)}%): {f['description']}"
        for f in burnout.get("keyFactors", [])
    )
    return (
        "Generate personalized recommendations to help prevent burnout based on "
        "the following assessment:\n\n"
        f"Risk Score: {burnout['riskScore']}/100\n"
        f"Confidence: {round(burnout['confidence'] * 100)}%\n\n"
        f"Key Contributing Factors:\n{factors}\n\n"
        "Generate 3-5 specific, actionable recommendations that address these "
        "factors. Each recommendation should have a clear title, a brief "
        "description and 2-3 specific action items the user can take.\n"
        "Focus on practical advice that can be implemented immediately."
    )


def _productivity_prompt(metrics: Dict[str, Any]) -> str:
    hours = "\n".join(
        f"Hour {h['hour']}: {h['count']} commits"
        for h in metrics["workHoursDistribution"]
        if h["count"] > 0
    )
    days = "\n".join(
        f"Day {d['day']} ({DAY_NAMES[d['day']]}): {d['count']} commits"
        for d in metrics["weekdayDistribution"]
    )
    time_range = metrics["timeRange"]
    return (
        "Analyze the following productivity metrics and generate insights:\n\n"
        f"Time Period: {time_range['start'][:10]} to {time_range['end'][:10]}\n"
        f"Commit Count: {metrics['commitCount']}\n"
        f"Lines Added: {metrics['linesAdded']}\n"
        f"Lines Deleted: {metrics['linesDeleted']}\n"
        f"PR Count: {metrics['prCount']}\n"
        f"Issue Count: {metrics['issueCount']}\n"
        f"Average Commit Size: {metrics.get('avgCommitSize') or 'N/A'} lines\n"
        f"Average PR Size: {metrics.get('avgPrSize') or 'N/A'} lines\n"
        f"Average Time to Merge PR: {metrics.get('avgTimeToMergePr') or 'N/A'} hours\n"
        f"Average Time to Resolve Issue: "
        f"{metrics.get('avgTimeToResolveIssue') or 'N/A'} hours\n"
        f"Code Quality Score: {metrics['codeQualityScore']}/100\n\n"
        f"Work Hours Distribution:\n{hours}\n\n"
        f"Weekday Distribution:\n{days}\n\n"
        "Generate 3-5 specific insights about this developer's productivity "
        "patterns, each with a title, a description, supporting metrics, a trend "
        "(improving, stable or declining) and a confidence between 0 and 1."
    )


def _team_summary(team: Dict[str, Any]) -> str:
    velocity = team["velocity"]
    time_range = team["timeRange"]
    return (
        f"Time Period: {time_range['start'][:10]} to {time_range['end'][:10]}\n"
        f"Team Size: {team['memberCount']} members\n"
        f"Total Commits: {team['totalCommits']}\n"
        f"Total PRs: {team['totalPRs']}\n"
        f"Total Issues: {team['totalIssues']}\n\n"
        "Velocity Metrics:\n"
        f"- Velocity Score: {velocity['velocityScore']}/100\n"
        f"- Commit Frequency: {velocity['commitFrequency']} commits per day\n"
        f"- PR Merge Rate: {round(velocity['prMergeRate'] * 100)}%\n"
        f"- Issue Resolution Rate: {round(velocity['issueResolutionRate'] * 100)}%\n"
        f"- Cycle Time Average: {velocity['cycleTimeAverage']} hours\n\n"
        "Collaboration Metrics:\n"
        f"- Collaboration Score: {team['collaboration']['collaborationScore']}/100\n"
        f"- Knowledge Sharing Score: "
        f"{team['knowledgeDistribution']['knowledgeSharingScore']}/100\n"
        f"- Risk Areas: {len(team['knowledgeDistribution']['riskAreas'])}\n"
    )


class InsightsService:
    """AI-backed insights with statistical fallbacks."""

    def __init__(self, client: Optional[OpenAIClient] = None) -> None:
        self.client = client or get_ai_client()

    async def _structured(self, prompt: str, schema: str, key: str) -> Optional[Any]:
        """Return ``key`` from a structured completion, or None to fall back."""
        if not await self.client.is_available():
            return None
        try:
            response = await self.client.complete_structured(
                prompt, schema, temperature=INSIGHT_TEMPERATURE
            )
        except Exception as e:
            logger.warning(
                "AI generation failed, using statistical fallback", key=key, error=str(e)
            )
            return None
        value = response.get(key)
        if not value:
            logger.warning("AI response missing content, using statistical fallback", key=key)
            return None
        return value

    async def generate_burnout_recommendations(
        self, burnout: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Recommendations for a serialized burnout assessment."""
        result = await self._structured(
            _burnout_prompt(burnout), RECOMMENDATIONS_SCHEMA, "recommendations"
        )
        return result if result is not None else statistical_burnout_recommendations(burnout)

    async def generate_productivity_insights(
        self, metrics: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Insights for a productivity metrics summary."""
        result = await self._structured(
            _productivity_prompt(metrics), INSIGHTS_SCHEMA % "productivity", "insights"
        )
        return result if result is not None else statistical_productivity_insights(metrics)

    async def generate_team_insights(self, team: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Insights for bundled team metrics."""
        prompt = (
            "Analyze the following team metrics and generate insights:\n\n"
            f"Repository ID: {team['repositoryId']}\n"
            f"{_team_summary(team)}\n"
            "Generate 3-5 specific insights about this team's collaboration patterns "
            "and performance, each with a title, a description, supporting metrics, "
            "a trend (improving, stable or declining) and a confidence between 0 and 1."
        )
        result = await self._structured(
            prompt, INSIGHTS_SCHEMA % "collaboration", "insights"
        )
        return result if result is not None else statistical_team_insights(team)

    async def generate_retrospective(self, team: Dict[str, Any]) -> Dict[str, Any]:
        """Retrospective for a repository over the team metrics window."""
        if not await self.client.is_available():
            return statistical_retrospective(team)

        prompt = await self._retrospective_prompt(team)
        result = await self._structured(prompt, RETROSPECTIVE_SCHEMA, "retrospective")
        if result is None or "teamHealth" not in result:
            return statistical_retrospective(team)
        result["period"] = team["timeRange"]
        return result

    async def _retrospective_prompt(self, team: Dict[str, Any]) -> str:
        repository_id = team["repositoryId"]
        start = datetime.fromisoformat(team["timeRange"]["start"])
        end = datetime.fromisoformat(team["timeRange"]["end"])
        repository = await Repository.get_or_none(id=repository_id)
        prs = (
            await PullRequest.filter(
                repository_id=repository_id, created_at__gte=start, created_at__lte=end
            )
            .order_by("-created_at")
            .limit(10)
            .prefetch_related("author")
        )
        issues = (
            await Issue.filter(
                repository_id=repository_id, created_at__gte=start, created_at__lte=end
            )
            .order_by("-created_at")
            .limit(10)
            .prefetch_related("author")
        )

        def line(item: Any) -> str:
            author = item.author.username if item.author else "Unknown"
            return f'- "{item.title}" by {author} ({item.state})'

        return (
            "Generate a team retrospective for the following repository:\n\n"
            f"Repository: {repository.full_name if repository else repository_id}\n"
            f"{_team_summary(team)}\n"
            "Recent Pull Requests:\n" + "\n".join(line(pr) for pr in prs) + "\n\n"
            "Recent Issues:\n" + "\n".join(line(i) for i in issues) + "\n\n"
            "Include what went well (3-5 points), areas for improvement (3-5 points), "
            "action items (3-5 points), a team health score with observations, and "
            "recommendations for the next sprint."
        )
