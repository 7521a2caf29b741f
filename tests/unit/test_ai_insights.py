"""Tests for AI insights and their statistical fallbacks."""

from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from devpulse.core.ai.insights_service import (
    INSIGHT_TEMPERATURE,
    InsightsService,
    statistical_burnout_recommendations,
    statistical_productivity_insights,
    statistical_retrospective,
    statistical_team_insights,
)
from devpulse.core.ai.openai_client import OpenAIClient
from devpulse.core.config import get_config
from devpulse.core.errors import AppError, ErrorCode


def burnout(risk_score: int, *factors) -> Dict[str, Any]:
    return {
        "riskScore": risk_score,
        "keyFactors": [
            {"name": name, "impact": impact, "description": ""} for name, impact in factors
        ],
    }


def productivity(commit_hours, weekdays, quality=75) -> Dict[str, Any]:
    hours = [{"hour": h, "count": 0} for h in range(24)]
    for hour in commit_hours:
        hours[hour]["count"] += 1
    days = [{"day": d, "count": 0} for d in range(7)]
    for day in weekdays:
        days[day]["count"] += 1
    return {
        "timeRange": {"start": "2024-01-01T00:00:00+00:00", "end": "2024-01-31T00:00:00+00:00"},
        "commitCount": len(commit_hours),
        "linesAdded": 10,
        "linesDeleted": 2,
        "prCount": 1,
        "issueCount": 0,
        "avgCommitSize": 12,
        "avgPrSize": 0,
        "codeQualityScore": quality,
        "workHoursDistribution": hours,
        "weekdayDistribution": days,
    }


def team(velocity=80, merge_rate=0.8, cycle=20.0, collaboration=75, sharing=72) -> Dict[str, Any]:
    return {
        "repositoryId": "repo-1",
        "timeRange": {"start": "2024-01-01T00:00:00+00:00", "end": "2024-01-31T00:00:00+00:00"},
        "memberCount": 4,
        "totalCommits": 120,
        "totalPRs": 30,
        "totalIssues": 12,
        "velocity": {
            "velocityScore": velocity,
            "commitFrequency": 4.0,
            "prMergeRate": merge_rate,
            "issueResolutionRate": 0.5,
            "cycleTimeAverage": cycle,
        },
        "collaboration": {
            "collaborationScore": collaboration,
            "prReviewDistribution": [{}, {}],
            "codeOwnershipDistribution": [{}],
        },
        "knowledgeDistribution": {
            "knowledgeSharingScore": sharing,
            "riskAreas": [{}],
            "fileOwnership": [{}, {}, {}],
        },
    }


def ai_client(available: bool = True, response: Any = None, error: Exception = None):
    client = MagicMock()
    client.is_available = AsyncMock(return_value=available)
    client.complete_structured = AsyncMock(return_value=response, side_effect=error)
    return client


@pytest.mark.unit
class TestStatisticalFallbacks:
    """Test the rule-based insights."""

    def test_high_risk_burnout(self) -> None:
        """Test high risk adds time-off advice and strong factor advice."""
        recommendations = statistical_burnout_recommendations(
            burnout(80, ("Weekend Work Frequency", 0.9), ("Code Quality Trend", 0.9))
        )

        assert [r["id"] for r in recommendations] == ["high-risk-1", "high-risk-2", "factor-0"]
        assert recommendations[2]["title"] == "Protect Your Weekends"
        assert recommendations[2]["priority"] == "high"
        assert all(r["type"] == "personal" for r in recommendations)

    def test_low_risk_burnout(self) -> None:
        """Test weak factors add nothing beyond the tier advice."""
        recommendations = statistical_burnout_recommendations(
            burnout(20, ("Work Hours Pattern", 0.5))
        )

        assert [r["id"] for r in recommendations] == ["low-risk-1"]

    def test_medium_factor_priority(self) -> None:
        """Test factors between 0.6 and 0.8 are medium priority."""
        recommendations = statistical_burnout_recommendations(
            burnout(55, ("Workload Distribution", 0.7))
        )

        assert recommendations[0]["id"] == "medium-risk-1"
        assert recommendations[1]["priority"] == "medium"

    def test_productivity_insights(self) -> None:
        """Test hour buckets and weekend share."""
        metrics = productivity([10, 11, 14, 23], weekdays=[0, 6, 2, 3])

        work_hours, quality, distribution = statistical_productivity_insights(metrics)

        assert work_hours["metrics"]["normalHoursPercentage"] == 75
        assert work_hours["metrics"]["lateNightPercentage"] == 25
        assert quality["trend"] == "improving"
        assert distribution["metrics"]["weekendPercentage"] == 50
        assert distribution["trend"] == "declining"

    def test_productivity_insights_without_commits(self) -> None:
        """Test empty histories do not divide by zero."""
        work_hours, _, distribution = statistical_productivity_insights(
            productivity([], weekdays=[])
        )

        assert work_hours["metrics"]["normalHoursPercentage"] == 0
        assert distribution["metrics"]["weekdayPercentage"] == 0

    def test_team_insights(self) -> None:
        """Test team insights reflect the scores."""
        velocity, collaboration, knowledge = statistical_team_insights(team(sharing=40))

        assert velocity["metrics"]["prMergeRate"] == 80
        assert collaboration["metrics"]["reviewerCount"] == 2
        assert knowledge["trend"] == "declining"

    def test_healthy_retrospective(self) -> None:
        """Test a healthy team gets positives and a health score."""
        retro = statistical_retrospective(team())

        assert retro["teamHealth"]["score"] == 76
        assert len(retro["positives"]) == 5
        assert retro["period"]["start"].startswith("2024-01-01")
        assert len(retro["improvements"]) == 3
        assert len(retro["actionItems"]) == 5

    def test_struggling_retrospective(self) -> None:
        """Test weak scores produce specific improvements."""
        retro = statistical_retrospective(
            team(velocity=40, merge_rate=0.4, cycle=100, collaboration=30, sharing=20)
        )

        assert len(retro["improvements"]) == 5
        assert "40%" in retro["improvements"][1]
        assert retro["teamHealth"]["score"] == 30


@pytest.mark.unit
class TestInsightsService:
    """Test AI generation with fallbacks."""

    @pytest.mark.asyncio
    async def test_unavailable_ai_uses_statistics(self) -> None:
        """Test no completion is requested when AI is unavailable."""
        client = ai_client(available=False)
        service = InsightsService(client)

        result = await service.generate_burnout_recommendations(burnout(80))

        assert result[0]["id"] == "high-risk-1"
        client.complete_structured.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_result_is_returned(self) -> None:
        """Test the AI answer is used when present."""
        insights = [{"id": "ai-1", "title": "Ship smaller PRs"}]
        client = ai_client(response={"insights": insights})
        service = InsightsService(client)

        result = await service.generate_productivity_insights(productivity([10], [2]))

        assert result == insights
        kwargs = client.complete_structured.await_args.kwargs
        assert kwargs["temperature"] == INSIGHT_TEMPERATURE

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back(self) -> None:
        """Test completion errors fall back to statistics."""
        client = ai_client(error=RuntimeError("upstream timeout"))
        service = InsightsService(client)

        result = await service.generate_team_insights(team())

        assert [i["id"] for i in result] == [
            "team-velocity",
            "collaboration-assessment",
            "knowledge-distribution",
        ]

    @pytest.mark.asyncio
    async def test_empty_ai_response_falls_back(self) -> None:
        """Test responses without the expected key fall back."""
        service = InsightsService(ai_client(response={"recommendations": []}))

        result = await service.generate_burnout_recommendations(burnout(10))

        assert result[0]["id"] == "low-risk-1"

    @pytest.mark.asyncio
    async def test_retrospective_without_ai(self) -> None:
        """Test retrospectives fall back without touching the database."""
        service = InsightsService(ai_client(available=False))

        retro = await service.generate_retrospective(team())

        assert retro["teamHealth"]["score"] == 76


def completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def sdk_client(result: Any = None, error: Exception = None) -> MagicMock:
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    sdk.models.list = AsyncMock(return_value=[])
    return sdk


@pytest.mark.unit
class TestOpenAIClient:
    """Test the completion client wrapper."""

    @pytest.mark.asyncio
    async def test_unavailable_when_feature_disabled(self) -> None:
        """Test the feature flag gates availability."""
        get_config().features.ai_features = False
        client = OpenAIClient(api_key="sk-test", client=sdk_client())

        assert await client.is_available() is False

    @pytest.mark.asyncio
    async def test_available_when_api_answers(self) -> None:
        """Test the availability probe lists models once and caches the result."""
        get_config().features.ai_features = True
        sdk = sdk_client()
        client = OpenAIClient(api_key="sk-test", client=sdk)

        assert await client.is_available() is True
        assert await client.is_available() is True
        sdk.models.list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        """Test completions without a key are unavailable."""
        client = OpenAIClient(api_key="")

        with pytest.raises(AppError) as exc_info:
            await client.complete("hello")

        assert exc_info.value.code == ErrorCode.AI_SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_complete_returns_text(self) -> None:
        """Test the first choice's content is returned."""
        sdk = sdk_client(result=completion("All good"))
        client = OpenAIClient(api_key="sk-test", model="gpt-test", client=sdk)

        assert await client.complete("hello", temperature=0.2) == "All good"
        kwargs = sdk.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][1] == {"role": "user", "content": "hello"}

    @pytest.mark.asyncio
    async def test_complete_wraps_sdk_errors(self) -> None:
        """Test SDK failures become AI_SERVICE_UNAVAILABLE."""
        client = OpenAIClient(api_key="sk-test", client=sdk_client(error=RuntimeError("503")))

        with pytest.raises(AppError) as exc_info:
            await client.complete("hello")

        assert exc_info.value.code == ErrorCode.AI_SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_structured_parses_json(self) -> None:
        """Test JSON mode responses are decoded."""
        sdk = sdk_client(result=completion('{"insights": [1, 2]}'))
        client = OpenAIClient(api_key="sk-test", client=sdk)

        assert await client.complete_structured("p", "{}") == {"insights": [1, 2]}
        kwargs = sdk.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_structured_rejects_invalid_json(self) -> None:
        """Test unparseable output is an AI processing error."""
        client = OpenAIClient(api_key="sk-test", client=sdk_client(result=completion("not json")))

        with pytest.raises(AppError) as exc_info:
            await client.complete_structured("p", "{}")

        assert exc_info.value.code == ErrorCode.AI_PROCESSING_ERROR
