"""
Tests for the HTTP API.

Requests go through the ASGI app with the signed-in user injected via
dependency overrides; every response is checked against the envelope.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from devpulse.core.ai import InsightsService
from devpulse.core.auth.roles import DataPrivacy, UserRole
from devpulse.core.config import get_config
from devpulse.core.dependencies import get_insights_service
from devpulse.core.github.mock_client import clear_mock_data
from devpulse.core.models.tortoise_models import (
    AuditLog,
    Job,
    Retrospective,
    TeamInsight,
    TeamMember,
    UserSettings,
)


def assert_error(response: httpx.Response, status: int, code: str) -> None:
    assert response.status_code == status
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert "timestamp" in body


@pytest.mark.unit
class TestHealthAndMiddleware:
    """Test the health endpoint and cross-cutting middleware."""

    @pytest.mark.asyncio
    async def test_health_degraded_without_redis(self, app, db) -> None:
        """Test a missing Redis degrades rather than fails the service."""
        cache = MagicMock()
        cache.health_check = AsyncMock(return_value=False)
        transport = httpx.ASGITransport(app=app)

        with patch("devpulse.api.routes.health.get_cache", return_value=cache):
            async with httpx.AsyncClient(
                transport=transport, base_url="http://testserver"
            ) as client:
                response = await client.get("/api/health")

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["status"] == "degraded"
        assert body["data"]["components"]["database"] == "healthy"
        assert body["data"]["components"]["redis"] == "unavailable"

    @pytest.mark.asyncio
    async def test_security_headers_and_request_id(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.get("/api/auth/me", headers={"x-request-id": "req-42"})

        assert response.headers["x-request-id"] == "req-42"
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_unauthenticated(self, app, db) -> None:
        """Test requests without a session get the 401 envelope."""
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://testserver"
        ) as client:
            me = await client.get("/api/auth/me")
            jobs = await client.get("/api/jobs")

        assert_error(me, 401, "UNAUTHORIZED")
        assert me.json()["error"]["message"] == "Not authenticated"
        assert_error(jobs, 401, "UNAUTHORIZED")

    @pytest.mark.asyncio
    async def test_sign_in_checked_before_feature_flags(self, app, db) -> None:
        """Test anonymous callers get 401 even when the feature is switched off."""
        get_config().features.ai_features = False
        get_config().features.background_jobs = False
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://testserver"
        ) as client:
            insights = await client.get("/api/insights/burnout")
            jobs = await client.post("/api/jobs", json={"type": "team-metrics"})

        assert_error(insights, 401, "UNAUTHORIZED")
        assert_error(jobs, 401, "UNAUTHORIZED")

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_500(self, app, db) -> None:
        """Test an unhandled exception is reported without leaking its message."""

        @app.get("/api/explode")
        async def explode() -> None:
            raise RuntimeError("database password is hunter2")

        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://testserver"
        ) as client:
            response = await client.get("/api/explode")

        assert_error(response, 500, "INTERNAL_SERVER_ERROR")
        assert response.json()["error"]["message"] == "An unexpected error occurred"
        assert "hunter2" not in response.text

    @pytest.mark.asyncio
    async def test_rate_limit(self, db, monkeypatch) -> None:
        """Test clients over the request limit get 429 with Retry-After."""
        from devpulse.api.app import create_app

        monkeypatch.setattr(get_config().api, "rate_limit_requests", 2)
        transport = httpx.ASGITransport(app=create_app())
        async with httpx.AsyncClient(
            transport=transport, base_url="http://testserver"
        ) as client:
            for _ in range(2):
                await client.get("/api/auth/me")
            with patch("devpulse.api.routes.health.get_cache") as get_cache:
                get_cache.return_value.health_check = AsyncMock(return_value=True)
                health = await client.get("/api/health")
            limited = await client.get("/api/auth/me")

        assert health.status_code == 200
        assert_error(limited, 429, "RATE_LIMITED")
        assert limited.headers["retry-after"] == str(get_config().api.rate_limit_window)

    @pytest.mark.asyncio
    async def test_validation_errors_are_bad_request(self, client_for, user) -> None:
        """Test request validation failures use the 400 envelope."""
        async with client_for(user) as client:
            response = await client.get(
                "/api/analytics/burnout", params={"repositoryId": "nope", "userId": str(user.id)}
            )

        assert_error(response, 400, "BAD_REQUEST")
        assert response.json()["error"]["details"][0]["loc"] == ["query", "repositoryId"]


@pytest.mark.unit
class TestAuthRoutes:
    """Test the current-user endpoints."""

    @pytest.mark.asyncio
    async def test_me_lists_permissions(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.get("/api/auth/me")

        data = response.json()["data"]
        assert data["username"] == "developer"
        assert "view:burnout_personal" in data["permissions"]
        assert "admin:system" not in data["permissions"]

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.post("/api/auth/logout")

        assert response.status_code == 200
        assert get_config().security.cookie_name in response.headers.get("set-cookie", "")


@pytest.mark.unit
class TestUserRoutes:
    """Test profile, settings and role endpoints."""

    @pytest.mark.asyncio
    async def test_own_profile_with_settings(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.get(f"/api/users/{user.id}")

        data = response.json()["data"]
        assert data["id"] == str(user.id)
        assert data["settings"]["theme"] == "system"

    @pytest.mark.asyncio
    async def test_other_profiles_are_forbidden(self, client_for, user, admin) -> None:
        """Test developers cannot read other users while admins can."""
        async with client_for(user) as client:
            denied = await client.get(f"/api/users/{admin.id}")
        async with client_for(admin) as client:
            allowed = await client.get(f"/api/users/{user.id}")

        assert_error(denied, 403, "FORBIDDEN")
        assert allowed.status_code == 200

    @pytest.mark.asyncio
    async def test_update_settings(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.patch(
                f"/api/users/{user.id}/settings", json={"theme": "dark", "weeklyReports": False}
            )
            invalid = await client.patch(
                f"/api/users/{user.id}/settings", json={"theme": "neon"}
            )

        assert response.json()["data"]["theme"] == "dark"
        assert response.json()["data"]["weeklyReports"] is False
        assert_error(invalid, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_settings_sync(self, client_for, user, admin) -> None:
        """Test sync reports whether the payload was applied and is owner-only."""
        later = (datetime.now(timezone.utc) + timedelta(minutes=1)).isoformat()
        async with client_for(user) as client:
            response = await client.post(
                f"/api/users/{user.id}/settings/sync",
                json={"theme": "dark", "syncTimestamp": later},
            )
        async with client_for(admin) as client:
            denied = await client.post(f"/api/users/{user.id}/settings/sync", json={})

        assert response.json()["data"]["applied"] is True
        assert_error(denied, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_list_users_requires_admin(self, client_for, user, admin) -> None:
        async with client_for(user) as client:
            denied = await client.get("/api/users")
        async with client_for(admin) as client:
            allowed = await client.get("/api/users?limit=1")

        assert_error(denied, 403, "FORBIDDEN")
        assert allowed.json()["data"]["pagination"]["totalCount"] == 2

    @pytest.mark.asyncio
    async def test_role_changes(self, client_for, user, admin) -> None:
        """Test admins promote others but cannot demote themselves."""
        async with client_for(admin) as client:
            promoted = await client.put(f"/api/users/{user.id}/role", json={"role": "TEAM_LEAD"})
            demoted = await client.put(f"/api/users/{admin.id}/role", json={"role": "DEVELOPER"})

        assert promoted.json()["data"]["role"] == "TEAM_LEAD"
        assert_error(demoted, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_data_export(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.post(
                f"/api/users/{user.id}/data-export", json={"entityTypes": ["User"]}
            )
            queued = await client.post(f"/api/users/{user.id}/data-export", json={"format": "pdf"})

        assert response.json()["data"]["data"]["user"][0]["username"] == "developer"
        assert queued.status_code == 201
        assert queued.json()["data"]["status"] == "waiting"

    @pytest.mark.asyncio
    async def test_scheduled_deletion(self, client_for, user) -> None:
        when = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
        async with client_for(user) as client:
            response = await client.put(
                f"/api/users/{user.id}/data-deletion", json={"scheduledDate": when}
            )

        assert response.status_code == 201
        assert response.json()["data"]["status"] == "delayed"
        assert await AuditLog.exists(action="SCHEDULE_DATA_DELETION")


@pytest.mark.unit
class TestTeamRoutes:
    """Test team endpoints."""

    @pytest.mark.asyncio
    async def test_team_lifecycle(self, client_for, make_user) -> None:
        """Test a lead creates a team, invites and removes a member."""
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        await make_user("teammate", email="teammate@example.com")

        async with client_for(lead) as client:
            created = await client.post("/api/teams", json={"name": "Platform"})
            team_id = created.json()["data"]["id"]
            invited = await client.post(
                f"/api/teams/{team_id}/invite", json={"email": "teammate@example.com"}
            )
            member_id = invited.json()["data"]["id"]
            removed = await client.delete(f"/api/teams/{team_id}/members/{member_id}")

        assert created.status_code == 201
        assert created.json()["data"]["members"][0]["role"] == "LEAD"
        assert invited.status_code == 201
        assert removed.json()["data"]["message"] == "Member removed from team"
        assert await TeamMember.filter(team_id=team_id).count() == 1

    @pytest.mark.asyncio
    async def test_developers_cannot_create_teams(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.post("/api/teams", json={"name": "Skunkworks"})

        assert_error(response, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_non_members_cannot_view(self, client_for, make_user, user) -> None:
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        async with client_for(lead) as client:
            team_id = (await client.post("/api/teams", json={"name": "Platform"})).json()["data"]["id"]
        async with client_for(user) as client:
            response = await client.get(f"/api/teams/{team_id}")

        assert_error(response, 403, "FORBIDDEN")


@pytest.mark.unit
class TestJobRoutes:
    """Test job submission and management."""

    @pytest.mark.asyncio
    async def test_submission_requires_background_jobs(self, client_for, user) -> None:
        get_config().features.background_jobs = False
        async with client_for(user) as client:
            response = await client.post("/api/jobs", json={"type": "team-metrics"})

        assert_error(response, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_submit_list_cancel(self, client_for, user) -> None:
        """Test the job lifecycle through the API."""
        get_config().features.background_jobs = True
        async with client_for(user) as client:
            submitted = await client.post(
                "/api/jobs",
                json={"type": "metrics-calculation", "data": {"userId": "someone-else"}},
            )
            job_id = submitted.json()["data"]["jobId"]
            listed = await client.get("/api/jobs")
            cancelled = await client.delete(f"/api/jobs/{job_id}")
            again = await client.delete(f"/api/jobs/{job_id}")

        assert submitted.status_code == 201
        job = await Job.get(id=job_id)
        assert job.payload["userId"] == str(user.id)
        assert listed.json()["data"]["count"] == 1
        assert cancelled.json()["data"]["status"] == "cancelled"
        assert_error(again, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_lifecycle_jobs_cannot_be_submitted(self, client_for, user) -> None:
        get_config().features.background_jobs = True
        async with client_for(user) as client:
            response = await client.post("/api/jobs", json={"type": "data-deletion"})

        assert_error(response, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_delay_is_capped_for_non_admins(self, client_for, user, admin) -> None:
        """Test only admins may queue jobs more than a day ahead."""
        get_config().features.background_jobs = True
        payload = {"type": "team-metrics", "priority": 4, "delay": 7 * 86400}
        async with client_for(user) as client:
            denied = await client.post("/api/jobs", json=payload)
        async with client_for(admin) as client:
            allowed = await client.post("/api/jobs", json=payload)

        assert_error(denied, 400, "BAD_REQUEST")
        assert allowed.status_code == 201
        assert allowed.json()["data"]["status"] == "delayed"

    @pytest.mark.asyncio
    async def test_other_users_jobs_are_hidden(self, client_for, user, make_user) -> None:
        get_config().features.background_jobs = True
        other = await make_user("other")
        async with client_for(other) as client:
            job_id = (
                await client.post("/api/jobs", json={"type": "team-metrics"})
            ).json()["data"]["jobId"]
        async with client_for(user) as client:
            response = await client.get(f"/api/jobs/{job_id}")

        assert_error(response, 404, "NOT_FOUND")


@pytest.mark.unit
class TestAdminRoutes:
    """Test administration endpoints."""

    @pytest.mark.asyncio
    async def test_developers_are_rejected(self, client_for, user) -> None:
        async with client_for(user) as client:
            response = await client.get("/api/admin/settings")

        assert_error(response, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_update_and_read_settings(self, client_for, admin) -> None:
        async with client_for(admin) as client:
            await client.put("/api/admin/settings", json={"key": "burnout_threshold", "value": 60})
            response = await client.get("/api/admin/settings")

        assert response.json()["data"]["burnout_threshold"] == 60

    @pytest.mark.asyncio
    async def test_switch_app_mode(self, client_for, admin) -> None:
        get_config().features.mock_mode = False
        async with client_for(admin) as client:
            response = await client.put("/api/admin/app-mode", json={"mode": "MOCK"})
            current = await client.get("/api/admin/app-mode")

        assert response.json()["data"]["mode"] == "MOCK"
        assert current.json()["data"]["mode"] == "MOCK"


@pytest.mark.unit
class TestGitHubRoutes:
    """Test repository listing in mock mode."""

    @pytest.mark.asyncio
    async def test_repositories_from_mock_data(self, client_for, user) -> None:
        """Test mock mode serves generated repositories with selection flags."""
        get_config().features.mock_mode = True
        clear_mock_data()
        try:
            async with client_for(user) as client:
                listed = await client.get("/api/github/repositories")
                repositories = listed.json()["data"]["repositories"]
                chosen = repositories[0]["fullName"]
                await client.post(
                    "/api/github/repositories/selection", json={"repositories": [chosen]}
                )
                again = await client.get("/api/github/repositories")
        finally:
            clear_mock_data()

        assert listed.json()["data"]["total"] == len(repositories) > 0
        selected = [r for r in again.json()["data"]["repositories"] if r["selected"]]
        assert [r["fullName"] for r in selected] == [chosen]


@pytest.mark.unit
class TestAnalyticsRoutes:
    """Test the analytics views over mirrored activity."""

    @pytest.mark.asyncio
    async def test_burnout_requires_repository(
        self, client_for, user, make_repository
    ) -> None:
        repository = await make_repository(user)
        async with client_for(user) as client:
            missing = await client.get("/api/analytics/burnout")
            response = await client.get(
                "/api/analytics/burnout", params={"repositoryId": str(repository.id)}
            )

        assert_error(missing, 400, "BAD_REQUEST")
        assert missing.json()["error"]["message"] == "Repository ID is required"
        assert response.status_code == 200
        assert 0 <= response.json()["data"]["riskScore"] <= 100

    @pytest.mark.asyncio
    async def test_burnout_of_another_user_is_forbidden(
        self, client_for, user, make_user, make_repository
    ) -> None:
        other = await make_user("other")
        repository = await make_repository(user)
        async with client_for(user) as client:
            response = await client.get(
                "/api/analytics/burnout",
                params={"repositoryId": str(repository.id), "userId": str(other.id)},
            )

        assert_error(response, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_productivity_rejects_inverted_range(self, client_for, user) -> None:
        now = datetime.now(timezone.utc)
        async with client_for(user) as client:
            ok = await client.get("/api/analytics/productivity")
            inverted = await client.get(
                "/api/analytics/productivity",
                params={
                    "startDate": now.isoformat(),
                    "endDate": (now - timedelta(days=1)).isoformat(),
                },
            )

        assert ok.status_code == 200
        assert ok.json()["data"]["commitCount"] == 0
        assert_error(inverted, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_personal_sections_and_privacy(self, client_for, user) -> None:
        """Test section flags and that minimal sharing hides work hours."""
        await UserSettings.create(user=user, data_privacy=DataPrivacy.MINIMAL)
        async with client_for(user) as client:
            full = await client.get("/api/analytics/personal")
            partial = await client.get(
                "/api/analytics/personal",
                params={"includeBurnout": "false", "includeProductivity": "false"},
            )

        data = full.json()["data"]
        assert data["userId"] == str(user.id)
        assert {"timeRange", "productivity", "trends", "workPatterns", "burnout"} <= set(data)
        assert "workHoursDistribution" not in data["productivity"]
        assert data["productivity"]["commitCount"] == 0
        assert set(partial.json()["data"]) == {"userId", "timeRange", "workPatterns"}

    @pytest.mark.asyncio
    async def test_team_pages_velocity_trend(
        self, client_for, user, make_user, make_repository
    ) -> None:
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        repository = await make_repository(lead)
        today = datetime.now(timezone.utc).date()
        for offset in range(5, 0, -1):
            await TeamInsight.create(
                repository=repository,
                date=today - timedelta(days=offset),
                velocity_score=float(offset * 10),
                pr_merge_rate=0.5,
                issue_resolution_rate=0.5,
                cycle_time_average=12.0,
                collaboration_score=40.0,
                knowledge_sharing_score=40.0,
            )
        params = {"repositoryId": str(repository.id), "page": 2, "pageSize": 2}

        async with client_for(lead) as client:
            response = await client.get("/api/analytics/team", params=params)
        async with client_for(user) as client:
            denied = await client.get("/api/analytics/team", params=params)

        data = response.json()["data"]
        assert data["pagination"] == {
            "page": 2,
            "pageSize": 2,
            "totalItems": 5,
            "totalPages": 3,
        }
        assert [p["value"] for p in data["velocity"]["historicalTrend"]] == [30.0, 20.0]
        assert_error(denied, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_trends_validate_metric_and_interval(self, client_for, user) -> None:
        async with client_for(user) as client:
            ok = await client.get(
                "/api/analytics/trends", params={"metric": "prs", "interval": "week"}
            )
            bad_metric = await client.get("/api/analytics/trends", params={"metric": "lines"})
            bad_interval = await client.get(
                "/api/analytics/trends", params={"interval": "hour"}
            )

        assert ok.status_code == 200
        assert ok.json()["data"]["interval"] == "week"
        assert isinstance(ok.json()["data"]["data"], list)
        assert_error(bad_metric, 400, "BAD_REQUEST")
        assert_error(bad_interval, 400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_metrics_calculated_inline(
        self, client_for, user, make_repository
    ) -> None:
        """Test inline recalculation stores rows the listing then returns."""
        get_config().features.background_jobs = False
        repository = await make_repository(user)
        async with client_for(user) as client:
            missing = await client.post("/api/analytics/metrics", json={})
            calculated = await client.post(
                "/api/analytics/metrics",
                json={"repositoryId": str(repository.id), "days": 3},
            )
            listed = await client.get(
                "/api/analytics/metrics", params={"repositoryId": str(repository.id)}
            )

        assert_error(missing, 400, "BAD_REQUEST")
        processed = calculated.json()["data"]["daysProcessed"]
        assert calculated.status_code == 200
        assert processed > 0
        assert listed.json()["data"]["count"] == processed
        assert listed.json()["data"]["metrics"][0]["repositoryId"] == str(repository.id)

    @pytest.mark.asyncio
    async def test_metrics_queued_with_background_jobs(self, client_for, user) -> None:
        get_config().features.background_jobs = True
        async with client_for(user) as client:
            response = await client.post("/api/analytics/metrics", json={"days": 7})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["type"] == "metrics-calculation"
        job = await Job.get(id=data["jobId"])
        assert job.payload["userId"] == str(user.id)
        assert job.payload["days"] == 7


@pytest.mark.unit
class TestInsightsRoutes:
    """Test AI insight routes with the model unavailable."""

    @pytest.fixture
    def statistical_insights(self, app):
        """Serve insights from the statistical fallbacks."""
        client = MagicMock()
        client.is_available = AsyncMock(return_value=False)
        app.dependency_overrides[get_insights_service] = lambda: InsightsService(
            client=client
        )
        get_config().features.ai_features = True

    @pytest.mark.asyncio
    async def test_disabled_ai_is_forbidden(self, client_for, user) -> None:
        get_config().features.ai_features = False
        async with client_for(user) as client:
            response = await client.get("/api/insights/productivity")

        assert_error(response, 403, "FORBIDDEN")
        assert response.json()["error"]["message"] == "AI features are disabled"

    @pytest.mark.asyncio
    async def test_personal_insights(
        self, statistical_insights, client_for, user, make_repository
    ) -> None:
        repository = await make_repository(user)
        async with client_for(user) as client:
            burnout = await client.get(
                "/api/insights/burnout", params={"repositoryId": str(repository.id)}
            )
            no_repository = await client.get("/api/insights/burnout")
            productivity = await client.get("/api/insights/productivity")

        assert burnout.status_code == 200
        assert "riskScore" in burnout.json()["data"]["burnoutRisk"]
        assert isinstance(burnout.json()["data"]["recommendations"], list)
        assert_error(no_repository, 400, "BAD_REQUEST")
        assert productivity.json()["data"]["metrics"]["commitCount"] == 0
        assert isinstance(productivity.json()["data"]["insights"], list)

    @pytest.mark.asyncio
    async def test_team_insights(
        self, statistical_insights, client_for, user, make_user, make_repository
    ) -> None:
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        repository = await make_repository(lead)
        params = {"repositoryId": str(repository.id)}
        async with client_for(lead) as client:
            response = await client.get("/api/insights/team", params=params)
        async with client_for(user) as client:
            denied = await client.get("/api/insights/team", params=params)

        data = response.json()["data"]
        assert data["metrics"]["repositoryId"] == str(repository.id)
        assert len(data["insights"]) > 0
        assert_error(denied, 403, "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_retrospective_created_then_listed(
        self, statistical_insights, client_for, make_user, make_repository
    ) -> None:
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        repository = await make_repository(lead)
        async with client_for(lead) as client:
            created = await client.post(
                "/api/insights/retrospective", json={"repositoryId": str(repository.id)}
            )
            retrospective_id = created.json()["data"]["id"]
            listed = await client.get(
                "/api/insights/retrospective", params={"repositoryId": str(repository.id)}
            )
            single = await client.get(
                "/api/insights/retrospective", params={"id": retrospective_id}
            )

        assert created.status_code == 201
        assert 0 <= created.json()["data"]["teamHealth"]["score"] <= 100
        assert [r["id"] for r in listed.json()["data"]] == [retrospective_id]
        assert single.json()["data"]["repositoryId"] == str(repository.id)
        assert await Retrospective.filter(repository_id=repository.id).count() == 1

    @pytest.mark.asyncio
    async def test_developers_cannot_create_retrospectives(
        self, statistical_insights, client_for, user, make_repository
    ) -> None:
        repository = await make_repository(user)
        async with client_for(user) as client:
            response = await client.post(
                "/api/insights/retrospective", json={"repositoryId": str(repository.id)}
            )

        assert_error(response, 403, "FORBIDDEN")
