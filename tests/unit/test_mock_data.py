"""Tests for the demo data generator and the mock GitHub client."""

from datetime import datetime, timedelta, timezone

import pytest

from devpulse.core.errors import AppError, ErrorCode
from devpulse.core.github.mock_client import MockGitHubClient, clear_mock_data
from devpulse.core.github.mock_data import (
    COMMIT_COUNTS,
    MOCK_USERS,
    MockDataGenerator,
    MockDataOptions,
)

ANCHOR = datetime(2024, 6, 1, 15, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fresh_mock_data():
    clear_mock_data()
    yield
    clear_mock_data()


def options(**overrides) -> MockDataOptions:
    return MockDataOptions(now=ANCHOR, **overrides)


@pytest.mark.unit
class TestMockDataGenerator:
    """Test deterministic data generation."""

    def test_same_seed_same_data(self) -> None:
        """Test generation is reproducible for a seed and anchor."""
        first = MockDataGenerator(options(seed=7)).generate()
        second = MockDataGenerator(options(seed=7)).generate()

        assert first.repositories == second.repositories
        assert first.commits == second.commits
        assert first.issues == second.issues

    def test_different_seeds_differ(self) -> None:
        """Test another seed produces another data set."""
        first = MockDataGenerator(options(seed=1)).generate()
        second = MockDataGenerator(options(seed=2)).generate()

        assert first.repositories != second.repositories

    def test_shape_follows_options(self) -> None:
        """Test repository count and activity level bounds."""
        data = MockDataGenerator(options(repositories=2, activity_level="low")).generate()

        assert len(data.repositories) == 2
        low, high = COMMIT_COUNTS["low"]
        for repo in data.repositories:
            commits = data.commits[repo["full_name"]]
            assert low <= len(commits) <= high
            assert set(data.pull_requests) == set(data.issues) == set(data.commits)

    def test_activity_stays_in_time_window(self) -> None:
        """Test commits fall inside the requested range and are newest first."""
        data = MockDataGenerator(options(time_range_days=30)).generate()
        midnight = ANCHOR.replace(hour=0, minute=0)
        earliest = midnight - timedelta(days=31)

        for commits in data.commits.values():
            dates = [c["commit"]["author"]["date"] for c in commits]
            assert dates == sorted(dates, reverse=True)
            for value in dates:
                moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
                assert earliest <= moment <= midnight + timedelta(days=7)

    def test_payloads_look_like_github(self) -> None:
        """Test payloads carry the fields the sync reads."""
        data = MockDataGenerator(options()).generate()
        repo = data.repositories[0]
        commit = data.commits[repo["full_name"]][0]
        pr = data.pull_requests[repo["full_name"]][0]

        assert repo["owner"]["login"] in {u.login for u in MOCK_USERS}
        assert len(commit["sha"]) == 40
        assert commit["stats"]["total"] == (
            commit["stats"]["additions"] + commit["stats"]["deletions"]
        )
        assert pr["state"] in ("open", "closed")
        if pr["merged_at"]:
            assert pr["closed_at"] == pr["merged_at"]

    def test_reviews_never_by_author(self) -> None:
        """Test nobody reviews their own pull request."""
        data = MockDataGenerator(options()).generate()
        for full_name, prs in data.pull_requests.items():
            for pr in prs:
                reviewers = {r["user"]["id"] for r in data.reviews[full_name][pr["number"]]}
                assert pr["user"]["id"] not in reviewers

    def test_options_from_stored_parameters(self) -> None:
        """Test unknown activity levels fall back to medium."""
        opts = MockDataOptions.from_parameters(
            99, {"repositories": "5", "activityLevel": "frantic", "timeRangeDays": 14}
        )

        assert opts.seed == 99
        assert opts.repositories == 5
        assert opts.activity_level == "medium"
        assert opts.time_range_days == 14


@pytest.mark.unit
class TestMockGitHubClient:
    """Test the mock client mirrors the live client's surface."""

    @pytest.mark.asyncio
    async def test_user_and_repositories(self) -> None:
        """Test the signed-in mock user and repository listing."""
        client = MockGitHubClient(options(), MOCK_USERS[1])

        user = await client.get_user()
        repos = await client.get_user_repositories()

        assert user["login"] == "overworked-lead"
        assert user["email"] == "sam.taylor@example.com"
        assert len(repos) == 3
        assert await client.get_repository(repos[0]["full_name"]) == repos[0]

    @pytest.mark.asyncio
    async def test_commits_since(self) -> None:
        """Test incremental commit listing filters by date."""
        client = MockGitHubClient(options())
        full_name = (await client.get_user_repositories())[0]["full_name"]
        since = ANCHOR - timedelta(days=10)

        all_commits = await client.get_commits(full_name)
        recent = await client.get_commits(full_name, since=since)

        assert len(recent) <= len(all_commits)
        for commit in recent:
            moment = datetime.fromisoformat(
                commit["commit"]["author"]["date"].replace("Z", "+00:00")
            )
            assert moment >= since

    @pytest.mark.asyncio
    async def test_filters_by_state(self) -> None:
        """Test pull requests and issues honor the state filter."""
        client = MockGitHubClient(options())
        full_name = (await client.get_user_repositories())[0]["full_name"]

        open_prs = await client.get_pull_requests(full_name, state="open")
        closed_issues = await client.get_issues(full_name, state="closed")

        assert all(p["state"] == "open" for p in open_prs)
        assert all(i["state"] == "closed" for i in closed_issues)

    @pytest.mark.asyncio
    async def test_unknown_repository(self) -> None:
        """Test missing repositories raise NOT_FOUND."""
        client = MockGitHubClient(options())

        with pytest.raises(AppError) as exc_info:
            await client.get_commits("nobody/nothing")

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_data_is_shared_per_seed(self) -> None:
        """Test clients with the same options share one generated set."""
        assert MockGitHubClient(options()).data is MockGitHubClient(options()).data
