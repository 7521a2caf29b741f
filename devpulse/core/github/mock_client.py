"""Mock GitHub client serving generated demo data."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from .mock_data import MOCK_USERS, MockData, MockDataGenerator, MockDataOptions, MockUser

logger = get_logger("github.mock")

_data_sets: Dict[Tuple[int, int, str, int], MockData] = {}


def get_mock_data(options: MockDataOptions) -> MockData:
    """Generated data for a seed, built once per process."""
    key = (
        options.seed,
        options.repositories,
        options.activity_level,
        options.time_range_days,
    )
    if key not in _data_sets:
        logger.info("Generating mock GitHub data", seed=options.seed)
        _data_sets[key] = MockDataGenerator(options).generate()
    return _data_sets[key]


def clear_mock_data() -> None:
    _data_sets.clear()


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class MockGitHubClient:
    """Same surface as ``GitHubClient``, no network."""

    def __init__(
        self,
        options: Optional[MockDataOptions] = None,
        user: Optional[MockUser] = None,
    ) -> None:
        self.options = options or MockDataOptions()
        self.user = user or MOCK_USERS[0]
        self.data = get_mock_data(self.options)

    async def close(self) -> None:
        return None

    def _repo_data(self, table: Dict[str, Any], full_name: str) -> Any:
        if full_name not in table:
            raise create_app_error(
                ErrorCode.NOT_FOUND, f"Repository {full_name} not found"
            )
        return table[full_name]

    async def get_user(self) -> Dict[str, Any]:
        return {**self.user.to_github(), "name": self.user.name, "email": self.user.email}

    async def get_user_repositories(self) -> List[Dict[str, Any]]:
        return list(self.data.repositories)

    async def get_repository(self, full_name: str) -> Dict[str, Any]:
        for repo in self.data.repositories:
            if repo["full_name"] == full_name:
                return repo
        raise create_app_error(ErrorCode.NOT_FOUND, f"Repository {full_name} not found")

    async def get_commits(
        self, full_name: str, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        commits = self._repo_data(self.data.commits, full_name)
        if since is None:
            return list(commits)
        return [c for c in commits if _parse(c["commit"]["author"]["date"]) >= since]

    async def get_commit(self, full_name: str, sha: str) -> Dict[str, Any]:
        for commit in self._repo_data(self.data.commits, full_name):
            if commit["sha"] == sha:
                return commit
        raise create_app_error(
            ErrorCode.NOT_FOUND, f"Commit {sha} not found in repository {full_name}"
        )

    async def get_pull_requests(
        self, full_name: str, state: str = "all"
    ) -> List[Dict[str, Any]]:
        prs = self._repo_data(self.data.pull_requests, full_name)
        return [p for p in prs if state == "all" or p["state"] == state]

    async def get_pull_request(self, full_name: str, number: int) -> Dict[str, Any]:
        for pr in self._repo_data(self.data.pull_requests, full_name):
            if pr["number"] == number:
                return pr
        raise create_app_error(
            ErrorCode.NOT_FOUND, f"Pull request #{number} not found in {full_name}"
        )

    async def get_pull_request_reviews(
        self, full_name: str, number: int
    ) -> List[Dict[str, Any]]:
        return list(self._repo_data(self.data.reviews, full_name).get(number, []))

    async def get_issues(self, full_name: str, state: str = "all") -> List[Dict[str, Any]]:
        issues = self._repo_data(self.data.issues, full_name)
        return [i for i in issues if state == "all" or i["state"] == state]

    async def invalidate_repository_cache(self, full_name: str) -> None:
        return None
