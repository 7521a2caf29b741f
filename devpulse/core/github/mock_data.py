"""
Deterministic GitHub-shaped demo data.

A ``MockDataGenerator`` seeded with the same value always produces the same
repositories, commits, pull requests, reviews and issues relative to its
anchor time. Payloads mirror the GitHub REST API so the sync processors treat
them exactly like live responses.
"""

import hashlib
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

ACTIVITY_LEVELS = ("low", "medium", "high")

COMMIT_COUNTS = {"high": (200, 500), "medium": (50, 200), "low": (10, 50)}
PR_COUNTS = {"high": (50, 100), "medium": (20, 50), "low": (5, 20)}
ISSUE_COUNTS = {"high": (50, 150), "medium": (20, 50), "low": (5, 20)}

LANGUAGES = ["JavaScript", "TypeScript", "Python", "Java", "Go", "Ruby", "Rust", None]
REPO_PREFIXES = ["project", "app", "service", "api", "lib", "tool", "sdk"]
REPO_NOUNS = ["atlas", "beacon", "harbor", "lantern", "meadow", "orbit", "quartz", "summit"]
COMMIT_TYPES = ["feat", "fix", "docs", "style", "refactor", "test", "chore"]
COMMIT_SCOPES = ["core", "ui", "api", "auth", "data", "config", "build", "deps"]
SUBJECTS = [
    "handle empty responses",
    "tidy up error messages",
    "add pagination support",
    "speed up dashboard queries",
    "cover edge cases in parser",
    "bump dependencies",
    "simplify settings form",
    "rework caching layer",
]
PR_VERBS = ["Add", "Fix", "Update", "Improve", "Refactor", "Implement", "Remove", "Optimize"]
ISSUE_TITLES = [
    "Crash when repository has no commits",
    "Dashboard loads slowly for large teams",
    "Settings are not saved on first login",
    "Support dark theme in reports",
    "Export fails for CSV format",
    "Trend chart shows wrong week numbers",
]
LABELS = ["bug", "enhancement", "documentation", "performance", "good first issue"]
REVIEW_STATES = ["APPROVED", "COMMENTED", "CHANGES_REQUESTED"]


@dataclass(frozen=True)
class MockUser:
    """A demo contributor with a characteristic way of working."""

    id: int
    login: str
    name: str
    email: str
    work_pattern: str
    activity_level: str
    work_hours: str

    @property
    def avatar_url(self) -> str:
        return f"https://avatars.githubusercontent.com/u/{self.id}"

    def to_github(self) -> Dict[str, Any]:
        return {"id": self.id, "login": self.login, "avatar_url": self.avatar_url}


MOCK_USERS: Tuple[MockUser, ...] = (
    MockUser(1001, "regular-dev", "Alex Johnson", "alex.johnson@example.com",
             "regular", "medium", "standard"),
    MockUser(1002, "overworked-lead", "Sam Taylor", "sam.taylor@example.com",
             "overworked", "high", "late-night"),
    MockUser(1003, "night-coder", "Jamie Rivera", "jamie.rivera@example.com",
             "irregular", "high", "late-night"),
    MockUser(1004, "balanced-dev", "Morgan Chen", "morgan.chen@example.com",
             "regular", "medium", "standard"),
    MockUser(1005, "weekend-warrior", "Casey Kim", "casey.kim@example.com",
             "overworked", "medium", "weekend"),
    MockUser(1006, "early-bird", "Riley Park", "riley.park@example.com",
             "regular", "low", "early-morning"),
)


@dataclass
class MockDataOptions:
    """Shape of a generated data set."""

    seed: int = 42
    repositories: int = 3
    activity_level: str = "medium"
    time_range_days: int = 90
    now: Optional[datetime] = None

    @classmethod
    def from_parameters(cls, seed: int, parameters: Optional[Dict[str, Any]]) -> "MockDataOptions":
        """Build options from a stored ``MockDataSet`` row's parameters."""
        params = parameters or {}
        level = params.get("activityLevel", "medium")
        return cls(
            seed=seed,
            repositories=int(params.get("repositories", 3)),
            activity_level=level if level in ACTIVITY_LEVELS else "medium",
            time_range_days=int(params.get("timeRangeDays", 90)),
        )


@dataclass
class MockData:
    repositories: List[Dict[str, Any]] = field(default_factory=list)
    commits: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    pull_requests: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    reviews: Dict[str, Dict[int, List[Dict[str, Any]]]] = field(default_factory=dict)
    issues: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class MockDataGenerator:
    """Seeded generator for demo GitHub activity."""

    def __init__(self, options: Optional[MockDataOptions] = None) -> None:
        self.options = options or MockDataOptions()
        self.rng = random.Random(self.options.seed)
        now = self.options.now or datetime.now(timezone.utc)
        self.now = now.replace(hour=0, minute=0, second=0, microsecond=0)
        self.start = self.now - timedelta(days=self.options.time_range_days)

    def _between(self, start: datetime, end: datetime) -> datetime:
        span = max(0, int((end - start).total_seconds()))
        return start + timedelta(seconds=self.rng.randint(0, span))

    def _count(self, table: Dict[str, Tuple[int, int]]) -> int:
        low, high = table[self.options.activity_level]
        return self.rng.randint(low, high)

    def _sha(self, *parts: Any) -> str:
        raw = ":".join(str(p) for p in (self.options.seed, *parts))
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()

    def commit_date(self, user: MockUser) -> datetime:
        """Pick a commit time shaped by the user's working habits."""
        moment = self._between(self.start, self.now)
        if user.work_hours == "early-morning":
            hour = self.rng.randint(5, 9)
        elif user.work_hours == "late-night":
            hour = self.rng.randint(18, 23)
        elif user.work_hours == "weekend":
            while moment.weekday() < 5:
                moment += timedelta(days=1)
            if moment > self.now:
                moment -= timedelta(days=7)
            hour = self.rng.randint(10, 20)
        else:
            hour = self.rng.randint(9, 17)

        if user.work_pattern == "overworked" and self.rng.random() < 0.4:
            hour = self.rng.randint(18, 23)
            if self.rng.random() < 0.3:
                moment += timedelta(days=5 - moment.weekday())
        elif user.work_pattern == "irregular":
            hour = self.rng.randint(0, 23)

        return moment.replace(hour=hour, minute=self.rng.randint(0, 59), second=0)

    def repository(self, index: int) -> Dict[str, Any]:
        owner = self.rng.choice(MOCK_USERS)
        name = f"{self.rng.choice(REPO_PREFIXES)}-{self.rng.choice(REPO_NOUNS)}-{index + 1}"
        created = self.now - timedelta(days=self.rng.randint(180, 720))
        updated = self._between(created, self.now)
        return {
            "id": 100000 + self.options.seed % 1000 * 100 + index,
            "name": name,
            "full_name": f"{owner.login}/{name}",
            "owner": owner.to_github(),
            "private": self.rng.random() < 0.3,
            "html_url": f"https://github.com/{owner.login}/{name}",
            "description": f"Demo repository {name}",
            "default_branch": self.rng.choice(["main", "master"]),
            "language": self.rng.choice(LANGUAGES),
            "stargazers_count": self.rng.randint(0, 500),
            "created_at": _iso(created),
            "updated_at": _iso(updated),
            "pushed_at": _iso(self._between(updated, self.now)),
        }

    def commits(self, repo: Dict[str, Any]) -> List[Dict[str, Any]]:
        commits = []
        for i in range(self._count(COMMIT_COUNTS)):
            user = self.rng.choice(MOCK_USERS)
            when = _iso(self.commit_date(user))
            if self.rng.random() < 0.7:
                scope = f"({self.rng.choice(COMMIT_SCOPES)})" if self.rng.random() < 0.6 else ""
                message = f"{self.rng.choice(COMMIT_TYPES)}{scope}: {self.rng.choice(SUBJECTS)}"
            else:
                message = self.rng.choice(SUBJECTS).capitalize()
            person = {"name": user.name, "email": user.email, "date": when}
            additions = self.rng.randint(1, 400)
            deletions = self.rng.randint(0, additions)
            commits.append(
                {
                    "sha": self._sha(repo["full_name"], "commit", i),
                    "commit": {"author": person, "committer": dict(person), "message": message},
                    "author": user.to_github(),
                    "committer": user.to_github(),
                    "stats": {
                        "additions": additions,
                        "deletions": deletions,
                        "total": additions + deletions,
                    },
                }
            )
        # Newest first, as the API returns them
        commits.sort(key=lambda c: c["commit"]["author"]["date"], reverse=True)
        return commits

    def pull_requests(
        self, repo: Dict[str, Any]
    ) -> Tuple[List[Dict[str, Any]], Dict[int, List[Dict[str, Any]]]]:
        prs = []
        reviews: Dict[int, List[Dict[str, Any]]] = {}
        for number in range(1, self._count(PR_COUNTS) + 1):
            author = self.rng.choice(MOCK_USERS)
            created = self._between(self.start, self.now)
            closed_at = merged_at = None
            if self.rng.random() < 0.7:
                closed = self._between(created, self.now)
                closed_at = _iso(closed)
                if self.rng.random() < 0.8:
                    merged_at = closed_at
            additions = self.rng.randint(5, 800)
            prs.append(
                {
                    "id": int(self._sha(repo["full_name"], "pr", number)[:8], 16),
                    "number": number,
                    "title": f"{self.rng.choice(PR_VERBS)} {self.rng.choice(SUBJECTS)}",
                    "user": author.to_github(),
                    "state": "closed" if closed_at else "open",
                    "created_at": _iso(created),
                    "updated_at": _iso(self._between(created, self.now)),
                    "closed_at": closed_at,
                    "merged_at": merged_at,
                    "additions": additions,
                    "deletions": self.rng.randint(0, additions),
                    "changed_files": self.rng.randint(1, 30),
                    "comments": self.rng.randint(0, 10),
                    "review_comments": self.rng.randint(0, 15),
                    "draft": self.rng.random() < 0.1,
                }
            )
            reviewers = [u for u in MOCK_USERS if u.id != author.id]
            reviews[number] = [
                {
                    "id": int(self._sha(repo["full_name"], "review", number, r.id)[:8], 16),
                    "user": r.to_github(),
                    "state": self.rng.choice(REVIEW_STATES),
                    "submitted_at": _iso(self._between(created, self.now)),
                }
                for r in self.rng.sample(reviewers, self.rng.randint(0, 3))
            ]
        return prs, reviews

    def issues(self, repo: Dict[str, Any]) -> List[Dict[str, Any]]:
        issues = []
        for number in range(1, self._count(ISSUE_COUNTS) + 1):
            author = self.rng.choice(MOCK_USERS)
            created = self._between(self.start, self.now)
            closed_at = _iso(self._between(created, self.now)) if self.rng.random() < 0.6 else None
            issues.append(
                {
                    "id": int(self._sha(repo["full_name"], "issue", number)[:8], 16),
                    "number": number,
                    "title": self.rng.choice(ISSUE_TITLES),
                    "user": author.to_github(),
                    "state": "closed" if closed_at else "open",
                    "created_at": _iso(created),
                    "updated_at": _iso(self._between(created, self.now)),
                    "closed_at": closed_at,
                    "comments": self.rng.randint(0, 12),
                    "labels": [
                        {"name": n} for n in self.rng.sample(LABELS, self.rng.randint(0, 2))
                    ],
                }
            )
        return issues

    def generate(self) -> MockData:
        """Produce the full data set."""
        data = MockData()
        for index in range(self.options.repositories):
            repo = self.repository(index)
            full_name = repo["full_name"]
            data.repositories.append(repo)
            data.commits[full_name] = self.commits(repo)
            data.pull_requests[full_name], data.reviews[full_name] = self.pull_requests(repo)
            data.issues[full_name] = self.issues(repo)
        return data
