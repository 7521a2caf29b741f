"""
Tortoise ORM models for DevPulse.

GitHub activity (repositories, commits, pull requests, reviews, issues),
derived metrics, teams, settings, audit records and background jobs.
"""

from enum import Enum
from uuid import uuid4

from tortoise import fields
from tortoise.models import Model

from ..auth.roles import DataPrivacy, TeamRole
from ..auth.tortoise_models import User

__all__ = [
    "AppMode",
    "AppModeType",
    "AuditLog",
    "BurnoutMetric",
    "Commit",
    "Issue",
    "Job",
    "MockDataSet",
    "PullRequest",
    "PullRequestReview",
    "Repository",
    "Retrospective",
    "SensitiveData",
    "SystemSetting",
    "Team",
    "TeamInsight",
    "TeamMember",
    "TeamRepository",
    "UserSettings",
]


class AppModeType(str, Enum):
    """Where GitHub data comes from."""

    LIVE = "LIVE"
    MOCK = "MOCK"
    DEMO = "DEMO"


class UserSettings(Model):
    """Per-user preferences."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    user: fields.OneToOneRelation[User] = fields.OneToOneField(
        "models.User", related_name="settings", on_delete=fields.CASCADE
    )
    theme = fields.CharField(max_length=20, default="system")
    email_notifications = fields.BooleanField(default=True)
    weekly_reports = fields.BooleanField(default=True)
    burnout_alerts = fields.BooleanField(default=True)
    data_privacy = fields.CharEnumField(DataPrivacy, default=DataPrivacy.STANDARD)
    dashboard_layout = fields.JSONField(null=True)
    selected_repositories = fields.JSONField(default=list)
    sync_timestamp = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for UserSettings model."""

        table = "user_settings"


class Repository(Model):
    """A GitHub repository tracked by DevPulse."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    github_id = fields.BigIntField(unique=True)
    name = fields.CharField(max_length=255)
    full_name = fields.CharField(max_length=255, db_index=True)
    owner: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="repositories", on_delete=fields.CASCADE
    )
    is_private = fields.BooleanField(default=False)
    description = fields.TextField(null=True)
    default_branch = fields.CharField(max_length=100, default="main")
    language = fields.CharField(max_length=100, null=True)
    last_synced_at = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    commits: fields.ReverseRelation["Commit"]
    pull_requests: fields.ReverseRelation["PullRequest"]
    issues: fields.ReverseRelation["Issue"]

    class Meta:
        """Meta class for Repository model."""

        table = "repository"

    def __str__(self) -> str:
        """Return string representation of Repository."""
        return f"Repository({self.full_name})"


class Commit(Model):
    """A commit ingested from GitHub."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    sha = fields.CharField(max_length=64, unique=True)
    message = fields.TextField()
    author_name = fields.CharField(max_length=255)
    author_email = fields.CharField(max_length=255)
    author_date = fields.DatetimeField(db_index=True)
    committer_name = fields.CharField(max_length=255)
    committer_email = fields.CharField(max_length=255)
    committer_date = fields.DatetimeField()
    additions = fields.IntField(default=0)
    deletions = fields.IntField(default=0)
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="commits", on_delete=fields.CASCADE
    )
    author: fields.ForeignKeyNullableRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="commits", null=True, on_delete=fields.SET_NULL
    )
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Meta class for Commit model."""

        table = "commit"


class PullRequest(Model):
    """A pull request ingested from GitHub."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    github_id = fields.BigIntField(unique=True)
    number = fields.IntField()
    title = fields.TextField()
    state = fields.CharField(max_length=20)
    created_at = fields.DatetimeField(db_index=True)
    updated_at = fields.DatetimeField()
    closed_at = fields.DatetimeField(null=True)
    merged_at = fields.DatetimeField(null=True)
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="pull_requests", on_delete=fields.CASCADE
    )
    author: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="pull_requests", on_delete=fields.CASCADE
    )
    additions = fields.IntField(default=0)
    deletions = fields.IntField(default=0)
    changed_files = fields.IntField(default=0)
    comments = fields.IntField(default=0)
    review_comments = fields.IntField(default=0)

    reviews: fields.ReverseRelation["PullRequestReview"]

    class Meta:
        """Meta class for PullRequest model."""

        table = "pull_request"


class PullRequestReview(Model):
    """A review submitted on a pull request."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    github_id = fields.BigIntField(unique=True)
    state = fields.CharField(max_length=30)
    submitted_at = fields.DatetimeField()
    pull_request: fields.ForeignKeyRelation[PullRequest] = fields.ForeignKeyField(
        "models.PullRequest", related_name="reviews", on_delete=fields.CASCADE
    )
    reviewer = fields.CharField(max_length=100)
    reviewer_user: fields.ForeignKeyNullableRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="reviews", null=True, on_delete=fields.SET_NULL
    )
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Meta class for PullRequestReview model."""

        table = "pull_request_review"


class Issue(Model):
    """An issue ingested from GitHub."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    github_id = fields.BigIntField(unique=True)
    number = fields.IntField()
    title = fields.TextField()
    state = fields.CharField(max_length=20)
    created_at = fields.DatetimeField(db_index=True)
    updated_at = fields.DatetimeField()
    closed_at = fields.DatetimeField(null=True)
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="issues", on_delete=fields.CASCADE
    )
    author: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="issues", on_delete=fields.CASCADE
    )
    comments = fields.IntField(default=0)
    labels = fields.JSONField(default=list)

    class Meta:
        """Meta class for Issue model."""

        table = "issue"


class BurnoutMetric(Model):
    """Per user, per repository, per day activity metrics."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="burnout_metrics", on_delete=fields.CASCADE
    )
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="burnout_metrics", on_delete=fields.CASCADE
    )
    date = fields.DateField(db_index=True)
    commits_count = fields.IntField(default=0)
    lines_added = fields.IntField(default=0)
    lines_deleted = fields.IntField(default=0)
    prs_opened = fields.IntField(default=0)
    prs_reviewed = fields.IntField(default=0)
    issues_created = fields.IntField(default=0)
    issues_resolved = fields.IntField(default=0)
    avg_commit_time_hour = fields.FloatField(null=True)
    weekend_commits = fields.IntField(default=0)
    late_night_commits = fields.IntField(default=0)
    avg_pr_review_time_hours = fields.FloatField(null=True)
    avg_commit_message_length = fields.IntField(null=True)
    code_review_comments = fields.IntField(default=0)
    burnout_risk_score = fields.FloatField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Meta class for BurnoutMetric model."""

        table = "burnout_metric"
        unique_together = (("user", "repository", "date"),)


class TeamInsight(Model):
    """Per repository, per day team metrics."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="team_insights", on_delete=fields.CASCADE
    )
    date = fields.DateField(db_index=True)
    member_count = fields.IntField(default=0)
    total_commits = fields.IntField(default=0)
    total_prs = fields.IntField(default=0)
    total_issues = fields.IntField(default=0)
    velocity_score = fields.FloatField()
    pr_merge_rate = fields.FloatField()
    issue_resolution_rate = fields.FloatField()
    cycle_time_average = fields.FloatField()
    collaboration_score = fields.FloatField()
    knowledge_sharing_score = fields.FloatField()
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Meta class for TeamInsight model."""

        table = "team_insight"
        unique_together = (("repository", "date"),)


class Retrospective(Model):
    """A stored team retrospective."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="retrospectives", on_delete=fields.CASCADE
    )
    start_date = fields.DateField()
    end_date = fields.DateField()
    positives = fields.JSONField(default=list)
    improvements = fields.JSONField(default=list)
    action_items = fields.JSONField(default=list)
    observations = fields.JSONField(default=list)
    recommendations = fields.JSONField(default=list)
    team_health_score = fields.FloatField()
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for Retrospective model."""

        table = "retrospective"


class Team(Model):
    """A group of users sharing repositories."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    members: fields.ReverseRelation["TeamMember"]
    repositories: fields.ReverseRelation["TeamRepository"]

    class Meta:
        """Meta class for Team model."""

        table = "team"


class TeamMember(Model):
    """Membership of a user in a team."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    team: fields.ForeignKeyRelation[Team] = fields.ForeignKeyField(
        "models.Team", related_name="members", on_delete=fields.CASCADE
    )
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="team_memberships", on_delete=fields.CASCADE
    )
    role = fields.CharEnumField(TeamRole, default=TeamRole.MEMBER)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for TeamMember model."""

        table = "team_member"
        unique_together = (("team", "user"),)


class TeamRepository(Model):
    """A repository shared with a team."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    team: fields.ForeignKeyRelation[Team] = fields.ForeignKeyField(
        "models.Team", related_name="repositories", on_delete=fields.CASCADE
    )
    repository: fields.ForeignKeyRelation[Repository] = fields.ForeignKeyField(
        "models.Repository", related_name="teams", on_delete=fields.CASCADE
    )
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Meta class for TeamRepository model."""

        table = "team_repository"
        unique_together = (("team", "repository"),)


class SensitiveData(Model):
    """Encrypted per-user value addressed by (data type, key)."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="sensitive_data", on_delete=fields.CASCADE
    )
    data_type = fields.CharField(max_length=100)
    data_key = fields.CharField(max_length=255)
    encrypted_value = fields.TextField()
    expires_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for SensitiveData model."""

        table = "sensitive_data"
        unique_together = (("user", "data_type", "data_key"),)


class AuditLog(Model):
    """Record of a security-relevant action."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    action = fields.CharField(max_length=100, db_index=True)
    entity_type = fields.CharField(max_length=100)
    entity_id = fields.CharField(max_length=255)
    description = fields.TextField()
    metadata = fields.JSONField(null=True)
    user: fields.ForeignKeyNullableRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="audit_logs", null=True, on_delete=fields.SET_NULL
    )
    ip_address = fields.CharField(max_length=100, null=True)
    user_agent = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, db_index=True)

    class Meta:
        """Meta class for AuditLog model."""

        table = "audit_log"
        indexes = (("entity_type", "entity_id"),)


class SystemSetting(Model):
    """Key/value system configuration editable by administrators."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    key = fields.CharField(max_length=100, unique=True)
    value = fields.TextField()
    description = fields.TextField(null=True)
    is_encrypted = fields.BooleanField(default=False)
    last_modified_by = fields.CharField(max_length=100, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for SystemSetting model."""

        table = "system_setting"


class MockDataSet(Model):
    """Parameters for a generated demo data set."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    seed = fields.IntField(default=42)
    scenario = fields.CharField(max_length=50, default="balanced")
    parameters = fields.JSONField(default=dict)
    is_active = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for MockDataSet model."""

        table = "mock_data_set"


class AppMode(Model):
    """The single application mode row."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    mode = fields.CharEnumField(AppModeType, default=AppModeType.LIVE)
    mock_data_set: fields.ForeignKeyNullableRelation[MockDataSet] = (
        fields.ForeignKeyField(
            "models.MockDataSet",
            related_name="app_modes",
            null=True,
            on_delete=fields.SET_NULL,
        )
    )
    enabled_features = fields.JSONField(default=list)
    error_simulation = fields.JSONField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Meta class for AppMode model."""

        table = "app_mode"


class Job(Model):
    """A background job and its outcome."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    type = fields.CharField(max_length=50, db_index=True)
    status = fields.CharField(max_length=20, db_index=True)
    priority = fields.IntField(default=2)
    payload = fields.JSONField(default=dict)
    progress = fields.IntField(default=0)
    result = fields.JSONField(null=True)
    error = fields.TextField(null=True)
    attempts = fields.IntField(default=0)
    max_attempts = fields.IntField(default=3)
    user: fields.ForeignKeyNullableRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="jobs", null=True, on_delete=fields.SET_NULL
    )
    run_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    started_at = fields.DatetimeField(null=True)
    finished_at = fields.DatetimeField(null=True)

    class Meta:
        """Meta class for Job model."""

        table = "job"
