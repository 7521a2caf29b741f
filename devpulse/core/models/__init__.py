"""Tortoise ORM models for DevPulse."""

from ..auth.tortoise_models import Permission, User
from .tortoise_models import (
    AppMode,
    AppModeType,
    AuditLog,
    BurnoutMetric,
    Commit,
    Issue,
    Job,
    MockDataSet,
    PullRequest,
    PullRequestReview,
    Repository,
    Retrospective,
    SensitiveData,
    SystemSetting,
    Team,
    TeamInsight,
    TeamMember,
    TeamRepository,
    UserSettings,
)

__all__ = [
    "AppMode",
    "AppModeType",
    "AuditLog",
    "BurnoutMetric",
    "Commit",
    "Issue",
    "Job",
    "MockDataSet",
    "Permission",
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
    "User",
    "UserSettings",
]
