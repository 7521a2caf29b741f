"""
Roles and permissions for DevPulse.

Users carry one global role; each role grants a default permission set and
individual permissions can be granted on top of it.
"""

from enum import Enum
from typing import Dict, FrozenSet


class UserRole(str, Enum):
    """Global user roles."""

    DEVELOPER = "DEVELOPER"
    TEAM_LEAD = "TEAM_LEAD"
    ADMINISTRATOR = "ADMINISTRATOR"


class TeamRole(str, Enum):
    """Roles within a team."""

    MEMBER = "MEMBER"
    LEAD = "LEAD"
    ADMIN = "ADMIN"


class DataPrivacy(str, Enum):
    """How much personal analytics detail a user shares."""

    MINIMAL = "MINIMAL"
    STANDARD = "STANDARD"
    DETAILED = "DETAILED"


class Permissions:
    """Permission names."""

    VIEW_PERSONAL_METRICS = "view:personal_metrics"
    VIEW_TEAM_METRICS = "view:team_metrics"
    VIEW_BURNOUT_PERSONAL = "view:burnout_personal"
    VIEW_BURNOUT_TEAM = "view:burnout_team"
    MANAGE_REPOSITORIES = "manage:repositories"
    MANAGE_TEAMS = "manage:teams"
    CREATE_RETROSPECTIVES = "create:retrospectives"
    ADMIN_USERS = "admin:users"
    ADMIN_SYSTEM = "admin:system"
    ADMIN_MOCK_MODE = "admin:mock_mode"

    DESCRIPTIONS: Dict[str, str] = {
        VIEW_PERSONAL_METRICS: "View personal productivity metrics",
        VIEW_TEAM_METRICS: "View team productivity metrics",
        VIEW_BURNOUT_PERSONAL: "View personal burnout assessment",
        VIEW_BURNOUT_TEAM: "View burnout assessments of team members",
        MANAGE_REPOSITORIES: "Add, remove and sync repositories",
        MANAGE_TEAMS: "Create teams and manage their members",
        CREATE_RETROSPECTIVES: "Generate team retrospectives",
        ADMIN_USERS: "Manage users and roles",
        ADMIN_SYSTEM: "Manage system settings",
        ADMIN_MOCK_MODE: "Switch the application between live and mock data",
    }


_DEVELOPER = frozenset(
    {Permissions.VIEW_PERSONAL_METRICS, Permissions.VIEW_BURNOUT_PERSONAL}
)
_TEAM_LEAD = _DEVELOPER | {
    Permissions.VIEW_TEAM_METRICS,
    Permissions.VIEW_BURNOUT_TEAM,
    Permissions.MANAGE_REPOSITORIES,
    Permissions.MANAGE_TEAMS,
    Permissions.CREATE_RETROSPECTIVES,
}
_ADMINISTRATOR = _TEAM_LEAD | {
    Permissions.ADMIN_USERS,
    Permissions.ADMIN_SYSTEM,
    Permissions.ADMIN_MOCK_MODE,
}

DEFAULT_ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[str]] = {
    UserRole.DEVELOPER: _DEVELOPER,
    UserRole.TEAM_LEAD: _TEAM_LEAD,
    UserRole.ADMINISTRATOR: _ADMINISTRATOR,
}

ROLE_HIERARCHY: Dict[UserRole, int] = {
    UserRole.DEVELOPER: 1,
    UserRole.TEAM_LEAD: 2,
    UserRole.ADMINISTRATOR: 3,
}


def role_permissions(role: str) -> FrozenSet[str]:
    """Default permissions for ``role``; unknown roles get none."""
    try:
        return DEFAULT_ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return frozenset()


def role_at_least(role: str, required: UserRole) -> bool:
    """Check ``role`` against the role hierarchy."""
    try:
        level = ROLE_HIERARCHY[UserRole(role)]
    except ValueError:
        return False
    return level >= ROLE_HIERARCHY[required]
