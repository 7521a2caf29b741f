"""
Data access rules.

Repositories are visible to their owner, to members of teams the repository
is shared with, and to system administrators. Burnout data of another user is
visible only to a lead of a team both users share on that repository.
"""

from typing import Any, Dict, Optional, Set, Union
from uuid import UUID

from ..auth.roles import DataPrivacy, Permissions
from ..logging import get_logger
from ..models.tortoise_models import Repository, TeamMember, UserSettings
from .role_service import TEAM_LEAD_ROLES, RoleService

logger = get_logger("services.data_access")

UserId = Union[UUID, str]

# Work pattern detail hidden from users sharing minimal data
MINIMAL_PRIVACY_FIELDS = ("workHoursDistribution", "dailyPatterns")


class DataAccessService:
    """Answers "may this user see that data" questions."""

    def __init__(self, role_service: Optional[RoleService] = None) -> None:
        self.roles = role_service or RoleService()

    async def _teams_sharing_repository(
        self, user_id: UserId, repository_id: UserId
    ) -> Set[UUID]:
        memberships = await TeamMember.filter(
            user_id=user_id, team__repositories__repository_id=repository_id
        ).values_list("team_id", flat=True)
        return set(memberships)

    async def can_access_repository(
        self, user_id: UserId, repository_id: UserId
    ) -> bool:
        repository = await Repository.get_or_none(id=repository_id)
        if repository is None:
            return False
        if str(repository.owner_id) == str(user_id):
            return True
        if await self._teams_sharing_repository(user_id, repository_id):
            return True
        return await self.roles.has_permission(user_id, Permissions.ADMIN_SYSTEM)

    async def can_access_burnout_data(
        self, viewer_id: UserId, target_user_id: UserId, repository_id: UserId
    ) -> bool:
        if str(viewer_id) == str(target_user_id):
            return True
        if not await self.roles.has_permission(viewer_id, Permissions.VIEW_BURNOUT_TEAM):
            return False

        shared = await self._teams_sharing_repository(
            viewer_id, repository_id
        ) & await self._teams_sharing_repository(target_user_id, repository_id)
        if not shared:
            return False
        return await TeamMember.exists(
            user_id=viewer_id, team_id__in=list(shared), role__in=TEAM_LEAD_ROLES
        )

    async def can_access_team_metrics(
        self, user_id: UserId, repository_id: UserId
    ) -> bool:
        if not await self.roles.has_permission(user_id, Permissions.VIEW_TEAM_METRICS):
            return False
        return await self.can_access_repository(user_id, repository_id)

    async def apply_privacy_filter(
        self, user_id: UserId, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Strip work pattern detail for users who share minimal data."""
        settings = await UserSettings.get_or_none(user_id=user_id)
        privacy = settings.data_privacy if settings else DataPrivacy.STANDARD
        if privacy != DataPrivacy.MINIMAL:
            return data
        logger.debug("Applying minimal privacy filter", user_id=str(user_id))
        return {k: v for k, v in data.items() if k not in MINIMAL_PRIVACY_FIELDS}
