"""
Role, permission and team membership service.

A user's effective permissions are the defaults of their global role plus any
permissions granted to them directly.
"""

from typing import List, Optional, Set, Union
from uuid import UUID

from tortoise.transactions import in_transaction

from ..auth.roles import Permissions, TeamRole, UserRole, role_permissions
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import Team, TeamMember, TeamRepository
from ..auth.tortoise_models import Permission, User
from .audit_service import AuditService

logger = get_logger("services.roles")

UserId = Union[UUID, str]

TEAM_LEAD_ROLES = (TeamRole.LEAD, TeamRole.ADMIN)


class RoleService:
    """Role and permission checks backed by Tortoise ORM."""

    def __init__(self, audit_service: Optional[AuditService] = None) -> None:
        self.audit = audit_service or AuditService()

    async def get_user_permissions(self, user_id: UserId) -> Set[str]:
        """Union of role defaults and directly granted permissions."""
        user = await User.get_or_none(id=user_id).prefetch_related("permissions")
        if user is None:
            return set()
        direct = {permission.name for permission in user.permissions}
        return set(role_permissions(user.role)) | direct

    async def has_permission(self, user_id: UserId, permission: str) -> bool:
        """Check a single permission."""
        return permission in await self.get_user_permissions(user_id)

    async def has_role(self, user_id: UserId, role: UserRole) -> bool:
        """Check the user's global role."""
        user = await User.get_or_none(id=user_id)
        return user is not None and user.role == role

    async def is_team_member(self, user_id: UserId, team_id: UserId) -> bool:
        return await TeamMember.exists(team_id=team_id, user_id=user_id)

    async def is_team_lead(self, user_id: UserId, team_id: UserId) -> bool:
        """Team leads and team admins manage membership."""
        return await TeamMember.exists(
            team_id=team_id, user_id=user_id, role__in=TEAM_LEAD_ROLES
        )

    async def assign_role(
        self, user_id: UserId, role: UserRole, actor_id: Optional[UserId] = None
    ) -> User:
        """Change a user's global role."""
        user = await User.get_or_none(id=user_id)
        if user is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "User not found")

        old_role = user.role
        user.role = role
        await user.save(update_fields=["role", "updated_at"])
        await self.audit.log(
            actor_id or user_id,
            "USER_ROLE_UPDATE",
            "USER",
            str(user_id),
            f"User role updated to {role.value}",
            metadata={
                "oldRole": getattr(old_role, "value", old_role),
                "newRole": role.value,
            },
        )
        logger.info(
            "User role changed",
            user_id=str(user_id),
            old_role=getattr(old_role, "value", old_role),
            new_role=role.value,
        )
        return user

    async def _get_permission(self, name: str) -> Permission:
        if name not in Permissions.DESCRIPTIONS:
            raise create_app_error(ErrorCode.BAD_REQUEST, f"Unknown permission: {name}")
        permission, _ = await Permission.get_or_create(
            name=name, defaults={"description": Permissions.DESCRIPTIONS[name]}
        )
        return permission

    async def grant_permission(self, user_id: UserId, name: str) -> None:
        """Grant a permission directly to a user."""
        user = await User.get_or_none(id=user_id)
        if user is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "User not found")
        permission = await self._get_permission(name)
        await user.permissions.add(permission)
        await self.audit.log(
            user_id,
            "GRANT_PERMISSION",
            "PERMISSION",
            str(permission.id),
            f"Permission {name} granted to user",
        )

    async def revoke_permission(self, user_id: UserId, name: str) -> None:
        """Remove a directly granted permission."""
        user = await User.get_or_none(id=user_id)
        if user is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "User not found")
        permission = await self._get_permission(name)
        await user.permissions.remove(permission)
        await self.audit.log(
            user_id,
            "REVOKE_PERMISSION",
            "PERMISSION",
            str(permission.id),
            f"Permission {name} revoked from user",
        )

    async def create_team(
        self,
        name: str,
        creator_id: UserId,
        description: Optional[str] = None,
        repository_ids: Optional[List[UserId]] = None,
    ) -> Team:
        """Create a team; the creator becomes its lead."""
        async with in_transaction():
            team = await Team.create(name=name, description=description)
            await TeamMember.create(team=team, user_id=creator_id, role=TeamRole.LEAD)
            for repository_id in repository_ids or []:
                await TeamRepository.create(team=team, repository_id=repository_id)

        await self.audit.log(
            creator_id,
            "TEAM_CREATE",
            "TEAM",
            str(team.id),
            f"Team {name} created",
        )
        return team

    async def add_team_member(
        self,
        team_id: UserId,
        user_id: UserId,
        role: TeamRole,
        actor_id: UserId,
    ) -> TeamMember:
        """Add a user to a team."""
        if not await Team.exists(id=team_id):
            raise create_app_error(ErrorCode.NOT_FOUND, "Team not found")
        if await TeamMember.exists(team_id=team_id, user_id=user_id):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "User is already a member of this team"
            )

        member = await TeamMember.create(team_id=team_id, user_id=user_id, role=role)
        await self.audit.log(
            actor_id,
            "TEAM_MEMBER_INVITE",
            "TEAM",
            str(team_id),
            f"User invited to team with role {role.value}",
            metadata={
                "teamId": str(team_id),
                "invitedUserId": str(user_id),
                "role": role.value,
            },
        )
        return member

    async def update_team_member_role(
        self, team_id: UserId, member_id: UserId, role: TeamRole, actor_id: UserId
    ) -> TeamMember:
        """Change a member's team role; members cannot change their own."""
        member = await TeamMember.get_or_none(id=member_id, team_id=team_id)
        if member is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "Team member not found")
        if str(member.user_id) == str(actor_id):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "You cannot change your own role"
            )

        member.role = role
        await member.save(update_fields=["role", "updated_at"])
        await self.audit.log(
            actor_id,
            "TEAM_MEMBER_ROLE_UPDATE",
            "TEAM_MEMBER",
            str(member_id),
            f"Team member role updated to {role.value}",
            metadata={"teamId": str(team_id), "newRole": role.value},
        )
        return member

    async def remove_team_member(
        self, team_id: UserId, member_id: UserId, actor_id: UserId
    ) -> None:
        """Remove a member; members cannot remove themselves."""
        member = await TeamMember.get_or_none(id=member_id, team_id=team_id)
        if member is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "Team member not found")
        if str(member.user_id) == str(actor_id):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "You cannot remove yourself from the team"
            )

        await member.delete()
        await self.audit.log(
            actor_id,
            "TEAM_MEMBER_REMOVE",
            "TEAM",
            str(team_id),
            "Team member removed from team",
            metadata={"teamId": str(team_id), "memberId": str(member_id)},
        )
