"""Team lookup and invitation, on top of the membership rules in RoleService."""

from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from ..auth.roles import TeamRole
from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import Team, TeamMember
from .role_service import RoleService

logger = get_logger("services.teams")

UserId = Union[UUID, str]


def serialize_member(member: TeamMember) -> Dict[str, Any]:
    user = member.user
    return {
        "id": str(member.id),
        "userId": str(member.user_id),
        "username": user.username,
        "name": user.name,
        "avatarUrl": user.avatar_url,
        "role": getattr(member.role, "value", member.role),
        "joinedAt": member.created_at.isoformat() if member.created_at else None,
    }


class TeamService:
    def __init__(self, role_service: Optional[RoleService] = None) -> None:
        self.roles = role_service or RoleService()

    async def create_team(
        self,
        name: str,
        creator_id: UserId,
        description: Optional[str] = None,
        repository_ids: Optional[List[UserId]] = None,
    ) -> Team:
        if not name or not name.strip():
            raise create_app_error(ErrorCode.BAD_REQUEST, "Team name is required")
        return await self.roles.create_team(
            name.strip(), creator_id, description, repository_ids
        )

    async def get_team(self, team_id: UserId) -> Dict[str, Any]:
        """Team with its members and repositories."""
        team = await Team.get_or_none(id=team_id).prefetch_related(
            "members__user", "repositories__repository"
        )
        if team is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "Team not found")
        return {
            "id": str(team.id),
            "name": team.name,
            "description": team.description,
            "createdAt": team.created_at.isoformat() if team.created_at else None,
            "members": [serialize_member(m) for m in team.members],
            "repositories": [
                {
                    "id": str(link.repository.id),
                    "name": link.repository.name,
                    "fullName": link.repository.full_name,
                }
                for link in team.repositories
            ],
        }

    async def list_user_teams(self, user_id: UserId) -> List[Dict[str, Any]]:
        memberships = await TeamMember.filter(user_id=user_id).prefetch_related("team")
        return [
            {
                "id": str(m.team.id),
                "name": m.team.name,
                "role": getattr(m.role, "value", m.role),
            }
            for m in memberships
        ]

    async def invite(
        self,
        team_id: UserId,
        email: str,
        actor_id: UserId,
        role: Optional[str] = None,
    ) -> TeamMember:
        """Add a registered user, looked up by email, to the team."""
        if not email:
            raise create_app_error(ErrorCode.BAD_REQUEST, "Email is required")
        try:
            team_role = TeamRole(role) if role else TeamRole.MEMBER
        except ValueError:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "Role must be one of: MEMBER, LEAD, ADMIN"
            ) from None

        if not await Team.exists(id=team_id):
            raise create_app_error(ErrorCode.NOT_FOUND, "Team not found")
        user = await User.get_or_none(email=email)
        if user is None:
            raise create_app_error(
                ErrorCode.NOT_FOUND,
                "User not found. Please ensure the user has registered with DevPulse.",
            )

        member = await self.roles.add_team_member(team_id, user.id, team_role, actor_id)
        await member.fetch_related("user")
        logger.info("User invited to team", team_id=str(team_id), user_id=str(user.id))
        return member
