"""Team endpoints."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...core.auth.roles import Permissions, TeamRole
from ...core.auth.tortoise_models import User
from ...core.dependencies import get_current_user, get_role_service, require_permission
from ...core.errors import ErrorCode, create_app_error
from ...core.logging import get_logger
from ...core.services import RoleService, TeamService
from ...core.services.team_service import serialize_member
from ..models import created, success

router = APIRouter(prefix="/teams", tags=["teams"])
logger = get_logger("api.teams")


def get_team_service() -> TeamService:
    return TeamService()


async def _require_member(team_id: UUID, user: User, roles: RoleService) -> None:
    if await roles.is_team_member(user.id, team_id):
        return
    if not await roles.has_permission(user.id, Permissions.ADMIN_SYSTEM):
        raise create_app_error(ErrorCode.FORBIDDEN, "You are not a member of this team")


async def _require_lead(team_id: UUID, user: User, roles: RoleService) -> None:
    if await roles.is_team_lead(user.id, team_id):
        return
    if not await roles.has_permission(user.id, Permissions.ADMIN_SYSTEM):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Only team leads can manage team members"
        )


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    repositoryIds: List[UUID] = Field(default_factory=list)


@router.post("")
async def create_team(
    request: TeamCreate,
    user: User = Depends(require_permission(Permissions.MANAGE_TEAMS)),
    teams: TeamService = Depends(get_team_service),
) -> Any:
    """Create a team led by the current user."""
    team = await teams.create_team(
        request.name, user.id, request.description, request.repositoryIds
    )
    logger.info("Team created", team_id=str(team.id), user_id=str(user.id))
    return created(await teams.get_team(team.id))


@router.get("/{team_id}")
async def get_team(
    team_id: UUID,
    user: User = Depends(get_current_user),
    teams: TeamService = Depends(get_team_service),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    team = await teams.get_team(team_id)
    await _require_member(team_id, user, roles)
    return success(team)


class InviteRequest(BaseModel):
    email: str
    role: Optional[TeamRole] = None


@router.post("/{team_id}/invite")
async def invite_member(
    team_id: UUID,
    request: InviteRequest,
    user: User = Depends(get_current_user),
    teams: TeamService = Depends(get_team_service),
    roles: RoleService = Depends(get_role_service),
) -> Any:
    await _require_lead(team_id, user, roles)
    member = await teams.invite(
        team_id,
        request.email,
        user.id,
        request.role.value if request.role else None,
    )
    return created(serialize_member(member))


class MemberRoleUpdate(BaseModel):
    role: TeamRole


@router.patch("/{team_id}/members/{member_id}")
async def update_member_role(
    team_id: UUID,
    member_id: UUID,
    update: MemberRoleUpdate,
    user: User = Depends(get_current_user),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    await _require_lead(team_id, user, roles)
    member = await roles.update_team_member_role(team_id, member_id, update.role, user.id)
    await member.fetch_related("user")
    return success(serialize_member(member))


@router.delete("/{team_id}/members/{member_id}")
async def remove_member(
    team_id: UUID,
    member_id: UUID,
    user: User = Depends(get_current_user),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    await _require_lead(team_id, user, roles)
    await roles.remove_team_member(team_id, member_id, user.id)
    return success({"message": "Member removed from team"})
