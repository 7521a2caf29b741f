"""Tests for roles, permissions, teams and data access rules."""

import pytest

from devpulse.core.auth.roles import DataPrivacy, Permissions, TeamRole, UserRole
from devpulse.core.errors import AppError, ErrorCode
from devpulse.core.models.tortoise_models import AuditLog, TeamMember, UserSettings
from devpulse.core.services.data_access_service import DataAccessService
from devpulse.core.services.role_service import RoleService
from devpulse.core.services.team_service import TeamService


@pytest.mark.unit
class TestRoleService:
    """Test global roles and permissions."""

    @pytest.mark.asyncio
    async def test_role_defaults(self, make_user) -> None:
        """Test permissions follow the role hierarchy."""
        developer = await make_user("dev")
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        roles = RoleService()

        dev_permissions = await roles.get_user_permissions(developer.id)
        lead_permissions = await roles.get_user_permissions(lead.id)

        assert dev_permissions == {
            Permissions.VIEW_PERSONAL_METRICS,
            Permissions.VIEW_BURNOUT_PERSONAL,
        }
        assert dev_permissions < lead_permissions
        assert Permissions.ADMIN_SYSTEM not in lead_permissions

    @pytest.mark.asyncio
    async def test_unknown_user_has_nothing(self, db) -> None:
        """Test missing users have no permissions or role."""
        roles = RoleService()
        missing = "00000000-0000-0000-0000-000000000000"

        assert await roles.get_user_permissions(missing) == set()
        assert await roles.has_role(missing, UserRole.DEVELOPER) is False

    @pytest.mark.asyncio
    async def test_assign_role_is_audited(self, user, admin) -> None:
        """Test role changes are saved and recorded."""
        roles = RoleService()

        updated = await roles.assign_role(user.id, UserRole.TEAM_LEAD, admin.id)

        assert updated.role == UserRole.TEAM_LEAD
        assert await roles.has_role(user.id, UserRole.TEAM_LEAD)
        entry = await AuditLog.get(action="USER_ROLE_UPDATE")
        assert entry.user_id == admin.id
        assert entry.metadata == {"oldRole": "DEVELOPER", "newRole": "TEAM_LEAD"}

    @pytest.mark.asyncio
    async def test_assign_role_to_missing_user(self, db) -> None:
        """Test assigning a role to nobody is NOT_FOUND."""
        with pytest.raises(AppError) as exc_info:
            await RoleService().assign_role(
                "00000000-0000-0000-0000-000000000000", UserRole.ADMINISTRATOR
            )

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_grant_and_revoke(self, user) -> None:
        """Test direct grants add to the role defaults."""
        roles = RoleService()

        await roles.grant_permission(user.id, Permissions.VIEW_TEAM_METRICS)
        assert await roles.has_permission(user.id, Permissions.VIEW_TEAM_METRICS)

        await roles.revoke_permission(user.id, Permissions.VIEW_TEAM_METRICS)
        assert not await roles.has_permission(user.id, Permissions.VIEW_TEAM_METRICS)
        assert await AuditLog.filter(
            action__in=["GRANT_PERMISSION", "REVOKE_PERMISSION"]
        ).count() == 2

    @pytest.mark.asyncio
    async def test_unknown_permission(self, user) -> None:
        """Test unknown permission names are rejected."""
        with pytest.raises(AppError) as exc_info:
            await RoleService().grant_permission(user.id, "launch:rockets")

        assert exc_info.value.code == ErrorCode.BAD_REQUEST


@pytest.mark.unit
class TestTeams:
    """Test team creation and membership."""

    @pytest.mark.asyncio
    async def test_creator_becomes_lead(self, user, make_repository) -> None:
        """Test the creator leads the new team and repositories are linked."""
        repo = await make_repository(user)
        service = TeamService()

        team = await service.create_team("  Platform  ", user.id, "infra", [repo.id])
        details = await service.get_team(team.id)

        assert details["name"] == "Platform"
        assert details["members"][0]["role"] == "LEAD"
        assert details["repositories"][0]["fullName"] == "developer/devpulse"
        assert await RoleService().is_team_lead(user.id, team.id)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, user) -> None:
        """Test teams need a name."""
        with pytest.raises(AppError) as exc_info:
            await TeamService().create_team("   ", user.id)

        assert exc_info.value.code == ErrorCode.BAD_REQUEST

    @pytest.mark.asyncio
    async def test_invite_by_email(self, user, make_user) -> None:
        """Test invitations look up registered users by email."""
        teammate = await make_user("teammate", email="teammate@example.com")
        service = TeamService()
        team = await service.create_team("Platform", user.id)

        member = await service.invite(team.id, "teammate@example.com", user.id)

        assert member.user.username == "teammate"
        assert member.role == TeamRole.MEMBER
        assert await service.list_user_teams(teammate.id) == [
            {"id": str(team.id), "name": "Platform", "role": "MEMBER"}
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,role,code",
        [
            ("nobody@example.com", None, ErrorCode.NOT_FOUND),
            ("teammate@example.com", "OWNER", ErrorCode.BAD_REQUEST),
            ("", None, ErrorCode.BAD_REQUEST),
        ],
    )
    async def test_invite_errors(self, user, make_user, email, role, code) -> None:
        """Test invitation validation."""
        await make_user("teammate", email="teammate@example.com")
        service = TeamService()
        team = await service.create_team("Platform", user.id)

        with pytest.raises(AppError) as exc_info:
            await service.invite(team.id, email, user.id, role)

        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_duplicate_member(self, user, make_user) -> None:
        """Test a user cannot join the same team twice."""
        teammate = await make_user("teammate")
        roles = RoleService()
        team = await roles.create_team("Platform", user.id)
        await roles.add_team_member(team.id, teammate.id, TeamRole.MEMBER, user.id)

        with pytest.raises(AppError) as exc_info:
            await roles.add_team_member(team.id, teammate.id, TeamRole.LEAD, user.id)

        assert exc_info.value.code == ErrorCode.BAD_REQUEST

    @pytest.mark.asyncio
    async def test_missing_team(self, user) -> None:
        """Test adding members to a missing team is NOT_FOUND."""
        with pytest.raises(AppError) as exc_info:
            await RoleService().add_team_member(
                "00000000-0000-0000-0000-000000000000", user.id, TeamRole.MEMBER, user.id
            )

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_member_role_changes(self, user, make_user) -> None:
        """Test leads change roles of others but not their own."""
        teammate = await make_user("teammate")
        roles = RoleService()
        team = await roles.create_team("Platform", user.id)
        member = await roles.add_team_member(team.id, teammate.id, TeamRole.MEMBER, user.id)
        own = await TeamMember.get(team_id=team.id, user_id=user.id)

        updated = await roles.update_team_member_role(
            team.id, member.id, TeamRole.ADMIN, user.id
        )
        assert updated.role == TeamRole.ADMIN

        with pytest.raises(AppError) as exc_info:
            await roles.update_team_member_role(team.id, own.id, TeamRole.MEMBER, user.id)
        assert exc_info.value.code == ErrorCode.BAD_REQUEST

    @pytest.mark.asyncio
    async def test_remove_member(self, user, make_user) -> None:
        """Test removal of others and refusal to remove oneself."""
        teammate = await make_user("teammate")
        roles = RoleService()
        team = await roles.create_team("Platform", user.id)
        member = await roles.add_team_member(team.id, teammate.id, TeamRole.MEMBER, user.id)
        own = await TeamMember.get(team_id=team.id, user_id=user.id)

        await roles.remove_team_member(team.id, member.id, user.id)
        assert not await roles.is_team_member(teammate.id, team.id)

        with pytest.raises(AppError) as exc_info:
            await roles.remove_team_member(team.id, own.id, user.id)
        assert exc_info.value.code == ErrorCode.BAD_REQUEST


@pytest.mark.unit
class TestDataAccess:
    """Test who may see which data."""

    @pytest.mark.asyncio
    async def test_repository_access(self, make_user, make_repository) -> None:
        """Test owners, team members and admins see a repository."""
        owner = await make_user("owner", role=UserRole.TEAM_LEAD)
        teammate = await make_user("teammate")
        stranger = await make_user("stranger")
        admin = await make_user("root", role=UserRole.ADMINISTRATOR)
        repo = await make_repository(owner)
        roles = RoleService()
        team = await roles.create_team("Platform", owner.id, repository_ids=[repo.id])
        await roles.add_team_member(team.id, teammate.id, TeamRole.MEMBER, owner.id)
        access = DataAccessService()

        assert await access.can_access_repository(owner.id, repo.id)
        assert await access.can_access_repository(teammate.id, repo.id)
        assert await access.can_access_repository(admin.id, repo.id)
        assert not await access.can_access_repository(stranger.id, repo.id)
        assert not await access.can_access_repository(
            owner.id, "00000000-0000-0000-0000-000000000000"
        )

    @pytest.mark.asyncio
    async def test_burnout_visible_to_shared_team_lead(
        self, make_user, make_repository
    ) -> None:
        """Test only a lead of a shared team sees another user's burnout."""
        lead = await make_user("lead", role=UserRole.TEAM_LEAD)
        developer = await make_user("dev")
        other_lead = await make_user("other", role=UserRole.TEAM_LEAD)
        repo = await make_repository(lead)
        roles = RoleService()
        team = await roles.create_team("Platform", lead.id, repository_ids=[repo.id])
        await roles.add_team_member(team.id, developer.id, TeamRole.MEMBER, lead.id)
        access = DataAccessService()

        assert await access.can_access_burnout_data(developer.id, developer.id, repo.id)
        assert await access.can_access_burnout_data(lead.id, developer.id, repo.id)
        assert not await access.can_access_burnout_data(developer.id, lead.id, repo.id)
        assert not await access.can_access_burnout_data(
            other_lead.id, developer.id, repo.id
        )

    @pytest.mark.asyncio
    async def test_team_metrics_need_permission(self, user, make_repository) -> None:
        """Test developers cannot see team metrics of their own repository."""
        repo = await make_repository(user)

        assert not await DataAccessService().can_access_team_metrics(user.id, repo.id)

    @pytest.mark.asyncio
    async def test_minimal_privacy_filter(self, user) -> None:
        """Test work pattern detail is removed for minimal sharing."""
        data = {"commitCount": 3, "workHoursDistribution": [], "dailyPatterns": []}
        access = DataAccessService()

        assert await access.apply_privacy_filter(user.id, data) == data

        await UserSettings.create(user=user, data_privacy=DataPrivacy.MINIMAL)
        assert await access.apply_privacy_filter(user.id, data) == {"commitCount": 3}
