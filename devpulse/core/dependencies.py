"""
Dependency injection for DevPulse.

FastAPI dependencies for the authenticated user, permission and role checks,
feature flags, and service instances. Services are instantiated directly.
"""

from typing import Any, Callable, Coroutine
from uuid import UUID

from fastapi import Depends

from .ai import InsightsService
from .auth.fastapi_users import current_active_user
from .auth.roles import UserRole, role_at_least
from .auth.tortoise_models import User
from .config import get_config
from .errors import ErrorCode, create_app_error
from .jobs import JobManager, get_job_manager
from .logging import SecurityEventType, security_logger
from .services import (
    AuditService,
    DataAccessService,
    RoleService,
    UserService,
)


async def get_current_user_id(user: User = Depends(current_active_user)) -> UUID:
    """
    Get current user ID from authenticated user.

    Args:
        user: Current authenticated user from FastAPI Users

    Returns:
        Current user ID
    """
    return user.id


async def get_current_user(user: User = Depends(current_active_user)) -> User:
    """
    Get current authenticated user.

    Args:
        user: Current authenticated user from FastAPI Users

    Returns:
        Current user instance
    """
    return user


def require_permission(
    permission: str,
) -> Callable[..., Coroutine[Any, Any, User]]:
    """
    Build a dependency that requires ``permission``.

    Raises:
        AppError: FORBIDDEN when the user lacks the permission
    """

    async def dependency(user: User = Depends(current_active_user)) -> User:
        if not await RoleService().has_permission(user.id, permission):
            security_logger.log_security_event(
                SecurityEventType.ACCESS_DENIED,
                user_id=str(user.id),
                details={"permission": permission},
            )
            raise create_app_error(
                ErrorCode.FORBIDDEN, f"Permission '{permission}' required"
            )
        return user

    return dependency


def require_role(role: UserRole) -> Callable[..., Coroutine[Any, Any, User]]:
    """Build a dependency that requires ``role`` or higher."""

    async def dependency(user: User = Depends(current_active_user)) -> User:
        if not role_at_least(user.role, role):
            security_logger.log_security_event(
                SecurityEventType.ACCESS_DENIED,
                user_id=str(user.id),
                details={"role": role.value},
            )
            raise create_app_error(
                ErrorCode.FORBIDDEN, f"Role {role.value} or higher required"
            )
        return user

    return dependency


require_admin = require_role(UserRole.ADMINISTRATOR)


async def require_ai_features(user: User = Depends(get_current_user)) -> None:
    """Reject signed-in requests while AI features are switched off."""
    if not get_config().features.ai_features:
        raise create_app_error(ErrorCode.FORBIDDEN, "AI features are disabled")


async def require_background_jobs(user: User = Depends(get_current_user)) -> None:
    """Reject signed-in requests while background jobs are switched off."""
    if not get_config().features.background_jobs:
        raise create_app_error(ErrorCode.FORBIDDEN, "Background jobs are disabled")


def get_audit_service() -> AuditService:
    return AuditService()


def get_role_service() -> RoleService:
    return RoleService()


def get_data_access_service() -> DataAccessService:
    return DataAccessService()


def get_user_service() -> UserService:
    return UserService()


def get_insights_service() -> InsightsService:
    return InsightsService()


def get_jobs() -> JobManager:
    return get_job_manager()
