"""Authentication and authorization for DevPulse."""

from .fastapi_users import (
    bearer_backend,
    cookie_backend,
    current_active_user,
    fastapi_users,
    get_jwt_strategy,
    optional_current_user,
)
from .roles import (
    DEFAULT_ROLE_PERMISSIONS,
    DataPrivacy,
    Permissions,
    TeamRole,
    UserRole,
)
from .tortoise_models import Permission, User

__all__ = [
    "DEFAULT_ROLE_PERMISSIONS",
    "DataPrivacy",
    "Permission",
    "Permissions",
    "TeamRole",
    "User",
    "UserRole",
    "bearer_backend",
    "cookie_backend",
    "current_active_user",
    "fastapi_users",
    "get_jwt_strategy",
    "optional_current_user",
]
