"""
User service for DevPulse.

This module contains business logic for user accounts and their settings,
including GitHub profile upserts, settings validation and multi-device
settings sync.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID

from ..auth.roles import DataPrivacy
from ..auth.tortoise_models import User
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import UserSettings
from ..security.encryption import encrypt
from .audit_service import AuditService

logger = get_logger("services.users")

UserId = Union[UUID, str]

THEMES = ("light", "dark", "system")

# camelCase API key -> model field
SETTINGS_FIELDS: Dict[str, str] = {
    "theme": "theme",
    "emailNotifications": "email_notifications",
    "weeklyReports": "weekly_reports",
    "burnoutAlerts": "burnout_alerts",
    "dataPrivacy": "data_privacy",
    "dashboardLayout": "dashboard_layout",
    "selectedRepositories": "selected_repositories",
}

BOOLEAN_SETTINGS = ("emailNotifications", "weeklyReports", "burnoutAlerts")


def serialize_user(user: User) -> Dict[str, Any]:
    """Public representation of a user; tokens are never included."""
    return {
        "id": str(user.id),
        "githubId": user.github_id,
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "avatarUrl": user.avatar_url,
        "role": getattr(user.role, "value", user.role),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


def serialize_settings(settings: UserSettings) -> Dict[str, Any]:
    """API representation of user settings."""
    data = {key: getattr(settings, field) for key, field in SETTINGS_FIELDS.items()}
    data["dataPrivacy"] = getattr(settings.data_privacy, "value", settings.data_privacy)
    data["syncTimestamp"] = (
        settings.sync_timestamp.isoformat() if settings.sync_timestamp else None
    )
    return data


def validate_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a settings payload and map it to model fields.

    Args:
        changes: camelCase settings keys and their new values

    Returns:
        Model field names mapped to validated values

    Raises:
        AppError: BAD_REQUEST for unknown keys or invalid values
    """
    updates: Dict[str, Any] = {}
    for key, value in changes.items():
        if key == "syncTimestamp":
            continue
        if key not in SETTINGS_FIELDS:
            raise create_app_error(ErrorCode.BAD_REQUEST, f"Unknown setting: {key}")

        if key == "theme" and value not in THEMES:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "Theme must be one of: light, dark, system"
            )
        if key in BOOLEAN_SETTINGS and not isinstance(value, bool):
            raise create_app_error(ErrorCode.BAD_REQUEST, f"{key} must be a boolean")
        if key == "dataPrivacy":
            try:
                value = DataPrivacy(value)
            except ValueError:
                raise create_app_error(
                    ErrorCode.BAD_REQUEST,
                    "dataPrivacy must be one of: MINIMAL, STANDARD, DETAILED",
                ) from None
        if key == "dashboardLayout" and value is not None and not isinstance(
            value, dict
        ):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "dashboardLayout must be an object"
            )
        if key == "selectedRepositories" and not isinstance(value, list):
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "selectedRepositories must be a list"
            )

        updates[SETTINGS_FIELDS[key]] = value
    return updates


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise create_app_error(
                ErrorCode.BAD_REQUEST, "syncTimestamp must be an ISO timestamp"
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UserService:
    """
    Service for user accounts and settings.

    This service provides the account operations used by the auth flow and
    the user routes.
    """

    def __init__(self, audit_service: Optional[AuditService] = None):
        """
        Initialize user service.

        Args:
            audit_service: Audit service instance
        """
        self.audit = audit_service or AuditService()

    async def get_user(self, user_id: UserId) -> Optional[User]:
        """Get a user by ID."""
        return await User.get_or_none(id=user_id)

    async def get_or_create_settings(self, user_id: UserId) -> UserSettings:
        """Return the user's settings row, creating defaults on first use."""
        settings, _ = await UserSettings.get_or_create(user_id=user_id)
        return settings

    async def get_user_with_settings(
        self, user_id: UserId
    ) -> Optional[Tuple[User, UserSettings]]:
        """Get a user together with their settings."""
        user = await self.get_user(user_id)
        if user is None:
            return None
        return user, await self.get_or_create_settings(user_id)

    async def list_users(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """
        List users with pagination.

        Args:
            page: One-based page number
            limit: Page size

        Returns:
            Users and pagination metadata
        """
        page = max(page, 1)
        limit = max(1, min(limit, 100))
        total = await User.all().count()
        users: List[User] = (
            await User.all().order_by("-created_at").offset((page - 1) * limit).limit(limit)
        )
        return {
            "users": [serialize_user(user) for user in users],
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total,
                "totalPages": (total + limit - 1) // limit,
            },
        }

    async def upsert_github_user(
        self, profile: Dict[str, Any], access_token: str
    ) -> User:
        """
        Create or update a user from a GitHub profile.

        Args:
            profile: GitHub ``/user`` response
            access_token: OAuth access token, stored encrypted

        Returns:
            The persisted user
        """
        defaults = {
            "username": profile["login"],
            "name": profile.get("name"),
            "email": profile.get("email"),
            "avatar_url": profile.get("avatar_url"),
            "access_token": encrypt(access_token),
        }
        user, created = await User.update_or_create(
            github_id=profile["id"], defaults=defaults
        )
        if created:
            await UserSettings.get_or_create(user=user)
        logger.info(
            "GitHub user upserted",
            user_id=str(user.id),
            username=user.username,
            created=created,
        )
        return user

    async def update_profile(
        self, user_id: UserId, changes: Dict[str, Any]
    ) -> User:
        """Update the editable profile fields (name and email)."""
        user = await self.get_user(user_id)
        if user is None:
            raise create_app_error(ErrorCode.NOT_FOUND, "User not found")

        allowed = {k: v for k, v in changes.items() if k in ("name", "email")}
        if not allowed:
            raise create_app_error(ErrorCode.BAD_REQUEST, "No updatable fields given")
        if "email" in allowed and allowed["email"] and "@" not in allowed["email"]:
            raise create_app_error(ErrorCode.BAD_REQUEST, "Invalid email format")

        for field, value in allowed.items():
            setattr(user, field, value)
        await user.save(update_fields=[*allowed.keys(), "updated_at"])
        await self.audit.log(
            user_id,
            "USER_PROFILE_UPDATE",
            "USER",
            str(user_id),
            "User profile updated",
            metadata={"fields": sorted(allowed)},
        )
        return user

    async def update_user_settings(
        self, user_id: UserId, changes: Dict[str, Any]
    ) -> UserSettings:
        """
        Validate and apply a settings change.

        Raises:
            AppError: BAD_REQUEST when validation fails
        """
        updates = validate_settings(changes)
        settings = await self.get_or_create_settings(user_id)
        for field, value in updates.items():
            setattr(settings, field, value)
        settings.sync_timestamp = datetime.now(timezone.utc)
        await settings.save()

        await self.audit.log(
            user_id,
            "USER_SETTINGS_UPDATE",
            "USER_SETTINGS",
            str(settings.id),
            "User settings updated",
            metadata={"fields": sorted(changes)},
        )
        return settings

    async def sync_settings(
        self, user_id: UserId, incoming: Dict[str, Any]
    ) -> Tuple[UserSettings, bool]:
        """
        Merge settings coming from another device.

        The most recent ``syncTimestamp`` wins: an incoming payload older than
        the stored settings is ignored.

        Returns:
            The current settings and whether the incoming payload was applied
        """
        settings = await self.get_or_create_settings(user_id)
        incoming_ts = _parse_timestamp(incoming.get("syncTimestamp"))

        if (
            incoming_ts is not None
            and settings.sync_timestamp is not None
            and incoming_ts < settings.sync_timestamp
        ):
            logger.info(
                "Ignoring stale settings sync",
                user_id=str(user_id),
                incoming=incoming_ts.isoformat(),
            )
            return settings, False

        updates = validate_settings(incoming)
        for field, value in updates.items():
            setattr(settings, field, value)
        settings.sync_timestamp = datetime.now(timezone.utc)
        await settings.save()
        return settings, True

    async def set_selected_repositories(
        self, user_id: UserId, repositories: List[str]
    ) -> UserSettings:
        """Store the repositories the user chose to track."""
        settings = await self.get_or_create_settings(user_id)
        settings.selected_repositories = list(repositories)
        await settings.save(update_fields=["selected_repositories", "updated_at"])
        logger.info(
            "Repository selection saved",
            user_id=str(user_id),
            count=len(repositories),
        )
        return settings
