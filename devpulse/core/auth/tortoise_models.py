"""
Tortoise ORM user models for DevPulse authentication.

Users sign in with GitHub; the fastapi-users columns (email, hashed_password
and the status flags) are kept so the JWT strategy can resolve them.
"""

from uuid import uuid4

from tortoise import fields
from tortoise.models import Model

from .roles import UserRole


class User(Model):
    """User model using Tortoise ORM."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    github_id = fields.BigIntField(unique=True, db_index=True)
    username = fields.CharField(max_length=100, db_index=True)
    name = fields.CharField(max_length=255, null=True)
    email = fields.CharField(max_length=255, unique=True, null=True)
    avatar_url = fields.CharField(max_length=500, null=True)

    # GitHub OAuth tokens, stored encrypted
    access_token = fields.TextField(default="")
    refresh_token = fields.TextField(null=True)

    # fastapi-users columns
    hashed_password = fields.CharField(max_length=255, default="")
    is_active = fields.BooleanField(default=True)
    is_superuser = fields.BooleanField(default=False)
    is_verified = fields.BooleanField(default=True)

    role = fields.CharEnumField(UserRole, default=UserRole.DEVELOPER, db_index=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    permissions: fields.ManyToManyRelation["Permission"] = fields.ManyToManyField(
        "models.Permission", related_name="users", through="user_permission"
    )

    class Meta:
        """Meta class for User model."""

        table = "user"

    def __str__(self) -> str:
        """Return string representation of User."""
        return f"User({self.username})"

    @property
    def display_name(self) -> str:
        """Name when set, otherwise the GitHub login."""
        return self.name or self.username


class Permission(Model):
    """Named permission that can be granted to users directly."""

    id = fields.UUIDField(primary_key=True, default=uuid4)
    name = fields.CharField(max_length=100, unique=True)
    description = fields.CharField(max_length=255)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    users: fields.ManyToManyRelation[User]

    class Meta:
        """Meta class for Permission model."""

        table = "permission"

    def __str__(self) -> str:
        """Return string representation of Permission."""
        return f"Permission({self.name})"
