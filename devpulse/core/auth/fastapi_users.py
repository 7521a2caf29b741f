"""
FastAPI Users configuration for DevPulse.

Sessions are JWTs issued after GitHub sign-in. Browsers carry them in an
HTTP-only cookie; API clients may send the same token as a bearer header.
"""

import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi_users import BaseUserManager, FastAPIUsers, UUIDIDMixin
from fastapi_users.authentication import (
    AuthenticationBackend,
    BearerTransport,
    CookieTransport,
    JWTStrategy,
)
from fastapi_users_tortoise import TortoiseUserDatabase

from ..config import get_config
from ..logging import get_logger
from .tortoise_models import User

logger = get_logger("auth.fastapi_users")


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    """User manager; accounts are created through GitHub sign-in only."""

    @property
    def reset_password_token_secret(self) -> str:  # type: ignore[override]
        return get_config().security.secret_key

    @property
    def verification_token_secret(self) -> str:  # type: ignore[override]
        return get_config().security.secret_key

    async def on_after_login(
        self,
        user: User,
        request: Optional[Request] = None,
        response: Optional[object] = None,
    ) -> None:
        logger.info("User signed in", user_id=str(user.id), username=user.username)


async def get_user_db() -> AsyncGenerator[TortoiseUserDatabase, None]:
    """Get user database instance."""
    yield TortoiseUserDatabase(User)


async def get_user_manager(
    user_db: TortoiseUserDatabase = Depends(get_user_db),
) -> AsyncGenerator[UserManager, None]:
    """Get user manager instance."""
    yield UserManager(user_db)


def get_jwt_strategy() -> JWTStrategy:
    """JWT strategy signed with the configured secret."""
    security = get_config().security
    return JWTStrategy(
        secret=security.secret_key,
        lifetime_seconds=security.jwt_lifetime_seconds,
        algorithm=security.algorithm,
    )


def _cookie_transport() -> CookieTransport:
    security = get_config().security
    return CookieTransport(
        cookie_name=security.cookie_name,
        cookie_max_age=security.jwt_lifetime_seconds,
        cookie_secure=security.cookie_secure,
        cookie_httponly=True,
        cookie_samesite="lax",
    )


cookie_backend = AuthenticationBackend(
    name="session",
    transport=_cookie_transport(),
    get_strategy=get_jwt_strategy,
)

bearer_backend = AuthenticationBackend(
    name="jwt",
    transport=BearerTransport(tokenUrl="api/auth/github/login"),
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](
    get_user_manager, [cookie_backend, bearer_backend]
)

current_active_user = fastapi_users.current_user(active=True)
optional_current_user = fastapi_users.current_user(active=True, optional=True)
