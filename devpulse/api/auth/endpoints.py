"""
Authentication endpoints for the DevPulse API.

Users sign in with GitHub. The OAuth callback exchanges the code for an
access token, upserts the user from their GitHub profile and issues a
fastapi-users JWT in the session cookie. In mock mode the login endpoint
signs in a demo user without contacting GitHub.
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from ...core.auth.fastapi_users import current_active_user, get_jwt_strategy
from ...core.auth.tortoise_models import User
from ...core.config import get_config
from ...core.errors import ErrorCode, create_app_error
from ...core.github import GitHubClient, exchange_oauth_code, get_github_client
from ...core.logging import SecurityEventType, get_logger, security_logger
from ...core.security.encryption import generate_secure_token
from ...core.services import AppModeService, RoleService, UserService
from ...core.services.user_service import serialize_user
from ..models import success

router = APIRouter(prefix="/auth", tags=["authentication"])
logger = get_logger("api.auth.endpoints")

STATE_COOKIE = "devpulse_oauth_state"


def _callback_url() -> str:
    return f"{get_config().api.base_url.rstrip('/')}/api/auth/github/callback"


async def _login_redirect(user: User) -> RedirectResponse:
    """Redirect to the dashboard carrying a fresh session cookie."""
    security = get_config().security
    token = await get_jwt_strategy().write_token(user)
    response = RedirectResponse(get_config().api.dashboard_url, status_code=302)
    response.set_cookie(
        security.cookie_name,
        token,
        max_age=security.jwt_lifetime_seconds,
        httponly=True,
        secure=security.cookie_secure,
        samesite="lax",
    )
    response.delete_cookie(STATE_COOKIE)
    security_logger.log_auth_success(str(user.id), username=user.username)
    return response


@router.get("/github/login")
async def github_login() -> RedirectResponse:
    """Start GitHub sign-in, or sign in the demo user in mock mode."""
    if await AppModeService().is_mock_mode():
        client = await get_github_client()
        profile = await client.get_user()
        user = await UserService().upsert_github_user(profile, "mock-token")
        logger.info("Mock sign-in", username=user.username)
        return await _login_redirect(user)

    config = get_config()
    if not config.github.client_id:
        raise create_app_error(
            ErrorCode.SERVICE_UNAVAILABLE, "GitHub OAuth is not configured"
        )
    state = generate_secure_token(16)
    query = urlencode(
        {
            "client_id": config.github.client_id,
            "redirect_uri": _callback_url(),
            "scope": config.github.oauth_scope,
            "state": state,
        }
    )
    response = RedirectResponse(f"{config.github.authorize_url}?{query}", status_code=302)
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=600,
        httponly=True,
        secure=config.security.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/github/callback")
async def github_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
) -> RedirectResponse:
    """Complete GitHub sign-in."""
    if error or not code:
        security_logger.log_auth_failure(error or "missing code", request=request)
        raise create_app_error(ErrorCode.UNAUTHORIZED, "GitHub authorization was denied")

    expected = request.cookies.get(STATE_COOKIE)
    if not expected or expected != state:
        security_logger.log_auth_failure("state mismatch", request=request)
        raise create_app_error(ErrorCode.UNAUTHORIZED, "Invalid OAuth state")

    access_token = await exchange_oauth_code(code)
    client = GitHubClient(access_token)
    try:
        profile = await client.get_user()
    finally:
        await client.close()

    user = await UserService().upsert_github_user(profile, access_token)
    return await _login_redirect(user)


@router.get("/me")
async def get_current_user_info(
    user: User = Depends(current_active_user),
) -> Dict[str, Any]:
    """Current user with role and effective permissions."""
    permissions = await RoleService().get_user_permissions(user.id)
    return success({**serialize_user(user), "permissions": sorted(permissions)})


@router.get("/permissions")
async def get_permissions(user: User = Depends(current_active_user)) -> Dict[str, Any]:
    permissions = await RoleService().get_user_permissions(user.id)
    return success(
        {
            "role": getattr(user.role, "value", user.role),
            "permissions": sorted(permissions),
        }
    )


@router.post("/logout")
async def logout(user: User = Depends(current_active_user)) -> JSONResponse:
    """Clear the session cookie."""
    response = JSONResponse(content=success({"message": "Signed out"}))
    response.delete_cookie(get_config().security.cookie_name)
    security_logger.log_security_event(SecurityEventType.LOGOUT, user_id=str(user.id))
    return response

