"""GitHub API access: live client, demo client and selection by app mode."""

from typing import Optional, Union

from ..auth.tortoise_models import User
from ..security.encryption import safe_decrypt
from ..services.app_mode_service import AppModeService
from .client import GitHubClient, exchange_oauth_code
from .mock_client import MockGitHubClient
from .mock_data import MOCK_USERS, MockDataOptions

GitHubAPI = Union[GitHubClient, MockGitHubClient]


async def get_github_client(
    user: Optional[User] = None, app_mode: Optional[AppModeService] = None
) -> GitHubAPI:
    """Mock client in mock/demo mode, otherwise a client for the user's token."""
    app_mode = app_mode or AppModeService()
    if await app_mode.is_mock_mode():
        data_set = await app_mode.get_mock_data_set()
        options = (
            MockDataOptions.from_parameters(data_set.seed, data_set.parameters)
            if data_set is not None
            else MockDataOptions()
        )
        mock_user = MOCK_USERS[0]
        if user is not None:
            mock_user = next((u for u in MOCK_USERS if u.id == user.github_id), mock_user)
        return MockGitHubClient(options, mock_user)

    token = safe_decrypt(user.access_token) if user is not None else ""
    return GitHubClient(token)


__all__ = [
    "GitHubAPI",
    "GitHubClient",
    "MockGitHubClient",
    "exchange_oauth_code",
    "get_github_client",
]
