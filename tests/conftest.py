"""
Pytest configuration and fixtures for DevPulse tests.

Database-backed tests run against an in-memory SQLite database created per
test. API tests drive the ASGI app directly with an authenticated user
injected through dependency overrides.
"""

import itertools
import os
from typing import Any, AsyncGenerator, Callable, Coroutine

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_JSON_OUTPUT", "false")
os.environ.setdefault("REDIS_SOCKET_CONNECT_TIMEOUT", "0.05")
os.environ.setdefault("REDIS_SOCKET_TIMEOUT", "0.05")
os.environ.setdefault("ENCRYPTION_KEY", "5c" * 32)

import httpx  # noqa: E402
import pytest  # noqa: E402
from tortoise import Tortoise  # noqa: E402

from devpulse.core.auth.fastapi_users import current_active_user  # noqa: E402
from devpulse.core.auth.roles import UserRole  # noqa: E402
from devpulse.core.auth.tortoise_models import User  # noqa: E402
from devpulse.core.circuit_breaker import clear_circuit_breakers  # noqa: E402
from devpulse.core.config import get_config  # noqa: E402
from devpulse.core.database import get_tortoise_config  # noqa: E402
from devpulse.core.jobs import reset_job_manager  # noqa: E402
from devpulse.core.models.tortoise_models import Repository  # noqa: E402

_github_ids = itertools.count(500_000)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "api: tests that exercise HTTP routes")
    config.addinivalue_line("markers", "db: tests that need the test database")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location and name."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        if "test_api_" in item.fspath.basename:
            item.add_marker(pytest.mark.api)
        if "db" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.db)


@pytest.fixture(autouse=True)
def reset_state():
    """Isolate process-wide registries and feature flags between tests."""
    clear_circuit_breakers()
    reset_job_manager()
    features = get_config().features
    saved = features.model_dump()
    yield
    for key, value in saved.items():
        setattr(features, key, value)
    clear_circuit_breakers()
    reset_job_manager()


@pytest.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory database with all tables."""
    await Tortoise.init(config=get_tortoise_config("sqlite://:memory:"))
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def make_user(db) -> Callable[..., Coroutine[Any, Any, User]]:
    """Factory for persisted users."""

    async def factory(
        username: str = "octocat", role: UserRole = UserRole.DEVELOPER, **fields: Any
    ) -> User:
        github_id = next(_github_ids)
        return await User.create(
            github_id=github_id,
            username=username,
            email=fields.pop("email", f"{username}-{github_id}@example.com"),
            role=role,
            **fields,
        )

    return factory


@pytest.fixture
async def user(make_user) -> User:
    return await make_user("developer")


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin", role=UserRole.ADMINISTRATOR)


@pytest.fixture
def app():
    """Fresh application so middleware state never leaks between tests."""
    from devpulse.api.app import create_app

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client_for(app, db) -> Callable[[User], httpx.AsyncClient]:
    """Build an HTTP client authenticated as the given user."""

    def build(user: User) -> httpx.AsyncClient:
        app.dependency_overrides[current_active_user] = lambda: user
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        )

    return build


@pytest.fixture
def make_repository(db) -> Callable[..., Coroutine[Any, Any, Repository]]:
    """Factory for persisted repositories owned by a user."""

    async def factory(owner: User, name: str = "devpulse", **fields: Any) -> Repository:
        github_id = next(_github_ids)
        return await Repository.create(
            github_id=github_id,
            name=name,
            full_name=f"{owner.username}/{name}",
            owner=owner,
            **fields,
        )

    return factory
