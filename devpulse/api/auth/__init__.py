"""
Authentication module for the DevPulse API.

GitHub OAuth sign-in backed by fastapi-users sessions.
"""

from .endpoints import router as auth_router

__all__ = ["auth_router"]
