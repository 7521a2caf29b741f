"""
Main FastAPI application for the DevPulse API.

This module provides the FastAPI application with middleware, CORS
configuration, the error envelope handlers and the route registration.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from .. import __version__
from ..core.config import DevPulseConfig, Environment, get_config
from ..core.database import close_tortoise, init_tortoise
from ..core.errors import (
    AppError,
    ErrorCode,
    create_error_response,
    error_code_for_status,
)
from ..core.jobs import get_job_manager
from ..core.jobs.processors import register_default_processors
from ..core.jobs.scheduler import SyncScheduler
from ..core.logging import get_logger, request_id_var, security_logger


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        """Dispatch request with security headers."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "geolocation=(), microphone=(), camera=()"
        )

        if "server" in response.headers:
            del response.headers["server"]

        return cast(Response, response)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting per client address for ``/api`` routes."""

    def __init__(
        self, app: ASGIApp, max_requests: int = 120, window_seconds: int = 60
    ) -> None:
        """Initialize rate limiting middleware."""
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, List[float]] = {}

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        """Dispatch request with rate limiting."""
        if not request.url.path.startswith("/api") or request.url.path == "/api/health":
            return cast(Response, await call_next(request))

        client_ip = request.client.host if request.client else "unknown"
        current_time = time.time()

        # Drop clients whose last request left the window
        self.requests = {
            ip: timestamps
            for ip, timestamps in self.requests.items()
            if timestamps and current_time - timestamps[-1] < self.window_seconds
        }
        recent = [
            ts
            for ts in self.requests.get(client_ip, [])
            if current_time - ts < self.window_seconds
        ]

        if len(recent) >= self.max_requests:
            security_logger.log_rate_limit_exceeded(request.url.path, request=request)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=create_error_response(
                    ErrorCode.RATE_LIMITED,
                    f"Too many requests. Limit: {self.max_requests} "
                    f"per {self.window_seconds} seconds",
                ),
                headers={"Retry-After": str(self.window_seconds)},
            )

        recent.append(current_time)
        self.requests[client_ip] = recent
        return cast(Response, await call_next(request))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger = get_logger("api.app")
    config = get_config()
    logger.info("Starting DevPulse API server", environment=config.environment.value)

    await init_tortoise()

    manager = get_job_manager()
    scheduler: Optional[SyncScheduler] = None
    if config.features.background_jobs:
        register_default_processors(manager)
        await manager.start()
        scheduler = SyncScheduler(manager)
        scheduler.start()

    yield

    logger.info("Shutting down DevPulse API server")
    if scheduler is not None:
        await scheduler.stop()
    await manager.stop()
    await close_tortoise()


def create_app(environment: Optional[str] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        environment: Optional environment override. If provided, this will
                    override the environment from config for this app instance.
    """
    config = get_config()

    if environment:
        config.environment = Environment(environment)

    app = FastAPI(
        title="DevPulse API",
        description=(
            "Developer productivity, burnout and team collaboration analytics "
            "computed from GitHub activity."
        ),
        version=__version__,
        docs_url="/docs" if not config.is_production() else None,
        redoc_url="/redoc" if not config.is_production() else None,
        lifespan=lifespan,
    )

    _setup_middleware(app, config)
    _setup_exception_handlers(app)
    _setup_routes(app)

    return app


def _setup_middleware(app: FastAPI, config: DevPulseConfig) -> None:
    """Set up application middleware."""
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.api.rate_limit_requests,
        window_seconds=config.api.rate_limit_window,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_resolved,
        allow_credentials=config.api.cors_credentials,
        allow_methods=config.cors_methods_resolved,
        allow_headers=["*"],
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        logger = get_logger("api.middleware")
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_var.set(request_id)
        start_time = time.time()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(time.time() - start_time, 4),
            request_id=request_id,
        )
        return response


def _setup_exception_handlers(app: FastAPI) -> None:
    """Translate every error into the response envelope."""
    logger = get_logger("api.exceptions")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Application error",
            code=exc.code.value,
            message=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=create_error_response(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Validation error", path=request.url.path, errors=exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response(
                ErrorCode.BAD_REQUEST,
                "Invalid request",
                [
                    {"loc": list(e.get("loc", [])), "msg": e.get("msg")}
                    for e in exc.errors()
                ],
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception", status=exc.status_code, detail=exc.detail, path=request.url.path
        )
        code = error_code_for_status(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else code.value
        if code == ErrorCode.UNAUTHORIZED:
            message = "Not authenticated"
        return JSONResponse(
            status_code=exc.status_code,
            content=create_error_response(code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unexpected error", path=request.url.path, error=str(exc), exc_info=True
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                ErrorCode.INTERNAL_SERVER_ERROR, "An unexpected error occurred"
            ),
        )


def _setup_routes(app: FastAPI) -> None:
    """Set up application routes."""
    from .auth import auth_router
    from .routes import admin, analytics, github, health, insights, jobs, teams, users

    app.include_router(health.router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(analytics.router, prefix="/api")
    app.include_router(insights.router, prefix="/api")
    app.include_router(github.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")
    app.include_router(users.router, prefix="/api")
    app.include_router(teams.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")


# Create the main application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "devpulse.api.app:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.reload and config.is_development(),
        log_level="info",
    )
