"""
Health check endpoints for the DevPulse API.

This module provides health monitoring and status endpoints.
"""

import time
from typing import Any, Dict

from fastapi import APIRouter
from tortoise import Tortoise

from ... import __version__
from ...core.cache import get_cache
from ...core.circuit_breaker import get_all_circuit_breakers
from ...core.config import get_config
from ...core.logging import get_logger
from ..models import HealthResponse, success

router = APIRouter(tags=["Health"])
logger = get_logger("api.health")


async def _database_status() -> str:
    try:
        connection = Tortoise.get_connection("default")
        await connection.execute_query("SELECT 1")
        return "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        return "unhealthy"


@router.get(
    "/health",
    summary="Health Check",
    description="Returns the health of the API and its dependencies",
)
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.

    Reports the database and Redis status and any open circuit breakers.
    Redis is optional: when it is down the service is ``degraded``, not
    ``unhealthy``.
    """
    start_time = time.time()
    components = {
        "api": "healthy",
        "database": await _database_status(),
        "redis": "healthy" if await get_cache().health_check() else "unavailable",
    }
    open_breakers = [
        name
        for name, stats in get_all_circuit_breakers().items()
        if stats["state"] == "OPEN"
    ]

    overall = "healthy"
    if components["database"] == "unhealthy":
        overall = "unhealthy"
    elif components["redis"] != "healthy" or open_breakers:
        overall = "degraded"

    health = HealthResponse(
        status=overall,
        service="DevPulse API",
        version=__version__,
        components=components,
        metrics={
            "responseTimeMs": round((time.time() - start_time) * 1000, 2),
            "environment": get_config().environment.value,
            "openCircuitBreakers": open_breakers,
        },
    )
    return success(health.model_dump())
