"""
Tortoise ORM configuration for DevPulse.

Simple, single-file configuration for all database operations.
"""

from typing import Any, Dict, Optional

from tortoise import Tortoise

from ..config import get_config
from ..logging import get_logger

logger = get_logger("core.database")

MODEL_MODULES = [
    "devpulse.core.auth.tortoise_models",
    "devpulse.core.models.tortoise_models",
]


def get_database_url() -> str:
    """Get database connection URL from configuration."""
    return get_config().database.url


def get_tortoise_config(db_url: Optional[str] = None) -> Dict[str, Any]:
    """Build the Tortoise config dict, optionally for another database URL."""
    return {
        "connections": {"default": db_url or get_database_url()},
        "apps": {
            "models": {
                "models": [*MODEL_MODULES, "aerich.models"],
                "default_connection": "default",
            },
        },
        "use_tz": True,
        "timezone": "UTC",
    }


# Used by aerich for migrations
TORTOISE_ORM = get_tortoise_config()


async def init_tortoise(db_url: Optional[str] = None) -> None:
    """Initialize Tortoise ORM."""
    config = get_config()
    await Tortoise.init(config=get_tortoise_config(db_url))
    if config.database.generate_schemas:
        await Tortoise.generate_schemas(safe=True)
    logger.info(
        "Tortoise ORM initialized",
        generate_schemas=config.database.generate_schemas,
    )


async def close_tortoise() -> None:
    """Close Tortoise ORM connections."""
    await Tortoise.close_connections()
    logger.info("Tortoise ORM connections closed")
