"""
Pre-start script to check database connectivity and other services.
"""

# Standard library imports
import asyncio
import sys

# Third-party imports
from sqlalchemy import text
from sqlalchemy.pool import NullPool

# Local application imports
from app.core.caching.redis import create_redis_client
from app.core.db.create_async_engine import create_async_engine
from app.core.monitoring.logging import get_logger
from app.settings import settings

logger = get_logger(__name__)


async def check_database() -> bool:
    """Check if database is accessible and ready."""
    engine = create_async_engine(poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(f"Database is ready ({engine.dialect.name})")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
    finally:
        await engine.dispose()


async def check_redis() -> bool:
    client = create_redis_client()
    try:
        await client.ping()
        logger.info("Redis is ready")
        return True
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        return False
    finally:
        await client.aclose()


async def wait_for(check, name: str, max_retries: int = 30, retry_interval: int = 2) -> bool:
    """
    Wait for a service to be ready.

    Args:
        check: Coroutine function returning True once the service answers
        name: Service name used in log messages
        max_retries: Maximum number of connection attempts
        retry_interval: Seconds between retries

    Returns:
        True if the service is ready, False otherwise
    """
    logger.info(f"Waiting for {name} to be ready...")

    for attempt in range(1, max_retries + 1):
        logger.info(f"{name} connection attempt {attempt}/{max_retries}")

        if await check():
            return True

        if attempt < max_retries:
            logger.info(f"Retrying in {retry_interval} seconds...")
            await asyncio.sleep(retry_interval)

    logger.error(f"Failed to connect to {name} after {max_retries} attempts")
    return False


async def main() -> None:
    """Main pre-start routine."""
    logger.info("Starting pre-start checks...")

    if not await wait_for(check_database, "database"):
        logger.error("Pre-start checks failed: Database is not available")
        sys.exit(1)

    # Redis backs the realtime relay and the Celery scheduler
    if settings.REALTIME_REDIS_ENABLED or settings.SCHEDULER_BACKEND == "celery":
        if not await wait_for(check_redis, "Redis"):
            logger.error("Pre-start checks failed: Redis is not available")
            sys.exit(1)

    logger.info("All pre-start checks passed!")


if __name__ == "__main__":
    asyncio.run(main())
