# Third-party imports
import redis.asyncio as redis

# Local application imports
from app.settings import settings


def create_redis_client(url: str | None = None) -> redis.Redis:
    # Connections are opened lazily on first command
    return redis.Redis.from_url(url or settings.REDIS_URL, decode_responses=True)


redis_client: redis.Redis = create_redis_client()
