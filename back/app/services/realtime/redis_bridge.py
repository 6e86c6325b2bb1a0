"""
Mirrors change events through Redis pub/sub so observers connected to one
API process also see changes made by other processes (the Celery scheduler
in particular).
"""

# Standard library imports
import asyncio
import contextlib

# Third-party imports
from pydantic import ValidationError
import redis.asyncio as redis

# Local application imports
from app.core.caching.redis import redis_client
from app.core.monitoring.logging import get_contextual_logger
from app.schemas.issues.event_schemas import IssueEvent
from app.services.realtime.fanout import ChangeFanout
from app.settings import settings

logger = get_contextual_logger(__name__)


class RedisEventBridge:
    def __init__(
        self,
        fanout: ChangeFanout,
        client: redis.Redis | None = None,
        channel: str | None = None,
    ):
        self.fanout = fanout
        self.client = client or redis_client
        self.channel = channel or settings.REALTIME_REDIS_CHANNEL
        self._outbox: asyncio.Queue[IssueEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        fanout.add_mirror(self._outbox.put_nowait)

    async def _publish(self, event: IssueEvent) -> None:
        try:
            await self.client.publish(self.channel, event.model_dump_json())
        except redis.RedisError as e:
            # Local observers already have the event; only remote ones miss it
            logger.error(f"Failed to mirror event for issue {event.issue_id} to Redis: {e}")

    async def flush(self) -> int:
        """Publish every queued event now; returns how many were sent."""
        sent = 0
        while not self._outbox.empty():
            await self._publish(self._outbox.get_nowait())
            sent += 1
        return sent

    async def run_publisher(self) -> None:
        while True:
            event = await self._outbox.get()
            await self._publish(event)

    def handle_message(self, data: str) -> bool:
        try:
            event = IssueEvent.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed realtime message: {e}")
            return False
        return self.fanout.deliver_external(event)

    async def run_listener(self) -> None:
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info(f"Relaying realtime events from Redis channel {self.channel}")
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    self.handle_message(message["data"])
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self.run_publisher(), name="realtime-redis-publisher"),
            asyncio.create_task(self.run_listener(), name="realtime-redis-listener"),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await self.flush()
