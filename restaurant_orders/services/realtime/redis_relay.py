"""
Redis Event Relay

Production relay for multi-worker deployments. Every worker publishes
envelopes to one Redis pub/sub topic and subscribes to it; each received
envelope is delivered to the worker's own live connections.

Delivery stays best-effort: no backlog, no replay, no acknowledgment. A
worker that is not subscribed when an envelope is published never sees it.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from restaurant_orders.services.realtime.base import BaseEventRelay, EventEnvelope

logger = logging.getLogger(__name__)


class RedisEventRelay(BaseEventRelay):
    """
    Redis pub/sub relay.

    Attributes:
        redis_url: Redis connection URL
        topic: Pub/sub channel shared by all workers
        reconnect_delay: First wait before resubscribing after a lost
            connection, doubled per failure up to max_reconnect_delay
    """

    def __init__(
        self,
        redis_url: str,
        channel_prefix: str = "orders:rt:",
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 30.0,
    ):
        super().__init__()
        self.redis_url = redis_url
        self.topic = f"{channel_prefix}events"
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self._subscribed = False

        self._redis: Optional[aioredis.Redis] = None
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def provider_name(self) -> str:
        return "redis"

    async def start(self) -> None:
        self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        await self._subscribe()
        self._listener = asyncio.create_task(self._listen())

    async def _subscribe(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.topic)
        self._subscribed = True
        logger.info(f"RedisEventRelay subscribed to {self.topic}")

    async def _drop_pubsub(self) -> None:
        self._subscribed = False
        if self._pubsub is None:
            return
        try:
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning(f"Closing broken pub/sub connection failed: {e}")
        self._pubsub = None

    async def _listen(self) -> None:
        """
        Deliver every envelope received from Redis to local connections.

        A lost subscription is re-established with exponential backoff;
        envelopes published while it is down are not recovered.
        """
        delay = self.reconnect_delay
        while True:
            try:
                if self._pubsub is None:
                    await self._subscribe()
                delay = self.reconnect_delay
                async for message in self._pubsub.listen():
                    if message["type"] != "message":
                        continue
                    try:
                        envelope = EventEnvelope.from_json(message["data"])
                    except (ValueError, KeyError, TypeError) as e:
                        logger.warning(f"Dropping malformed relay message: {e}")
                        continue
                    self.deliver_locally(envelope)
            except RedisError as e:
                logger.exception(f"Relay subscription lost, retrying in {delay}s: {e}")
                await self._drop_pubsub()
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_reconnect_delay)

    def publish(self, envelope: EventEnvelope) -> None:
        if self._redis is None:
            logger.warning("RedisEventRelay not started, delivering in-process only")
            self.deliver_locally(envelope)
            return

        task = asyncio.get_running_loop().create_task(
            self._redis.publish(self.topic, envelope.to_json())
        )
        self._pending.add(task)
        task.add_done_callback(self._on_published)

    def _on_published(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to relay realtime event: {error}")

    async def stop(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.topic)
            except RedisError as e:
                logger.warning(f"Unsubscribe failed: {e}")
            await self._drop_pubsub()

        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        logger.info("RedisEventRelay stopped")

    async def health_check(self) -> bool:
        if self._redis is None:
            return False
        if self._listener is None or self._listener.done() or not self._subscribed:
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
