import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as aioredis  # type: ignore
from redis.exceptions import RedisError  # type: ignore

from coinfeed.messaging.models.events import PriceUpdateEvent

logger = logging.getLogger(__name__)

PRICES_HASH = "prices"
MAX_PENDING_WRITES = 10_000
FLUSH_TIMEOUT_SECONDS = 5


class RedisEventProcessor:
    """Upserts the latest price per pair into Redis and publishes each tick.

    ``process_event`` only enqueues; a writer task performs the Redis calls so
    the websocket listener is never held up by the store.
    """

    name = "redis"

    def __init__(
        self,
        redis_host: str = "redis",
        redis_port: int = 6379,
        hash_key: str = PRICES_HASH,
        max_pending: int = MAX_PENDING_WRITES,
    ) -> None:
        self.redis = aioredis.Redis(host=redis_host, port=redis_port)
        self.hash_key = hash_key
        self.pending: asyncio.Queue[tuple[str, str]] = asyncio.Queue(maxsize=max_pending)
        self.writer_task: Optional[asyncio.Task] = None
        self.dropped = 0

    def process_event(self, event: PriceUpdateEvent) -> None:
        record = {
            **event.model_dump(mode="json"),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self.pending.put_nowait((event.pair_exchange_id.key, json.dumps(record)))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Redis write queue full - dropping %s", event.pair_exchange_id)
            return

        if self.writer_task is None or self.writer_task.done():
            self.writer_task = asyncio.create_task(self.writer(), name="redis_price_writer")

    async def writer(self) -> None:
        try:
            while True:
                key, payload = await self.pending.get()
                try:
                    await self.redis.hset(self.hash_key, key, payload)
                    await self.redis.publish(f"market:PriceUpdate:{key}", payload)
                except (RedisError, OSError) as e:
                    logger.error("Redis write failed for %s: %s", key, e)
                finally:
                    self.pending.task_done()
        except asyncio.CancelledError:
            logger.info("Redis writer stopped")

    async def close(self) -> None:
        if self.writer_task is not None:
            if not self.writer_task.done():
                try:
                    await asyncio.wait_for(self.pending.join(), timeout=FLUSH_TIMEOUT_SECONDS)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Redis flush timed out with %d writes pending", self.pending.qsize()
                    )
            self.writer_task.cancel()
            try:
                await self.writer_task
            except asyncio.CancelledError:
                pass
            self.writer_task = None

        await self.redis.aclose()


"""
Helpful CLI commands:

# Latest price for every pair
redis-cli HGETALL prices

# Latest price for one pair
redis-cli HGET prices KRAKEN_BTC_USD

# Follow ticks for all pairs
redis-cli PSUBSCRIBE "market:PriceUpdate:*"
"""
