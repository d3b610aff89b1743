"""
Redis Velocity Counter

Uses Redis Sorted Sets (ZSETs) for sliding window counters.
ZSETs allow efficient:
- Adding orders with timestamps as scores
- Counting orders within a time window
- Trimming orders that fell out of the window

Key format: {prefix}{merchant_id}:{entity_type}:{entity_id}:orders
Example: preauth:m_123:email:jane@example.com:orders
"""

from datetime import datetime, timedelta
from typing import Optional

import redis.asyncio as redis

from ..schemas import PreAuthOrder
from ..store import OrderStore
from ..utils import get_logger
from .history import OrderHistory

logger = get_logger("velocity.redis")


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class RedisVelocityCounter:
    """
    Sliding window order counter using Redis ZSETs.

    Each counter is a ZSET where:
    - Members are pre-auth order ids (re-recording an order is a no-op)
    - Scores are order creation times in milliseconds
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = "preauth:",
        window_seconds: int = 3600,
        default_ttl_seconds: int = 86400,  # 24 hours
    ):
        """
        Initialize velocity counter.

        Args:
            redis_client: Async Redis client
            key_prefix: Prefix for all Redis keys
            window_seconds: Members older than this are trimmed on write
            default_ttl_seconds: Key TTL, refreshed on every write
        """
        self.redis = redis_client
        self.prefix = key_prefix
        self.window = timedelta(seconds=window_seconds)
        self.default_ttl = default_ttl_seconds

    def _make_key(self, merchant_id: str, entity_type: str, entity_id: str) -> str:
        return f"{self.prefix}{merchant_id}:{entity_type}:{entity_id}:orders"

    async def increment(
        self,
        merchant_id: str,
        entity_type: str,
        entity_id: str,
        event_id: str,
        timestamp: datetime,
    ) -> int:
        """
        Add an order to a counter and drop members older than the window.

        Returns:
            Number of elements added (0 if event_id already exists)
        """
        key = self._make_key(merchant_id, entity_type, entity_id)
        cutoff_ms = _to_ms(timestamp - self.window)

        # Use pipeline for atomic operation
        pipe = self.redis.pipeline()
        pipe.zadd(key, {event_id: _to_ms(timestamp)})
        pipe.zremrangebyscore(key, 0, f"({cutoff_ms}")
        pipe.expire(key, self.default_ttl)

        results = await pipe.execute()
        if results[1]:
            logger.debug("Trimmed %d expired members from %s", results[1], key)
        return results[0]

    async def count(
        self,
        merchant_id: str,
        entity_type: str,
        entity_id: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> int:
        """Count orders with since <= created_at (<= until when given)."""
        key = self._make_key(merchant_id, entity_type, entity_id)
        upper = _to_ms(until) if until else "+inf"
        return await self.redis.zcount(key, _to_ms(since), upper)


class RedisOrderHistory(OrderHistory):
    """
    Velocity counts from Redis; lifetime counts from the order store.

    Redis keys expire, so "has this customer ever ordered" still has to
    come from persisted orders.
    """

    def __init__(self, counter: RedisVelocityCounter, store: OrderStore):
        self.counter = counter
        self.store = store

    async def count_recent_by_email(self, merchant_id: str, email: str, since: datetime) -> int:
        return await self.counter.count(merchant_id, "email", email, since)

    async def count_recent_by_device(self, merchant_id: str, device_fingerprint: str, since: datetime) -> int:
        return await self.counter.count(merchant_id, "device", device_fingerprint, since)

    async def count_lifetime_by_email(self, merchant_id: str, email: str) -> int:
        return await self.store.count_orders_by_email(merchant_id, email)

    async def record(self, order: PreAuthOrder) -> None:
        await self.counter.increment(
            order.merchant_id, "email", order.customer_email, order.id, order.created_at
        )
        if order.device_fingerprint:
            await self.counter.increment(
                order.merchant_id, "device", order.device_fingerprint, order.id, order.created_at
            )
        logger.debug("Recorded order %s in velocity counters", order.id)
