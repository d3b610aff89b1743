"""
In-Memory Order Store

Process-local store for development and tests. All mutations run
under one asyncio lock, which makes compare-and-set and promotion
atomic within the process.
"""

import asyncio
from datetime import datetime
from typing import Any, Iterable, Optional

from ..schemas import (
    OrderStatus,
    PostAuthOrder,
    PostAuthStatus,
    PreAuthOrder,
    RiskPolicy,
)
from .base import APPENDABLE_POST_AUTH_FIELDS, OrderStore


class InMemoryOrderStore(OrderStore):
    """Dictionary-backed store. Returns copies so callers cannot mutate state."""

    def __init__(self):
        self._pre_auth: dict[str, PreAuthOrder] = {}
        self._post_auth: dict[str, PostAuthOrder] = {}
        self._post_auth_by_pre_auth: dict[str, str] = {}
        self._policies: dict[str, RiskPolicy] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Pre-auth orders
    # =========================================================================

    async def create_pre_auth(self, order: PreAuthOrder) -> PreAuthOrder:
        async with self._lock:
            if order.id in self._pre_auth:
                raise ValueError(f"Pre-auth order {order.id} already exists")
            self._pre_auth[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def get_pre_auth(self, record_id: str) -> Optional[PreAuthOrder]:
        order = self._pre_auth.get(record_id)
        return order.model_copy(deep=True) if order else None

    async def list_pre_auth(
        self,
        merchant_id: str,
        statuses: Optional[Iterable[OrderStatus]] = None,
        limit: int = 50,
    ) -> list[PreAuthOrder]:
        wanted = set(statuses) if statuses is not None else None
        orders = [
            o for o in self._pre_auth.values()
            if o.merchant_id == merchant_id and (wanted is None or o.status in wanted)
        ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in orders[:limit]]

    async def transition_pre_auth(
        self,
        record_id: str,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        changes: Optional[dict[str, Any]] = None,
    ) -> Optional[PreAuthOrder]:
        async with self._lock:
            current = self._pre_auth.get(record_id)
            if current is None or current.status not in set(expected):
                return None
            updated = current.model_copy(update={**(changes or {}), "status": target}, deep=True)
            self._pre_auth[record_id] = updated
        return updated.model_copy(deep=True)

    # =========================================================================
    # Order history
    # =========================================================================

    async def count_orders_by_email(
        self,
        merchant_id: str,
        email: str,
        since: Optional[datetime] = None,
    ) -> int:
        return sum(
            1 for o in self._pre_auth.values()
            if o.merchant_id == merchant_id
            and o.customer_email == email
            and (since is None or o.created_at >= since)
        )

    async def count_orders_by_device(
        self,
        merchant_id: str,
        device_fingerprint: str,
        since: Optional[datetime] = None,
    ) -> int:
        return sum(
            1 for o in self._pre_auth.values()
            if o.merchant_id == merchant_id
            and o.device_fingerprint == device_fingerprint
            and (since is None or o.created_at >= since)
        )

    # =========================================================================
    # Post-auth orders
    # =========================================================================

    async def promote(
        self,
        post_auth: PostAuthOrder,
        expected: Iterable[OrderStatus],
        moved_at: datetime,
    ) -> Optional[PreAuthOrder]:
        async with self._lock:
            current = self._pre_auth.get(post_auth.pre_auth_order_id)
            if current is None or current.status not in set(expected):
                return None
            if post_auth.pre_auth_order_id in self._post_auth_by_pre_auth:
                return None

            updated = current.model_copy(
                update={
                    "status": OrderStatus.MOVED_TO_POST_AUTH,
                    "post_auth_scan_id": post_auth.post_auth_scan_id,
                    "post_auth_order_id": post_auth.id,
                    "moved_to_post_auth_at": moved_at,
                },
                deep=True,
            )
            self._post_auth[post_auth.id] = post_auth.model_copy(deep=True)
            self._post_auth_by_pre_auth[post_auth.pre_auth_order_id] = post_auth.id
            self._pre_auth[current.id] = updated
        return updated.model_copy(deep=True)

    async def get_post_auth(self, post_auth_id: str) -> Optional[PostAuthOrder]:
        order = self._post_auth.get(post_auth_id)
        return order.model_copy(deep=True) if order else None

    async def get_post_auth_for_pre_auth(self, pre_auth_order_id: str) -> Optional[PostAuthOrder]:
        post_auth_id = self._post_auth_by_pre_auth.get(pre_auth_order_id)
        if post_auth_id is None:
            return None
        return await self.get_post_auth(post_auth_id)

    async def list_post_auth(
        self,
        merchant_id: str,
        status: Optional[PostAuthStatus] = None,
        limit: int = 50,
    ) -> list[PostAuthOrder]:
        orders = [
            o for o in self._post_auth.values()
            if o.merchant_id == merchant_id and (status is None or o.status == status)
        ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in orders[:limit]]

    async def list_elapsed_post_auth(
        self,
        merchant_id: str,
        now: datetime,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        orders = [
            o for o in self._post_auth.values()
            if o.merchant_id == merchant_id
            and o.status == PostAuthStatus.UNDER_MONITORING
            and o.monitoring_ends_at <= now
        ]
        orders.sort(key=lambda o: (o.monitoring_ends_at, o.id))
        return [o.model_copy(deep=True) for o in orders[:limit]]

    async def scan_post_auth(
        self,
        merchant_id: str,
        after: Optional[tuple[datetime, str]] = None,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        orders = [
            o for o in self._post_auth.values()
            if o.merchant_id == merchant_id
            and (after is None or (o.created_at, o.id) > after)
        ]
        orders.sort(key=lambda o: (o.created_at, o.id))
        return [o.model_copy(deep=True) for o in orders[:limit]]

    async def update_post_auth(
        self,
        post_auth_id: str,
        expected: Iterable[PostAuthStatus],
        changes: dict[str, Any],
    ) -> Optional[PostAuthOrder]:
        async with self._lock:
            current = self._post_auth.get(post_auth_id)
            if current is None or current.status not in set(expected):
                return None
            updated = current.model_copy(update=changes, deep=True)
            self._post_auth[post_auth_id] = updated
        return updated.model_copy(deep=True)

    async def append_post_auth(
        self,
        post_auth_id: str,
        field: str,
        item: Any,
        updated_at: datetime,
    ) -> Optional[PostAuthOrder]:
        if field not in APPENDABLE_POST_AUTH_FIELDS:
            raise ValueError(f"Cannot append to {field}")
        async with self._lock:
            current = self._post_auth.get(post_auth_id)
            if current is None:
                return None
            items = list(getattr(current, field)) + [item]
            updated = current.model_copy(
                update={field: items, "updated_at": updated_at},
                deep=True,
            )
            self._post_auth[post_auth_id] = updated
        return updated.model_copy(deep=True)

    # =========================================================================
    # Policies
    # =========================================================================

    async def get_policy(self, merchant_id: str) -> Optional[RiskPolicy]:
        policy = self._policies.get(merchant_id)
        return policy.model_copy(deep=True) if policy else None

    async def put_policy(self, merchant_id: str, policy: RiskPolicy) -> RiskPolicy:
        async with self._lock:
            self._policies[merchant_id] = policy.model_copy(deep=True)
        return policy.model_copy(deep=True)
