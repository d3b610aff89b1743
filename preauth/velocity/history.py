"""
Order History

Source of the counts the velocity tracker and the first-time customer
rule need. Every count is scoped to one merchant.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..schemas import PreAuthOrder
from ..store import OrderStore


class OrderHistory(ABC):
    """Merchant-scoped order counts."""

    @abstractmethod
    async def count_recent_by_email(self, merchant_id: str, email: str, since: datetime) -> int:
        """Orders for ``email`` created at or after ``since``."""

    @abstractmethod
    async def count_recent_by_device(self, merchant_id: str, device_fingerprint: str, since: datetime) -> int:
        """Orders for ``device_fingerprint`` created at or after ``since``."""

    @abstractmethod
    async def count_lifetime_by_email(self, merchant_id: str, email: str) -> int:
        """All orders ever placed with ``email``."""

    async def record(self, order: PreAuthOrder) -> None:
        """Register a newly stored order. No-op when counts come from the store itself."""


class StoreOrderHistory(OrderHistory):
    """Counts persisted pre-auth orders directly."""

    def __init__(self, store: OrderStore):
        self.store = store

    async def count_recent_by_email(self, merchant_id: str, email: str, since: datetime) -> int:
        return await self.store.count_orders_by_email(merchant_id, email, since)

    async def count_recent_by_device(self, merchant_id: str, device_fingerprint: str, since: datetime) -> int:
        return await self.store.count_orders_by_device(merchant_id, device_fingerprint, since)

    async def count_lifetime_by_email(self, merchant_id: str, email: str) -> int:
        return await self.store.count_orders_by_email(merchant_id, email)
