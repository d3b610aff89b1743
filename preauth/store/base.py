"""
Order Store Interface

Persistence for pre-auth orders, post-auth orders and merchant
policies. Two implementations ship: an in-memory store for
development and tests, and a PostgreSQL store.

Status changes go through compare-and-set methods: the caller names
the statuses it expects, and the store applies the change only if the
stored status still matches. A mismatch returns ``None`` and leaves
the record untouched.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from ..schemas import (
    OrderStatus,
    PostAuthOrder,
    PostAuthStatus,
    PreAuthOrder,
    RiskPolicy,
)


class OrderStore(ABC):
    """Abstract order store."""

    async def initialize(self) -> None:
        """Open connections. No-op by default."""

    async def close(self) -> None:
        """Release connections. No-op by default."""

    async def health_check(self) -> bool:
        return True

    # =========================================================================
    # Pre-auth orders
    # =========================================================================

    @abstractmethod
    async def create_pre_auth(self, order: PreAuthOrder) -> PreAuthOrder:
        """Insert a new pre-auth order."""

    @abstractmethod
    async def get_pre_auth(self, record_id: str) -> Optional[PreAuthOrder]:
        """Fetch a pre-auth order by internal id."""

    @abstractmethod
    async def list_pre_auth(
        self,
        merchant_id: str,
        statuses: Optional[Iterable[OrderStatus]] = None,
        limit: int = 50,
    ) -> list[PreAuthOrder]:
        """Merchant-scoped listing, newest first."""

    @abstractmethod
    async def transition_pre_auth(
        self,
        record_id: str,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        changes: Optional[dict[str, Any]] = None,
    ) -> Optional[PreAuthOrder]:
        """
        Move an order to ``target`` if its status is one of ``expected``.

        Args:
            record_id: Pre-auth order id
            expected: Statuses the order may currently be in
            target: New status
            changes: Extra fields to set alongside the status

        Returns:
            The updated order, or None when the status did not match
        """

    # =========================================================================
    # Order history (velocity and first-time customer)
    # =========================================================================

    @abstractmethod
    async def count_orders_by_email(
        self,
        merchant_id: str,
        email: str,
        since: Optional[datetime] = None,
    ) -> int:
        """Count the merchant's pre-auth orders for an email, optionally since a time."""

    @abstractmethod
    async def count_orders_by_device(
        self,
        merchant_id: str,
        device_fingerprint: str,
        since: Optional[datetime] = None,
    ) -> int:
        """Count the merchant's pre-auth orders for a device fingerprint."""

    # =========================================================================
    # Post-auth orders
    # =========================================================================

    @abstractmethod
    async def promote(
        self,
        post_auth: PostAuthOrder,
        expected: Iterable[OrderStatus],
        moved_at: datetime,
    ) -> Optional[PreAuthOrder]:
        """
        Atomically insert ``post_auth`` and move its pre-auth order to
        MOVED_TO_POST_AUTH with the scan and post-auth ids.

        Returns:
            The updated pre-auth order, or None (and nothing written)
            when the pre-auth status is not one of ``expected``
        """

    @abstractmethod
    async def get_post_auth(self, post_auth_id: str) -> Optional[PostAuthOrder]:
        """Fetch a post-auth order by id."""

    @abstractmethod
    async def get_post_auth_for_pre_auth(self, pre_auth_order_id: str) -> Optional[PostAuthOrder]:
        """Fetch the post-auth order linked to a pre-auth order, if any."""

    @abstractmethod
    async def list_post_auth(
        self,
        merchant_id: str,
        status: Optional[PostAuthStatus] = None,
        limit: int = 50,
    ) -> list[PostAuthOrder]:
        """Merchant-scoped listing, newest first."""

    @abstractmethod
    async def list_elapsed_post_auth(
        self,
        merchant_id: str,
        now: datetime,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        """UNDER_MONITORING orders whose window ended at or before ``now``, oldest window first."""

    @abstractmethod
    async def scan_post_auth(
        self,
        merchant_id: str,
        after: Optional[tuple[datetime, str]] = None,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        """
        Page through every post-auth order of a merchant.

        Orders come oldest first, keyed on (created_at, id). Pass the
        key of the last order of a page as ``after`` to get the next one.
        """

    @abstractmethod
    async def update_post_auth(
        self,
        post_auth_id: str,
        expected: Iterable[PostAuthStatus],
        changes: dict[str, Any],
    ) -> Optional[PostAuthOrder]:
        """Apply ``changes`` if the status is one of ``expected``."""

    @abstractmethod
    async def append_post_auth(
        self,
        post_auth_id: str,
        field: str,
        item: Any,
        updated_at: datetime,
    ) -> Optional[PostAuthOrder]:
        """Append ``item`` to the ``evidence`` or ``notes`` list."""

    # =========================================================================
    # Policies
    # =========================================================================

    @abstractmethod
    async def get_policy(self, merchant_id: str) -> Optional[RiskPolicy]:
        """Return the stored policy, or None when the merchant has never saved one."""

    @abstractmethod
    async def put_policy(self, merchant_id: str, policy: RiskPolicy) -> RiskPolicy:
        """Insert or replace the merchant's policy."""


APPENDABLE_POST_AUTH_FIELDS = frozenset({"evidence", "notes"})
