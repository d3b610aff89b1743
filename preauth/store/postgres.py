"""
PostgreSQL Order Store

Each record is stored as a JSONB document next to the columns the
engine filters on (merchant, status, email, device, created_at).
Status changes lock the row with SELECT ... FOR UPDATE and re-check
the expected status before writing, so concurrent reviewers cannot
both win. Promotion inserts the post-auth row and updates the
pre-auth row in one transaction.

Schema: sql/schema.sql
"""

import json
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ..config import settings
from ..schemas import (
    OrderStatus,
    PostAuthOrder,
    PostAuthStatus,
    PreAuthOrder,
    RiskPolicy,
)
from ..utils import get_logger
from .base import APPENDABLE_POST_AUTH_FIELDS, OrderStore

logger = get_logger("store.postgres")


def _load_document(value: Any) -> dict:
    return value if isinstance(value, dict) else json.loads(value)


def _dump(model) -> str:
    return model.model_dump_json()


class PostgresOrderStore(OrderStore):
    """
    Order store backed by PostgreSQL via SQLAlchemy async + asyncpg.
    """

    def __init__(self, database_url: str, session_factory: Optional[async_sessionmaker] = None):
        """
        Initialize the store.

        Args:
            database_url: PostgreSQL connection URL
            session_factory: Pre-built session factory (tests inject one)
        """
        self.database_url = database_url
        self.engine = None
        self.session_factory = session_factory

    async def initialize(self) -> None:
        """Initialize database connection."""
        if self.session_factory is not None:
            return
        self.engine = create_async_engine(
            self.database_url,
            echo=settings.app_debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Postgres order store initialized")

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()

    async def health_check(self) -> bool:
        """Check database connectivity."""
        async with self.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1

    # =========================================================================
    # Pre-auth orders
    # =========================================================================

    async def create_pre_auth(self, order: PreAuthOrder) -> PreAuthOrder:
        async with self.session_factory() as session:
            await session.execute(
                text("""
                    INSERT INTO pre_auth_orders (
                        id, merchant_id, order_id, customer_email,
                        device_fingerprint, status, created_at, document
                    ) VALUES (
                        :id, :merchant_id, :order_id, :customer_email,
                        :device_fingerprint, :status, :created_at, :document
                    )
                """),
                {
                    "id": order.id,
                    "merchant_id": order.merchant_id,
                    "order_id": order.order_id,
                    "customer_email": order.customer_email,
                    "device_fingerprint": order.device_fingerprint,
                    "status": order.status.value,
                    "created_at": order.created_at,
                    "document": _dump(order),
                },
            )
            await session.commit()
        return order

    async def get_pre_auth(self, record_id: str) -> Optional[PreAuthOrder]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT document FROM pre_auth_orders WHERE id = :id"),
                {"id": record_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return PreAuthOrder.model_validate(_load_document(row[0]))

    async def list_pre_auth(
        self,
        merchant_id: str,
        statuses: Optional[Iterable[OrderStatus]] = None,
        limit: int = 50,
    ) -> list[PreAuthOrder]:
        params: dict[str, Any] = {"merchant_id": merchant_id, "limit": limit}
        status_clause = ""
        if statuses is not None:
            params["statuses"] = [s.value for s in statuses]
            status_clause = "AND status = ANY(:statuses)"

        async with self.session_factory() as session:
            result = await session.execute(
                text(f"""
                    SELECT document FROM pre_auth_orders
                    WHERE merchant_id = :merchant_id {status_clause}
                    ORDER BY created_at DESC
                    LIMIT :limit
                """),
                params,
            )
            rows = result.fetchall()
        return [PreAuthOrder.model_validate(_load_document(r[0])) for r in rows]

    async def _lock_pre_auth(self, session: AsyncSession, record_id: str) -> Optional[PreAuthOrder]:
        result = await session.execute(
            text("SELECT document FROM pre_auth_orders WHERE id = :id FOR UPDATE"),
            {"id": record_id},
        )
        row = result.fetchone()
        if not row:
            return None
        return PreAuthOrder.model_validate(_load_document(row[0]))

    async def _write_pre_auth(self, session: AsyncSession, order: PreAuthOrder) -> None:
        await session.execute(
            text("""
                UPDATE pre_auth_orders
                SET status = :status,
                    post_auth_order_id = :post_auth_order_id,
                    document = :document
                WHERE id = :id
            """),
            {
                "id": order.id,
                "status": order.status.value,
                "post_auth_order_id": order.post_auth_order_id,
                "document": _dump(order),
            },
        )

    async def transition_pre_auth(
        self,
        record_id: str,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        changes: Optional[dict[str, Any]] = None,
    ) -> Optional[PreAuthOrder]:
        async with self.session_factory() as session:
            current = await self._lock_pre_auth(session, record_id)
            if current is None or current.status not in set(expected):
                await session.rollback()
                return None

            updated = current.model_copy(update={**(changes or {}), "status": target})
            await self._write_pre_auth(session, updated)
            await session.commit()
        return updated

    # =========================================================================
    # Order history
    # =========================================================================

    async def count_orders_by_email(
        self,
        merchant_id: str,
        email: str,
        since: Optional[datetime] = None,
    ) -> int:
        return await self._count("customer_email", merchant_id, email, since)

    async def count_orders_by_device(
        self,
        merchant_id: str,
        device_fingerprint: str,
        since: Optional[datetime] = None,
    ) -> int:
        return await self._count("device_fingerprint", merchant_id, device_fingerprint, since)

    async def _count(
        self,
        column: str,
        merchant_id: str,
        value: str,
        since: Optional[datetime],
    ) -> int:
        # column is one of two fixed names, never caller input
        since_clause = "AND created_at >= :since" if since is not None else ""
        async with self.session_factory() as session:
            result = await session.execute(
                text(f"""
                    SELECT COUNT(*) FROM pre_auth_orders
                    WHERE merchant_id = :merchant_id AND {column} = :value {since_clause}
                """),
                {"merchant_id": merchant_id, "value": value, "since": since},
            )
            return int(result.scalar() or 0)

    # =========================================================================
    # Post-auth orders
    # =========================================================================

    async def promote(
        self,
        post_auth: PostAuthOrder,
        expected: Iterable[OrderStatus],
        moved_at: datetime,
    ) -> Optional[PreAuthOrder]:
        async with self.session_factory() as session:
            try:
                current = await self._lock_pre_auth(session, post_auth.pre_auth_order_id)
                if current is None or current.status not in set(expected):
                    await session.rollback()
                    return None

                await session.execute(
                    text("""
                        INSERT INTO post_auth_orders (
                            id, merchant_id, pre_auth_order_id, status,
                            created_at, monitoring_ends_at, document
                        ) VALUES (
                            :id, :merchant_id, :pre_auth_order_id, :status,
                            :created_at, :monitoring_ends_at, :document
                        )
                    """),
                    {
                        "id": post_auth.id,
                        "merchant_id": post_auth.merchant_id,
                        "pre_auth_order_id": post_auth.pre_auth_order_id,
                        "status": post_auth.status.value,
                        "created_at": post_auth.created_at,
                        "monitoring_ends_at": post_auth.monitoring_ends_at,
                        "document": _dump(post_auth),
                    },
                )

                updated = current.model_copy(update={
                    "status": OrderStatus.MOVED_TO_POST_AUTH,
                    "post_auth_scan_id": post_auth.post_auth_scan_id,
                    "post_auth_order_id": post_auth.id,
                    "moved_to_post_auth_at": moved_at,
                })
                await self._write_pre_auth(session, updated)
                await session.commit()
            except IntegrityError:
                # Another promotion already linked this pre-auth order
                await session.rollback()
                return None
            except Exception:
                await session.rollback()
                raise
        return updated

    async def get_post_auth(self, post_auth_id: str) -> Optional[PostAuthOrder]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT document FROM post_auth_orders WHERE id = :id"),
                {"id": post_auth_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return PostAuthOrder.model_validate(_load_document(row[0]))

    async def get_post_auth_for_pre_auth(self, pre_auth_order_id: str) -> Optional[PostAuthOrder]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT document FROM post_auth_orders WHERE pre_auth_order_id = :pre_auth_order_id"),
                {"pre_auth_order_id": pre_auth_order_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return PostAuthOrder.model_validate(_load_document(row[0]))

    async def list_post_auth(
        self,
        merchant_id: str,
        status: Optional[PostAuthStatus] = None,
        limit: int = 50,
    ) -> list[PostAuthOrder]:
        params: dict[str, Any] = {"merchant_id": merchant_id, "limit": limit}
        status_clause = ""
        if status is not None:
            params["status"] = status.value
            status_clause = "AND status = :status"

        async with self.session_factory() as session:
            result = await session.execute(
                text(f"""
                    SELECT document FROM post_auth_orders
                    WHERE merchant_id = :merchant_id {status_clause}
                    ORDER BY created_at DESC
                    LIMIT :limit
                """),
                params,
            )
            rows = result.fetchall()
        return [PostAuthOrder.model_validate(_load_document(r[0])) for r in rows]

    async def list_elapsed_post_auth(
        self,
        merchant_id: str,
        now: datetime,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                    SELECT document FROM post_auth_orders
                    WHERE merchant_id = :merchant_id
                      AND status = :status
                      AND monitoring_ends_at <= :now
                    ORDER BY monitoring_ends_at ASC, id ASC
                    LIMIT :limit
                """),
                {
                    "merchant_id": merchant_id,
                    "status": PostAuthStatus.UNDER_MONITORING.value,
                    "now": now,
                    "limit": limit,
                },
            )
            rows = result.fetchall()
        return [PostAuthOrder.model_validate(_load_document(r[0])) for r in rows]

    async def scan_post_auth(
        self,
        merchant_id: str,
        after: Optional[tuple[datetime, str]] = None,
        limit: int = 500,
    ) -> list[PostAuthOrder]:
        params: dict[str, Any] = {"merchant_id": merchant_id, "limit": limit}
        after_clause = ""
        if after is not None:
            params["after_created_at"], params["after_id"] = after
            after_clause = "AND (created_at, id) > (:after_created_at, :after_id)"

        async with self.session_factory() as session:
            result = await session.execute(
                text(f"""
                    SELECT document FROM post_auth_orders
                    WHERE merchant_id = :merchant_id {after_clause}
                    ORDER BY created_at ASC, id ASC
                    LIMIT :limit
                """),
                params,
            )
            rows = result.fetchall()
        return [PostAuthOrder.model_validate(_load_document(r[0])) for r in rows]

    async def _lock_post_auth(self, session: AsyncSession, post_auth_id: str) -> Optional[PostAuthOrder]:
        result = await session.execute(
            text("SELECT document FROM post_auth_orders WHERE id = :id FOR UPDATE"),
            {"id": post_auth_id},
        )
        row = result.fetchone()
        if not row:
            return None
        return PostAuthOrder.model_validate(_load_document(row[0]))

    async def _write_post_auth(self, session: AsyncSession, order: PostAuthOrder) -> None:
        await session.execute(
            text("""
                UPDATE post_auth_orders
                SET status = :status, document = :document
                WHERE id = :id
            """),
            {"id": order.id, "status": order.status.value, "document": _dump(order)},
        )

    async def update_post_auth(
        self,
        post_auth_id: str,
        expected: Iterable[PostAuthStatus],
        changes: dict[str, Any],
    ) -> Optional[PostAuthOrder]:
        async with self.session_factory() as session:
            current = await self._lock_post_auth(session, post_auth_id)
            if current is None or current.status not in set(expected):
                await session.rollback()
                return None

            updated = current.model_copy(update=changes)
            await self._write_post_auth(session, updated)
            await session.commit()
        return updated

    async def append_post_auth(
        self,
        post_auth_id: str,
        field: str,
        item: Any,
        updated_at: datetime,
    ) -> Optional[PostAuthOrder]:
        if field not in APPENDABLE_POST_AUTH_FIELDS:
            raise ValueError(f"Cannot append to {field}")
        async with self.session_factory() as session:
            current = await self._lock_post_auth(session, post_auth_id)
            if current is None:
                await session.rollback()
                return None

            items = list(getattr(current, field)) + [item]
            updated = current.model_copy(update={field: items, "updated_at": updated_at})
            await self._write_post_auth(session, updated)
            await session.commit()
        return updated

    # =========================================================================
    # Policies
    # =========================================================================

    async def get_policy(self, merchant_id: str) -> Optional[RiskPolicy]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT document FROM merchant_policies WHERE merchant_id = :merchant_id"),
                {"merchant_id": merchant_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return RiskPolicy.model_validate(_load_document(row[0]))

    async def put_policy(self, merchant_id: str, policy: RiskPolicy) -> RiskPolicy:
        async with self.session_factory() as session:
            await session.execute(
                text("""
                    INSERT INTO merchant_policies (merchant_id, document, updated_at)
                    VALUES (:merchant_id, :document, :updated_at)
                    ON CONFLICT (merchant_id)
                    DO UPDATE SET document = EXCLUDED.document, updated_at = EXCLUDED.updated_at
                """),
                {
                    "merchant_id": merchant_id,
                    "document": _dump(policy),
                    "updated_at": policy.updated_at,
                },
            )
            await session.commit()
        return policy
