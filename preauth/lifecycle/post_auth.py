"""
Post-Auth Service

Promotes approved orders into post-authorization monitoring and
manages the monitoring record afterwards (evidence, notes,
chargebacks, clearing).

Promotion is safe to retry:
- an existing link is detected before the deep analysis runs
- the post-auth insert and the pre-auth status change are one
  atomic store operation
- reconcile_links repairs pre-auth orders whose post-auth record
  exists but whose status was never updated
"""

import time
from datetime import timedelta
from typing import Callable, Optional
from uuid import uuid4

from ..enrichment import DeepAnalyzer
from ..errors import (
    AuthorizationError,
    DependencyFailure,
    InvalidTransitionError,
    OrderNotFoundError,
)
from ..metrics import metrics
from ..schemas import (
    ChargebackFiling,
    EvidenceItem,
    EvidenceType,
    MonitoringNote,
    OrderStatus,
    PostAuthOrder,
    PostAuthOrderView,
    PostAuthStatus,
    PreAuthOrder,
    PromotionResult,
)
from ..store import OrderStore
from ..utils import Clock, get_logger, utc_now
from .service import PreAuthService
from .transitions import PROMOTABLE, post_auth_sources_for

logger = get_logger("lifecycle.post_auth")

DEFAULT_MONITORING_DAYS = 120
SWEEP_PAGE_SIZE = 500


def _new_post_auth_id() -> str:
    return f"po_{uuid4().hex}"


def clamp_risk(value: float) -> int:
    """Clamp a deep-analysis risk score into an int in [0, 100]."""
    return int(round(max(0.0, min(100.0, float(value)))))


class PostAuthService:
    """
    Post-authorization monitoring.
    """

    def __init__(
        self,
        store: OrderStore,
        pre_auth: PreAuthService,
        analyzer: DeepAnalyzer,
        clock: Clock = utc_now,
        monitoring_days: int = DEFAULT_MONITORING_DAYS,
        id_factory: Callable[[], str] = _new_post_auth_id,
        default_limit: int = 50,
        sweep_page_size: int = SWEEP_PAGE_SIZE,
    ):
        self.store = store
        self.pre_auth = pre_auth
        self.analyzer = analyzer
        self.clock = clock
        self.monitoring_days = monitoring_days
        self.id_factory = id_factory
        self.default_limit = default_limit
        self.sweep_page_size = sweep_page_size

    # =========================================================================
    # Promotion
    # =========================================================================

    async def move_to_post_auth(self, merchant_id: str, pre_auth_order_id: str) -> PromotionResult:
        """
        Promote an approved order to post-auth monitoring.

        Args:
            merchant_id: Acting merchant
            pre_auth_order_id: AUTO_APPROVED or MANUAL_APPROVED order

        Returns:
            PromotionResult; ``already_linked`` is True when an earlier
            promotion is returned instead of a new one

        Raises:
            InvalidTransitionError: order is not approved
            DependencyFailure: deep analysis failed; nothing was written
        """
        start_time = time.perf_counter()
        order = await self.pre_auth.get_pre_auth_order(merchant_id, pre_auth_order_id)

        existing = await self.store.get_post_auth_for_pre_auth(order.id)
        if existing is not None:
            order = await self._repair_link(order, existing)
            metrics.promotions_total.labels(result="already_linked").inc()
            return self._result(order, existing, already_linked=True)

        if order.status not in PROMOTABLE:
            metrics.transition_conflicts.labels(target=OrderStatus.MOVED_TO_POST_AUTH.value).inc()
            raise InvalidTransitionError(
                order.id, order.status.value, OrderStatus.MOVED_TO_POST_AUTH.value
            )

        try:
            analysis = await self.analyzer.analyze(order)
        except DependencyFailure:
            metrics.enrichment_failures.labels(collaborator="deep_analysis").inc()
            metrics.promotions_total.labels(result="analysis_failed").inc()
            raise

        now = self.clock()
        post_auth = PostAuthOrder(
            id=self.id_factory(),
            merchant_id=order.merchant_id,
            pre_auth_order_id=order.id,
            order_id=order.order_id,
            amount=order.order_amount,
            email=order.customer_email,
            card_bin=order.card_bin,
            ip_address=order.ip_address,
            pre_auth_score=order.pre_auth_score,
            chargeback_risk=clamp_risk(analysis.risk_score),
            fraud_signals=analysis.signals,
            post_auth_scan_id=analysis.scan_id,
            recommendation=analysis.recommendation,
            status=PostAuthStatus.UNDER_MONITORING,
            created_at=now,
            monitoring_ends_at=now + timedelta(days=self.monitoring_days),
        )

        updated = await self.store.promote(post_auth, PROMOTABLE, now)
        if updated is None:
            # Lost a race: another promotion or a status change got there first
            winner = await self.store.get_post_auth_for_pre_auth(order.id)
            if winner is not None:
                latest = await self.store.get_pre_auth(order.id) or order
                metrics.promotions_total.labels(result="already_linked").inc()
                return self._result(latest, winner, already_linked=True)
            latest = await self.store.get_pre_auth(order.id) or order
            raise InvalidTransitionError(
                order.id, latest.status.value, OrderStatus.MOVED_TO_POST_AUTH.value
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        metrics.promotions_total.labels(result="created").inc()
        metrics.promotion_latency.observe(elapsed_ms)
        metrics.transitions_total.labels(
            from_status=order.status.value,
            to_status=OrderStatus.MOVED_TO_POST_AUTH.value,
        ).inc()
        logger.info(
            "Pre-auth %s moved to post-auth %s (scan %s, chargeback risk %d)",
            order.id,
            post_auth.id,
            post_auth.post_auth_scan_id,
            post_auth.chargeback_risk,
        )
        return self._result(updated, post_auth, already_linked=False)

    def _result(
        self,
        pre_auth: PreAuthOrder,
        post_auth: PostAuthOrder,
        already_linked: bool,
    ) -> PromotionResult:
        return PromotionResult(
            pre_auth_order_id=pre_auth.id,
            post_auth_order_id=post_auth.id,
            post_auth_scan_id=post_auth.post_auth_scan_id,
            pre_auth_score=pre_auth.pre_auth_score,
            post_auth_score=post_auth.chargeback_risk,
            recommendation=post_auth.recommendation,
            already_linked=already_linked,
        )

    async def _repair_link(self, order: PreAuthOrder, post_auth: PostAuthOrder) -> PreAuthOrder:
        """Point the pre-auth order at its post-auth record if it does not already."""
        if (
            order.status == OrderStatus.MOVED_TO_POST_AUTH
            and order.post_auth_order_id == post_auth.id
        ):
            return order

        repaired = await self.store.transition_pre_auth(
            order.id,
            PROMOTABLE | {OrderStatus.MOVED_TO_POST_AUTH},
            OrderStatus.MOVED_TO_POST_AUTH,
            {
                "post_auth_scan_id": post_auth.post_auth_scan_id,
                "post_auth_order_id": post_auth.id,
                "moved_to_post_auth_at": order.moved_to_post_auth_at or post_auth.created_at,
            },
        )
        if repaired is None:
            logger.error(
                "Cannot link pre-auth %s (status %s) to post-auth %s",
                order.id,
                order.status.value,
                post_auth.id,
            )
            return order

        logger.warning("Repaired post-auth link for pre-auth %s -> %s", order.id, post_auth.id)
        return repaired

    async def reconcile_links(self, merchant_id: str) -> list[str]:
        """
        Repair half-written promotions for a merchant.

        Returns:
            Ids of the pre-auth orders that were patched
        """
        repaired: list[str] = []
        after = None
        while True:
            page = await self.store.scan_post_auth(merchant_id, after=after, limit=self.sweep_page_size)
            for post_auth in page:
                order = await self.store.get_pre_auth(post_auth.pre_auth_order_id)
                if order is None or order.merchant_id != merchant_id:
                    continue
                if (
                    order.status == OrderStatus.MOVED_TO_POST_AUTH
                    and order.post_auth_order_id == post_auth.id
                ):
                    continue
                fixed = await self._repair_link(order, post_auth)
                if fixed.post_auth_order_id == post_auth.id:
                    repaired.append(order.id)

            if len(page) < self.sweep_page_size:
                break
            after = (page[-1].created_at, page[-1].id)

        if repaired:
            logger.info("Reconciled %d post-auth links for merchant %s", len(repaired), merchant_id)
        return repaired

    # =========================================================================
    # Monitoring records
    # =========================================================================

    async def get_post_auth_order(self, merchant_id: str, post_auth_id: str) -> PostAuthOrder:
        """
        Fetch one post-auth order owned by the merchant.

        Raises:
            OrderNotFoundError: no such order
            AuthorizationError: order belongs to another merchant
        """
        order = await self.store.get_post_auth(post_auth_id)
        if order is None:
            raise OrderNotFoundError(f"Post-auth order not found: {post_auth_id}")
        if order.merchant_id != merchant_id:
            logger.warning("Merchant %s denied access to post-auth order %s", merchant_id, post_auth_id)
            raise AuthorizationError()
        return order

    async def get_post_auth_orders(
        self,
        merchant_id: str,
        limit: Optional[int] = None,
        status: Optional[PostAuthStatus] = None,
    ) -> list[PostAuthOrderView]:
        """Merchant's post-auth orders, newest first, with days in monitoring."""
        now = self.clock()
        orders = await self.store.list_post_auth(
            merchant_id,
            status=status,
            limit=self.default_limit if limit is None else limit,
        )
        return [
            PostAuthOrderView(
                **o.model_dump(),
                days_in_monitoring=o.monitoring_age_days(now),
            )
            for o in orders
        ]

    async def add_evidence(
        self,
        merchant_id: str,
        post_auth_id: str,
        evidence_type: EvidenceType,
        description: str,
    ) -> PostAuthOrder:
        """Append a piece of dispute evidence."""
        await self.get_post_auth_order(merchant_id, post_auth_id)
        now = self.clock()
        item = EvidenceItem(type=evidence_type, description=description, timestamp=now)
        updated = await self.store.append_post_auth(post_auth_id, "evidence", item, now)
        if updated is None:
            raise OrderNotFoundError(f"Post-auth order not found: {post_auth_id}")
        logger.info("Evidence (%s) added to post-auth %s", evidence_type.value, post_auth_id)
        return updated

    async def add_note(
        self,
        merchant_id: str,
        post_auth_id: str,
        text: str,
        author: Optional[str] = None,
    ) -> PostAuthOrder:
        """Append a monitoring note."""
        await self.get_post_auth_order(merchant_id, post_auth_id)
        now = self.clock()
        note = MonitoringNote(text=text, author=author or merchant_id, created_at=now)
        updated = await self.store.append_post_auth(post_auth_id, "notes", note, now)
        if updated is None:
            raise OrderNotFoundError(f"Post-auth order not found: {post_auth_id}")
        return updated

    async def mark_chargeback_filed(
        self,
        merchant_id: str,
        post_auth_id: str,
        filing: ChargebackFiling,
    ) -> PostAuthOrder:
        """Record a chargeback (UNDER_MONITORING -> CHARGEBACKS_FILED)."""
        now = self.clock()
        return await self._set_status(
            merchant_id,
            post_auth_id,
            PostAuthStatus.CHARGEBACKS_FILED,
            {
                "chargeback_filed_at": now,
                "chargeback_reason": filing.reason,
                "chargeback_amount": filing.amount,
                "updated_at": now,
            },
        )

    async def mark_cleared(self, merchant_id: str, post_auth_id: str) -> PostAuthOrder:
        """End monitoring without a chargeback (UNDER_MONITORING -> CLEARED)."""
        now = self.clock()
        return await self._set_status(
            merchant_id,
            post_auth_id,
            PostAuthStatus.CLEARED,
            {"cleared_at": now, "updated_at": now},
        )

    async def clear_elapsed(self, merchant_id: str) -> list[str]:
        """
        Clear every monitored order whose window has ended.

        Returns:
            Ids of the post-auth orders that were cleared
        """
        now = self.clock()
        cleared: list[str] = []
        while True:
            page = await self.store.list_elapsed_post_auth(merchant_id, now, limit=self.sweep_page_size)
            progressed = False
            for order in page:
                updated = await self.store.update_post_auth(
                    order.id,
                    post_auth_sources_for(PostAuthStatus.CLEARED),
                    {"status": PostAuthStatus.CLEARED, "cleared_at": now, "updated_at": now},
                )
                if updated is not None:
                    progressed = True
                    cleared.append(order.id)
                    metrics.post_auth_status_total.labels(status=PostAuthStatus.CLEARED.value).inc()

            # Cleared orders drop out of the query, so each page starts from the oldest left
            if len(page) < self.sweep_page_size or not progressed:
                break

        if cleared:
            logger.info("Cleared %d elapsed post-auth orders for merchant %s", len(cleared), merchant_id)
        return cleared

    async def _set_status(
        self,
        merchant_id: str,
        post_auth_id: str,
        target: PostAuthStatus,
        changes: dict,
    ) -> PostAuthOrder:
        current = await self.get_post_auth_order(merchant_id, post_auth_id)
        updated = await self.store.update_post_auth(
            post_auth_id,
            post_auth_sources_for(target),
            {**changes, "status": target},
        )
        if updated is None:
            latest = await self.store.get_post_auth(post_auth_id) or current
            raise InvalidTransitionError(post_auth_id, latest.status.value, target.value)

        metrics.post_auth_status_total.labels(status=target.value).inc()
        logger.info("Post-auth %s moved %s -> %s", post_auth_id, current.status.value, target.value)
        return updated
