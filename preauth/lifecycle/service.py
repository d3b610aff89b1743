"""
Pre-Auth Service

Runs pre-authorization checks and drives the manual review workflow.

Run-check flow:
1. Validate the submission (before any scoring)
2. Read the merchant policy at call time
3. Score the order (signals + velocity)
4. Decide against the policy thresholds
5. Persist the order with its checks and decision

Every operation takes the acting merchant explicitly and refuses to
touch orders owned by another merchant.
"""

import time
from datetime import timedelta
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from ..errors import (
    AuthorizationError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from ..metrics import metrics
from ..policy import PolicyService, decide, initial_status
from ..schemas import (
    DecisionOutcome,
    OrderStatus,
    OrderSubmission,
    PreAuthCheckResponse,
    PreAuthOrder,
    ReviewDecision,
)
from ..scoring import ScoringAggregator
from ..store import OrderStore
from ..utils import Clock, get_logger, utc_now
from ..velocity import OrderHistory
from .transitions import AWAITING_REVIEW, sources_for

logger = get_logger("lifecycle")


def _new_pre_auth_id() -> str:
    return f"pa_{uuid4().hex}"


def parse_submission(data: Union[OrderSubmission, dict[str, Any]]) -> OrderSubmission:
    """
    Validate raw order data.

    Raises:
        OrderValidationError: naming the first offending field
    """
    if isinstance(data, OrderSubmission):
        return data
    try:
        return OrderSubmission.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise OrderValidationError(
            f"Invalid order: {field or 'request'}: {first.get('msg', 'invalid value')}",
            field=field,
        ) from e


class PreAuthService:
    """
    Pre-authorization screening and review.
    """

    def __init__(
        self,
        store: OrderStore,
        policies: PolicyService,
        aggregator: ScoringAggregator,
        history: OrderHistory,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_pre_auth_id,
        default_limit: int = 50,
    ):
        self.store = store
        self.policies = policies
        self.aggregator = aggregator
        self.history = history
        self.clock = clock
        self.id_factory = id_factory
        self.default_limit = default_limit

    # =========================================================================
    # Run check
    # =========================================================================

    async def run_check(
        self,
        merchant_id: str,
        submission: Union[OrderSubmission, dict[str, Any]],
    ) -> PreAuthCheckResponse:
        """
        Screen an order before payment authorization.

        Args:
            merchant_id: Acting merchant
            submission: Order attributes (model or raw dict)

        Returns:
            PreAuthCheckResponse with the stored order id, score and decision

        Raises:
            OrderValidationError: mandatory fields missing or malformed
        """
        start_time = time.perf_counter()
        order = parse_submission(submission)

        policy = await self.policies.get_policy(merchant_id)
        result = await self.aggregator.score(merchant_id, order, policy)

        now = self.clock()
        decision = decide(result.score, policy, now)

        record = PreAuthOrder(
            id=self.id_factory(),
            merchant_id=merchant_id,
            order_id=order.order_id,
            customer_email=order.customer_email,
            order_amount=order.order_amount,
            customer_phone=order.customer_phone,
            billing_address=order.billing_address,
            shipping_address=order.shipping_address,
            ip_address=order.ip_address,
            device_fingerprint=order.device_fingerprint,
            card_bin=order.card_bin,
            pre_auth_score=result.score,
            pre_auth_risk_level=result.risk_level,
            checks=result.checks,
            auto_decision=decision,
            signal_set=result.signal_set,
            status=initial_status(decision),
            created_at=now,
            expires_at=now + timedelta(hours=policy.review_timeout_hours),
        )
        record = await self.store.create_pre_auth(record)
        await self._record_history(record)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        metrics.decisions_total.labels(decision=decision.decision.value).inc()
        metrics.check_latency.observe(elapsed_ms)

        logger.info(
            "Pre-auth %s for merchant %s order %s: score %d, %s",
            record.id,
            merchant_id,
            record.order_id,
            record.pre_auth_score,
            decision.decision.value,
        )

        return PreAuthCheckResponse(
            pre_auth_order_id=record.id,
            order_id=record.order_id,
            pre_auth_score=record.pre_auth_score,
            pre_auth_risk_level=record.pre_auth_risk_level,
            auto_decision=decision.decision,
            reason=decision.reason,
            applied_rule=decision.applied_rule,
            checks=record.checks,
            should_proceed=decision.decision == DecisionOutcome.APPROVED,
            requires_manual_review=decision.decision == DecisionOutcome.REQUIRES_REVIEW,
            should_decline=decision.decision == DecisionOutcome.DECLINED,
            signal_set=record.signal_set,
            expires_at=record.expires_at,
            processing_time_ms=round(elapsed_ms, 2),
        )

    async def _record_history(self, record: PreAuthOrder) -> None:
        # The order is already stored; a missed counter update only under-counts velocity
        try:
            await self.history.record(record)
        except Exception as e:
            metrics.errors_total.labels(error_type="velocity_record").inc()
            logger.warning("Velocity record failed for %s: %s", record.id, e)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_pre_auth_order(self, merchant_id: str, record_id: str) -> PreAuthOrder:
        """
        Fetch one order owned by the merchant.

        Raises:
            OrderNotFoundError: no such order
            AuthorizationError: order belongs to another merchant
        """
        order = await self.store.get_pre_auth(record_id)
        if order is None:
            raise OrderNotFoundError(f"Pre-auth order not found: {record_id}")
        if order.merchant_id != merchant_id:
            logger.warning("Merchant %s denied access to pre-auth order %s", merchant_id, record_id)
            raise AuthorizationError()
        return order

    async def get_pending_orders(self, merchant_id: str, limit: Optional[int] = None) -> list[PreAuthOrder]:
        """Orders awaiting manual review, newest first."""
        return await self.store.list_pre_auth(
            merchant_id,
            statuses=AWAITING_REVIEW,
            limit=self.default_limit if limit is None else limit,
        )

    async def get_all_pre_auth_orders(self, merchant_id: str, limit: Optional[int] = None) -> list[PreAuthOrder]:
        """All of the merchant's orders, newest first."""
        return await self.store.list_pre_auth(merchant_id, limit=self.default_limit if limit is None else limit)

    # =========================================================================
    # Manual review
    # =========================================================================

    async def start_review(
        self,
        merchant_id: str,
        record_id: str,
        reviewer: Optional[str] = None,
    ) -> PreAuthOrder:
        """Claim a pending order for review (PENDING_REVIEW -> UNDER_REVIEW)."""
        return await self._transition(
            merchant_id,
            record_id,
            OrderStatus.UNDER_REVIEW,
            {"reviewed_by": reviewer or merchant_id},
        )

    async def approve(
        self,
        merchant_id: str,
        record_id: str,
        notes: Optional[str] = None,
        reviewer: Optional[str] = None,
    ) -> PreAuthOrder:
        """Manually approve an order awaiting review."""
        return await self._review(merchant_id, record_id, ReviewDecision.APPROVED, notes, reviewer)

    async def decline(
        self,
        merchant_id: str,
        record_id: str,
        notes: Optional[str] = None,
        reviewer: Optional[str] = None,
    ) -> PreAuthOrder:
        """Manually decline an order awaiting review."""
        return await self._review(merchant_id, record_id, ReviewDecision.DECLINED, notes, reviewer)

    async def _review(
        self,
        merchant_id: str,
        record_id: str,
        decision: ReviewDecision,
        notes: Optional[str],
        reviewer: Optional[str],
    ) -> PreAuthOrder:
        target = (
            OrderStatus.MANUAL_APPROVED
            if decision == ReviewDecision.APPROVED
            else OrderStatus.MANUAL_DECLINED
        )
        return await self._transition(
            merchant_id,
            record_id,
            target,
            {
                "reviewed_by": reviewer or merchant_id,
                "reviewed_at": self.clock(),
                "review_decision": decision,
                "review_notes": notes,
            },
        )

    async def _transition(
        self,
        merchant_id: str,
        record_id: str,
        target: OrderStatus,
        changes: dict[str, Any],
    ) -> PreAuthOrder:
        """
        Compare-and-set a status change on an owned order.

        Raises:
            InvalidTransitionError: current status cannot reach ``target``
        """
        current = await self.get_pre_auth_order(merchant_id, record_id)
        allowed = sources_for(target)

        updated = None
        if current.status in allowed:
            updated = await self.store.transition_pre_auth(record_id, allowed, target, changes)

        if updated is None:
            # Re-read so the error names the status that actually blocked us
            latest = await self.store.get_pre_auth(record_id) or current
            metrics.transition_conflicts.labels(target=target.value).inc()
            raise InvalidTransitionError(record_id, latest.status.value, target.value)

        metrics.transitions_total.labels(
            from_status=current.status.value,
            to_status=target.value,
        ).inc()
        logger.info(
            "Pre-auth %s moved %s -> %s by %s",
            record_id,
            current.status.value,
            target.value,
            changes.get("reviewed_by", merchant_id),
        )
        return updated
