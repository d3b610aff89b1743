"""
Pre-Auth Lifecycle Tests

Tests for run-check, the manual review workflow, merchant
ownership and listing.
"""

from datetime import timedelta

import pytest

from preauth.errors import (
    AuthorizationError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from preauth.lifecycle import PreAuthService, can_transition, parse_submission
from preauth.schemas import (
    CheckName,
    DecisionOutcome,
    OrderStatus,
    PolicyUpdate,
    ReviewDecision,
    RiskLevel,
)

from .conftest import MERCHANT_A, MERCHANT_B


async def _pending_order(service: PreAuthService, make_submission, merchant_id: str = MERCHANT_A) -> str:
    """Create an order that lands in PENDING_REVIEW (score 75)."""
    response = await service.run_check(merchant_id, make_submission(ip_address="198.51.100.7"))
    assert response.auto_decision == DecisionOutcome.REQUIRES_REVIEW
    return response.pre_auth_order_id


class TestRunCheck:
    """Tests for the run-check operation."""

    @pytest.mark.asyncio
    async def test_low_risk_order_auto_approved(self, pre_auth_service, submission, store, clock):
        response = await pre_auth_service.run_check(MERCHANT_A, submission)

        assert response.pre_auth_score == 100
        assert response.pre_auth_risk_level == RiskLevel.LOW
        assert response.auto_decision == DecisionOutcome.APPROVED
        assert response.should_proceed is True
        assert response.requires_manual_review is False
        assert response.should_decline is False
        assert response.applied_rule == "threshold_APPROVED"
        assert len(response.checks) == 4

        stored = await store.get_pre_auth(response.pre_auth_order_id)
        assert stored.status == OrderStatus.AUTO_APPROVED
        assert stored.merchant_id == MERCHANT_A
        assert stored.expires_at == clock() + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_review_band_goes_pending(self, pre_auth_service, make_submission, store):
        order_id = await _pending_order(pre_auth_service, make_submission)
        stored = await store.get_pre_auth(order_id)

        assert stored.status == OrderStatus.PENDING_REVIEW
        assert stored.pre_auth_risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_high_risk_auto_declined(self, pre_auth_service, make_submission, store):
        response = await pre_auth_service.run_check(
            MERCHANT_A,
            make_submission(
                customer_email="x@tempmail.com",
                ip_address="198.51.100.7",
                order_amount=750,
            ),
        )

        assert response.pre_auth_score == 25
        assert response.should_decline is True
        stored = await store.get_pre_auth(response.pre_auth_order_id)
        assert stored.status == OrderStatus.AUTO_DECLINED

    @pytest.mark.asyncio
    async def test_fourth_order_in_hour_fails_velocity(self, pre_auth_service, make_submission):
        for _ in range(3):
            await pre_auth_service.run_check(MERCHANT_A, make_submission())

        response = await pre_auth_service.run_check(MERCHANT_A, make_submission())

        velocity = next(c for c in response.checks if c.check_name == CheckName.VELOCITY)
        assert velocity.passed is False
        assert velocity.score_deduction == 40
        assert velocity.details == "4 orders from this email in the last hour (limit: 3)"
        assert response.pre_auth_score == 60

    @pytest.mark.asyncio
    async def test_policy_read_at_call_time(self, pre_auth_service, policy_service, make_submission):
        await policy_service.update_policy(MERCHANT_A, PolicyUpdate(auto_approve_threshold=99))
        first = await pre_auth_service.run_check(MERCHANT_A, make_submission(ip_address="198.51.100.7"))
        assert first.auto_decision == DecisionOutcome.REQUIRES_REVIEW

        await policy_service.update_policy(
            MERCHANT_A, PolicyUpdate(auto_approve_threshold=70, auto_decline_threshold=20)
        )
        second = await pre_auth_service.run_check(MERCHANT_A, make_submission(ip_address="198.51.100.7"))
        assert second.auto_decision == DecisionOutcome.APPROVED

    @pytest.mark.asyncio
    async def test_first_time_rule_uses_lifetime_history(self, pre_auth_service, make_submission, clock):
        await pre_auth_service.run_check(MERCHANT_A, make_submission())
        clock.advance(days=30)

        response = await pre_auth_service.run_check(MERCHANT_A, make_submission(order_amount=750))

        amount = next(c for c in response.checks if c.check_name == CheckName.AMOUNT_THRESHOLD)
        assert amount.passed is True

    @pytest.mark.asyncio
    async def test_invalid_submission_rejected_before_scoring(self, pre_auth_service, store):
        with pytest.raises(OrderValidationError) as exc_info:
            await pre_auth_service.run_check(
                MERCHANT_A,
                {"order_id": "o1", "customer_email": "not-an-email", "order_amount": 10},
            )

        assert exc_info.value.field == "customer_email"
        assert await store.list_pre_auth(MERCHANT_A) == []

    def test_parse_submission_missing_amount(self):
        with pytest.raises(OrderValidationError) as exc_info:
            parse_submission({"order_id": "o1", "customer_email": "a@example.com"})
        assert exc_info.value.field == "order_amount"

    @pytest.mark.asyncio
    async def test_history_record_failure_does_not_fail_check(self, pre_auth_service, submission, store):
        async def broken(order):
            raise ConnectionError("redis down")

        pre_auth_service.history.record = broken
        response = await pre_auth_service.run_check(MERCHANT_A, submission)

        assert await store.get_pre_auth(response.pre_auth_order_id) is not None


class TestManualReview:
    """Tests for the review workflow."""

    @pytest.mark.asyncio
    async def test_approve_pending(self, pre_auth_service, make_submission, clock):
        order_id = await _pending_order(pre_auth_service, make_submission)

        order = await pre_auth_service.approve(MERCHANT_A, order_id, notes="Verified by phone")

        assert order.status == OrderStatus.MANUAL_APPROVED
        assert order.review_decision == ReviewDecision.APPROVED
        assert order.review_notes == "Verified by phone"
        assert order.reviewed_by == MERCHANT_A
        assert order.reviewed_at == clock()

    @pytest.mark.asyncio
    async def test_start_review_then_decline(self, pre_auth_service, make_submission):
        order_id = await _pending_order(pre_auth_service, make_submission)

        claimed = await pre_auth_service.start_review(MERCHANT_A, order_id, reviewer="analyst_1")
        assert claimed.status == OrderStatus.UNDER_REVIEW

        declined = await pre_auth_service.decline(MERCHANT_A, order_id, reviewer="analyst_1")
        assert declined.status == OrderStatus.MANUAL_DECLINED
        assert declined.reviewed_by == "analyst_1"

    @pytest.mark.asyncio
    async def test_terminal_decision_not_overwritten(self, pre_auth_service, make_submission, store):
        order_id = await _pending_order(pre_auth_service, make_submission)
        await pre_auth_service.decline(MERCHANT_A, order_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await pre_auth_service.approve(MERCHANT_A, order_id)

        assert exc_info.value.current == "MANUAL_DECLINED"
        assert exc_info.value.target == "MANUAL_APPROVED"
        assert (await store.get_pre_auth(order_id)).status == OrderStatus.MANUAL_DECLINED

    @pytest.mark.asyncio
    async def test_auto_approved_cannot_be_reviewed(self, pre_auth_service, submission):
        response = await pre_auth_service.run_check(MERCHANT_A, submission)

        with pytest.raises(InvalidTransitionError):
            await pre_auth_service.decline(MERCHANT_A, response.pre_auth_order_id)
        with pytest.raises(InvalidTransitionError):
            await pre_auth_service.start_review(MERCHANT_A, response.pre_auth_order_id)

    @pytest.mark.asyncio
    async def test_start_review_twice_rejected(self, pre_auth_service, make_submission):
        order_id = await _pending_order(pre_auth_service, make_submission)
        await pre_auth_service.start_review(MERCHANT_A, order_id)

        with pytest.raises(InvalidTransitionError):
            await pre_auth_service.start_review(MERCHANT_A, order_id)

    def test_transition_table(self):
        assert can_transition(OrderStatus.PENDING_REVIEW, OrderStatus.MANUAL_APPROVED)
        assert can_transition(OrderStatus.AUTO_APPROVED, OrderStatus.MOVED_TO_POST_AUTH)
        assert not can_transition(OrderStatus.AUTO_DECLINED, OrderStatus.MANUAL_APPROVED)
        assert not can_transition(OrderStatus.MOVED_TO_POST_AUTH, OrderStatus.MANUAL_DECLINED)


class TestOwnership:
    """Tests for merchant scoping."""

    @pytest.mark.asyncio
    async def test_other_merchant_cannot_read(self, pre_auth_service, submission):
        response = await pre_auth_service.run_check(MERCHANT_A, submission)

        with pytest.raises(AuthorizationError):
            await pre_auth_service.get_pre_auth_order(MERCHANT_B, response.pre_auth_order_id)

    @pytest.mark.asyncio
    async def test_other_merchant_cannot_approve(self, pre_auth_service, make_submission, store):
        order_id = await _pending_order(pre_auth_service, make_submission)

        with pytest.raises(AuthorizationError):
            await pre_auth_service.approve(MERCHANT_B, order_id)
        assert (await store.get_pre_auth(order_id)).status == OrderStatus.PENDING_REVIEW

    @pytest.mark.asyncio
    async def test_unknown_order(self, pre_auth_service):
        with pytest.raises(OrderNotFoundError):
            await pre_auth_service.get_pre_auth_order(MERCHANT_A, "pa_missing")


class TestListing:
    """Tests for order listings."""

    @pytest.mark.asyncio
    async def test_pending_includes_under_review(self, pre_auth_service, make_submission, submission):
        first = await _pending_order(pre_auth_service, make_submission)
        second = await _pending_order(pre_auth_service, make_submission)
        await pre_auth_service.start_review(MERCHANT_A, second)
        await pre_auth_service.run_check(MERCHANT_A, make_submission(customer_email="other@example.com"))

        pending = await pre_auth_service.get_pending_orders(MERCHANT_A)

        assert {o.id for o in pending} == {first, second}

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, pre_auth_service, make_submission, clock):
        ids = []
        for i in range(3):
            response = await pre_auth_service.run_check(
                MERCHANT_A, make_submission(customer_email=f"c{i}@example.com")
            )
            ids.append(response.pre_auth_order_id)
            clock.advance(minutes=1)

        orders = await pre_auth_service.get_all_pre_auth_orders(MERCHANT_A, limit=2)

        assert [o.id for o in orders] == [ids[2], ids[1]]

    @pytest.mark.asyncio
    async def test_listing_is_merchant_scoped(self, pre_auth_service, make_submission):
        await pre_auth_service.run_check(MERCHANT_B, make_submission())
        assert await pre_auth_service.get_all_pre_auth_orders(MERCHANT_A) == []

    @pytest.mark.asyncio
    async def test_explicit_zero_limit(self, pre_auth_service, make_submission):
        await pre_auth_service.run_check(MERCHANT_A, make_submission(customer_email="x@tempmail.com"))

        assert await pre_auth_service.get_all_pre_auth_orders(MERCHANT_A, limit=0) == []
        assert await pre_auth_service.get_pending_orders(MERCHANT_A, limit=0) == []
        assert len(await pre_auth_service.get_pending_orders(MERCHANT_A)) == 1
