"""
Schema Tests - Pre-Auth Risk Engine

Tests for data validation and schema behavior.
"""

from datetime import datetime, timedelta, UTC

import pytest
from pydantic import ValidationError

from preauth.schemas import (
    AutoDecision,
    DecisionOutcome,
    DeepAnalysisResult,
    OrderStatus,
    OrderSubmission,
    PolicyUpdate,
    PostAuthOrder,
    PreAuthOrder,
    RiskLevel,
    RiskPolicy,
)


class TestOrderSubmission:
    """Tests for OrderSubmission schema."""

    def test_minimal_order(self):
        """Email, amount and order id are enough."""
        order = OrderSubmission(order_id="order_1", customer_email="a@example.com", order_amount=10)

        assert order.ip_address is None
        assert order.behavioral is None
        assert order.email_domain == "example.com"

    def test_email_normalised(self):
        order = OrderSubmission(order_id="o", customer_email="  Jane@Example.COM ", order_amount=1)
        assert order.customer_email == "jane@example.com"

    @pytest.mark.parametrize("email", ["", "jane", "jane@", "@example.com", "jane@localhost"])
    def test_invalid_email(self, email):
        with pytest.raises(ValidationError):
            OrderSubmission(order_id="o", customer_email=email, order_amount=1)

    @pytest.mark.parametrize("amount", [-0.01, float("nan"), float("inf")])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            OrderSubmission(order_id="o", customer_email="a@example.com", order_amount=amount)

    def test_blank_order_id(self):
        with pytest.raises(ValidationError):
            OrderSubmission(order_id="   ", customer_email="a@example.com", order_amount=1)

    def test_card_bin_digits_only(self):
        with pytest.raises(ValidationError):
            OrderSubmission(order_id="o", customer_email="a@example.com", order_amount=1, card_bin="4242ab")

    def test_zero_amount_allowed(self):
        assert OrderSubmission(order_id="o", customer_email="a@example.com", order_amount=0).order_amount == 0


class TestPreAuthOrder:
    """Tests for the persisted order."""

    def _order(self, status: OrderStatus, now: datetime) -> PreAuthOrder:
        return PreAuthOrder(
            id="pa_1",
            merchant_id="m",
            order_id="o",
            customer_email="a@example.com",
            order_amount=10,
            pre_auth_score=70,
            pre_auth_risk_level=RiskLevel.MEDIUM,
            auto_decision=AutoDecision(
                decision=DecisionOutcome.REQUIRES_REVIEW,
                reason="Medium risk (score: 70). Manual review required before fulfillment.",
                applied_rule="threshold_REQUIRES_REVIEW",
            ),
            status=status,
            created_at=now,
            expires_at=now + timedelta(hours=24),
        )

    def test_review_overdue(self):
        now = datetime(2026, 3, 2, tzinfo=UTC)
        order = self._order(OrderStatus.PENDING_REVIEW, now)

        assert order.is_review_overdue(now) is False
        assert order.is_review_overdue(now + timedelta(hours=24)) is True

    def test_decided_order_never_overdue(self):
        now = datetime(2026, 3, 2, tzinfo=UTC)
        order = self._order(OrderStatus.MANUAL_APPROVED, now)
        assert order.is_review_overdue(now + timedelta(days=3)) is False

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            PreAuthOrder(**{**self._order(OrderStatus.PENDING_REVIEW, datetime.now(UTC)).model_dump(), "pre_auth_score": 101})


class TestPolicySchemas:
    """Tests for policy models."""

    def test_defaults(self):
        policy = RiskPolicy()

        assert policy.auto_approve_threshold == 80
        assert policy.auto_decline_threshold == 40
        assert policy.weights.velocity == 40
        assert "tempmail.com" in policy.disposable_email_domains
        assert "NG" in policy.high_risk_country_codes

    def test_update_applies_only_set_fields(self):
        base = RiskPolicy(review_timeout_hours=12)
        merged = PolicyUpdate(block_disposable_emails=False).apply_to(base)

        assert merged.block_disposable_emails is False
        assert merged.review_timeout_hours == 12

    def test_update_rejects_out_of_range(self):
        with pytest.raises(ValidationError):
            PolicyUpdate(auto_approve_threshold=101)


class TestPostAuthSchemas:
    """Tests for post-auth models."""

    def test_deep_analysis_accepts_snake_case(self):
        result = DeepAnalysisResult(scan_id="s1", risk_score=12.5, signals=None)
        assert result.signals == []

    def test_monitoring_age(self):
        created = datetime(2026, 3, 2, tzinfo=UTC)
        order = PostAuthOrder(
            id="po_1",
            merchant_id="m",
            pre_auth_order_id="pa_1",
            order_id="o",
            amount=10,
            email="a@example.com",
            pre_auth_score=90,
            chargeback_risk=10,
            post_auth_scan_id="s1",
            created_at=created,
            monitoring_ends_at=created + timedelta(days=120),
        )

        assert order.monitoring_age_days(created + timedelta(days=3, hours=23)) == 3
        assert order.monitoring_age_days(created - timedelta(days=1)) == 0

    def test_risk_score_required(self):
        with pytest.raises(ValidationError):
            DeepAnalysisResult(scan_id="s1")
