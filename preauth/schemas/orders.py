"""
Pre-Auth Order Schemas

Defines the order submission accepted by the run-check operation and
the persisted pre-auth order record, together with the closed
enumerations for check names, decisions, risk levels and statuses.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..utils.clock import utc_now


class RiskLevel(str, Enum):
    """
    Presentation label derived from the pre-auth score.

    Ordered by severity:
    - LOW: at or above the merchant's auto-approve threshold
    - MEDIUM: gray zone, score 60 and above
    - HIGH: gray zone, score below 60
    - CRITICAL: at or below the merchant's auto-decline threshold
    """
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CheckName(str, Enum):
    """Names of every signal evaluator, across all signal sets."""
    # Standard set
    EMAIL_VALIDATION = "email_validation"
    GEO_CHECK = "geo_check"
    AMOUNT_THRESHOLD = "amount_threshold"
    VELOCITY = "velocity"

    # Enhanced set
    CARD_BIN = "card_bin"
    AVS_MISMATCH = "avs_mismatch"
    CVV_MISMATCH = "cvv_mismatch"
    GEO_MISMATCH = "geo_mismatch"
    HIGH_RISK_REGION = "high_risk_region"
    BEHAVIORAL_BIOMETRICS = "behavioral_biometrics"
    DISPOSABLE_EMAIL = "disposable_email"
    HIGH_VALUE = "high_value"
    NETWORK_ALERT = "network_alert"


class DecisionOutcome(str, Enum):
    """Automated decision outcomes."""
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    REQUIRES_REVIEW = "REQUIRES_REVIEW"


class ReviewDecision(str, Enum):
    """Outcome of a manual review."""
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class OrderStatus(str, Enum):
    """
    Pre-auth order status.

    PENDING_REVIEW -> UNDER_REVIEW -> MANUAL_APPROVED | MANUAL_DECLINED
    AUTO_APPROVED | MANUAL_APPROVED -> MOVED_TO_POST_AUTH
    AUTO_DECLINED, MANUAL_DECLINED and MOVED_TO_POST_AUTH are terminal.
    """
    PENDING_REVIEW = "PENDING_REVIEW"
    UNDER_REVIEW = "UNDER_REVIEW"
    AUTO_APPROVED = "AUTO_APPROVED"
    AUTO_DECLINED = "AUTO_DECLINED"
    MANUAL_APPROVED = "MANUAL_APPROVED"
    MANUAL_DECLINED = "MANUAL_DECLINED"
    MOVED_TO_POST_AUTH = "MOVED_TO_POST_AUTH"


class CheckResult(BaseModel):
    """
    Outcome of one signal evaluator.

    Recorded for passing and failing checks alike so reviewers
    can see every check that ran.
    """
    check_name: CheckName = Field(
        ...,
        description="Which evaluator produced this result",
    )
    passed: bool = Field(
        ...,
        description="False when the signal indicates risk",
    )
    score_deduction: int = Field(
        default=0,
        ge=0,
        description="Points subtracted from the score (0 when passed)",
    )
    details: str = Field(
        default="",
        description="Human-readable explanation",
    )
    skipped: bool = Field(
        default=False,
        description="True when the check could not be evaluated",
    )


class AutoDecision(BaseModel):
    """Automated decision, with the rule that produced it."""
    decision: DecisionOutcome
    reason: str
    applied_rule: str
    decided_at: datetime = Field(default_factory=utc_now)


class BehavioralSignals(BaseModel):
    """Optional client-side interaction telemetry."""
    interaction_pattern: Optional[str] = Field(
        default=None,
        description="Classifier label from the client, e.g. 'normal' or 'suspicious'",
    )
    copy_paste_detected: bool = False
    hesitation_events: int = Field(default=0, ge=0)
    typing_speed: float = Field(
        default=0.0,
        ge=0.0,
        description="Characters per second",
    )


class OrderSubmission(BaseModel):
    """
    Order attributes submitted for a pre-auth check.

    Email, amount and order id are mandatory; everything else is
    optional enrichment that evaluators skip when absent.
    """
    order_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Merchant's order identifier",
    )
    customer_email: str = Field(
        ...,
        max_length=320,
        description="Customer email address",
    )
    order_amount: float = Field(
        ...,
        ge=0,
        description="Order total in the merchant's currency",
    )
    customer_phone: Optional[str] = Field(default=None, max_length=32)
    billing_address: Optional[str] = Field(default=None, max_length=512)
    shipping_address: Optional[str] = Field(default=None, max_length=512)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    device_fingerprint: Optional[str] = Field(default=None, max_length=256)
    card_bin: Optional[str] = Field(
        default=None,
        min_length=6,
        max_length=8,
        description="Card BIN (first 6-8 digits)",
    )

    # Inputs used by the enhanced signal set
    card_country: Optional[str] = Field(
        default=None,
        min_length=2,
        max_length=2,
        description="ISO country of the issuing bank",
    )
    avs_result: Optional[str] = Field(default=None, max_length=4)
    cvv_result: Optional[str] = Field(default=None, max_length=4)
    behavioral: Optional[BehavioralSignals] = None

    @field_validator("order_id")
    @classmethod
    def validate_order_id(cls, v: str) -> str:
        """Reject blank order ids."""
        v = v.strip()
        if not v:
            raise ValueError("order_id must not be blank")
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Require a local part and a domain; normalise case."""
        v = v.strip().lower()
        local, sep, domain = v.rpartition("@")
        if not sep or not local or not domain or "." not in domain:
            raise ValueError("customer_email must look like user@domain")
        return v

    @field_validator("order_amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        """Reject NaN and infinity."""
        if not math.isfinite(v):
            raise ValueError("order_amount must be a finite number")
        return v

    @field_validator("card_bin")
    @classmethod
    def validate_card_bin(cls, v: Optional[str]) -> Optional[str]:
        """Ensure BIN contains only digits."""
        if v is not None and not v.isdigit():
            raise ValueError("card_bin must contain only digits")
        return v

    @field_validator("card_country")
    @classmethod
    def validate_card_country(cls, v: Optional[str]) -> Optional[str]:
        """Ensure country code is uppercase."""
        return v.upper() if v else v

    @property
    def email_domain(self) -> str:
        """Domain part of the customer email."""
        return self.customer_email.rpartition("@")[2]


class PreAuthOrder(BaseModel):
    """
    Persisted pre-auth order.

    Immutable except for the status-transition fields
    (status, review_*, post-auth linkage).
    """
    id: str = Field(..., description="Internal record id")
    merchant_id: str = Field(..., description="Owning merchant")

    # Order identity (copied from the submission)
    order_id: str
    customer_email: str
    order_amount: float
    customer_phone: Optional[str] = None
    billing_address: Optional[str] = None
    shipping_address: Optional[str] = None
    ip_address: Optional[str] = None
    device_fingerprint: Optional[str] = None
    card_bin: Optional[str] = None

    # Screening result
    pre_auth_score: int = Field(..., ge=0, le=100)
    pre_auth_risk_level: RiskLevel
    checks: list[CheckResult] = Field(default_factory=list)
    auto_decision: AutoDecision
    signal_set: str = Field(default="standard")

    status: OrderStatus
    created_at: datetime
    expires_at: datetime

    # Manual review
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_decision: Optional[ReviewDecision] = None
    review_notes: Optional[str] = None

    # Post-auth linkage
    post_auth_scan_id: Optional[str] = None
    post_auth_order_id: Optional[str] = None
    moved_to_post_auth_at: Optional[datetime] = None

    @property
    def failed_checks(self) -> list[CheckResult]:
        """Checks that deducted points."""
        return [c for c in self.checks if not c.passed]

    def is_review_overdue(self, now: datetime) -> bool:
        """True when an order awaiting review has passed its review timeout."""
        return (
            self.status in (OrderStatus.PENDING_REVIEW, OrderStatus.UNDER_REVIEW)
            and now >= self.expires_at
        )
