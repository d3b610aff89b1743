"""
Risk Policy Schemas

Per-merchant configuration for pre-auth screening. Exactly one
policy exists per merchant: reads fall back to defaults, the first
write persists a full record, later writes patch it.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


DEFAULT_DISPOSABLE_DOMAINS = frozenset({
    "tempmail.com",
    "guerrillamail.com",
    "10minutemail.com",
    "throwaway.email",
    "temp-mail.org",
    "mailinator.com",
    "maildrop.cc",
    "trashmail.com",
})

DEFAULT_HIGH_RISK_COUNTRIES = frozenset({"NG", "GH", "RO", "ID", "PK", "BD"})


class SignalSetName(str, Enum):
    """Registered evaluator sets."""
    STANDARD = "standard"
    ENHANCED = "enhanced"


class CheckWeights(BaseModel):
    """
    Points deducted when a standard check fails.

    Velocity carries the highest weight; rapid repeat orders are the
    strongest fraud indicator.
    """
    email_validation: int = Field(default=30, ge=0, le=100)
    geo_check: int = Field(default=25, ge=0, le=100)
    first_time_amount: int = Field(default=20, ge=0, le=100)
    review_amount: int = Field(default=15, ge=0, le=100)
    velocity: int = Field(default=40, ge=0, le=100)


def _normalise_codes(codes) -> set[str]:
    return {str(c).strip().upper() for c in codes if str(c).strip()}


def _normalise_domains(domains) -> set[str]:
    return {str(d).strip().lower() for d in domains if str(d).strip()}


class RiskPolicy(BaseModel):
    """
    Merchant risk policy.

    Threshold ordering (approve > decline) is enforced on write by
    the policy service, not here, so stored legacy records still load.
    """
    # Decision thresholds (score 0-100, higher = safer)
    auto_approve_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Score at or above this is auto-approved",
    )
    auto_decline_threshold: int = Field(
        default=40,
        ge=0,
        le=100,
        description="Score at or below this is auto-declined",
    )

    # Amount rules
    require_review_above_amount: float = Field(
        default=1000.0,
        ge=0,
        description="Orders above this amount lose review_amount points",
    )
    first_time_customer_max_amount: float = Field(
        default=500.0,
        ge=0,
        description="First-time customers above this amount lose first_time_amount points",
    )
    first_time_customer_requires_review: bool = Field(default=True)

    # Toggles
    block_high_risk_countries: bool = Field(default=True)
    block_disposable_emails: bool = Field(default=True)
    require_phone_validation: bool = Field(default=False)

    # Velocity caps
    max_orders_per_email_per_hour: int = Field(default=3, ge=1)
    max_orders_per_device_per_hour: int = Field(default=5, ge=1)

    high_risk_country_codes: set[str] = Field(
        default_factory=lambda: set(DEFAULT_HIGH_RISK_COUNTRIES),
    )
    disposable_email_domains: set[str] = Field(
        default_factory=lambda: set(DEFAULT_DISPOSABLE_DOMAINS),
    )
    weights: CheckWeights = Field(default_factory=CheckWeights)
    signal_set: SignalSetName = Field(default=SignalSetName.STANDARD)

    review_timeout_hours: int = Field(default=24, ge=1)

    # Notification preferences (stored only)
    notify_on_high_risk: bool = Field(default=True)
    notify_on_pending_review: bool = Field(default=True)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("high_risk_country_codes", mode="before")
    @classmethod
    def validate_country_codes(cls, v):
        """Uppercase ISO country codes."""
        return _normalise_codes(v or [])

    @field_validator("disposable_email_domains", mode="before")
    @classmethod
    def validate_domains(cls, v):
        """Lowercase email domains."""
        return _normalise_domains(v or [])


class PolicyUpdate(BaseModel):
    """
    Partial policy update.

    Only fields that are set are applied.
    """
    auto_approve_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    auto_decline_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    require_review_above_amount: Optional[float] = Field(default=None, ge=0)
    first_time_customer_max_amount: Optional[float] = Field(default=None, ge=0)
    first_time_customer_requires_review: Optional[bool] = None
    block_high_risk_countries: Optional[bool] = None
    block_disposable_emails: Optional[bool] = None
    require_phone_validation: Optional[bool] = None
    max_orders_per_email_per_hour: Optional[int] = Field(default=None, ge=1)
    max_orders_per_device_per_hour: Optional[int] = Field(default=None, ge=1)
    high_risk_country_codes: Optional[list[str]] = None
    disposable_email_domains: Optional[list[str]] = None
    weights: Optional[CheckWeights] = None
    signal_set: Optional[SignalSetName] = None
    review_timeout_hours: Optional[int] = Field(default=None, ge=1)
    notify_on_high_risk: Optional[bool] = None
    notify_on_pending_review: Optional[bool] = None

    def apply_to(self, policy: RiskPolicy) -> RiskPolicy:
        """Return a copy of ``policy`` with the set fields replaced."""
        changes = self.model_dump(exclude_unset=True, exclude_none=True)
        merged = policy.model_dump()
        merged.update(changes)
        return RiskPolicy(**merged)
