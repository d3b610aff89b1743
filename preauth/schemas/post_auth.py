"""
Post-Auth Monitoring Schemas

A post-auth order is created when an approved pre-auth order is
promoted. It tracks chargeback risk over the monitoring window and
accumulates evidence for dispute representment.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ..utils.clock import utc_now


class PostAuthStatus(str, Enum):
    """UNDER_MONITORING -> CHARGEBACKS_FILED | CLEARED."""
    UNDER_MONITORING = "UNDER_MONITORING"
    CHARGEBACKS_FILED = "CHARGEBACKS_FILED"
    CLEARED = "CLEARED"


class EvidenceType(str, Enum):
    """Kinds of dispute evidence a merchant can attach."""
    INVOICE = "invoice"
    SHIPPING = "shipping"
    DELIVERY_CONFIRMATION = "delivery_confirmation"
    CUSTOMER_COMMUNICATION = "customer_communication"


class EvidenceItem(BaseModel):
    """One piece of dispute evidence."""
    type: EvidenceType
    description: str = Field(..., min_length=1, max_length=2000)
    timestamp: datetime = Field(default_factory=utc_now)


class MonitoringNote(BaseModel):
    """Free-text note left by the merchant."""
    text: str = Field(..., min_length=1, max_length=2000)
    author: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class DeepAnalysisResult(BaseModel):
    """
    Result returned by the deep-analysis collaborator.

    ``risk_score`` is a risk measure (higher = riskier). Providers send
    the fraud signals as either ``signals`` or ``riskFactors``.
    """
    scan_id: str = Field(
        ...,
        validation_alias=AliasChoices("scan_id", "scanId"),
    )
    risk_score: float = Field(
        ...,
        validation_alias=AliasChoices("risk_score", "riskScore"),
    )
    signals: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("signals", "risk_factors", "riskFactors"),
    )
    recommendation: Optional[str] = None

    @field_validator("scan_id", mode="before")
    @classmethod
    def validate_scan_id(cls, v):
        """Accept numeric scan ids."""
        return str(v) if isinstance(v, int) else v

    @field_validator("signals", mode="before")
    @classmethod
    def validate_signals(cls, v):
        """Treat null as no signals."""
        return v or []


class PostAuthOrder(BaseModel):
    """Order under post-authorization chargeback monitoring."""
    id: str
    merchant_id: str
    pre_auth_order_id: str = Field(
        ...,
        description="Back-reference to the pre-auth order this was promoted from",
    )

    order_id: str
    amount: float
    email: str
    card_bin: Optional[str] = None
    ip_address: Optional[str] = None
    pre_auth_score: int = Field(..., ge=0, le=100)

    chargeback_risk: int = Field(..., ge=0, le=100)
    fraud_signals: list[Any] = Field(default_factory=list)
    post_auth_scan_id: str
    recommendation: Optional[str] = None

    evidence: list[EvidenceItem] = Field(default_factory=list)
    notes: list[MonitoringNote] = Field(default_factory=list)

    status: PostAuthStatus = PostAuthStatus.UNDER_MONITORING
    created_at: datetime
    monitoring_ends_at: datetime
    updated_at: Optional[datetime] = None

    chargeback_filed_at: Optional[datetime] = None
    chargeback_reason: Optional[str] = None
    chargeback_amount: Optional[float] = None
    cleared_at: Optional[datetime] = None

    def monitoring_age_days(self, now: datetime) -> int:
        """Whole days since the order entered monitoring."""
        return max(0, (now - self.created_at).days)


class PostAuthOrderView(PostAuthOrder):
    """Post-auth order as listed, with derived monitoring age."""
    days_in_monitoring: int = Field(default=0, ge=0)


class ChargebackFiling(BaseModel):
    """Chargeback details reported by the merchant."""
    reason: str = Field(..., min_length=1, max_length=512)
    amount: float = Field(..., ge=0)


class PromotionResult(BaseModel):
    """Outcome of moving a pre-auth order into post-auth monitoring."""
    pre_auth_order_id: str
    post_auth_order_id: str
    post_auth_scan_id: str
    pre_auth_score: int
    post_auth_score: int = Field(..., description="Chargeback risk after clamping")
    recommendation: Optional[str] = None
    already_linked: bool = Field(
        default=False,
        description="True when an existing link was returned instead of a new scan",
    )


class EvidenceRequest(BaseModel):
    """Body for attaching evidence."""
    type: EvidenceType
    description: str = Field(..., min_length=1, max_length=2000)


class NoteRequest(BaseModel):
    """Body for adding a monitoring note."""
    text: str = Field(..., min_length=1, max_length=2000)
    author: Optional[str] = Field(default=None, max_length=128)
