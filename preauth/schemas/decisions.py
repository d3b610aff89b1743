"""
Decision Schemas

Response returned synchronously from the run-check operation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .orders import CheckResult, DecisionOutcome, RiskLevel


class PreAuthCheckResponse(BaseModel):
    """
    Complete pre-auth decision.

    The three boolean flags are derived from ``auto_decision`` so
    callers integrating a checkout flow do not need to switch on it.
    """
    pre_auth_order_id: str = Field(
        ...,
        description="Id of the stored pre-auth order",
    )
    order_id: str = Field(
        ...,
        description="Merchant order id from the request",
    )
    pre_auth_score: int = Field(..., ge=0, le=100)
    pre_auth_risk_level: RiskLevel
    auto_decision: DecisionOutcome
    reason: str
    applied_rule: str
    checks: list[CheckResult] = Field(default_factory=list)

    should_proceed: bool
    requires_manual_review: bool
    should_decline: bool

    signal_set: str = "standard"
    expires_at: Optional[datetime] = None
    processing_time_ms: float = Field(
        default=0.0,
        description="Scoring and persistence time in milliseconds",
    )


class ReviewRequest(BaseModel):
    """Body for manual review actions."""
    notes: Optional[str] = Field(default=None, max_length=2000)
    reviewer: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Analyst name; defaults to the acting merchant",
    )
