"""
Decision Policy

Maps a pre-auth score to an automated decision using the merchant's
thresholds. Both boundaries are inclusive:
1. score >= auto_approve_threshold  -> APPROVED
2. score <= auto_decline_threshold  -> DECLINED
3. anything in between              -> REQUIRES_REVIEW
"""

from datetime import datetime

from ..schemas import AutoDecision, DecisionOutcome, OrderStatus, RiskPolicy


# Initial order status for each automated decision
DECISION_STATUS = {
    DecisionOutcome.APPROVED: OrderStatus.AUTO_APPROVED,
    DecisionOutcome.DECLINED: OrderStatus.AUTO_DECLINED,
    DecisionOutcome.REQUIRES_REVIEW: OrderStatus.PENDING_REVIEW,
}


def applied_rule_for(decision: DecisionOutcome) -> str:
    return f"threshold_{decision.value}"


def decide(score: int, policy: RiskPolicy, decided_at: datetime) -> AutoDecision:
    """
    Make the automated decision for a clamped score.

    Args:
        score: Pre-auth score in [0, 100]
        policy: Merchant policy
        decided_at: Decision timestamp

    Returns:
        AutoDecision recording the outcome, reason and rule
    """
    if score >= policy.auto_approve_threshold:
        decision = DecisionOutcome.APPROVED
        reason = f"Low risk (score: {score}). Auto-approved for fulfillment."
    elif score <= policy.auto_decline_threshold:
        decision = DecisionOutcome.DECLINED
        reason = f"Critical risk (score: {score}). Auto-declined to prevent fraud."
    else:
        decision = DecisionOutcome.REQUIRES_REVIEW
        reason = f"Medium risk (score: {score}). Manual review required before fulfillment."

    return AutoDecision(
        decision=decision,
        reason=reason,
        applied_rule=applied_rule_for(decision),
        decided_at=decided_at,
    )


def initial_status(decision: AutoDecision) -> OrderStatus:
    """Order status that follows an automated decision."""
    return DECISION_STATUS[decision.decision]
