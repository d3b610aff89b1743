"""
Velocity Tracker

Admission check on how many orders an email address or a device has
placed with the merchant in the lookback window. Only the current
order's score is affected; earlier orders are never rescored.
"""

from datetime import datetime, timedelta
from typing import Optional

from ..schemas import RiskPolicy
from ..signals.context import VelocityVerdict
from .history import OrderHistory


DEFAULT_WINDOW_SECONDS = 3600


def window_label(window_seconds: int) -> str:
    """Human wording for the lookback window used in reasons."""
    if window_seconds == 3600:
        return "the last hour"
    if window_seconds % 3600 == 0:
        return f"the last {window_seconds // 3600} hours"
    if window_seconds % 60 == 0:
        return f"the last {window_seconds // 60} minutes"
    return f"the last {window_seconds} seconds"


def evaluate_counts(
    email_prior: int,
    device_prior: Optional[int],
    policy: RiskPolicy,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> VelocityVerdict:
    """
    Compare prior order counts against the policy caps.

    A count of prior orders at or above the cap fails: with a cap of 3,
    three earlier orders make the current one the fourth. The email
    axis is reported first when both are violated.

    Args:
        email_prior: Orders already placed with this email in the window
        device_prior: Same for the device, None when no fingerprint was sent
        policy: Merchant policy holding the caps
        window_seconds: Window length, used only for the reason text
    """
    email_limit = policy.max_orders_per_email_per_hour
    device_limit = policy.max_orders_per_device_per_hour
    email_count = email_prior + 1
    device_count = device_prior + 1 if device_prior is not None else None
    label = window_label(window_seconds)

    if email_prior >= email_limit:
        return VelocityVerdict(
            passed=False,
            reason=f"{email_count} orders from this email in {label} (limit: {email_limit})",
            email_count=email_count,
            device_count=device_count,
            email_limit=email_limit,
            device_limit=device_limit,
            violated_axis="email",
        )

    if device_prior is not None and device_prior >= device_limit:
        return VelocityVerdict(
            passed=False,
            reason=f"{device_count} orders from this device in {label} (limit: {device_limit})",
            email_count=email_count,
            device_count=device_count,
            email_limit=email_limit,
            device_limit=device_limit,
            violated_axis="device",
        )

    return VelocityVerdict(
        passed=True,
        email_count=email_count,
        device_count=device_count,
        email_limit=email_limit,
        device_limit=device_limit,
    )


class VelocityTracker:
    """
    Counts recent orders and applies the merchant's velocity caps.

    Counts are read without locking; two concurrent orders can both be
    admitted at the cap boundary.
    """

    def __init__(self, history: OrderHistory, window_seconds: int = DEFAULT_WINDOW_SECONDS):
        """
        Initialize tracker.

        Args:
            history: Order history backend
            window_seconds: Lookback window (default one hour)
        """
        self.history = history
        self.window_seconds = window_seconds

    async def check(
        self,
        merchant_id: str,
        email: str,
        device_fingerprint: Optional[str],
        policy: RiskPolicy,
        now: datetime,
    ) -> VelocityVerdict:
        """Count orders in [now - window, now] and evaluate the caps."""
        since = now - timedelta(seconds=self.window_seconds)

        email_prior = await self.history.count_recent_by_email(merchant_id, email, since)
        device_prior = None
        if device_fingerprint:
            device_prior = await self.history.count_recent_by_device(
                merchant_id, device_fingerprint, since
            )

        return evaluate_counts(email_prior, device_prior, policy, self.window_seconds)
