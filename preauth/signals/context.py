"""
Evaluation Context

Everything an evaluator needs beyond the order and the policy:
history counts, the resolved IP country and the velocity verdict.
The aggregator gathers these once, up front, so the evaluators
themselves stay pure.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..schemas import CheckResult
from ..utils.clock import utc_now


@dataclass(frozen=True)
class VelocityVerdict:
    """
    Result of the velocity admission check.

    Counts include the order being checked.
    """
    passed: bool
    reason: str = ""
    email_count: int = 0
    device_count: Optional[int] = None
    email_limit: int = 0
    device_limit: int = 0
    violated_axis: Optional[str] = None  # "email" or "device"


@dataclass(frozen=True)
class EvaluationContext:
    """
    Inputs gathered for one scoring run.

    ``None`` means "not known", which evaluators treat as
    "cannot evaluate" rather than as a failure.
    """
    now: datetime = field(default_factory=utc_now)
    prior_order_count: Optional[int] = None
    ip_country: Optional[str] = None
    geo_lookup_failed: bool = False
    velocity: Optional[VelocityVerdict] = None
    previous_checks: tuple[CheckResult, ...] = ()

    @property
    def is_first_time_customer(self) -> Optional[bool]:
        if self.prior_order_count is None:
            return None
        return self.prior_order_count == 0

    def with_check(self, check: CheckResult) -> "EvaluationContext":
        """Return a copy with ``check`` appended to ``previous_checks``."""
        return replace(self, previous_checks=self.previous_checks + (check,))
