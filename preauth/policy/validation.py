"""
Policy Validation

Checks applied whenever a merchant saves a policy. Stored records are
not re-validated on read.
"""

from ..errors import PolicyValidationError
from ..schemas import RiskPolicy
from ..signals import SIGNAL_SETS


def validate_thresholds(policy: RiskPolicy) -> None:
    """
    Ensure the approve threshold sits above the decline threshold.

    With approve <= decline no score can land in the review band, and
    a score equal to both would match two rules.
    """
    if policy.auto_approve_threshold <= policy.auto_decline_threshold:
        raise PolicyValidationError(
            f"auto_approve_threshold ({policy.auto_approve_threshold}) "
            f"must be greater than auto_decline_threshold ({policy.auto_decline_threshold})"
        )


def validate_policy(policy: RiskPolicy) -> None:
    """
    Validate a policy before it is persisted.

    Raises:
        PolicyValidationError: on the first failing rule
    """
    validate_thresholds(policy)

    if policy.signal_set.value not in SIGNAL_SETS:
        raise PolicyValidationError(f"Unknown signal set: {policy.signal_set.value}")

    for code in policy.high_risk_country_codes:
        if len(code) != 2 or not code.isalpha():
            raise PolicyValidationError(f"Invalid country code: {code!r}")

    for domain in policy.disposable_email_domains:
        if "." not in domain or "@" in domain:
            raise PolicyValidationError(f"Invalid email domain: {domain!r}")
