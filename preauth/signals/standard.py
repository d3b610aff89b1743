"""
Standard Signal Evaluators

The production signal set, evaluated in this order:
1. Email validation (disposable domains)
2. Geographic risk (high-risk IP countries)
3. Amount threshold (first-time customers, large orders)
4. Velocity (orders per email/device per hour)

Each evaluator is a pure function of (order, policy, context) and
never raises for missing optional data.
"""

from ..schemas import CheckName, CheckResult, OrderSubmission, RiskPolicy
from .context import EvaluationContext


def passed_result(name: CheckName, details: str) -> CheckResult:
    return CheckResult(check_name=name, passed=True, score_deduction=0, details=details)


def skipped_result(name: CheckName, details: str) -> CheckResult:
    return CheckResult(
        check_name=name,
        passed=True,
        score_deduction=0,
        details=details,
        skipped=True,
    )


def failed_result(name: CheckName, deduction: int, details: str) -> CheckResult:
    return CheckResult(
        check_name=name,
        passed=False,
        score_deduction=deduction,
        details=details,
    )


def email_validation(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """Deduct when the email domain is a known disposable provider."""
    domain = order.email_domain
    if not domain:
        return skipped_result(CheckName.EMAIL_VALIDATION, "Email domain could not be determined")

    if policy.block_disposable_emails and domain in policy.disposable_email_domains:
        return failed_result(
            CheckName.EMAIL_VALIDATION,
            policy.weights.email_validation,
            f"Disposable email detected ({domain})",
        )

    return passed_result(CheckName.EMAIL_VALIDATION, "Email validation passed")


def geo_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """
    Deduct when the IP resolves to a high-risk country.

    Lookup failures are skipped without penalty.
    """
    if not policy.block_high_risk_countries:
        return skipped_result(CheckName.GEO_CHECK, "High-risk country blocking disabled")
    if not order.ip_address:
        return skipped_result(CheckName.GEO_CHECK, "No IP address supplied")
    if context.geo_lookup_failed:
        return skipped_result(
            CheckName.GEO_CHECK,
            "Geographic check not performed: IP lookup unavailable",
        )
    if not context.ip_country:
        return skipped_result(CheckName.GEO_CHECK, "IP country could not be resolved")

    country = context.ip_country.upper()
    if country in policy.high_risk_country_codes:
        return failed_result(
            CheckName.GEO_CHECK,
            policy.weights.geo_check,
            f"Order from high-risk country: {country}",
        )

    return passed_result(CheckName.GEO_CHECK, "Geographic check passed")


def amount_threshold(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """
    Deduct for large orders.

    A first-time customer over ``first_time_customer_max_amount`` loses
    more points than any customer over ``require_review_above_amount``.
    A limit of 0 disables that rule.
    """
    amount = order.order_amount
    first_time_limit = policy.first_time_customer_max_amount
    review_limit = policy.require_review_above_amount

    if context.is_first_time_customer and first_time_limit and amount > first_time_limit:
        return failed_result(
            CheckName.AMOUNT_THRESHOLD,
            policy.weights.first_time_amount,
            f"First-time customer with high order amount (${amount:.2f})",
        )

    if review_limit and amount > review_limit:
        return failed_result(
            CheckName.AMOUNT_THRESHOLD,
            policy.weights.review_amount,
            f"Order amount (${amount:.2f}) exceeds review threshold (${review_limit:.2f})",
        )

    return passed_result(CheckName.AMOUNT_THRESHOLD, "Amount threshold passed")


def velocity_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """Deduct when the velocity tracker reported a cap violation."""
    verdict = context.velocity
    if verdict is None:
        return skipped_result(CheckName.VELOCITY, "Order history unavailable")

    if not verdict.passed:
        return failed_result(CheckName.VELOCITY, policy.weights.velocity, verdict.reason)

    return passed_result(CheckName.VELOCITY, "Velocity check passed")


STANDARD_EVALUATORS = (
    email_validation,
    geo_check,
    amount_threshold,
    velocity_check,
)
