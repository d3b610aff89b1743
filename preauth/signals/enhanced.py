"""
Enhanced Signal Evaluators

A wider signal set for merchants that collect card and interaction
data at checkout (issuer country, AVS/CVV responses, behavioural
telemetry). Scoring starts from 90 instead of 100; the network alert
fires when three or more earlier signals in the run have triggered.
"""

from ..schemas import CheckName, CheckResult, OrderSubmission, RiskPolicy
from .context import EvaluationContext
from .standard import failed_result, passed_result, skipped_result, velocity_check


ENHANCED_BASE_SCORE = 90

# Known prepaid / gift card BIN ranges
PREPAID_BINS = frozenset({"411111", "411811", "622222"})

# Deductions for the enhanced set
CARD_BIN_DEDUCTION = 15
AVS_DEDUCTION = 15
CVV_DEDUCTION = 10
GEO_MISMATCH_DEDUCTION = 25
HIGH_RISK_REGION_DEDUCTION = 20
BEHAVIORAL_DEDUCTION = 12
DISPOSABLE_EMAIL_DEDUCTION = 20
HIGH_VALUE_DEDUCTION = 10
NETWORK_ALERT_DEDUCTION = 30

NETWORK_ALERT_MIN_SIGNALS = 3

# Behavioural thresholds
MAX_HESITATION_EVENTS = 5
MAX_TYPING_SPEED = 15.0


def card_bin_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    if not order.card_bin:
        return skipped_result(CheckName.CARD_BIN, "No card BIN supplied")
    if order.card_bin[:6] in PREPAID_BINS:
        return failed_result(
            CheckName.CARD_BIN,
            CARD_BIN_DEDUCTION,
            f"Prepaid card BIN detected ({order.card_bin[:6]})",
        )
    return passed_result(CheckName.CARD_BIN, "Card BIN check passed")


def avs_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    if not order.avs_result:
        return skipped_result(CheckName.AVS_MISMATCH, "No AVS result supplied")
    if order.avs_result.upper() != "Y":
        return failed_result(
            CheckName.AVS_MISMATCH,
            AVS_DEDUCTION,
            f"Address verification failed (AVS: {order.avs_result})",
        )
    return passed_result(CheckName.AVS_MISMATCH, "Address verification passed")


def cvv_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    if not order.cvv_result:
        return skipped_result(CheckName.CVV_MISMATCH, "No CVV result supplied")
    if order.cvv_result.upper() != "M":
        return failed_result(
            CheckName.CVV_MISMATCH,
            CVV_DEDUCTION,
            f"CVV did not match (CVV: {order.cvv_result})",
        )
    return passed_result(CheckName.CVV_MISMATCH, "CVV check passed")


def geo_mismatch_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """Card issuer country differs from the IP country."""
    if not order.card_country:
        return skipped_result(CheckName.GEO_MISMATCH, "No card country supplied")
    if context.geo_lookup_failed or not context.ip_country:
        return skipped_result(
            CheckName.GEO_MISMATCH,
            "Geolocation mismatch not checked: IP country unknown",
        )

    ip_country = context.ip_country.upper()
    if ip_country != order.card_country:
        return failed_result(
            CheckName.GEO_MISMATCH,
            GEO_MISMATCH_DEDUCTION,
            f"Card issued in {order.card_country} but IP located in {ip_country}",
        )
    return passed_result(CheckName.GEO_MISMATCH, "Card and IP country match")


def high_risk_region_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    if context.geo_lookup_failed or not context.ip_country:
        return skipped_result(CheckName.HIGH_RISK_REGION, "IP country unknown")

    country = context.ip_country.upper()
    if country in policy.high_risk_country_codes:
        return failed_result(
            CheckName.HIGH_RISK_REGION,
            HIGH_RISK_REGION_DEDUCTION,
            f"IP located in high-risk region: {country}",
        )
    return passed_result(CheckName.HIGH_RISK_REGION, "IP region check passed")


def behavioral_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    signals = order.behavioral
    if signals is None:
        return skipped_result(CheckName.BEHAVIORAL_BIOMETRICS, "No behavioural telemetry supplied")

    indicators = []
    if signals.interaction_pattern == "suspicious":
        indicators.append("suspicious interaction pattern")
    if signals.copy_paste_detected:
        indicators.append("copy/paste into card fields")
    if signals.hesitation_events > MAX_HESITATION_EVENTS:
        indicators.append(f"{signals.hesitation_events} hesitation events")
    if signals.typing_speed > MAX_TYPING_SPEED:
        indicators.append(f"typing speed {signals.typing_speed:.1f} chars/s")

    if indicators:
        return failed_result(
            CheckName.BEHAVIORAL_BIOMETRICS,
            BEHAVIORAL_DEDUCTION,
            "Anomalous checkout behaviour: " + ", ".join(indicators),
        )
    return passed_result(CheckName.BEHAVIORAL_BIOMETRICS, "Behavioural signals normal")


def _provider_stem(domain: str) -> str:
    # "guerrillamail.com" -> "guerrillamail"
    return domain.rsplit(".", 1)[0] if "." in domain else domain


def disposable_email_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """
    Match disposable providers by name anywhere in the domain.

    Catches regional and subdomain variants (``mailinator.net``,
    ``eu.tempmail.com``) that an exact domain match would miss.
    """
    domain = order.email_domain
    for provider in sorted(policy.disposable_email_domains):
        stem = _provider_stem(provider)
        if stem and stem in domain:
            return failed_result(
                CheckName.DISPOSABLE_EMAIL,
                DISPOSABLE_EMAIL_DEDUCTION,
                f"Disposable email provider detected ({domain})",
            )
    return passed_result(CheckName.DISPOSABLE_EMAIL, "Email provider check passed")


def high_value_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    limit = policy.require_review_above_amount
    if limit and order.order_amount > limit:
        return failed_result(
            CheckName.HIGH_VALUE,
            HIGH_VALUE_DEDUCTION,
            f"High-value order (${order.order_amount:.2f})",
        )
    return passed_result(CheckName.HIGH_VALUE, "Order value within normal range")


def network_alert_check(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
) -> CheckResult:
    """Fires when enough earlier signals in this run have triggered."""
    triggered = sum(1 for c in context.previous_checks if not c.passed)
    if triggered >= NETWORK_ALERT_MIN_SIGNALS:
        return failed_result(
            CheckName.NETWORK_ALERT,
            NETWORK_ALERT_DEDUCTION,
            f"Fraud network alert: {triggered} risk signals triggered",
        )
    return passed_result(CheckName.NETWORK_ALERT, "No network alert")


ENHANCED_EVALUATORS = (
    card_bin_check,
    avs_check,
    cvv_check,
    geo_mismatch_check,
    high_risk_region_check,
    behavioral_check,
    disposable_email_check,
    high_value_check,
    velocity_check,
    network_alert_check,
)
