"""
Scoring Aggregator

Combines signal evaluator results into the pre-auth score.

Scoring is split in two:
1. gather_context: async I/O (order history, velocity, geo-IP), run
   concurrently
2. compute_score: pure deduction over the evaluators of a signal set

compute_score is deterministic for a given context, so re-scoring the
same snapshot always yields the same result.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from ..errors import EnrichmentUnavailable
from ..metrics import metrics
from ..schemas import CheckResult, OrderSubmission, RiskLevel, RiskPolicy
from ..signals import EvaluationContext, SignalSet, get_signal_set
from ..enrichment import GeoIPLookup
from ..utils import Clock, get_logger, utc_now
from ..velocity import OrderHistory, VelocityTracker

logger = get_logger("scoring")

# Gray-zone split between HIGH and MEDIUM; independent of merchant thresholds
GRAY_ZONE_SPLIT = 60


def clamp_score(score: int) -> int:
    """Clamp a raw score into [0, 100]."""
    return max(0, min(100, score))


def classify_risk_level(score: int, policy: RiskPolicy) -> RiskLevel:
    """
    Map a clamped score to a risk level.

    Args:
        score: Score in [0, 100]
        policy: Merchant policy supplying the approve/decline thresholds

    Returns:
        LOW at or above auto-approve, CRITICAL at or below auto-decline,
        otherwise HIGH below 60 and MEDIUM from 60 up
    """
    if score >= policy.auto_approve_threshold:
        return RiskLevel.LOW
    if score <= policy.auto_decline_threshold:
        return RiskLevel.CRITICAL
    if score < GRAY_ZONE_SPLIT:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


@dataclass(frozen=True)
class ScoreResult:
    score: int
    risk_level: RiskLevel
    checks: list[CheckResult]
    signal_set: str
    raw_score: int

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed]


def compute_score(
    order: OrderSubmission,
    policy: RiskPolicy,
    context: EvaluationContext,
    signal_set: SignalSet,
) -> ScoreResult:
    """
    Run every evaluator of ``signal_set`` in order and total the deductions.

    The running score may go below zero; clamping happens once, after
    all deductions.
    """
    raw = signal_set.base_score
    checks: list[CheckResult] = []

    for evaluator in signal_set.evaluators:
        result = evaluator(order, policy, context)
        checks.append(result)
        context = context.with_check(result)
        if not result.passed:
            raw -= result.score_deduction

    score = clamp_score(raw)
    return ScoreResult(
        score=score,
        risk_level=classify_risk_level(score, policy),
        checks=checks,
        signal_set=signal_set.name,
        raw_score=raw,
    )


class ScoringAggregator:
    """
    Gathers evaluation context and scores an order.

    Collaborators are injected; geo lookup is optional (None disables it).
    """

    def __init__(
        self,
        history: OrderHistory,
        velocity: VelocityTracker,
        geo_lookup: Optional[GeoIPLookup] = None,
        clock: Clock = utc_now,
    ):
        self.history = history
        self.velocity = velocity
        self.geo_lookup = geo_lookup
        self.clock = clock

    async def gather_context(
        self,
        merchant_id: str,
        order: OrderSubmission,
        policy: RiskPolicy,
        signal_set: SignalSet,
    ) -> EvaluationContext:
        """
        Fetch history counts, velocity and IP country concurrently.

        Geo failures are logged and recorded on the context; history
        failures propagate.
        """
        now = self.clock()

        prior_task = self.history.count_lifetime_by_email(merchant_id, order.customer_email)
        velocity_task = self.velocity.check(
            merchant_id,
            order.customer_email,
            order.device_fingerprint,
            policy,
            now,
        )
        geo_task = self._resolve_country(order, policy, signal_set)

        prior_count, verdict, (ip_country, geo_failed) = await asyncio.gather(
            prior_task, velocity_task, geo_task
        )

        return EvaluationContext(
            now=now,
            prior_order_count=prior_count,
            ip_country=ip_country,
            geo_lookup_failed=geo_failed,
            velocity=verdict,
        )

    async def _resolve_country(
        self,
        order: OrderSubmission,
        policy: RiskPolicy,
        signal_set: SignalSet,
    ) -> tuple[Optional[str], bool]:
        if not signal_set.needs_geo(order, policy):
            return None, False
        if self.geo_lookup is None:
            return None, True

        try:
            return await self.geo_lookup.lookup_country(order.ip_address), False
        except EnrichmentUnavailable as e:
            metrics.enrichment_failures.labels(collaborator="geoip").inc()
            logger.warning("Geo check skipped for order %s: %s", order.order_id, e.message)
            return None, True

    async def score(
        self,
        merchant_id: str,
        order: OrderSubmission,
        policy: RiskPolicy,
        signal_set: Optional[SignalSet] = None,
    ) -> ScoreResult:
        """
        Score an order for a merchant.

        Args:
            merchant_id: Acting merchant
            order: Validated submission
            policy: Policy read at call time
            signal_set: Override; defaults to the policy's signal set

        Returns:
            ScoreResult with clamped score, risk level and every check
        """
        signal_set = signal_set or get_signal_set(policy.signal_set)
        context = await self.gather_context(merchant_id, order, policy, signal_set)
        result = compute_score(order, policy, context, signal_set)

        for check in result.checks:
            outcome = "skipped" if check.skipped else ("passed" if check.passed else "failed")
            metrics.checks_total.labels(check=check.check_name.value, outcome=outcome).inc()
        metrics.score_distribution.observe(result.score)

        logger.debug(
            "Scored order %s for merchant %s: %d (%s), %d failed checks",
            order.order_id,
            merchant_id,
            result.score,
            result.risk_level.value,
            len(result.failed_checks),
        )
        return result
