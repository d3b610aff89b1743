"""
Signal Sets

A signal set is a named, ordered tuple of evaluators plus the score
the aggregator starts from. Merchants choose one through their policy.
"""

from dataclasses import dataclass
from typing import Callable

from ..schemas import CheckResult, OrderSubmission, RiskPolicy, SignalSetName
from .context import EvaluationContext
from .enhanced import ENHANCED_BASE_SCORE, ENHANCED_EVALUATORS
from .standard import STANDARD_EVALUATORS


Evaluator = Callable[[OrderSubmission, RiskPolicy, EvaluationContext], CheckResult]


@dataclass(frozen=True)
class SignalSet:
    name: str
    evaluators: tuple[Evaluator, ...]
    base_score: int = 100
    # Whether the set reads ip_country at all under the given policy
    geo_required: Callable[[RiskPolicy], bool] = lambda policy: True

    def needs_geo(self, order: OrderSubmission, policy: RiskPolicy) -> bool:
        return bool(order.ip_address) and self.geo_required(policy)


STANDARD_SIGNALS = SignalSet(
    name=SignalSetName.STANDARD.value,
    evaluators=STANDARD_EVALUATORS,
    base_score=100,
    geo_required=lambda policy: policy.block_high_risk_countries,
)

ENHANCED_SIGNALS = SignalSet(
    name=SignalSetName.ENHANCED.value,
    evaluators=ENHANCED_EVALUATORS,
    base_score=ENHANCED_BASE_SCORE,
)

SIGNAL_SETS: dict[str, SignalSet] = {
    STANDARD_SIGNALS.name: STANDARD_SIGNALS,
    ENHANCED_SIGNALS.name: ENHANCED_SIGNALS,
}


def get_signal_set(name: str | SignalSetName) -> SignalSet:
    """Look up a registered signal set, raising KeyError when unknown."""
    key = name.value if isinstance(name, SignalSetName) else name
    return SIGNAL_SETS[key]
