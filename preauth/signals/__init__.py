# Signal evaluators and signal sets
from .context import EvaluationContext, VelocityVerdict
from .standard import (
    email_validation,
    geo_check,
    amount_threshold,
    velocity_check,
    STANDARD_EVALUATORS,
)
from .enhanced import ENHANCED_EVALUATORS, ENHANCED_BASE_SCORE
from .sets import (
    Evaluator,
    SignalSet,
    STANDARD_SIGNALS,
    ENHANCED_SIGNALS,
    SIGNAL_SETS,
    get_signal_set,
)

__all__ = [
    "EvaluationContext",
    "VelocityVerdict",
    "email_validation",
    "geo_check",
    "amount_threshold",
    "velocity_check",
    "STANDARD_EVALUATORS",
    "ENHANCED_EVALUATORS",
    "ENHANCED_BASE_SCORE",
    "Evaluator",
    "SignalSet",
    "STANDARD_SIGNALS",
    "ENHANCED_SIGNALS",
    "SIGNAL_SETS",
    "get_signal_set",
]
