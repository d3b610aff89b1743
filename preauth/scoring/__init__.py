# Scoring Module
from .aggregator import (
    GRAY_ZONE_SPLIT,
    ScoreResult,
    ScoringAggregator,
    clamp_score,
    classify_risk_level,
    compute_score,
)

__all__ = [
    "GRAY_ZONE_SPLIT",
    "ScoreResult",
    "ScoringAggregator",
    "clamp_score",
    "classify_risk_level",
    "compute_score",
]
