# Policy Module
from .engine import DECISION_STATUS, applied_rule_for, decide, initial_status
from .validation import validate_policy, validate_thresholds
from .service import PolicyService, load_default_policy

__all__ = [
    "DECISION_STATUS",
    "applied_rule_for",
    "decide",
    "initial_status",
    "validate_policy",
    "validate_thresholds",
    "PolicyService",
    "load_default_policy",
]
