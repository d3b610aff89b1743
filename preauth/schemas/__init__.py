# Data schemas for the pre-auth engine
from .orders import (
    RiskLevel,
    CheckName,
    DecisionOutcome,
    ReviewDecision,
    OrderStatus,
    CheckResult,
    AutoDecision,
    BehavioralSignals,
    OrderSubmission,
    PreAuthOrder,
)
from .policy import (
    CheckWeights,
    RiskPolicy,
    PolicyUpdate,
    SignalSetName,
    DEFAULT_DISPOSABLE_DOMAINS,
    DEFAULT_HIGH_RISK_COUNTRIES,
)
from .post_auth import (
    PostAuthStatus,
    EvidenceType,
    EvidenceItem,
    MonitoringNote,
    DeepAnalysisResult,
    PostAuthOrder,
    PostAuthOrderView,
    ChargebackFiling,
    PromotionResult,
    EvidenceRequest,
    NoteRequest,
)
from .decisions import PreAuthCheckResponse, ReviewRequest

__all__ = [
    # Orders
    "RiskLevel",
    "CheckName",
    "DecisionOutcome",
    "ReviewDecision",
    "OrderStatus",
    "CheckResult",
    "AutoDecision",
    "BehavioralSignals",
    "OrderSubmission",
    "PreAuthOrder",
    # Policy
    "CheckWeights",
    "RiskPolicy",
    "PolicyUpdate",
    "SignalSetName",
    "DEFAULT_DISPOSABLE_DOMAINS",
    "DEFAULT_HIGH_RISK_COUNTRIES",
    # Post-auth
    "PostAuthStatus",
    "EvidenceType",
    "EvidenceItem",
    "MonitoringNote",
    "DeepAnalysisResult",
    "PostAuthOrder",
    "PostAuthOrderView",
    "ChargebackFiling",
    "PromotionResult",
    "EvidenceRequest",
    "NoteRequest",
    # Decisions
    "PreAuthCheckResponse",
    "ReviewRequest",
]
