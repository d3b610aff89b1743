# Order lifecycle
from .transitions import (
    PRE_AUTH_TRANSITIONS,
    POST_AUTH_TRANSITIONS,
    AWAITING_REVIEW,
    PROMOTABLE,
    can_transition,
    sources_for,
    post_auth_sources_for,
)
from .service import PreAuthService, parse_submission
from .post_auth import PostAuthService, clamp_risk

__all__ = [
    "PRE_AUTH_TRANSITIONS",
    "POST_AUTH_TRANSITIONS",
    "AWAITING_REVIEW",
    "PROMOTABLE",
    "can_transition",
    "sources_for",
    "post_auth_sources_for",
    "PreAuthService",
    "parse_submission",
    "PostAuthService",
    "clamp_risk",
]
