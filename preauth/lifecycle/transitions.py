"""
Status Transitions

Allowed status changes for pre-auth and post-auth orders. Anything
not listed is rejected; terminal states have no outgoing edges.
"""

from ..schemas import OrderStatus, PostAuthStatus


PRE_AUTH_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_REVIEW: frozenset({
        OrderStatus.UNDER_REVIEW,
        OrderStatus.MANUAL_APPROVED,
        OrderStatus.MANUAL_DECLINED,
    }),
    OrderStatus.UNDER_REVIEW: frozenset({
        OrderStatus.MANUAL_APPROVED,
        OrderStatus.MANUAL_DECLINED,
    }),
    OrderStatus.AUTO_APPROVED: frozenset({OrderStatus.MOVED_TO_POST_AUTH}),
    OrderStatus.MANUAL_APPROVED: frozenset({OrderStatus.MOVED_TO_POST_AUTH}),
    OrderStatus.AUTO_DECLINED: frozenset(),
    OrderStatus.MANUAL_DECLINED: frozenset(),
    OrderStatus.MOVED_TO_POST_AUTH: frozenset(),
}

POST_AUTH_TRANSITIONS: dict[PostAuthStatus, frozenset[PostAuthStatus]] = {
    PostAuthStatus.UNDER_MONITORING: frozenset({
        PostAuthStatus.CHARGEBACKS_FILED,
        PostAuthStatus.CLEARED,
    }),
    PostAuthStatus.CHARGEBACKS_FILED: frozenset(),
    PostAuthStatus.CLEARED: frozenset(),
}

# Statuses still waiting on a reviewer
AWAITING_REVIEW = frozenset({OrderStatus.PENDING_REVIEW, OrderStatus.UNDER_REVIEW})


def sources_for(target: OrderStatus) -> frozenset[OrderStatus]:
    """Pre-auth statuses from which ``target`` can be reached."""
    return frozenset(s for s, targets in PRE_AUTH_TRANSITIONS.items() if target in targets)


def post_auth_sources_for(target: PostAuthStatus) -> frozenset[PostAuthStatus]:
    """Post-auth statuses from which ``target`` can be reached."""
    return frozenset(s for s, targets in POST_AUTH_TRANSITIONS.items() if target in targets)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in PRE_AUTH_TRANSITIONS.get(current, frozenset())


PROMOTABLE = sources_for(OrderStatus.MOVED_TO_POST_AUTH)
