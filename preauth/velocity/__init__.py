# Velocity tracking
from .history import OrderHistory, StoreOrderHistory
from .redis_history import RedisVelocityCounter, RedisOrderHistory
from .tracker import VelocityTracker, evaluate_counts, window_label

__all__ = [
    "OrderHistory",
    "StoreOrderHistory",
    "RedisVelocityCounter",
    "RedisOrderHistory",
    "VelocityTracker",
    "evaluate_counts",
    "window_label",
]
