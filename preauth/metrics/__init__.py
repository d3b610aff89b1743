# Metrics Module
from .prometheus import metrics, PreAuthMetrics

__all__ = ["metrics", "PreAuthMetrics"]
