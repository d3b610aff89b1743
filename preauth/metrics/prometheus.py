"""
Prometheus Metrics

Defines all metrics exposed by the pre-auth engine.
Metrics cover:
- Screening volume and outcomes
- Lifecycle transitions and promotions
- Collaborator health (geo-IP, deep analysis)
"""

from prometheus_client import Counter, Histogram, Gauge


class PreAuthMetrics:
    """
    Container for all Prometheus metrics.

    Organized by category:
    - Request metrics
    - Latency metrics
    - Decision metrics
    - Lifecycle metrics
    - Collaborator metrics
    """

    def __init__(self):
        """Initialize all metrics."""

        # =====================================================================
        # Request Metrics
        # =====================================================================
        self.requests_total = Counter(
            "preauth_requests_total",
            "Total number of API requests",
            labelnames=["endpoint"],
        )

        self.errors_total = Counter(
            "preauth_errors_total",
            "Total number of errors",
            labelnames=["error_type"],
        )

        # =====================================================================
        # Latency Metrics
        # =====================================================================
        self.check_latency = Histogram(
            "preauth_check_latency_ms",
            "Run-check latency (scoring and persistence) in milliseconds",
            buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2500],
        )

        self.promotion_latency = Histogram(
            "preauth_promotion_latency_ms",
            "Promotion latency including deep analysis in milliseconds",
            buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000],
        )

        # =====================================================================
        # Decision Metrics
        # =====================================================================
        self.checks_total = Counter(
            "preauth_checks_total",
            "Signal evaluator results",
            labelnames=["check", "outcome"],
        )

        self.decisions_total = Counter(
            "preauth_decisions_total",
            "Automated decisions by outcome",
            labelnames=["decision"],
        )

        self.score_distribution = Histogram(
            "preauth_score",
            "Distribution of pre-auth scores",
            buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
        )

        # =====================================================================
        # Lifecycle Metrics
        # =====================================================================
        self.transitions_total = Counter(
            "preauth_transitions_total",
            "Order status transitions",
            labelnames=["from_status", "to_status"],
        )

        self.transition_conflicts = Counter(
            "preauth_transition_conflicts_total",
            "Rejected status transitions",
            labelnames=["target"],
        )

        self.promotions_total = Counter(
            "preauth_promotions_total",
            "Promotions to post-auth monitoring",
            labelnames=["result"],
        )

        self.post_auth_status_total = Counter(
            "preauth_post_auth_status_total",
            "Post-auth orders reaching a final status",
            labelnames=["status"],
        )

        # =====================================================================
        # Collaborator Metrics
        # =====================================================================
        self.enrichment_failures = Counter(
            "preauth_enrichment_failures_total",
            "Failed collaborator calls",
            labelnames=["collaborator"],
        )

        self.component_health = Gauge(
            "preauth_component_health",
            "Component health status (1=healthy, 0=unhealthy)",
            labelnames=["component"],
        )


# Global metrics instance
metrics = PreAuthMetrics()
