"""
Deep Analysis

Collaborator invoked when an approved order is promoted to post-auth
monitoring. Unlike geo-IP, a failure here aborts the promotion: the
caller gets DependencyFailure and no state changes.

Two analyzers ship:
- HttpDeepAnalyzer: posts the order to an external scoring service
- PreAuthDerivedAnalyzer: derives chargeback risk from the stored
  pre-auth result when no external service is configured
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

import httpx
from pydantic import ValidationError

from ..errors import DependencyFailure
from ..schemas import DeepAnalysisResult, PreAuthOrder
from ..utils import get_logger

logger = get_logger("enrichment.deep_analysis")


class DeepAnalyzer(ABC):
    """Produces a post-authorization risk assessment for an order."""

    @abstractmethod
    async def analyze(self, order: PreAuthOrder) -> DeepAnalysisResult:
        """
        Analyze a stored pre-auth order.

        Raises:
            DependencyFailure: analysis could not be completed
        """

    async def close(self) -> None:
        """Release resources. No-op by default."""


def build_analysis_payload(order: PreAuthOrder) -> dict:
    """Order attributes sent to the deep-analysis service."""
    return {
        "order_id": order.order_id,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "order_amount": order.order_amount,
        "billing_address": order.billing_address,
        "shipping_address": order.shipping_address,
        "ip_address": order.ip_address,
        "device_fingerprint": order.device_fingerprint,
        "card_bin": order.card_bin,
    }


class HttpDeepAnalyzer(DeepAnalyzer):
    """Calls an external deep-analysis endpoint over HTTP."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def analyze(self, order: PreAuthOrder) -> DeepAnalysisResult:
        try:
            response = await self.client.post(
                self.url,
                json=build_analysis_payload(order),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return DeepAnalysisResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error("Deep analysis failed for order %s: %s", order.id, e)
            raise DependencyFailure(f"Deep analysis failed: {e}") from e

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class PreAuthDerivedAnalyzer(DeepAnalyzer):
    """
    Chargeback risk from the pre-auth result alone.

    Risk is the inverse of the pre-auth score, raised by half when more
    than ``busy_signal_count`` checks failed, capped at 100.
    """

    def __init__(self, busy_signal_count: int = 3, multiplier: float = 1.5):
        self.busy_signal_count = busy_signal_count
        self.multiplier = multiplier

    async def analyze(self, order: PreAuthOrder) -> DeepAnalysisResult:
        failed = order.failed_checks
        risk = max(0, 100 - order.pre_auth_score)
        if len(failed) > self.busy_signal_count:
            risk = risk * self.multiplier
        risk = min(100, risk)

        if risk >= 70:
            recommendation = "Hold fulfillment evidence; high chargeback exposure"
        elif risk >= 40:
            recommendation = "Collect delivery confirmation"
        else:
            recommendation = "Standard monitoring"

        return DeepAnalysisResult(
            scan_id=f"derived_{uuid4().hex[:16]}",
            risk_score=risk,
            signals=[
                {"check_name": c.check_name.value, "details": c.details}
                for c in failed
            ],
            recommendation=recommendation,
        )
