"""
Pytest Configuration and Fixtures - Pre-Auth Risk Engine

Provides shared fixtures: in-memory store, controllable clock,
fake collaborators and fully wired services.
"""

from datetime import datetime, timedelta, UTC
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from preauth.config import settings
from preauth.enrichment import DeepAnalyzer, GeoIPLookup
from preauth.errors import DependencyFailure, EnrichmentUnavailable
from preauth.lifecycle import PostAuthService, PreAuthService
from preauth.policy import PolicyService
from preauth.schemas import (
    DeepAnalysisResult,
    OrderSubmission,
    PreAuthOrder,
    RiskPolicy,
)
from preauth.scoring import ScoringAggregator
from preauth.store import InMemoryOrderStore
from preauth.velocity import StoreOrderHistory, VelocityTracker


MERCHANT_A = "merchant_alpha"
MERCHANT_B = "merchant_beta"
TOKEN_A = "tok_alpha"
TOKEN_B = "tok_beta"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests (no infrastructure)")
    config.addinivalue_line("markers", "integration: integration tests (requires Docker)")


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGeoLookup(GeoIPLookup):
    """IP -> country table; ``fail`` simulates an outage."""

    def __init__(self, table: Optional[dict[str, str]] = None, fail: bool = False):
        self.table = table or {}
        self.fail = fail
        self.calls: list[str] = []

    async def lookup_country(self, ip_address: str) -> Optional[str]:
        self.calls.append(ip_address)
        if self.fail:
            raise EnrichmentUnavailable("geo-ip timed out")
        return self.table.get(ip_address)


class FakeAnalyzer(DeepAnalyzer):
    """Returns a fixed risk score; ``fail`` simulates an outage."""

    def __init__(self, risk_score: float = 65, fail: bool = False):
        self.risk_score = risk_score
        self.fail = fail
        self.calls: list[PreAuthOrder] = []

    async def analyze(self, order: PreAuthOrder) -> DeepAnalysisResult:
        self.calls.append(order)
        if self.fail:
            raise DependencyFailure("deep analysis unavailable")
        return DeepAnalysisResult(
            scan_id=f"scan_{len(self.calls)}",
            risk_score=self.risk_score,
            signals=["new_device"],
            recommendation="monitor",
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def policy() -> RiskPolicy:
    return RiskPolicy()


@pytest.fixture
def geo_lookup() -> FakeGeoLookup:
    return FakeGeoLookup({
        "203.0.113.10": "US",
        "198.51.100.7": "NG",
        "192.0.2.44": "DE",
    })


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer(risk_score=65)


@pytest.fixture
def submission() -> OrderSubmission:
    """Low-risk order: known-good email, small amount, US IP."""
    return OrderSubmission(
        order_id="order_1001",
        customer_email="jane.doe@example.com",
        order_amount=99.99,
        ip_address="203.0.113.10",
        device_fingerprint="fp_abc123",
        card_bin="424242",
    )


@pytest.fixture
def make_submission(submission: OrderSubmission):
    """Factory producing variations of the base submission."""
    counter = {"n": 0}

    def _make(**overrides) -> OrderSubmission:
        counter["n"] += 1
        data = submission.model_dump()
        data["order_id"] = f"order_{2000 + counter['n']}"
        data.update(overrides)
        return OrderSubmission(**data)

    return _make


@pytest.fixture
def policy_service(store: InMemoryOrderStore, clock: FakeClock) -> PolicyService:
    return PolicyService(store, clock=clock)


@pytest.fixture
def aggregator(store: InMemoryOrderStore, geo_lookup: FakeGeoLookup, clock: FakeClock) -> ScoringAggregator:
    history = StoreOrderHistory(store)
    return ScoringAggregator(
        history=history,
        velocity=VelocityTracker(history),
        geo_lookup=geo_lookup,
        clock=clock,
    )


@pytest.fixture
def pre_auth_service(
    store: InMemoryOrderStore,
    policy_service: PolicyService,
    aggregator: ScoringAggregator,
    clock: FakeClock,
) -> PreAuthService:
    return PreAuthService(
        store,
        policy_service,
        aggregator,
        aggregator.history,
        clock=clock,
    )


@pytest.fixture
def post_auth_service(
    store: InMemoryOrderStore,
    pre_auth_service: PreAuthService,
    analyzer: FakeAnalyzer,
    clock: FakeClock,
) -> PostAuthService:
    return PostAuthService(store, pre_auth_service, analyzer, clock=clock)


@pytest_asyncio.fixture
async def api_client(monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """
    Get async HTTP client for API tests.

    Uses lifespan context manager to properly initialize app resources,
    with the in-memory store and no outbound lookups.
    """
    monkeypatch.setattr(settings, "merchant_tokens", f"{TOKEN_A}:{MERCHANT_A},{TOKEN_B}:{MERCHANT_B}")
    monkeypatch.setattr(settings, "storage_backend", "memory")
    monkeypatch.setattr(settings, "velocity_backend", "store")
    monkeypatch.setattr(settings, "geoip_url_template", None)
    monkeypatch.setattr(settings, "deep_analysis_url", None)
    monkeypatch.setattr(settings, "metrics_token", None)

    from preauth.api.main import app, lifespan

    async with lifespan(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def headers_a() -> dict:
    return {"Authorization": f"Bearer {TOKEN_A}"}


@pytest.fixture
def headers_b() -> dict:
    return {"X-API-Key": TOKEN_B}
