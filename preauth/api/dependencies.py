"""
API Dependencies

Builds the engine services from settings and exposes them to
FastAPI routes through dependency injection.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import redis.asyncio as redis

from ..config import Settings
from ..enrichment import (
    DeepAnalyzer,
    GeoIPLookup,
    HttpDeepAnalyzer,
    HttpGeoIPLookup,
    PreAuthDerivedAnalyzer,
)
from ..lifecycle import PostAuthService, PreAuthService
from ..policy import PolicyService, load_default_policy
from ..scoring import ScoringAggregator
from ..store import InMemoryOrderStore, OrderStore, PostgresOrderStore
from ..utils import get_logger
from ..velocity import (
    OrderHistory,
    RedisOrderHistory,
    RedisVelocityCounter,
    StoreOrderHistory,
    VelocityTracker,
)

logger = get_logger("api.dependencies")

PROJECT_ROOT = Path(__file__).parent.parent.parent


@dataclass
class ServiceContainer:
    """Everything the routes need, built once per application lifespan."""
    store: OrderStore
    policies: PolicyService
    pre_auth: PreAuthService
    post_auth: PostAuthService
    history: OrderHistory
    geo_lookup: Optional[GeoIPLookup] = None
    analyzer: Optional[DeepAnalyzer] = None
    redis_client: Optional[redis.Redis] = None

    async def close(self) -> None:
        if self.geo_lookup:
            await self.geo_lookup.close()
        if self.analyzer:
            await self.analyzer.close()
        if self.redis_client:
            await self.redis_client.aclose()
        await self.store.close()


def _policy_path(settings: Settings) -> Path:
    path = Path(settings.policy_defaults_path)
    return path if path.is_absolute() else PROJECT_ROOT / path


async def build_services(settings: Settings) -> ServiceContainer:
    """
    Wire the engine from settings.

    - Store: PostgreSQL or in-memory
    - Velocity history: the store itself or Redis ZSETs
    - Geo-IP: HTTP lookup, disabled when no URL is configured
    - Deep analysis: HTTP service, or derived from the pre-auth result
    """
    if settings.storage_backend == "postgres":
        store: OrderStore = PostgresOrderStore(settings.postgres_url)
    else:
        store = InMemoryOrderStore()
    await store.initialize()

    redis_client = None
    if settings.velocity_backend == "redis":
        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        counter = RedisVelocityCounter(
            redis_client,
            key_prefix=settings.redis_key_prefix,
            window_seconds=settings.velocity_window_seconds,
            default_ttl_seconds=max(settings.velocity_window_seconds * 2, 3600),
        )
        history: OrderHistory = RedisOrderHistory(counter, store)
    else:
        history = StoreOrderHistory(store)

    geo_lookup = None
    if settings.geoip_url_template:
        geo_lookup = HttpGeoIPLookup(
            settings.geoip_url_template,
            timeout_seconds=settings.geoip_timeout_seconds,
        )

    if settings.deep_analysis_url:
        analyzer: DeepAnalyzer = HttpDeepAnalyzer(
            settings.deep_analysis_url,
            timeout_seconds=settings.deep_analysis_timeout_seconds,
        )
    else:
        analyzer = PreAuthDerivedAnalyzer()

    policies = PolicyService(store, defaults=load_default_policy(_policy_path(settings)))
    aggregator = ScoringAggregator(
        history=history,
        velocity=VelocityTracker(history, window_seconds=settings.velocity_window_seconds),
        geo_lookup=geo_lookup,
    )
    pre_auth = PreAuthService(
        store,
        policies,
        aggregator,
        history,
        default_limit=settings.default_list_limit,
    )
    post_auth = PostAuthService(
        store,
        pre_auth,
        analyzer,
        monitoring_days=settings.post_auth_monitoring_days,
        default_limit=settings.default_list_limit,
    )

    logger.info(
        "Services ready (storage=%s, velocity=%s, geoip=%s, deep_analysis=%s)",
        settings.storage_backend,
        settings.velocity_backend,
        "on" if geo_lookup else "off",
        type(analyzer).__name__,
    )
    return ServiceContainer(
        store=store,
        policies=policies,
        pre_auth=pre_auth,
        post_auth=post_auth,
        history=history,
        geo_lookup=geo_lookup,
        analyzer=analyzer,
        redis_client=redis_client,
    )


# Initialized in the application lifespan
_services: Optional[ServiceContainer] = None


def set_services(services: Optional[ServiceContainer]) -> None:
    global _services
    _services = services


def get_services() -> ServiceContainer:
    """FastAPI dependency returning the active service container."""
    if _services is None:
        raise RuntimeError("Services not initialized; is the application lifespan running?")
    return _services


def get_pre_auth_service() -> PreAuthService:
    return get_services().pre_auth


def get_post_auth_service() -> PostAuthService:
    return get_services().post_auth


def get_policy_service() -> PolicyService:
    return get_services().policies
