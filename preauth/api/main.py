"""
Pre-Auth Risk API

FastAPI application exposing the pre-authorization engine.

Endpoints:
- POST /preauth/check: Screen an order before payment authorization
- /preauth/orders...: Review workflow and promotion
- /policy: Merchant risk policy
- /postauth/...: Post-auth chargeback monitoring
- GET /health: Health check
- GET /metrics: Prometheus metrics
"""

from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..config import settings
from ..errors import InvalidTransitionError, OrderValidationError, PreAuthError
from ..lifecycle import PostAuthService, PreAuthService
from ..metrics import metrics
from ..policy import PolicyService
from ..schemas import (
    ChargebackFiling,
    EvidenceRequest,
    NoteRequest,
    PolicyUpdate,
    PostAuthOrder,
    PostAuthOrderView,
    PostAuthStatus,
    PreAuthCheckResponse,
    PreAuthOrder,
    PromotionResult,
    ReviewRequest,
    RiskPolicy,
)
from ..utils import configure_logging, get_logger
from .auth import MerchantID, require_metrics_token
from .dependencies import (
    build_services,
    get_post_auth_service,
    get_pre_auth_service,
    get_policy_service,
    get_services,
    set_services,
)

logger = get_logger("api")

PreAuth = Annotated[PreAuthService, Depends(get_pre_auth_service)]
PostAuth = Annotated[PostAuthService, Depends(get_post_auth_service)]
Policies = Annotated[PolicyService, Depends(get_policy_service)]
Limit = Annotated[Optional[int], Query(ge=1, le=500)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the store, collaborators and services on startup and
    releases their connections on shutdown.
    """
    configure_logging(settings.app_log_level)
    services = await build_services(settings)
    set_services(services)

    yield

    set_services(None)
    await services.close()


async def preauth_error_handler(request: Request, exc: PreAuthError) -> JSONResponse:
    """Map engine errors to HTTP responses."""
    metrics.errors_total.labels(error_type=type(exc).__name__).inc()
    content = {"error": type(exc).__name__, "detail": exc.message}
    if isinstance(exc, InvalidTransitionError):
        content["current_status"] = exc.current
        content["target_status"] = exc.target
    if isinstance(exc, OrderValidationError) and exc.field:
        content["field"] = exc.field
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Pre-Auth Risk API",
        description="Pre-authorization order screening and post-auth chargeback monitoring",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PreAuthError, preauth_error_handler)
    return app


app = create_app()


# =============================================================================
# Operational endpoints
# =============================================================================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns service health status and component availability.
    """
    services = get_services()
    health = {
        "status": "healthy",
        "components": {
            "store": False,
        },
        "storage_backend": settings.storage_backend,
    }

    try:
        health["components"]["store"] = await services.store.health_check()
    except Exception as e:
        logger.warning("Store health check failed: %s", e)

    if services.redis_client:
        health["components"]["redis"] = False
        try:
            await services.redis_client.ping()
            health["components"]["redis"] = True
        except Exception as e:
            logger.warning("Redis health check failed: %s", e)

    for component, ok in health["components"].items():
        metrics.component_health.labels(component=component).set(1 if ok else 0)

    if not all(health["components"].values()):
        health["status"] = "degraded"

    return health


@app.get("/metrics")
def metrics_endpoint(_: None = Depends(require_metrics_token)):
    """Expose Prometheus metrics with optional token auth."""
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# =============================================================================
# Pre-auth
# =============================================================================

@app.post("/preauth/check", response_model=PreAuthCheckResponse)
async def run_check(
    merchant_id: MerchantID,
    service: PreAuth,
    payload: Annotated[dict[str, Any], Body()],
):
    """
    Screen an order before payment authorization.

    The order is stored with every check result and its automated
    decision; the response tells the checkout whether to proceed,
    hold for review or decline. The raw body is validated by the
    engine; malformed orders raise OrderValidationError (422).
    """
    metrics.requests_total.labels(endpoint="/preauth/check").inc()
    return await service.run_check(merchant_id, payload)


@app.get("/preauth/orders", response_model=list[PreAuthOrder])
async def list_orders(merchant_id: MerchantID, service: PreAuth, limit: Limit = None):
    return await service.get_all_pre_auth_orders(merchant_id, limit)


@app.get("/preauth/orders/pending", response_model=list[PreAuthOrder])
async def list_pending_orders(merchant_id: MerchantID, service: PreAuth, limit: Limit = None):
    return await service.get_pending_orders(merchant_id, limit)


@app.get("/preauth/orders/{order_id}", response_model=PreAuthOrder)
async def get_order(order_id: str, merchant_id: MerchantID, service: PreAuth):
    return await service.get_pre_auth_order(merchant_id, order_id)


@app.post("/preauth/orders/{order_id}/review", response_model=PreAuthOrder)
async def start_review(
    order_id: str,
    merchant_id: MerchantID,
    service: PreAuth,
    body: Optional[ReviewRequest] = None,
):
    reviewer = body.reviewer if body else None
    return await service.start_review(merchant_id, order_id, reviewer)


@app.post("/preauth/orders/{order_id}/approve", response_model=PreAuthOrder)
async def approve_order(
    order_id: str,
    merchant_id: MerchantID,
    service: PreAuth,
    body: Optional[ReviewRequest] = None,
):
    body = body or ReviewRequest()
    return await service.approve(merchant_id, order_id, body.notes, body.reviewer)


@app.post("/preauth/orders/{order_id}/decline", response_model=PreAuthOrder)
async def decline_order(
    order_id: str,
    merchant_id: MerchantID,
    service: PreAuth,
    body: Optional[ReviewRequest] = None,
):
    body = body or ReviewRequest()
    return await service.decline(merchant_id, order_id, body.notes, body.reviewer)


@app.post("/preauth/orders/{order_id}/move-to-post-auth", response_model=PromotionResult)
async def move_to_post_auth(order_id: str, merchant_id: MerchantID, service: PostAuth):
    """Promote an approved order to post-auth chargeback monitoring."""
    metrics.requests_total.labels(endpoint="/preauth/move-to-post-auth").inc()
    return await service.move_to_post_auth(merchant_id, order_id)


# =============================================================================
# Policy
# =============================================================================

@app.get("/policy", response_model=RiskPolicy)
async def get_policy(merchant_id: MerchantID, service: Policies):
    return await service.get_policy(merchant_id)


@app.put("/policy", response_model=RiskPolicy)
async def update_policy(update: PolicyUpdate, merchant_id: MerchantID, service: Policies):
    """Patch the merchant policy; the first call creates it from the defaults."""
    return await service.update_policy(merchant_id, update)


# =============================================================================
# Post-auth monitoring
# =============================================================================

@app.get("/postauth/orders", response_model=list[PostAuthOrderView])
async def list_post_auth_orders(
    merchant_id: MerchantID,
    service: PostAuth,
    limit: Limit = None,
    status: Optional[PostAuthStatus] = None,
):
    return await service.get_post_auth_orders(merchant_id, limit, status)


@app.post("/postauth/orders/{post_auth_id}/evidence", response_model=PostAuthOrder)
async def add_evidence(
    post_auth_id: str,
    body: EvidenceRequest,
    merchant_id: MerchantID,
    service: PostAuth,
):
    return await service.add_evidence(merchant_id, post_auth_id, body.type, body.description)


@app.post("/postauth/orders/{post_auth_id}/notes", response_model=PostAuthOrder)
async def add_note(
    post_auth_id: str,
    body: NoteRequest,
    merchant_id: MerchantID,
    service: PostAuth,
):
    return await service.add_note(merchant_id, post_auth_id, body.text, body.author)


@app.post("/postauth/orders/{post_auth_id}/chargeback", response_model=PostAuthOrder)
async def mark_chargeback_filed(
    post_auth_id: str,
    filing: ChargebackFiling,
    merchant_id: MerchantID,
    service: PostAuth,
):
    return await service.mark_chargeback_filed(merchant_id, post_auth_id, filing)


@app.post("/postauth/orders/{post_auth_id}/clear", response_model=PostAuthOrder)
async def mark_cleared(post_auth_id: str, merchant_id: MerchantID, service: PostAuth):
    return await service.mark_cleared(merchant_id, post_auth_id)


@app.post("/postauth/clear-elapsed")
async def clear_elapsed(merchant_id: MerchantID, service: PostAuth):
    """Clear every monitored order whose monitoring window has ended."""
    cleared = await service.clear_elapsed(merchant_id)
    return {"cleared": cleared, "count": len(cleared)}


@app.post("/postauth/reconcile")
async def reconcile_links(merchant_id: MerchantID, service: PostAuth):
    """Repair pre-auth orders whose promotion was only half recorded."""
    repaired = await service.reconcile_links(merchant_id)
    return {"repaired": repaired, "count": len(repaired)}


# Entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "preauth.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_debug,
    )
