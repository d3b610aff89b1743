"""
API Integration Tests

Exercises the FastAPI routes through ASGITransport with the
in-memory store and geo lookups disabled.
"""

import pytest
from httpx import AsyncClient


async def _check(client: AsyncClient, headers: dict, **overrides) -> dict:
    payload = {
        "order_id": "order_1001",
        "customer_email": "jane.doe@example.com",
        "order_amount": 99.99,
        "device_fingerprint": "fp_abc123",
    }
    payload.update(overrides)
    response = await client.post("/preauth/check", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestHealthEndpoint:
    """Tests for /health and /metrics."""

    @pytest.mark.asyncio
    async def test_health(self, api_client: AsyncClient):
        response = await api_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["store"] is True
        assert data["storage_backend"] == "memory"

    @pytest.mark.asyncio
    async def test_metrics_exposed(self, api_client: AsyncClient, headers_a: dict):
        await _check(api_client, headers_a)
        response = await api_client.get("/metrics")

        assert response.status_code == 200
        assert "preauth_decisions_total" in response.text


class TestCheckEndpoint:
    """Tests for POST /preauth/check."""

    @pytest.mark.asyncio
    async def test_clean_order_approved(self, api_client: AsyncClient, headers_a: dict):
        data = await _check(api_client, headers_a)

        assert data["pre_auth_score"] == 100
        assert data["auto_decision"] == "APPROVED"
        assert data["should_proceed"] is True
        assert data["pre_auth_order_id"].startswith("pa_")

    @pytest.mark.asyncio
    async def test_geo_check_skipped_when_lookup_disabled(self, api_client: AsyncClient, headers_a: dict):
        data = await _check(api_client, headers_a, ip_address="198.51.100.7")

        geo = next(c for c in data["checks"] if c["check_name"] == "geo_check")
        assert geo["skipped"] is True
        assert data["pre_auth_score"] == 100

    @pytest.mark.asyncio
    async def test_disposable_email(self, api_client: AsyncClient, headers_a: dict):
        data = await _check(api_client, headers_a, customer_email="x@tempmail.com")

        assert data["pre_auth_score"] == 70
        assert data["auto_decision"] == "REQUIRES_REVIEW"
        assert data["requires_manual_review"] is True

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self, api_client: AsyncClient):
        response = await api_client.post(
            "/preauth/check",
            json={"order_id": "o1", "customer_email": "a@example.com", "order_amount": 1},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    @pytest.mark.asyncio
    async def test_invalid_token_rejected(self, api_client: AsyncClient):
        response = await api_client.get(
            "/preauth/orders", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_order_rejected(self, api_client: AsyncClient, headers_a: dict):
        response = await api_client.post(
            "/preauth/check",
            json={"order_id": "o1", "customer_email": "a@example.com", "order_amount": -5},
            headers=headers_a,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "OrderValidationError"
        assert response.json()["field"] == "order_amount"

    @pytest.mark.asyncio
    async def test_missing_field_uses_engine_error_body(self, api_client: AsyncClient, headers_a: dict):
        response = await api_client.post(
            "/preauth/check",
            json={"order_id": "o1", "order_amount": 10},
            headers=headers_a,
        )

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "OrderValidationError"
        assert data["field"] == "customer_email"


class TestReviewEndpoints:
    """Tests for the review workflow over HTTP."""

    @pytest.mark.asyncio
    async def test_approve_and_promote(self, api_client: AsyncClient, headers_a: dict):
        order = await _check(api_client, headers_a, customer_email="x@tempmail.com")
        order_id = order["pre_auth_order_id"]

        pending = await api_client.get("/preauth/orders/pending", headers=headers_a)
        assert [o["id"] for o in pending.json()] == [order_id]

        approved = await api_client.post(
            f"/preauth/orders/{order_id}/approve",
            json={"notes": "Called customer"},
            headers=headers_a,
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "MANUAL_APPROVED"
        assert approved.json()["review_notes"] == "Called customer"

        promoted = await api_client.post(
            f"/preauth/orders/{order_id}/move-to-post-auth", headers=headers_a
        )
        assert promoted.status_code == 200
        body = promoted.json()
        # Derived analyzer: risk is the inverse of the pre-auth score
        assert body["post_auth_score"] == 30
        assert body["already_linked"] is False

        fetched = await api_client.get(f"/preauth/orders/{order_id}", headers=headers_a)
        assert fetched.json()["status"] == "MOVED_TO_POST_AUTH"
        assert fetched.json()["post_auth_scan_id"] == body["post_auth_scan_id"]

    @pytest.mark.asyncio
    async def test_approve_without_body(self, api_client: AsyncClient, headers_a: dict):
        order = await _check(api_client, headers_a, customer_email="x@tempmail.com")

        response = await api_client.post(
            f"/preauth/orders/{order['pre_auth_order_id']}/approve", headers=headers_a
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_transition_conflict(self, api_client: AsyncClient, headers_a: dict):
        order = await _check(api_client, headers_a)

        response = await api_client.post(
            f"/preauth/orders/{order['pre_auth_order_id']}/decline", headers=headers_a
        )

        assert response.status_code == 409
        data = response.json()
        assert data["current_status"] == "AUTO_APPROVED"
        assert data["target_status"] == "MANUAL_DECLINED"

    @pytest.mark.asyncio
    async def test_cross_merchant_forbidden(self, api_client: AsyncClient, headers_a: dict, headers_b: dict):
        order = await _check(api_client, headers_a)

        response = await api_client.get(
            f"/preauth/orders/{order['pre_auth_order_id']}", headers=headers_b
        )
        assert response.status_code == 403

        listing = await api_client.get("/preauth/orders", headers=headers_b)
        assert listing.json() == []

    @pytest.mark.asyncio
    async def test_unknown_order_not_found(self, api_client: AsyncClient, headers_a: dict):
        response = await api_client.get("/preauth/orders/pa_missing", headers=headers_a)
        assert response.status_code == 404


class TestPolicyEndpoints:
    """Tests for GET/PUT /policy."""

    @pytest.mark.asyncio
    async def test_defaults_then_update(self, api_client: AsyncClient, headers_a: dict, headers_b: dict):
        default = await api_client.get("/policy", headers=headers_a)
        assert default.json()["auto_approve_threshold"] == 80

        updated = await api_client.put(
            "/policy", json={"auto_approve_threshold": 75}, headers=headers_a
        )
        assert updated.status_code == 200
        assert updated.json()["auto_approve_threshold"] == 75
        assert updated.json()["created_at"] is not None

        other = await api_client.get("/policy", headers=headers_b)
        assert other.json()["auto_approve_threshold"] == 80

    @pytest.mark.asyncio
    async def test_inverted_thresholds_rejected(self, api_client: AsyncClient, headers_a: dict):
        response = await api_client.put(
            "/policy",
            json={"auto_approve_threshold": 30, "auto_decline_threshold": 50},
            headers=headers_a,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "PolicyValidationError"

    @pytest.mark.asyncio
    async def test_updated_policy_applies_to_next_check(self, api_client: AsyncClient, headers_a: dict):
        await api_client.put("/policy", json={"auto_approve_threshold": 70}, headers=headers_a)
        data = await _check(api_client, headers_a, customer_email="x@tempmail.com")
        assert data["auto_decision"] == "APPROVED"


class TestPostAuthEndpoints:
    """Tests for post-auth monitoring over HTTP."""

    @pytest.mark.asyncio
    async def test_monitoring_flow(self, api_client: AsyncClient, headers_a: dict):
        order = await _check(api_client, headers_a)
        promoted = await api_client.post(
            f"/preauth/orders/{order['pre_auth_order_id']}/move-to-post-auth", headers=headers_a
        )
        post_auth_id = promoted.json()["post_auth_order_id"]

        evidence = await api_client.post(
            f"/postauth/orders/{post_auth_id}/evidence",
            json={"type": "delivery_confirmation", "description": "Signed by recipient"},
            headers=headers_a,
        )
        assert evidence.status_code == 200
        assert evidence.json()["evidence"][0]["type"] == "delivery_confirmation"

        note = await api_client.post(
            f"/postauth/orders/{post_auth_id}/notes",
            json={"text": "Follow up in 30 days"},
            headers=headers_a,
        )
        assert note.json()["notes"][0]["text"] == "Follow up in 30 days"

        chargeback = await api_client.post(
            f"/postauth/orders/{post_auth_id}/chargeback",
            json={"reason": "item not received", "amount": 99.99},
            headers=headers_a,
        )
        assert chargeback.json()["status"] == "CHARGEBACKS_FILED"

        listing = await api_client.get(
            "/postauth/orders", params={"status": "CHARGEBACKS_FILED"}, headers=headers_a
        )
        assert [o["id"] for o in listing.json()] == [post_auth_id]
        assert listing.json()[0]["days_in_monitoring"] == 0

        cleared = await api_client.post(f"/postauth/orders/{post_auth_id}/clear", headers=headers_a)
        assert cleared.status_code == 409

    @pytest.mark.asyncio
    async def test_maintenance_endpoints(self, api_client: AsyncClient, headers_a: dict):
        cleared = await api_client.post("/postauth/clear-elapsed", headers=headers_a)
        assert cleared.json() == {"cleared": [], "count": 0}

        repaired = await api_client.post("/postauth/reconcile", headers=headers_a)
        assert repaired.json() == {"repaired": [], "count": 0}


class TestMetricsAuth:
    """Tests for the optional metrics token."""

    @pytest.mark.asyncio
    async def test_metrics_token_enforced(self, api_client: AsyncClient, monkeypatch):
        from preauth.config import settings

        monkeypatch.setattr(settings, "metrics_token", "scrape-secret")

        assert (await api_client.get("/metrics")).status_code == 401
        allowed = await api_client.get("/metrics", headers={"X-API-Key": "scrape-secret"})
        assert allowed.status_code == 200
