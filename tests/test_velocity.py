"""
Velocity Tests

Tests for velocity cap evaluation, the store-backed tracker and the
Redis ZSET counter (with a mocked client).
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from preauth.schemas import RiskPolicy
from preauth.velocity import (
    RedisOrderHistory,
    RedisVelocityCounter,
    StoreOrderHistory,
    VelocityTracker,
    evaluate_counts,
    window_label,
)

from .conftest import MERCHANT_A, MERCHANT_B


class TestEvaluateCounts:
    """Tests for cap evaluation."""

    def test_under_cap_passes(self, policy: RiskPolicy):
        verdict = evaluate_counts(2, 0, policy)

        assert verdict.passed is True
        assert verdict.email_count == 3
        assert verdict.device_count == 1

    def test_fourth_order_fails_email_cap(self, policy: RiskPolicy):
        verdict = evaluate_counts(3, None, policy)

        assert verdict.passed is False
        assert verdict.violated_axis == "email"
        assert verdict.reason == "4 orders from this email in the last hour (limit: 3)"

    def test_device_cap(self, policy: RiskPolicy):
        verdict = evaluate_counts(0, 5, policy)

        assert verdict.passed is False
        assert verdict.violated_axis == "device"
        assert "6 orders from this device" in verdict.reason

    def test_email_reported_first(self, policy: RiskPolicy):
        assert evaluate_counts(3, 9, policy).violated_axis == "email"

    def test_custom_caps(self):
        policy = RiskPolicy(max_orders_per_email_per_hour=1)
        assert evaluate_counts(1, None, policy).passed is False

    @pytest.mark.parametrize("seconds,label", [
        (3600, "the last hour"),
        (7200, "the last 2 hours"),
        (900, "the last 15 minutes"),
        (45, "the last 45 seconds"),
    ])
    def test_window_label(self, seconds, label):
        assert window_label(seconds) == label


class TestVelocityTracker:
    """Tests for the tracker over persisted orders."""

    @pytest.mark.asyncio
    async def test_counts_orders_in_window(self, pre_auth_service, make_submission, store, clock, policy):
        for _ in range(3):
            await pre_auth_service.run_check(MERCHANT_A, make_submission())

        tracker = VelocityTracker(StoreOrderHistory(store))
        verdict = await tracker.check(MERCHANT_A, "jane.doe@example.com", None, policy, clock())

        assert verdict.passed is False
        assert verdict.email_count == 4

    @pytest.mark.asyncio
    async def test_orders_older_than_window_excluded(
        self, pre_auth_service, make_submission, store, clock, policy
    ):
        for _ in range(3):
            await pre_auth_service.run_check(MERCHANT_A, make_submission())
        clock.advance(hours=1, seconds=1)

        tracker = VelocityTracker(StoreOrderHistory(store))
        verdict = await tracker.check(MERCHANT_A, "jane.doe@example.com", "fp_abc123", policy, clock())

        assert verdict.passed is True
        assert verdict.email_count == 1
        assert verdict.device_count == 1

    @pytest.mark.asyncio
    async def test_counts_are_merchant_scoped(
        self, pre_auth_service, make_submission, store, clock, policy
    ):
        for _ in range(3):
            await pre_auth_service.run_check(MERCHANT_B, make_submission())

        tracker = VelocityTracker(StoreOrderHistory(store))
        verdict = await tracker.check(MERCHANT_A, "jane.doe@example.com", "fp_abc123", policy, clock())
        assert verdict.passed is True

    @pytest.mark.asyncio
    async def test_device_not_counted_without_fingerprint(self, store, clock, policy):
        history = StoreOrderHistory(store)
        history.count_recent_by_device = AsyncMock(return_value=99)

        verdict = await VelocityTracker(history).check(MERCHANT_A, "a@example.com", None, policy, clock())

        history.count_recent_by_device.assert_not_called()
        assert verdict.device_count is None


class TestRedisVelocityCounter:
    """Tests for the ZSET counter with a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[1, 0, True])
        client.pipeline.return_value = pipe
        client.zcount = AsyncMock(return_value=2)
        return client

    @pytest.mark.asyncio
    async def test_increment_adds_member_with_ttl(self, redis_client, clock):
        counter = RedisVelocityCounter(redis_client, key_prefix="test:", default_ttl_seconds=7200)

        added = await counter.increment(MERCHANT_A, "email", "a@example.com", "pa_1", clock())

        pipe = redis_client.pipeline.return_value
        key = f"test:{MERCHANT_A}:email:a@example.com:orders"
        pipe.zadd.assert_called_once_with(key, {"pa_1": int(clock().timestamp() * 1000)})
        pipe.expire.assert_called_once_with(key, 7200)
        assert added == 1

    @pytest.mark.asyncio
    async def test_count_uses_open_upper_bound(self, redis_client, clock):
        counter = RedisVelocityCounter(redis_client, key_prefix="test:")
        since = clock() - timedelta(hours=1)

        assert await counter.count(MERCHANT_A, "device", "fp_1", since) == 2
        redis_client.zcount.assert_awaited_once_with(
            f"test:{MERCHANT_A}:device:fp_1:orders",
            int(since.timestamp() * 1000),
            "+inf",
        )

    @pytest.mark.asyncio
    async def test_increment_trims_members_outside_window(self, redis_client, clock):
        counter = RedisVelocityCounter(redis_client, key_prefix="test:", window_seconds=3600)

        await counter.increment(MERCHANT_A, "email", "a@example.com", "pa_2", clock())

        pipe = redis_client.pipeline.return_value
        cutoff_ms = int((clock() - timedelta(hours=1)).timestamp() * 1000)
        pipe.zremrangebyscore.assert_called_once_with(
            f"test:{MERCHANT_A}:email:a@example.com:orders", 0, f"({cutoff_ms}"
        )
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_history_records_both_axes(self, redis_client, store, pre_auth_service, submission):
        counter = RedisVelocityCounter(redis_client, key_prefix="test:")
        history = RedisOrderHistory(counter, store)

        response = await pre_auth_service.run_check(MERCHANT_A, submission)
        order = await store.get_pre_auth(response.pre_auth_order_id)
        await history.record(order)

        pipe = redis_client.pipeline.return_value
        keys = [call.args[0] for call in pipe.zadd.call_args_list]
        assert keys == [
            f"test:{MERCHANT_A}:email:jane.doe@example.com:orders",
            f"test:{MERCHANT_A}:device:fp_abc123:orders",
        ]
        assert await history.count_lifetime_by_email(MERCHANT_A, "jane.doe@example.com") == 1
