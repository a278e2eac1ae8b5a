"""
Execution Guard Tests
=====================
Quota enforcement, outcome recording and retry behavior of guarded calls.
"""

import asyncio

import pytest


def make_guard(store, clock, sleeper, table=None, **kwargs):
    from linkguard_core.service import ComplianceGuard

    return ComplianceGuard(store, quota_table=table, clock=clock, sleep=sleeper, **kwargs)


def quota_table():
    from linkguard_core.rate_limit import EndpointQuota, QuotaTable

    return QuotaTable(endpoints=(
        EndpointQuota("/v2/test", 40, 400, 4, 1.0),
        EndpointQuota("/v2/daily", 10, 2, 10, 1.0),
    ))


async def endpoint_hourly(guard, user_id, endpoint):
    usage = await guard.get_usage_statistics(user_id)
    return usage.find(endpoint)[0].hourly_usage


class TestGuardedRun:
    """Tests for the guarded execution path."""

    @pytest.mark.asyncio
    async def test_success_records_once(self, store, clock, sleeper):
        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            return {"id": "abc"}

        result = await guard.run("u1", "/v2/test", call)

        assert result == {"id": "abc"}
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_burst_blocks_fifth_call(self, store, clock, sleeper):
        """Hourly 40 / burst 4: four calls pass, the fifth is refused."""
        from linkguard_core.errors import QuotaExceeded, WindowScope

        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            return "ok"

        for _ in range(4):
            assert await guard.run("u1", "/v2/test", call) == "ok"

        with pytest.raises(QuotaExceeded) as exc_info:
            await guard.run("u1", "/v2/test", call, max_attempts=1)

        assert calls == 4
        assert exc_info.value.retry_after == 1800
        assert exc_info.value.scope == WindowScope.BURST
        assert exc_info.value.retryable is True
        assert exc_info.value.endpoint == "/v2/test"

    @pytest.mark.asyncio
    async def test_refusal_not_recorded_as_usage(self, store, clock, sleeper):
        """Local refusals never count against the quota."""
        from linkguard_core.errors import QuotaExceeded

        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            return "ok"

        for _ in range(4):
            await guard.run("u1", "/v2/test", call)
        with pytest.raises(QuotaExceeded):
            await guard.run("u1", "/v2/test", call)

        assert await endpoint_hourly(guard, "u1", "/v2/test") == 4

    @pytest.mark.asyncio
    async def test_quota_wait_is_capped(self, store, clock, sleeper):
        """Blocked attempts sleep at most the configured cap before giving up."""
        from linkguard_core.errors import QuotaExceeded

        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            return "ok"

        for _ in range(4):
            await guard.run("u1", "/v2/test", call)
        with pytest.raises(QuotaExceeded):
            await guard.run("u1", "/v2/test", call)

        # Default three attempts: two capped waits, then the refusal
        assert sleeper.delays == [60.0, 60.0]

    @pytest.mark.asyncio
    async def test_daily_exhaustion_not_retried(self, store, clock, sleeper):
        """Daily exhaustion raises immediately with a one-day hint."""
        from linkguard_core.errors import QuotaExceeded, WindowScope

        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            return "ok"

        await guard.run("u1", "/v2/daily", call)
        await guard.run("u1", "/v2/daily", call)

        with pytest.raises(QuotaExceeded) as exc_info:
            await guard.run("u1", "/v2/daily", call)

        assert exc_info.value.retry_after == 86400
        assert exc_info.value.scope == WindowScope.DAY
        assert exc_info.value.retryable is False
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_propagates(self, store, clock, sleeper):
        """Other failures are recorded once and re-raised unchanged."""
        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError, match="bad payload"):
            await guard.run("u1", "/v2/test", call)

        assert calls == 1
        assert sleeper.delays == []
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 1
        events = await guard.ledger.outcomes_for_day("u1", clock().date())
        assert events[0].success is False

    @pytest.mark.asyncio
    async def test_upstream_429_retried_with_backoff(self, store, clock, sleeper):
        """Upstream 429s back off by multiplier ** attempt and retry."""
        from linkguard_core.errors import UpstreamRateLimited

        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise UpstreamRateLimited()
            return "ok"

        result = await guard.run("u1", "/v2/test", call)

        assert result == "ok"
        assert calls == 3
        assert sleeper.delays == [3.0, 9.0]
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 3
        events = await guard.ledger.outcomes_for_day("u1", clock().date())
        assert sum(1 for event in events if event.rate_limited) == 2

    @pytest.mark.asyncio
    async def test_status_code_on_response_detected(self, store, clock, sleeper):
        """HTTP client errors carrying ``response.status_code == 429`` are retried."""
        from unittest.mock import MagicMock

        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        class ClientError(Exception):
            def __init__(self, status):
                super().__init__(f"HTTP {status}")
                self.response = MagicMock(status_code=status)

        async def call():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ClientError(429)
            return "ok"

        assert await guard.run("u1", "/v2/test", call) == "ok"
        assert sleeper.delays == [3.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted_reraises(self, store, clock, sleeper):
        from linkguard_core.errors import UpstreamRateLimited

        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            raise UpstreamRateLimited()

        with pytest.raises(UpstreamRateLimited):
            await guard.run("u1", "/v2/test", call, max_attempts=2)

        assert sleeper.delays == [3.0]
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 2

    @pytest.mark.asyncio
    async def test_invalid_attempts(self, store, clock, sleeper):
        guard = make_guard(store, clock, sleeper, quota_table())

        async def call():
            return "ok"

        with pytest.raises(ValueError):
            await guard.run("u1", "/v2/test", call, max_attempts=-1)

    @pytest.mark.asyncio
    async def test_zero_attempts_rejected(self, store, clock, sleeper):
        """An explicit zero is rejected rather than replaced by the default."""
        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            return "ok"

        with pytest.raises(ValueError):
            await guard.run("u1", "/v2/test", call, max_attempts=0)

        assert calls == 0

    @pytest.mark.asyncio
    async def test_day_scoped_refusal_from_operation_not_retried(self, store, clock, sleeper):
        """A nested guard refusing for the day surfaces immediately."""
        from linkguard_core.errors import QuotaExceeded, WindowScope

        guard = make_guard(store, clock, sleeper, quota_table())
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            raise QuotaExceeded(
                "Daily rate limit exceeded",
                retry_after=86400,
                endpoint="/v2/test",
                scope=WindowScope.DAY,
            )

        with pytest.raises(QuotaExceeded):
            await guard.run("u1", "/v2/test", call)

        assert calls == 1
        assert sleeper.delays == []
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 1


class TestCancellation:
    """Tests for abandoning retry sleeps."""

    @pytest.mark.asyncio
    async def test_cancel_event_stops_retry(self, store, clock, sleeper):
        from linkguard_core.errors import GuardCancelled, UpstreamRateLimited

        guard = make_guard(store, clock, sleeper, quota_table())
        cancel = asyncio.Event()
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            cancel.set()
            raise UpstreamRateLimited()

        with pytest.raises(GuardCancelled) as exc_info:
            await guard.run("u1", "/v2/test", call, cancel_event=cancel)

        assert calls == 1
        assert exc_info.value.attempt == 1

    @pytest.mark.asyncio
    async def test_unset_cancel_event_waits_out_delay(self, store, clock):
        """Without cancellation the retry proceeds after the (capped) delay."""
        from linkguard_core.errors import UpstreamRateLimited
        from linkguard_core.execution import ExecutionGuard

        base = make_guard(store, clock, asyncio.sleep, quota_table())
        executor = ExecutionGuard(base.limiter, base.quotas, max_sleep_seconds=0.01)
        cancel = asyncio.Event()
        calls = 0

        async def call():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise UpstreamRateLimited()
            return "ok"

        assert await executor.run("u1", "/v2/test", call, cancel_event=cancel) == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_task_cancelled_mid_call_records_attempt(self, store, clock, sleeper):
        """Cancelling the caller while the upstream call is in flight still counts it."""
        guard = make_guard(store, clock, sleeper, quota_table())
        started = asyncio.Event()

        async def slow_call():
            started.set()
            await asyncio.sleep(10)
            return "never"

        task = asyncio.create_task(guard.run("u1", "/v2/test", slow_call))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert await endpoint_hourly(guard, "u1", "/v2/test") == 1
        events = await guard.ledger.outcomes_for_day("u1", clock().date())
        assert len(events) == 1
        assert events[0].success is False
        assert sleeper.delays == []


class TestWaitIfLimited:
    """Tests for the standalone wait helper."""

    @pytest.mark.asyncio
    async def test_allowed_does_not_wait(self, store, clock, sleeper):
        guard = make_guard(store, clock, sleeper, quota_table())
        decision = await guard.check_quota("u1", "/v2/test")

        await guard.executor.wait_if_limited(decision)

        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_blocked_waits_capped(self, store, clock, sleeper):
        guard = make_guard(store, clock, sleeper, quota_table())
        for _ in range(4):
            await guard.record_usage("u1", "/v2/test")
        decision = await guard.check_quota("u1", "/v2/test")

        await guard.executor.wait_if_limited(decision)

        assert sleeper.delays == [60.0]

    @pytest.mark.asyncio
    async def test_daily_block_does_not_wait(self, store, clock, sleeper):
        guard = make_guard(store, clock, sleeper, quota_table())
        await guard.record_usage("u1", "/v2/daily")
        await guard.record_usage("u1", "/v2/daily")
        decision = await guard.check_quota("u1", "/v2/daily")

        await guard.executor.wait_if_limited(decision)

        assert sleeper.delays == []


class TestGuardedDecorator:
    """Tests for the ``guarded`` decorator."""

    @pytest.mark.asyncio
    async def test_decorator_routes_through_guard(self, store, clock, sleeper):
        from linkguard_core.execution import guarded

        guard = make_guard(store, clock, sleeper, quota_table())

        @guarded(guard.executor, "/v2/test")
        async def fetch(user_id, suffix):
            return f"{user_id}-{suffix}"

        assert await fetch("u1", "x") == "u1-x"
        assert fetch.__name__ == "fetch"
        assert await endpoint_hourly(guard, "u1", "/v2/test") == 1
