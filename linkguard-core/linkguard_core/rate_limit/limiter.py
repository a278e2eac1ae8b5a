"""
Multi-Window Rate Limiter
=========================
Fixed-window usage counters enforced across five windows at once:
endpoint-hourly, endpoint-daily, global-hourly, global-daily and burst.
"""

from typing import Dict, List, Optional

import structlog

from .. import metrics
from ..ledger import ComplianceLedger, OutcomeEvent
from ..store.base import CounterStore
from ..windows import GLOBAL_SCOPE, Clock, KeySchema, next_hour, seconds_until, utc_now
from .models import (
    EndpointUsage,
    GlobalUsage,
    RateLimitDecision,
    RateLimitResult,
    UsageSnapshot,
    Window,
)
from .quotas import EndpointQuota, QuotaRegistry, QuotaTable

logger = structlog.get_logger(__name__)


def _window_limits(table: QuotaTable, quota: EndpointQuota) -> Dict[Window, int]:
    return {
        Window.ENDPOINT_HOUR: quota.requests_per_hour,
        Window.ENDPOINT_DAY: quota.requests_per_day,
        Window.GLOBAL_HOUR: table.global_quota.max_requests_per_hour,
        Window.GLOBAL_DAY: table.global_quota.max_requests_per_day,
        Window.BURST: quota.burst_limit,
    }


class RateLimiter:
    """
    Per-user, per-endpoint quota tracking on the shared counter store.

    ``check_quota`` is a pure read and may act on slightly stale counts
    when other tasks are recording concurrently. That is accepted: the
    decision favours availability over exactness, while increments
    themselves are always atomic.
    """

    def __init__(
        self,
        store: CounterStore,
        quotas: QuotaRegistry,
        ledger: ComplianceLedger,
        keys: KeySchema,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.quotas = quotas
        self.ledger = ledger
        self.keys = keys
        self.clock = clock

    def resolve(self, endpoint: str) -> EndpointQuota:
        return self.quotas.snapshot().resolve(endpoint)

    async def check_quota(self, user_id: str, endpoint: str) -> RateLimitDecision:
        """
        Remaining quota for ``user_id`` on ``endpoint``.

        Any single exhausted window blocks the call. ``retry_after`` is the
        time to the next hour boundary when only hourly or burst windows are
        exhausted, and None once a daily window is exhausted.
        """
        table = self.quotas.snapshot()
        quota = table.resolve(endpoint)
        now = self.clock()

        window_keys = self.keys.window_keys(user_id, quota.endpoint, now)
        usage = await self.store.get_many(window_keys.as_list())
        limits = _window_limits(table, quota)

        remainders = {
            window: max(0, limits[window] - used)
            for window, used in zip(Window, usage)
        }
        remaining = min(remainders.values())
        exhausted = tuple(window for window in Window if remainders[window] <= 0)

        reset_time = next_hour(now)
        retry_after: Optional[int] = None
        if remaining <= 0 and not any(window.is_daily for window in exhausted):
            retry_after = seconds_until(reset_time, now)

        decision = RateLimitDecision(
            endpoint=endpoint,
            limit=quota.requests_per_hour,
            remaining=remaining,
            reset_time=reset_time,
            retry_after=retry_after,
            exhausted=exhausted,
        )

        metrics.record_decision(quota.endpoint, decision.result.value)
        if decision.result == RateLimitResult.BLOCKED:
            logger.info(
                "quota_exhausted",
                user_id=user_id,
                endpoint=endpoint,
                quota=quota.endpoint,
                windows=[window.value for window in exhausted],
                retry_after=retry_after,
            )

        return decision

    async def record_usage(
        self,
        user_id: str,
        endpoint: str,
        success: bool,
        status_code: Optional[int] = None,
    ) -> None:
        """
        Count one real upstream attempt against all five windows.

        Must be called exactly once per attempted upstream call.
        """
        quota = self.resolve(endpoint)
        now = self.clock()
        window_keys = self.keys.window_keys(user_id, quota.endpoint, now)

        await self.store.incr_many(window_keys.with_ttls())
        await self.ledger.append_outcome(OutcomeEvent(
            user_id=user_id,
            endpoint=endpoint,
            success=success,
            timestamp=now,
            status_code=status_code,
        ))
        metrics.record_attempt(quota.endpoint, success)

    async def get_usage_statistics(self, user_id: str) -> UsageSnapshot:
        """Hourly, daily and burst usage for every configured endpoint."""
        table = self.quotas.snapshot()
        now = self.clock()

        keys: List[str] = []
        for quota in table.endpoints:
            window_keys = self.keys.window_keys(user_id, quota.endpoint, now)
            keys.extend([window_keys.endpoint_hour, window_keys.endpoint_day, window_keys.burst])
        global_keys = self.keys.window_keys(user_id, "", now)
        keys.extend([global_keys.global_hour, global_keys.global_day])

        values = await self.store.get_many(keys)

        endpoints = []
        for index, quota in enumerate(table.endpoints):
            hourly, daily, burst = values[index * 3:index * 3 + 3]
            endpoints.append(EndpointUsage(
                endpoint=quota.endpoint,
                hourly_usage=hourly,
                daily_usage=daily,
                burst_usage=burst,
                hourly_limit=quota.requests_per_hour,
                daily_limit=quota.requests_per_day,
                burst_limit=quota.burst_limit,
            ))

        global_hourly, global_daily = values[-2:]
        return UsageSnapshot(
            user_id=user_id,
            endpoints=endpoints,
            global_usage=GlobalUsage(
                hourly_usage=global_hourly,
                daily_usage=global_daily,
                hourly_limit=table.global_quota.max_requests_per_hour,
                daily_limit=table.global_quota.max_requests_per_day,
            ),
        )

    async def reset_user(self, user_id: str) -> int:
        """
        Delete every usage counter of a user (admin override).

        Only keys of the exact ``user_id`` under a known quota or the global
        scope are removed, so ids like ``user`` leave ``user:42`` untouched.
        """
        scopes = self.quotas.snapshot().endpoint_ids() | {GLOBAL_SCOPE}
        scanned = await self.store.scan_keys(self.keys.user_counter_pattern(user_id))
        keys = [key for key in scanned if self.keys.is_user_counter(key, user_id, scopes)]
        removed = await self.store.delete(keys)
        logger.warning("user_rate_limits_reset", user_id=user_id, keys_removed=removed)
        return removed

    async def active_users(self, limit: Optional[int] = None) -> List[str]:
        """Users with a live global counter, in store enumeration order."""
        keys = await self.store.scan_keys(self.keys.global_counter_pattern())
        users: List[str] = []
        seen = set()
        for key in keys:
            user_id = self.keys.user_from_global_key(key)
            if user_id not in seen:
                seen.add(user_id)
                users.append(user_id)
                if limit is not None and len(users) >= limit:
                    break
        return users
