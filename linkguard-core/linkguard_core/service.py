"""
Compliance Guard Service
========================
One shared guard instance, built at process start and passed to every
caller that talks to the upstream API.

Usage:
    guard = ComplianceGuard.from_settings(GuardSettings.from_env())
    guard.start()

    profile = await guard.run(user_id, "/v2/me", fetch_profile)

    status = await guard.get_compliance_status(user_id)
    if not status.allows_automation:
        ...

    await guard.close()
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TypeVar

import structlog

from . import metrics
from .compliance import ComplianceReport, ComplianceScorer, ComplianceStatus
from .config import GuardSettings
from .errors import StoreUnavailable
from .execution import ExecutionGuard, Operation, Sleeper
from .ledger import ComplianceLedger, ViolationRecord
from .rate_limit import (
    QuotaRegistry,
    QuotaTable,
    RateLimitDecision,
    RateLimiter,
    UsageSnapshot,
    default_quota_table,
)
from .store import CounterStore, RedisCounterStore
from .throttle import AdaptiveThrottler, ThrottleAdjustment
from .windows import Clock, KeySchema, utc_now

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class HealthReport:
    """Store connectivity and rough activity, for liveness probes."""
    status: str
    store_connected: bool
    active_users: int = 0
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "store_connected": self.store_connected,
            "active_users": self.active_users,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


class ComplianceGuard:
    """Facade wiring store, quotas, limiter, guard, throttler and scorer."""

    def __init__(
        self,
        store: CounterStore,
        settings: Optional[GuardSettings] = None,
        quota_table: Optional[QuotaTable] = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
        throttler: Optional[AdaptiveThrottler] = None,
    ):
        self.settings = settings or GuardSettings()
        self.store = store
        self.keys = KeySchema(self.settings.namespace)
        self.quotas = QuotaRegistry(
            quota_table or default_quota_table(self.settings.compliance_mode)
        )
        self.ledger = ComplianceLedger(
            store,
            self.keys,
            clock=clock,
            retention_days=self.settings.retention_days,
            max_events=self.settings.analytics_max_events,
            max_violations_per_day=self.settings.violations_max_per_day,
        )
        self.limiter = RateLimiter(store, self.quotas, self.ledger, self.keys, clock=clock)
        self.executor = ExecutionGuard(
            self.limiter,
            self.quotas,
            max_sleep_seconds=self.settings.max_sleep_seconds,
            day_retry_hint_seconds=self.settings.day_retry_hint_seconds,
            sleep=sleep,
        )
        self.scorer = ComplianceScorer(self.limiter, self.ledger, clock=clock)
        self.throttler = throttler or AdaptiveThrottler(self.ledger, self.quotas, self.settings)

    @classmethod
    def from_settings(cls, settings: GuardSettings) -> "ComplianceGuard":
        """Build a guard with a Redis store from ``settings.redis_url``."""
        return cls(RedisCounterStore.from_url(settings.redis_url), settings=settings)

    # Lifecycle

    def start(self) -> None:
        """Start adaptive throttling when enabled in the quota table."""
        if self.quotas.snapshot().global_quota.adaptive_enabled:
            self.throttler.start()

    async def close(self) -> None:
        await self.throttler.stop()
        await self.store.close()

    async def __aenter__(self) -> "ComplianceGuard":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Rate limiting

    async def check_quota(self, user_id: str, endpoint: str) -> RateLimitDecision:
        return await self.limiter.check_quota(user_id, endpoint)

    async def record_usage(
        self,
        user_id: str,
        endpoint: str,
        success: bool = True,
        status_code: Optional[int] = None,
    ) -> None:
        await self.limiter.record_usage(user_id, endpoint, success, status_code)

    async def run(
        self,
        user_id: str,
        endpoint: str,
        operation: Operation,
        max_attempts: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        return await self.executor.run(
            user_id, endpoint, operation, max_attempts=max_attempts, cancel_event=cancel_event
        )

    async def get_usage_statistics(self, user_id: str) -> UsageSnapshot:
        return await self.limiter.get_usage_statistics(user_id)

    async def reset_user_rate_limits(self, user_id: str) -> int:
        return await self.limiter.reset_user(user_id)

    def inspect_quotas(self) -> Dict[str, Any]:
        return self.quotas.inspect()

    async def adjust_quotas(self) -> ThrottleAdjustment:
        """Run one adaptive throttling cycle immediately."""
        return await self.throttler.tick()

    # Compliance

    async def get_compliance_status(self, user_id: str) -> ComplianceStatus:
        return await self.scorer.get_compliance_status(user_id)

    async def get_compliance_report(self, sample_size: Optional[int] = None) -> ComplianceReport:
        return await self.scorer.get_compliance_report(
            sample_size or self.settings.report_sample_users
        )

    async def record_violation(
        self,
        user_id: str,
        violation_type: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ViolationRecord:
        record = await self.ledger.record_violation(user_id, violation_type, details)
        metrics.record_violation(record.severity)
        return record

    async def list_violations(self, user_id: str, days: Optional[int] = None) -> List[ViolationRecord]:
        return await self.ledger.list_violations(user_id, days)

    # Health

    async def get_health_status(self) -> HealthReport:
        """Check store connectivity and count active users."""
        try:
            start = time.time()
            await self.store.ping()
            latency = (time.time() - start) * 1000
            users = await self.limiter.active_users()
        except StoreUnavailable as e:
            logger.error("Counter store health check failed", error=str(e))
            return HealthReport(status="unhealthy", store_connected=False, error=str(e))

        return HealthReport(
            status="healthy",
            store_connected=True,
            active_users=len(users),
            latency_ms=round(latency, 2),
        )
