"""
Adaptive Throttler
==================
Background task that scales every quota from observed upstream 429 rates.

A tick with more than 5% rate-limited outcomes cuts all quotas by 20%.
Quiet ticks (under 1%) slowly restore headroom by 10%. Scaling applies to
all users at once and is not capped at the initial table, so quotas drift
over the process lifetime and a cut followed by a recovery is not exactly
reversible (floors and rounding).
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from . import metrics
from .config import GuardSettings
from .ledger import ComplianceLedger
from .rate_limit.quotas import QuotaRegistry

logger = structlog.get_logger(__name__)


class ThrottleAction(str, Enum):
    REDUCED = "reduced"
    RECOVERED = "recovered"
    HELD = "held"
    NO_DATA = "no_data"
    DISABLED = "disabled"


class RecoveryPolicy(str, Enum):
    COOLDOWN = "cooldown"  # Recover after N consecutive clean ticks
    RANDOM = "random"      # Recover with a fixed chance per clean tick


@dataclass
class ThrottleAdjustment:
    """Outcome of one throttling tick."""
    action: ThrottleAction
    sampled_events: int = 0
    rate_limit_failures: int = 0
    error_rate: float = 0.0
    factor: float = 1.0
    clean_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "sampled_events": self.sampled_events,
            "rate_limit_failures": self.rate_limit_failures,
            "error_rate": round(self.error_rate, 4),
            "factor": self.factor,
            "clean_streak": self.clean_streak,
        }


class AdaptiveThrottler:
    """Periodically samples outcomes and rescales the quota registry."""

    def __init__(
        self,
        ledger: ComplianceLedger,
        quotas: QuotaRegistry,
        settings: Optional[GuardSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.ledger = ledger
        self.quotas = quotas
        self.settings = settings or GuardSettings()
        self.policy = RecoveryPolicy(self.settings.recovery_policy)
        self.rng = rng or random.Random()
        self._clean_streak = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> ThrottleAdjustment:
        """Run one sampling and adjustment cycle."""
        if not self.quotas.snapshot().global_quota.adaptive_enabled:
            return self._finish(ThrottleAdjustment(ThrottleAction.DISABLED))

        events = await self.ledger.sample_outcomes(
            max_users=self.settings.throttle_sample_users,
            max_events=self.settings.throttle_sample_events,
        )
        if not events:
            return self._finish(ThrottleAdjustment(ThrottleAction.NO_DATA, clean_streak=self._clean_streak))

        failures = sum(1 for event in events if event.rate_limited)
        error_rate = failures / len(events)
        adjustment = ThrottleAdjustment(
            action=ThrottleAction.HELD,
            sampled_events=len(events),
            rate_limit_failures=failures,
            error_rate=error_rate,
        )

        if error_rate > self.settings.reduce_threshold:
            self._clean_streak = 0
            logger.warning(
                "high_upstream_error_rate",
                error_rate=round(error_rate * 100, 2),
                sampled_events=len(events),
            )
            self.quotas.scale(self.settings.reduce_factor)
            adjustment.action = ThrottleAction.REDUCED
            adjustment.factor = self.settings.reduce_factor
        elif error_rate < self.settings.recover_threshold:
            self._clean_streak += 1
            if self._should_recover():
                logger.info("low_upstream_error_rate", clean_streak=self._clean_streak)
                self.quotas.scale(self.settings.recover_factor)
                adjustment.action = ThrottleAction.RECOVERED
                adjustment.factor = self.settings.recover_factor
                self._clean_streak = 0
        else:
            self._clean_streak = 0

        adjustment.clean_streak = self._clean_streak
        return self._finish(adjustment)

    def _should_recover(self) -> bool:
        if self.policy == RecoveryPolicy.RANDOM:
            return self.rng.random() < self.settings.recovery_probability
        return self._clean_streak >= self.settings.recovery_clean_intervals

    def _finish(self, adjustment: ThrottleAdjustment) -> ThrottleAdjustment:
        metrics.record_throttle(adjustment.action.value, self.quotas.cumulative_factor)
        logger.debug("throttle_tick", **adjustment.to_dict())
        return adjustment

    async def _run_forever(self) -> None:
        interval = self.settings.throttle_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error("adaptive_throttling_failed", error=str(e))

    def start(self) -> None:
        """Start the background loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="linkguard-throttler")
        logger.info("adaptive_throttler_started", interval=self.settings.throttle_interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("adaptive_throttler_stopped")
