"""
Execution Guard
===============
The single call path from application code to the upstream API.

Each attempt runs quota check -> invoke -> record outcome, and retries
only rate-limit-class failures with capped sleeps.
"""

import asyncio
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from . import metrics
from .errors import (
    GuardCancelled,
    QuotaExceeded,
    WindowScope,
    extract_status_code,
    is_rate_limit_error,
)
from .rate_limit.limiter import RateLimiter
from .rate_limit.models import RateLimitDecision, Window
from .rate_limit.quotas import QuotaRegistry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Sleeper = Callable[[float], Awaitable[None]]


def _blocking_scope(decision: RateLimitDecision) -> WindowScope:
    if any(window.is_daily for window in decision.exhausted):
        return WindowScope.DAY
    if decision.exhausted == (Window.BURST,):
        return WindowScope.BURST
    return WindowScope.HOUR


class ExecutionGuard:
    """
    Wraps upstream calls with quota enforcement and retry.

    Example:
        guard = ExecutionGuard(limiter, quotas)

        profile = await guard.run(
            user_id,
            "/v2/me",
            lambda: client.get_profile(token),
        )
    """

    def __init__(
        self,
        limiter: RateLimiter,
        quotas: QuotaRegistry,
        max_sleep_seconds: float = 60.0,
        day_retry_hint_seconds: int = 86400,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.limiter = limiter
        self.quotas = quotas
        self.max_sleep_seconds = max_sleep_seconds
        self.day_retry_hint_seconds = day_retry_hint_seconds
        self._sleep = sleep

    async def run(
        self,
        user_id: str,
        endpoint: str,
        operation: Operation,
        max_attempts: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """
        Execute ``operation`` under the user's quotas.

        Args:
            user_id: Authenticated user identity
            endpoint: Upstream endpoint path, matched against quota patterns
            operation: Zero-argument callable returning an awaitable
            max_attempts: Attempts including the first; defaults to the
                global retry setting plus one
            cancel_event: Setting it abandons any pending retry sleep

        Returns:
            Result of ``operation``

        Raises:
            QuotaExceeded: Local quota refused the call
            GuardCancelled: ``cancel_event`` was set during a retry sleep
            StoreUnavailable: Counter store unreachable
        """
        table = self.quotas.snapshot()
        attempts = (
            max_attempts if max_attempts is not None else table.global_quota.retry_attempts + 1
        )
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, attempts + 1):
            decision = await self.limiter.check_quota(user_id, endpoint)

            if not decision.allowed:
                if decision.retry_after is None:
                    raise QuotaExceeded(
                        f"Daily rate limit exceeded for {endpoint}",
                        retry_after=self.day_retry_hint_seconds,
                        endpoint=endpoint,
                        scope=WindowScope.DAY,
                    )
                if attempt == attempts:
                    raise QuotaExceeded(
                        f"Rate limit exceeded for {endpoint}",
                        retry_after=decision.retry_after,
                        endpoint=endpoint,
                        scope=_blocking_scope(decision),
                    )
                delay = min(decision.retry_after, self.max_sleep_seconds)
                metrics.record_retry_sleep(self.limiter.resolve(endpoint).endpoint, "quota")
                logger.info(
                    "waiting_for_quota",
                    user_id=user_id,
                    endpoint=endpoint,
                    attempt=attempt,
                    delay=delay,
                )
                await self._pause(delay, endpoint, attempt, cancel_event)
                continue

            try:
                result = await operation()
            except asyncio.CancelledError:
                # Counted as an attempt: the request may have reached the upstream
                await asyncio.shield(self.limiter.record_usage(user_id, endpoint, False, None))
                logger.info(
                    "guarded_call_cancelled",
                    user_id=user_id,
                    endpoint=endpoint,
                    attempt=attempt,
                )
                raise
            except Exception as e:
                status_code = extract_status_code(e)
                rate_limited = is_rate_limit_error(e)
                if rate_limited and status_code is None:
                    status_code = 429
                await self.limiter.record_usage(user_id, endpoint, False, status_code)

                if rate_limited and attempt < attempts:
                    backoff = self.quotas.snapshot().global_quota.backoff_multiplier
                    delay = min(backoff ** attempt, self.max_sleep_seconds)
                    metrics.record_retry_sleep(self.limiter.resolve(endpoint).endpoint, "upstream")
                    logger.warning(
                        "upstream_rate_limited",
                        user_id=user_id,
                        endpoint=endpoint,
                        attempt=attempt,
                        delay=delay,
                        status_code=status_code,
                    )
                    await self._pause(delay, endpoint, attempt, cancel_event)
                    continue
                raise

            await self.limiter.record_usage(user_id, endpoint, True)
            return result

        # Unreachable: the last attempt always returns or raises
        raise QuotaExceeded(
            f"Rate limit exceeded for {endpoint}",
            retry_after=self.day_retry_hint_seconds,
            endpoint=endpoint,
        )

    async def wait_if_limited(
        self,
        decision: RateLimitDecision,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Sleep until a blocked decision may clear (capped)."""
        if decision.allowed or decision.retry_after is None:
            return
        delay = min(decision.retry_after, self.max_sleep_seconds)
        logger.info("rate_limited_wait", endpoint=decision.endpoint, delay=delay)
        await self._pause(delay, decision.endpoint, 0, cancel_event)

    async def _pause(
        self,
        delay: float,
        endpoint: str,
        attempt: int,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        if cancel_event is None:
            await self._sleep(delay)
            return
        if cancel_event.is_set():
            raise GuardCancelled(endpoint, attempt)
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise GuardCancelled(endpoint, attempt)


def guarded(
    guard: ExecutionGuard,
    endpoint: str,
    max_attempts: Optional[int] = None,
):
    """
    Decorator routing an async upstream call through the guard.

    The wrapped function must take the user id as its first argument.

    Usage:
        @guarded(guard, "/v2/connections")
        async def list_connections(user_id, token):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(user_id: str, *args, **kwargs) -> T:
            return await guard.run(
                user_id,
                endpoint,
                lambda: func(user_id, *args, **kwargs),
                max_attempts=max_attempts,
            )
        return wrapper
    return decorator
