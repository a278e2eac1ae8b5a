"""
Quota Table
===========
Per-endpoint and global request ceilings.

The table is immutable. The adaptive throttler builds a scaled copy and
swaps it into the ``QuotaRegistry`` in one assignment; readers take a
single snapshot per operation and never see a half-updated table.
"""

import math
import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Optional, Pattern, Tuple

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT_ID = "default"

GLOBAL_HOURLY_FLOOR = 10
GLOBAL_DAILY_FLOOR = 50


@dataclass(frozen=True)
class EndpointQuota:
    """Ceilings for one logical upstream endpoint."""
    endpoint: str
    requests_per_hour: int
    requests_per_day: int
    burst_limit: int
    conservative_factor: float

    def scaled(self, factor: float) -> "EndpointQuota":
        return replace(
            self,
            requests_per_hour=max(1, math.floor(self.requests_per_hour * factor)),
            requests_per_day=max(1, math.floor(self.requests_per_day * factor)),
            burst_limit=max(1, math.floor(self.burst_limit * factor)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "requests_per_hour": self.requests_per_hour,
            "requests_per_day": self.requests_per_day,
            "burst_limit": self.burst_limit,
            "conservative_factor": self.conservative_factor,
        }


@dataclass(frozen=True)
class GlobalQuota:
    """Per-user ceilings across all endpoints, plus retry parameters."""
    max_requests_per_hour: int = 50
    max_requests_per_day: int = 200
    retry_attempts: int = 2
    backoff_multiplier: float = 3.0
    adaptive_enabled: bool = True
    compliance_mode: str = "ULTRA_STRICT"

    def scaled(self, factor: float) -> "GlobalQuota":
        return replace(
            self,
            max_requests_per_hour=max(
                GLOBAL_HOURLY_FLOOR, math.floor(self.max_requests_per_hour * factor)
            ),
            max_requests_per_day=max(
                GLOBAL_DAILY_FLOOR, math.floor(self.max_requests_per_day * factor)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_requests_per_hour": self.max_requests_per_hour,
            "max_requests_per_day": self.max_requests_per_day,
            "retry_attempts": self.retry_attempts,
            "backoff_multiplier": self.backoff_multiplier,
            "adaptive_enabled": self.adaptive_enabled,
            "compliance_mode": self.compliance_mode,
        }


# Unknown endpoints get a deliberately strict quota so typos fail closed
STRICT_DEFAULT_QUOTA = EndpointQuota(
    endpoint=DEFAULT_ENDPOINT_ID,
    requests_per_hour=10,
    requests_per_day=50,
    burst_limit=1,
    conservative_factor=0.1,
)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Pattern[str]:
    """Prefix regex for a pattern; ``{name}`` matches one path segment."""
    escaped = re.escape(pattern)
    escaped = re.sub(r"\\\{[^}]+\\\}", "[^/]+", escaped)
    return re.compile(escaped + r"(?=$|[/?#(:])")


@dataclass(frozen=True)
class QuotaTable:
    """Immutable snapshot of every configured quota."""
    endpoints: Tuple[EndpointQuota, ...]
    global_quota: GlobalQuota = field(default_factory=GlobalQuota)
    default: EndpointQuota = STRICT_DEFAULT_QUOTA

    def resolve(self, endpoint: str) -> EndpointQuota:
        """
        Most specific quota for ``endpoint``.

        Patterns match as path prefixes; when several match, the longest
        pattern wins. Unmatched endpoints get the strict default.
        """
        best: Optional[EndpointQuota] = None
        for quota in self.endpoints:
            if _compile(quota.endpoint).match(endpoint):
                if best is None or len(quota.endpoint) > len(best.endpoint):
                    best = quota
        return best if best is not None else self.default

    def get(self, endpoint_id: str) -> Optional[EndpointQuota]:
        for quota in self.endpoints:
            if quota.endpoint == endpoint_id:
                return quota
        return None

    def endpoint_ids(self) -> FrozenSet[str]:
        """Every counter scope an endpoint quota can key on, default included."""
        return frozenset(quota.endpoint for quota in self.endpoints) | {self.default.endpoint}

    def scaled(self, factor: float) -> "QuotaTable":
        return replace(
            self,
            endpoints=tuple(quota.scaled(factor) for quota in self.endpoints),
            global_quota=self.global_quota.scaled(factor),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoints": [quota.to_dict() for quota in self.endpoints],
            "global": self.global_quota.to_dict(),
            "default": self.default.to_dict(),
        }


def default_quota_table(compliance_mode: str = "ULTRA_STRICT") -> QuotaTable:
    """Conservative defaults, roughly 5-15% of the upstream's assumed limits."""
    endpoints = (
        EndpointQuota("/v2/me", 15, 150, 2, 0.15),
        EndpointQuota("/v2/people", 15, 150, 2, 0.15),
        EndpointQuota("/v2/posts", 6, 20, 1, 0.1),
        EndpointQuota("/v2/people-search", 3, 10, 1, 0.05),
        EndpointQuota("/v2/networkUpdates", 8, 40, 1, 0.15),
        EndpointQuota("/v2/connections", 4, 15, 1, 0.15),
        EndpointQuota("/v2/invitation", 3, 15, 1, 0.15),
        EndpointQuota("/v2/shares", 10, 30, 1, 0.15),
        EndpointQuota("/v2/reactions", 8, 25, 1, 0.15),
        EndpointQuota("/v2/comments", 2, 8, 1, 0.15),
        EndpointQuota("/v2/follows", 2, 5, 1, 0.15),
    )
    return QuotaTable(
        endpoints=endpoints,
        global_quota=GlobalQuota(compliance_mode=compliance_mode),
    )


class QuotaRegistry:
    """
    Holds the live quota table.

    The throttler is the only writer. Swapping is a single reference
    assignment, so concurrent readers see either the old or the new table.
    Scaled quotas drift from the initial table over the process lifetime;
    ``inspect()`` reports how far.
    """

    def __init__(self, table: QuotaTable):
        self._initial = table
        self._current = table
        self._cumulative_factor = 1.0

    @property
    def initial(self) -> QuotaTable:
        return self._initial

    def snapshot(self) -> QuotaTable:
        return self._current

    def swap(self, table: QuotaTable) -> QuotaTable:
        previous = self._current
        self._current = table
        return previous

    def scale(self, factor: float) -> QuotaTable:
        """Replace the live table with a copy scaled by ``factor``."""
        table = self._current.scaled(factor)
        self.swap(table)
        self._cumulative_factor *= factor
        logger.info(
            "quotas_scaled",
            factor=factor,
            cumulative_factor=round(self._cumulative_factor, 4),
            global_hourly=table.global_quota.max_requests_per_hour,
            global_daily=table.global_quota.max_requests_per_day,
        )
        return table

    @property
    def cumulative_factor(self) -> float:
        return self._cumulative_factor

    def inspect(self) -> Dict[str, Any]:
        return {
            "cumulative_factor": round(self._cumulative_factor, 4),
            "current": self._current.to_dict(),
            "initial": self._initial.to_dict(),
        }
