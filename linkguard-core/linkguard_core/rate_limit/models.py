"""
Rate Limit Models
=================
Data models for quota decisions and usage snapshots.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


class Window(str, Enum):
    """The five windows enforced for every call."""
    ENDPOINT_HOUR = "endpoint_hour"
    ENDPOINT_DAY = "endpoint_day"
    GLOBAL_HOUR = "global_hour"
    GLOBAL_DAY = "global_day"
    BURST = "burst"

    @property
    def is_daily(self) -> bool:
        return self in (Window.ENDPOINT_DAY, Window.GLOBAL_DAY)


@dataclass
class RateLimitDecision:
    """Quota check result for one (user, endpoint) pair."""
    endpoint: str
    limit: int
    remaining: int
    reset_time: datetime
    retry_after: Optional[int] = None  # Seconds, only set when blocked
    exhausted: Tuple[Window, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.remaining > 0

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED

    def to_headers(self) -> Dict[str, str]:
        """Standard rate limit headers for HTTP responses."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(int(self.reset_time.timestamp())),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time.isoformat(),
            "retry_after": self.retry_after,
            "exhausted": [window.value for window in self.exhausted],
        }


@dataclass
class EndpointUsage:
    """Current usage of one configured endpoint."""
    endpoint: str
    hourly_usage: int
    daily_usage: int
    burst_usage: int
    hourly_limit: int
    daily_limit: int
    burst_limit: int

    @property
    def remaining_hourly(self) -> int:
        return max(0, self.hourly_limit - self.hourly_usage)

    @property
    def remaining_daily(self) -> int:
        return max(0, self.daily_limit - self.daily_usage)

    @property
    def daily_ratio(self) -> float:
        return self.daily_usage / self.daily_limit if self.daily_limit else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "hourly_usage": self.hourly_usage,
            "daily_usage": self.daily_usage,
            "burst_usage": self.burst_usage,
            "hourly_limit": self.hourly_limit,
            "daily_limit": self.daily_limit,
            "burst_limit": self.burst_limit,
            "remaining_hourly": self.remaining_hourly,
            "remaining_daily": self.remaining_daily,
        }


@dataclass
class GlobalUsage:
    """Current usage across every endpoint for one user."""
    hourly_usage: int
    daily_usage: int
    hourly_limit: int
    daily_limit: int

    @property
    def remaining_hourly(self) -> int:
        return max(0, self.hourly_limit - self.hourly_usage)

    @property
    def remaining_daily(self) -> int:
        return max(0, self.daily_limit - self.daily_usage)

    @property
    def hourly_ratio(self) -> float:
        return self.hourly_usage / self.hourly_limit if self.hourly_limit else 0.0

    @property
    def daily_ratio(self) -> float:
        return self.daily_usage / self.daily_limit if self.daily_limit else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourly_usage": self.hourly_usage,
            "daily_usage": self.daily_usage,
            "hourly_limit": self.hourly_limit,
            "daily_limit": self.daily_limit,
            "remaining_hourly": self.remaining_hourly,
            "remaining_daily": self.remaining_daily,
        }


@dataclass
class UsageSnapshot:
    """Usage statistics for display and response headers."""
    user_id: str
    endpoints: List[EndpointUsage] = field(default_factory=list)
    global_usage: Optional[GlobalUsage] = None

    def find(self, fragment: str) -> List[EndpointUsage]:
        """Endpoints whose id contains ``fragment``."""
        return [usage for usage in self.endpoints if fragment in usage.endpoint]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "endpoints": [usage.to_dict() for usage in self.endpoints],
            "global": self.global_usage.to_dict() if self.global_usage else None,
        }
