"""
Rate Limiting Module for LinkGuard Core
=======================================
Fixed-window quota tracking per user and endpoint.
"""

from .limiter import RateLimiter
from .models import (
    EndpointUsage,
    GlobalUsage,
    RateLimitDecision,
    RateLimitResult,
    UsageSnapshot,
    Window,
)
from .quotas import (
    DEFAULT_ENDPOINT_ID,
    STRICT_DEFAULT_QUOTA,
    EndpointQuota,
    GlobalQuota,
    QuotaRegistry,
    QuotaTable,
    default_quota_table,
)

__all__ = [
    # Models
    "RateLimitDecision",
    "RateLimitResult",
    "Window",
    "EndpointUsage",
    "GlobalUsage",
    "UsageSnapshot",
    # Quotas
    "EndpointQuota",
    "GlobalQuota",
    "QuotaTable",
    "QuotaRegistry",
    "default_quota_table",
    "DEFAULT_ENDPOINT_ID",
    "STRICT_DEFAULT_QUOTA",
    # Limiter
    "RateLimiter",
]
