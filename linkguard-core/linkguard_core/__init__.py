"""
LinkGuard Core Library
======================
API compliance and rate-limiting guard for LinkedIn API access.
"""

__version__ = "1.0.0"

# Configuration
from linkguard_core.config import GuardSettings

# Errors
from linkguard_core.errors import (
    GuardError,
    QuotaExceeded,
    UpstreamRateLimited,
    StoreUnavailable,
    GuardCancelled,
    WindowScope,
)

# Counter Store
from linkguard_core.store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)

# Rate Limiting
from linkguard_core.rate_limit import (
    EndpointQuota,
    GlobalQuota,
    QuotaTable,
    QuotaRegistry,
    RateLimiter,
    RateLimitDecision,
    RateLimitResult,
    UsageSnapshot,
    default_quota_table,
)

# Execution
from linkguard_core.execution import ExecutionGuard, guarded

# Adaptive Throttling
from linkguard_core.throttle import (
    AdaptiveThrottler,
    ThrottleAction,
    ThrottleAdjustment,
    RecoveryPolicy,
)

# Compliance
from linkguard_core.ledger import ComplianceLedger, OutcomeEvent, ViolationRecord
from linkguard_core.compliance import (
    ComplianceLevel,
    ComplianceReport,
    ComplianceScorer,
    ComplianceStatus,
    SafetyMetrics,
)

# Service
from linkguard_core.service import ComplianceGuard, HealthReport

# Health
from linkguard_core.health import create_guard_router

# Logging
from linkguard_core.logging_setup import configure_logging

__all__ = [
    # Configuration
    "GuardSettings",
    # Errors
    "GuardError",
    "QuotaExceeded",
    "UpstreamRateLimited",
    "StoreUnavailable",
    "GuardCancelled",
    "WindowScope",
    # Counter Store
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    # Rate Limiting
    "EndpointQuota",
    "GlobalQuota",
    "QuotaTable",
    "QuotaRegistry",
    "RateLimiter",
    "RateLimitDecision",
    "RateLimitResult",
    "UsageSnapshot",
    "default_quota_table",
    # Execution
    "ExecutionGuard",
    "guarded",
    # Adaptive Throttling
    "AdaptiveThrottler",
    "ThrottleAction",
    "ThrottleAdjustment",
    "RecoveryPolicy",
    # Compliance
    "ComplianceLedger",
    "OutcomeEvent",
    "ViolationRecord",
    "ComplianceLevel",
    "ComplianceReport",
    "ComplianceScorer",
    "ComplianceStatus",
    "SafetyMetrics",
    # Service
    "ComplianceGuard",
    "HealthReport",
    # Health
    "create_guard_router",
    # Logging
    "configure_logging",
]
