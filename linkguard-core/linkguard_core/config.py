"""
Guard Configuration
===================
Runtime settings for the guard, read from the environment.
"""

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass
class GuardSettings:
    """Configuration for the rate limiting and compliance guard."""
    redis_url: str = field(
        default_factory=lambda: os.environ.get("LINKGUARD_REDIS_URL", "redis://localhost:6379/0")
    )
    namespace: str = field(
        default_factory=lambda: os.environ.get("LINKGUARD_NAMESPACE", "linkedin")
    )
    compliance_mode: str = field(
        default_factory=lambda: os.environ.get("LINKGUARD_COMPLIANCE_MODE", "ULTRA_STRICT")
    )

    # Execution guard
    max_sleep_seconds: float = 60.0
    day_retry_hint_seconds: int = 86400

    # Adaptive throttling
    throttle_interval_seconds: float = field(
        default_factory=lambda: _env_float("LINKGUARD_THROTTLE_INTERVAL", 1800.0)
    )
    throttle_sample_users: int = 100
    throttle_sample_events: int = 100
    reduce_threshold: float = 0.05
    recover_threshold: float = 0.01
    reduce_factor: float = 0.8
    recover_factor: float = 1.1
    recovery_policy: str = field(
        default_factory=lambda: os.environ.get("LINKGUARD_RECOVERY_POLICY", "cooldown")
    )
    recovery_clean_intervals: int = field(
        default_factory=lambda: _env_int("LINKGUARD_RECOVERY_CLEAN_INTERVALS", 3)
    )
    recovery_probability: float = 0.1

    # Ledger retention
    analytics_max_events: int = 1000
    violations_max_per_day: int = 100
    retention_days: int = 30

    # Reporting
    report_sample_users: int = 100

    @classmethod
    def from_env(cls) -> "GuardSettings":
        """Build settings from the current environment."""
        return cls()
