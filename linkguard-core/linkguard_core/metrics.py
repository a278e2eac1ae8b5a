"""
Guard Metrics
=============
Prometheus metrics for quota decisions, upstream attempts and throttling.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

# Custom registry so host applications can mount guard metrics separately
GUARD_REGISTRY = CollectorRegistry()

QUOTA_DECISIONS = Counter(
    name="linkguard_quota_decisions_total",
    documentation="Quota checks by endpoint and result",
    labelnames=["endpoint", "result"],
    registry=GUARD_REGISTRY,
)

UPSTREAM_ATTEMPTS = Counter(
    name="linkguard_upstream_attempts_total",
    documentation="Upstream calls attempted through the execution guard",
    labelnames=["endpoint", "outcome"],
    registry=GUARD_REGISTRY,
)

RETRY_SLEEPS = Counter(
    name="linkguard_retry_sleeps_total",
    documentation="Retry waits taken by the execution guard",
    labelnames=["endpoint", "reason"],
    registry=GUARD_REGISTRY,
)

THROTTLE_ADJUSTMENTS = Counter(
    name="linkguard_throttle_adjustments_total",
    documentation="Adaptive throttling ticks by action",
    labelnames=["action"],
    registry=GUARD_REGISTRY,
)

QUOTA_SCALE = Gauge(
    name="linkguard_quota_scale_factor",
    documentation="Cumulative factor applied to the initial quota table",
    registry=GUARD_REGISTRY,
)
QUOTA_SCALE.set(1.0)

VIOLATIONS_RECORDED = Counter(
    name="linkguard_violations_total",
    documentation="Compliance violations recorded",
    labelnames=["severity"],
    registry=GUARD_REGISTRY,
)


def record_decision(endpoint: str, result: str) -> None:
    QUOTA_DECISIONS.labels(endpoint=endpoint, result=result).inc()


def record_attempt(endpoint: str, success: bool) -> None:
    UPSTREAM_ATTEMPTS.labels(endpoint=endpoint, outcome="success" if success else "failure").inc()


def record_retry_sleep(endpoint: str, reason: str) -> None:
    RETRY_SLEEPS.labels(endpoint=endpoint, reason=reason).inc()


def record_throttle(action: str, cumulative_factor: float) -> None:
    THROTTLE_ADJUSTMENTS.labels(action=action).inc()
    QUOTA_SCALE.set(cumulative_factor)


def record_violation(severity: str) -> None:
    VIOLATIONS_RECORDED.labels(severity=severity).inc()


def get_metrics_text() -> bytes:
    """Guard metrics in Prometheus text exposition format."""
    return generate_latest(GUARD_REGISTRY)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "GUARD_REGISTRY",
    "get_metrics_text",
    "record_attempt",
    "record_decision",
    "record_retry_sleep",
    "record_throttle",
    "record_violation",
]
