"""
Guard Exceptions
================
Typed errors raised by the rate limiting and compliance core.

Every error carries the structured data a caller needs to react
(``retry_after``, ``endpoint``) so nobody has to parse messages.
"""

from enum import Enum
from typing import Optional


class WindowScope(str, Enum):
    """Which kind of window refused a request."""
    BURST = "burst"
    HOUR = "hour"
    DAY = "day"


class GuardError(Exception):
    """Base exception for all guard errors."""
    pass


class QuotaExceeded(GuardError):
    """Raised when a local quota window refuses a request."""

    status_code = 429

    def __init__(
        self,
        message: str,
        retry_after: int,
        endpoint: str,
        scope: WindowScope = WindowScope.HOUR,
    ):
        self.retry_after = retry_after
        self.endpoint = endpoint
        self.scope = scope
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Day-scoped exhaustion is never retried in-process."""
        return self.scope != WindowScope.DAY


class UpstreamRateLimited(GuardError):
    """Raised by an operation when the upstream API answers 429."""

    def __init__(
        self,
        message: str = "Upstream rate limit hit",
        status_code: int = 429,
        retry_after: Optional[int] = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class StoreUnavailable(GuardError):
    """Raised when the counter store cannot be reached. Calls fail closed."""

    def __init__(self, message: str, operation: str = "unknown"):
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class GuardCancelled(GuardError):
    """Raised when a caller abandons a retry loop through its cancel event."""

    def __init__(self, endpoint: str, attempt: int):
        self.endpoint = endpoint
        self.attempt = attempt
        super().__init__(f"Guarded call to {endpoint} cancelled on attempt {attempt}")


def extract_status_code(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status of an upstream failure."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    """
    True for errors that signal a retryable (local or upstream) rate limit.

    A day-scoped ``QuotaExceeded`` is excluded since waiting cannot clear it.
    """
    if isinstance(exc, QuotaExceeded):
        return exc.retryable
    if isinstance(exc, UpstreamRateLimited):
        return True
    return extract_status_code(exc) == 429
