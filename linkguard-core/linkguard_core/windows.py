"""
Usage Windows
=============
Calendar-aligned window buckets and the store key schema.

Windows are fixed UTC hours and days, not sliding windows. Traffic that
straddles an hour boundary lands in two buckets, so a caller can briefly
exceed the steady hourly rate around the boundary.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Collection, List, Tuple

Clock = Callable[[], datetime]

HOUR_TTL = 3600
DAY_TTL = 86400
BURST_TTL = 60

GLOBAL_SCOPE = "global"
BURST_SUFFIX = "burst"

GLOB_METACHARACTERS = "*?[]\\"

# YYYY-MM-DD or YYYY-MM-DD-HH
_BUCKET = re.compile(r"\d{4}-\d{2}-\d{2}(-\d{2})?")


def _glob_literal(value: str) -> str:
    # Redis and fnmatch escape differently; ``?`` means the same in both
    return "".join("?" if char in GLOB_METACHARACTERS else char for char in value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hour_bucket(now: datetime) -> str:
    return now.strftime("%Y-%m-%d-%H")


def day_bucket(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")


def next_hour(now: datetime) -> datetime:
    """Top of the next hour."""
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def seconds_until(target: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` to ``target``, never less than 1."""
    return max(1, math.ceil((target - now).total_seconds()))


@dataclass(frozen=True)
class WindowKeys:
    """The five counter keys consulted for one (user, endpoint) pair."""
    endpoint_hour: str
    endpoint_day: str
    global_hour: str
    global_day: str
    burst: str

    def with_ttls(self) -> List[Tuple[str, int]]:
        return [
            (self.endpoint_hour, HOUR_TTL),
            (self.endpoint_day, DAY_TTL),
            (self.global_hour, HOUR_TTL),
            (self.global_day, DAY_TTL),
            (self.burst, BURST_TTL),
        ]

    def as_list(self) -> List[str]:
        return [key for key, _ in self.with_ttls()]


class KeySchema:
    """
    Builds every store key the guard uses.

    Counters:   {ns}_rate_limit:{user}:{endpoint}:{bucket}
    Analytics:  {ns}_analytics:{user}:{YYYY-MM-DD}
    Violations: {ns}_violations:{user}:{YYYY-MM-DD}
    """

    def __init__(self, namespace: str = "linkedin"):
        self.namespace = namespace
        self.counter_prefix = f"{namespace}_rate_limit"
        self.analytics_prefix = f"{namespace}_analytics"
        self.violations_prefix = f"{namespace}_violations"

    def window_keys(self, user_id: str, endpoint_id: str, now: datetime) -> WindowKeys:
        base = f"{self.counter_prefix}:{user_id}"
        hour = hour_bucket(now)
        day = day_bucket(now)
        return WindowKeys(
            endpoint_hour=f"{base}:{endpoint_id}:{hour}",
            endpoint_day=f"{base}:{endpoint_id}:{day}",
            global_hour=f"{base}:{GLOBAL_SCOPE}:{hour}",
            global_day=f"{base}:{GLOBAL_SCOPE}:{day}",
            burst=f"{base}:{endpoint_id}:{BURST_SUFFIX}",
        )

    def user_counter_pattern(self, user_id: str) -> str:
        """
        Scan pattern covering a user's counters.

        Over-matches (glob metacharacters in the id become ``?`` and other
        users' ids may share the prefix); filter with ``is_user_counter``.
        """
        return f"{self.counter_prefix}:{_glob_literal(user_id)}:*"

    def is_user_counter(self, key: str, user_id: str, scopes: Collection[str]) -> bool:
        """True only for ``{prefix}:{user_id}:{scope}:{bucket}`` with a known scope."""
        prefix = f"{self.counter_prefix}:{user_id}:"
        if not key.startswith(prefix):
            return False
        scope, sep, bucket = key[len(prefix):].rpartition(":")
        if not sep or scope not in scopes:
            return False
        if bucket == BURST_SUFFIX:
            return scope != GLOBAL_SCOPE
        return _BUCKET.fullmatch(bucket) is not None

    def global_counter_pattern(self) -> str:
        return f"{self.counter_prefix}:*:{GLOBAL_SCOPE}:*"

    def user_from_global_key(self, key: str) -> str:
        """Extract the user id from a global counter key."""
        rest = key[len(self.counter_prefix) + 1:]
        return rest.rsplit(f":{GLOBAL_SCOPE}:", 1)[0]

    def analytics_key(self, user_id: str, day: date) -> str:
        return f"{self.analytics_prefix}:{user_id}:{day.isoformat()}"

    def analytics_pattern(self, day: date) -> str:
        return f"{self.analytics_prefix}:*:{day.isoformat()}"

    def violations_key(self, user_id: str, day: date) -> str:
        return f"{self.violations_prefix}:{user_id}:{day.isoformat()}"
