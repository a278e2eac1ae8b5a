"""
Compliance Ledger
=================
Append-only rolling logs of request outcomes and compliance violations.

Both logs are per-user, per-day Redis lists (newest first), bounded by
entry count and expired by TTL. Nothing else ever deletes entries.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog

from .store.base import CounterStore
from .windows import Clock, KeySchema, utc_now

logger = structlog.get_logger(__name__)

DAY_SECONDS = 86400


@dataclass
class OutcomeEvent:
    """One attempted upstream call."""
    user_id: str
    endpoint: str
    success: bool
    timestamp: datetime
    status_code: Optional[int] = None

    def to_json(self) -> str:
        return json.dumps({
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "status_code": self.status_code,
        })

    @classmethod
    def from_json(cls, raw: str) -> "OutcomeEvent":
        data = json.loads(raw)
        return cls(
            user_id=data.get("user_id", ""),
            endpoint=data["endpoint"],
            success=bool(data["success"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            status_code=data.get("status_code"),
        )

    @property
    def rate_limited(self) -> bool:
        return not self.success and self.status_code == 429


@dataclass
class ViolationRecord:
    """An explicitly reported compliance violation."""
    user_id: str
    type: str
    severity: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            "user_id": self.user_id,
            "type": self.type,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "ViolationRecord":
        data = json.loads(raw)
        return cls(
            user_id=data.get("user_id", ""),
            type=data["type"],
            severity=data.get("severity", "medium"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            details=data.get("details") or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.type,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


def _parse_all(raw_entries: List[str], parser) -> list:
    parsed = []
    for raw in raw_entries:
        try:
            parsed.append(parser(raw))
        except (ValueError, KeyError, TypeError):
            logger.debug("ledger_entry_skipped", entry=raw[:100])
    return parsed


class ComplianceLedger:
    """
    Client for the outcome and violation logs.

    Store errors propagate as ``StoreUnavailable``.
    """

    def __init__(
        self,
        store: CounterStore,
        keys: KeySchema,
        clock: Clock = utc_now,
        retention_days: int = 30,
        max_events: int = 1000,
        max_violations_per_day: int = 100,
    ):
        self.store = store
        self.keys = keys
        self.clock = clock
        self.ttl = retention_days * DAY_SECONDS
        self.retention_days = retention_days
        self.max_events = max_events
        self.max_violations_per_day = max_violations_per_day

    # Outcomes

    async def append_outcome(self, event: OutcomeEvent) -> None:
        key = self.keys.analytics_key(event.user_id, event.timestamp.date())
        await self.store.push_bounded(key, event.to_json(), self.max_events, self.ttl)

    async def outcomes_for_day(
        self, user_id: str, day: date, limit: Optional[int] = None
    ) -> List[OutcomeEvent]:
        end = -1 if limit is None else limit - 1
        raw = await self.store.list_range(self.keys.analytics_key(user_id, day), 0, end)
        return _parse_all(raw, OutcomeEvent.from_json)

    async def outcome_counts(self, user_id: str, days: List[date]) -> List[int]:
        return await self.store.list_lengths(
            [self.keys.analytics_key(user_id, day) for day in days]
        )

    async def sample_outcomes(self, max_users: int, max_events: int) -> List[OutcomeEvent]:
        """
        Newest events from a bounded set of recent per-user logs.

        Today's logs are sampled first, topped up from yesterday's.
        """
        today = self.clock().date()
        keys: List[str] = []
        for day in (today, today - timedelta(days=1)):
            if len(keys) >= max_users:
                break
            found = await self.store.scan_keys(
                self.keys.analytics_pattern(day), limit=max_users - len(keys)
            )
            keys.extend(found)

        events: List[OutcomeEvent] = []
        for key in keys:
            raw = await self.store.list_range(key, 0, max_events - 1)
            events.extend(_parse_all(raw, OutcomeEvent.from_json))
        return events

    # Violations

    async def record_violation(
        self, user_id: str, violation_type: str, details: Optional[Dict[str, Any]] = None
    ) -> ViolationRecord:
        details = dict(details or {})
        record = ViolationRecord(
            user_id=user_id,
            type=violation_type,
            severity=str(details.get("severity", "medium")),
            timestamp=self.clock(),
            details=details,
        )
        key = self.keys.violations_key(user_id, record.timestamp.date())
        await self.store.push_bounded(
            key, record.to_json(), self.max_violations_per_day, self.ttl
        )
        logger.warning(
            "compliance_violation_recorded",
            user_id=user_id,
            violation_type=violation_type,
            severity=record.severity,
        )
        return record

    def _violation_keys(self, user_id: str, days: int) -> List[str]:
        today = self.clock().date()
        return [
            self.keys.violations_key(user_id, today - timedelta(days=offset))
            for offset in range(days)
        ]

    async def violation_count(self, user_id: str, days: Optional[int] = None) -> int:
        """Violations recorded in the trailing ``days`` (default: retention)."""
        lengths = await self.store.list_lengths(
            self._violation_keys(user_id, days or self.retention_days)
        )
        return sum(lengths)

    async def list_violations(self, user_id: str, days: Optional[int] = None) -> List[ViolationRecord]:
        records: List[ViolationRecord] = []
        for key in self._violation_keys(user_id, days or self.retention_days):
            raw = await self.store.list_range(key)
            records.extend(_parse_all(raw, ViolationRecord.from_json))
        return records
