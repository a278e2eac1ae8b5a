"""
Compliance Scorer
=================
Advisory 0-100 risk score per user, derived fresh from usage counters,
outcome logs and the violation history.

Components:
- Quota utilization (global, connection and invitation endpoints)
- Safety metrics: velocity, hourly pattern, violation history
- Time pattern risk from inter-request spacing
"""

from collections import Counter
from datetime import timedelta
from typing import Dict, List, Tuple

import structlog

from ..ledger import ComplianceLedger
from ..rate_limit.limiter import RateLimiter
from ..windows import Clock, utc_now
from . import patterns
from .models import ComplianceLevel, ComplianceReport, ComplianceStatus, SafetyMetrics

logger = structlog.get_logger(__name__)


class ComplianceScorer:
    """
    Computes compliance status per user.

    Scoring Logic (base: 100 points, floor 0):
    - Global daily usage > 80%:        -30
    - Global hourly usage > 80%:       -20
    - Connection daily usage > 70%:    -25
    - Velocity score < 70:             -15
    - Pattern score < 60:              -10
    - Compliance history < 80:         -20
    - Invitation daily usage > 50%:    -15
    - Time pattern risk > 0.7:         -10

    The score is advisory: callers decide whether to refuse an action.
    """

    COMPLIANT_THRESHOLD = 70
    VIOLATION_THRESHOLD = 50
    CAUTION_THRESHOLD = 85

    def __init__(
        self,
        limiter: RateLimiter,
        ledger: ComplianceLedger,
        clock: Clock = utc_now,
    ):
        self.limiter = limiter
        self.ledger = ledger
        self.clock = clock

    async def get_compliance_status(self, user_id: str) -> ComplianceStatus:
        """Score a user's recent behavior."""
        usage = await self.limiter.get_usage_statistics(user_id)
        now = self.clock()

        score = 100
        recommendations: List[str] = []
        risk_factors: List[str] = []

        def penalise(points: int, risk: str, recommendation: str) -> None:
            nonlocal score
            score -= points
            risk_factors.append(risk)
            recommendations.append(recommendation)

        global_usage = usage.global_usage
        if global_usage.daily_ratio > 0.8:
            penalise(30, "High daily API usage", "Reduce API calls for today")
        if global_usage.hourly_ratio > 0.8:
            penalise(20, "High hourly API usage", "Wait before making more requests")

        if any(e.daily_ratio > 0.7 for e in usage.find("connection")):
            penalise(25, "High connection request usage", "Pause connection requests for today")

        metrics, time_risk = await self.safety_metrics(user_id)
        if metrics.velocity_score < 70:
            penalise(
                15,
                "Rapid increase in API usage detected",
                "Slow down API request rate to maintain compliance",
            )
        if metrics.pattern_score < 60:
            penalise(10, "Unusual usage patterns detected", "Review automation scripts for compliance")
        if metrics.compliance_history < 80:
            penalise(
                20,
                "Poor historical compliance record",
                "Implement stricter rate limiting controls",
            )

        if any(e.daily_ratio > 0.5 for e in usage.find("invitation")):
            penalise(
                15,
                "High connection invitation rate",
                "Reduce connection requests to avoid account restrictions",
            )

        if time_risk > 0.7:
            penalise(
                10,
                "Suspicious time-based usage patterns",
                "Vary activity timing to appear more natural",
            )

        score = max(0, score)
        status = self._level(score)
        next_allowed_action = now + self._cooldown(score)

        logger.info(
            "compliance_status_computed",
            user_id=user_id,
            score=score,
            status=status.value,
            risk_factor_count=len(risk_factors),
        )

        return ComplianceStatus(
            status=status,
            score=score,
            recommendations=recommendations,
            risk_factors=risk_factors,
            next_allowed_action=next_allowed_action,
            safety_metrics=metrics,
            time_pattern_risk=time_risk,
        )

    async def safety_metrics(self, user_id: str) -> Tuple[SafetyMetrics, float]:
        """Velocity, pattern and history scores plus the time pattern risk."""
        today = self.clock().date()
        yesterday = today - timedelta(days=1)

        today_count, yesterday_count = await self.ledger.outcome_counts(
            user_id, [today, yesterday]
        )
        events = await self.ledger.outcomes_for_day(user_id, today)
        timestamps = [event.timestamp for event in events]
        violations = await self.ledger.violation_count(user_id)

        metrics = SafetyMetrics(
            velocity_score=patterns.velocity_score(today_count, yesterday_count),
            pattern_score=patterns.pattern_score(timestamps),
            compliance_history=patterns.history_score(violations),
        )
        return metrics, patterns.time_pattern_risk(timestamps)

    def _level(self, score: int) -> ComplianceLevel:
        if score < self.VIOLATION_THRESHOLD:
            return ComplianceLevel.VIOLATION
        if score < self.COMPLIANT_THRESHOLD:
            return ComplianceLevel.WARNING
        return ComplianceLevel.COMPLIANT

    def _cooldown(self, score: int) -> timedelta:
        if score < self.VIOLATION_THRESHOLD:
            return timedelta(hours=4)
        if score < self.COMPLIANT_THRESHOLD:
            return timedelta(hours=1)
        if score < self.CAUTION_THRESHOLD:
            return timedelta(minutes=15)
        return timedelta(0)

    async def get_compliance_report(self, sample_size: int = 100) -> ComplianceReport:
        """Aggregate compliance over up to ``sample_size`` active users."""
        users = await self.limiter.active_users()
        sample = users[:sample_size]

        report = ComplianceReport(total_users=len(users), sampled_users=len(sample))
        risk_counts: Dict[str, int] = Counter()
        total_score = 0

        for user_id in sample:
            status = await self.get_compliance_status(user_id)
            total_score += status.score
            report.breakdown[status.status.value] += 1
            risk_counts.update(status.risk_factors)

        if sample:
            report.average_score = round(total_score / len(sample))
        report.top_risk_factors = [
            {"factor": factor, "count": count}
            for factor, count in risk_counts.most_common(10)
        ]
        return report
