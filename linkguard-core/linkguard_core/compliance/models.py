"""
Compliance Models
=================
Derived compliance assessments. Never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List


class ComplianceLevel(str, Enum):
    COMPLIANT = "COMPLIANT"
    WARNING = "WARNING"
    VIOLATION = "VIOLATION"


@dataclass
class SafetyMetrics:
    """Behavioral sub-scores, each 0-100 (higher is safer)."""
    velocity_score: int = 100
    pattern_score: int = 100
    compliance_history: int = 100

    def to_dict(self) -> Dict[str, int]:
        return {
            "velocity_score": self.velocity_score,
            "pattern_score": self.pattern_score,
            "compliance_history": self.compliance_history,
        }


@dataclass
class ComplianceStatus:
    """Advisory risk assessment for one user."""
    status: ComplianceLevel
    score: int
    recommendations: List[str]
    risk_factors: List[str]
    next_allowed_action: datetime
    safety_metrics: SafetyMetrics
    time_pattern_risk: float = 0.0

    @property
    def allows_automation(self) -> bool:
        return self.status == ComplianceLevel.COMPLIANT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "score": self.score,
            "recommendations": self.recommendations,
            "risk_factors": self.risk_factors,
            "next_allowed_action": self.next_allowed_action.isoformat(),
            "safety_metrics": self.safety_metrics.to_dict(),
            "time_pattern_risk": self.time_pattern_risk,
        }


@dataclass
class ComplianceReport:
    """Aggregate compliance across a sample of active users."""
    total_users: int
    sampled_users: int
    breakdown: Dict[str, int] = field(default_factory=lambda: {
        level.value: 0 for level in ComplianceLevel
    })
    top_risk_factors: List[Dict[str, Any]] = field(default_factory=list)
    average_score: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_users": self.total_users,
            "sampled_users": self.sampled_users,
            "compliance_breakdown": dict(self.breakdown),
            "top_risk_factors": list(self.top_risk_factors),
            "average_compliance_score": self.average_score,
        }
