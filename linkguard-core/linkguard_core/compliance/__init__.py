"""
Compliance Scoring Module for LinkGuard Core
============================================
Risk scoring that gates automation features.
"""

from .models import ComplianceLevel, ComplianceReport, ComplianceStatus, SafetyMetrics
from .patterns import (
    history_score,
    pattern_score,
    time_pattern_risk,
    velocity_score,
)
from .scorer import ComplianceScorer

__all__ = [
    # Models
    "ComplianceLevel",
    "ComplianceReport",
    "ComplianceStatus",
    "SafetyMetrics",
    # Patterns
    "history_score",
    "pattern_score",
    "time_pattern_risk",
    "velocity_score",
    # Scorer
    "ComplianceScorer",
]
