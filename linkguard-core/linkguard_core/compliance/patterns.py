"""
Behavioral Pattern Analysis
===========================
Heuristics that flag automated-looking request behavior.
"""

import math
from datetime import datetime
from typing import List, Sequence


def velocity_score(today_count: int, yesterday_count: int) -> int:
    """
    Penalise sudden growth in daily volume.

    100 unless today exceeds yesterday by more than 100%, then
    ``100 - increase * 50`` (floored at 0).
    """
    if yesterday_count <= 0:
        return 100
    increase = (today_count - yesterday_count) / yesterday_count
    if increase > 1.0:
        return round(max(0.0, 100 - increase * 50))
    return 100


def hourly_distribution(timestamps: Sequence[datetime]) -> List[int]:
    distribution = [0] * 24
    for timestamp in timestamps:
        distribution[timestamp.hour] += 1
    return distribution


def pattern_score(timestamps: Sequence[datetime]) -> int:
    """Penalise activity packed into few hours or one dominant hour."""
    score = 100
    total = len(timestamps)
    distribution = hourly_distribution(timestamps)

    active_hours = sum(1 for count in distribution if count > 0)
    if active_hours < 3 and total > 10:
        score -= 30

    if total > 5 and max(distribution) > total * 0.5:
        score -= 20

    return score


def history_score(violation_count: int) -> int:
    return max(0, 100 - violation_count * 15)


def time_pattern_risk(timestamps: Sequence[datetime], min_samples: int = 5) -> float:
    """
    Risk (0-1) that request spacing is machine generated.

    Too-regular spacing (low coefficient of variation) or sub-30-second
    average spacing scores high. Fewer than ``min_samples`` events gives 0.
    """
    if len(timestamps) < min_samples:
        return 0.0

    ordered = sorted(timestamps)
    intervals = [
        (later - earlier).total_seconds()
        for earlier, later in zip(ordered, ordered[1:])
    ]

    mean = sum(intervals) / len(intervals)
    if mean <= 0:
        return 0.8

    std_dev = math.sqrt(sum((interval - mean) ** 2 for interval in intervals) / len(intervals))
    coefficient_of_variation = std_dev / mean

    if coefficient_of_variation < 0.2 and len(intervals) > 10:
        return 0.8
    if coefficient_of_variation < 0.4 and len(intervals) > 5:
        return 0.6
    if mean < 30:
        return 0.7
    return 0.3
