"""Enumerated fields of a triage classification."""

from enum import Enum


class ClassificationUrgency(str, Enum):
    """
    Urgency as reported by the classifier.

    Critical = safety hazard/major disruption; stored on the case as Urgent.
    """

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Complexity(str, Enum):
    SIMPLE = "Simple"  # < 1 hour
    MODERATE = "Moderate"  # 1-4 hours
    COMPLEX = "Complex"  # > 4 hours or multiple visits


class SafetyRisk(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TimeWindow(str, Enum):
    """Recommended appointment window for the repair."""

    SAME_DAY = "same_day"
    NEXT_BUSINESS_DAY = "next_business_day"
    MORNING = "morning"  # 8am-12pm
    AFTERNOON = "afternoon"  # 12pm-5pm
    EVENING = "evening"  # 5pm-8pm
    FLEXIBLE = "flexible"
