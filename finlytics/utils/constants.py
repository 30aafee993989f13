"""
Analytics constants.
"""

from enum import Enum


class Severity(str, Enum):
    """Anomaly and risk severities."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}

WEEKDAY_NAMES = [
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December"
]

# Scenario probabilities: optimistic, realistic, pessimistic
SCENARIO_PROBABILITIES = {
    "optimistic": 0.2,
    "realistic": 0.6,
    "pessimistic": 0.2,
}

# Weekly seasonality period in days
WEEKLY_PERIOD = 7

DEFAULT_SMOOTHING_ALPHA = 0.3
