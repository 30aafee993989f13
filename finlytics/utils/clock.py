"""
Wall-clock helpers.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, matching query and sample dates."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
