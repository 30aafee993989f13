"""
Tests for wall-clock helpers.
"""
from datetime import datetime, timedelta, timezone

import pytest

from finlytics.utils.clock import utc_now


@pytest.mark.unit
class TestClock:
    """Test the UTC clock."""

    def test_utc_now_is_naive_utc(self):
        """Test the timestamp is naive and tracks UTC."""
        reference = datetime.now(timezone.utc).replace(tzinfo=None)

        now = utc_now()

        assert now.tzinfo is None
        assert abs(now - reference) < timedelta(seconds=5)
