"""
Global pytest configuration and fixtures.
"""

import os
from datetime import datetime

import pytest

from finlytics.config import Settings
from finlytics.infrastructure import InMemoryTransactionStore
from finlytics.models.financial import PredictiveQuery
from finlytics.services import HistoricalDataLoader, PredictiveAnalyticsService

TEST_USER_ID = "test_user_123"

# Every query in the suite starts here; history is seeded before this date.
QUERY_START = datetime(2024, 7, 1)
QUERY_END = datetime(2024, 7, 31)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Test settings configuration."""
    return Settings(
        app_name="finlytics-test",
        version="1.0.0-test",
        debug=True,
        environment="testing",

        # Logging
        log_level="DEBUG",
        log_format="console",

        # Historical windows
        prediction_lookback_days=365,
        trend_lookback_days=180,
        forecast_lookback_days=365,
        cash_flow_lookback_days=90,
        category_baseline_days=90,

        # Database
        firestore_project_id="test-project",
        firestore_database="(default)",
        use_firestore_emulator=True,
        firestore_emulator_host="localhost:8081"
    )


@pytest.fixture
def store() -> InMemoryTransactionStore:
    """Empty in-memory transaction store."""
    return InMemoryTransactionStore()


@pytest.fixture
def loader(store) -> HistoricalDataLoader:
    """Historical data loader over the in-memory store."""
    return HistoricalDataLoader(store)


@pytest.fixture
def service(store, test_settings) -> PredictiveAnalyticsService:
    """Predictive analytics service over the in-memory store."""
    return PredictiveAnalyticsService(store, test_settings)


@pytest.fixture
def query() -> PredictiveQuery:
    """Thirty-day query for the test user."""
    return PredictiveQuery(
        user_id=TEST_USER_ID,
        start_date=QUERY_START,
        end_date=QUERY_END
    )


@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


# Pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests (>1s)")
