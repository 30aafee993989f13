"""
Tests for custom exceptions.
"""

import pytest

from finlytics.utils.exceptions import (
    AppException,
    DatabaseError,
    InsufficientDataError,
    ValidationError,
)


@pytest.mark.unit
class TestExceptions:
    """Test custom exceptions."""

    def test_app_exception_base(self):
        """Test base AppException."""
        exc = AppException(
            message="Test error",
            code="TEST_ERROR",
            status_code=400,
            details=["Detail 1", "Detail 2"]
        )

        assert str(exc) == "Test error"
        assert exc.message == "Test error"
        assert exc.code == "TEST_ERROR"
        assert exc.status_code == 400
        assert exc.details == ["Detail 1", "Detail 2"]

    def test_app_exception_defaults(self):
        """Test AppException with default values."""
        exc = AppException("Simple error")

        assert exc.message == "Simple error"
        assert exc.code == "UNKNOWN_ERROR"
        assert exc.status_code == 500
        assert exc.details == []

    def test_validation_error(self):
        """Test ValidationError."""
        exc = ValidationError("Unsupported model type: forecasting", details=["Supported model types: spending_prediction"])

        assert exc.message == "Unsupported model type: forecasting"
        assert exc.code == "VALIDATION_ERROR"
        assert exc.status_code == 422
        assert exc.details == ["Supported model types: spending_prediction"]

    def test_validation_error_defaults(self):
        """Test ValidationError with defaults."""
        exc = ValidationError()

        assert exc.message == "Validation error"
        assert exc.details == []

    def test_insufficient_data_error(self):
        """Test InsufficientDataError records the shortfall."""
        exc = InsufficientDataError("Need at least 30 days of data.", required=30, available=12)

        assert exc.code == "INSUFFICIENT_DATA"
        assert exc.status_code == 422
        assert exc.required == 30
        assert exc.available == 12
        assert exc.details == ["Required data points: 30", "Available data points: 12"]

    def test_insufficient_data_error_defaults(self):
        """Test InsufficientDataError with defaults."""
        exc = InsufficientDataError()

        assert exc.message == "Insufficient historical data"
        assert exc.details == []

    def test_database_error(self):
        """Test DatabaseError."""
        exc = DatabaseError("Failed to query transactions", code="QUERY_DOCUMENTS_ERROR", details=["timeout"])

        assert exc.code == "QUERY_DOCUMENTS_ERROR"
        assert exc.status_code == 500
        assert exc.details == ["timeout"]

    def test_exception_inheritance(self):
        """Test every error is an AppException."""
        for exc in (ValidationError(), InsufficientDataError(), DatabaseError()):
            assert isinstance(exc, AppException)
            assert isinstance(exc, Exception)
