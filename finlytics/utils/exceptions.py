"""
Custom exceptions for the analytics core.
Callers map these to transport-level responses using `code` and `status_code`.
"""

from typing import List, Optional


class AppException(Exception):
    """Base exception for all application exceptions."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[List[str]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []
        super().__init__(self.message)


class ValidationError(AppException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details=details
        )


class InsufficientDataError(AppException):
    """Raised when an analysis does not have the minimum history it needs."""

    def __init__(
        self,
        message: str = "Insufficient historical data",
        required: Optional[int] = None,
        available: Optional[int] = None
    ):
        self.required = required
        self.available = available

        details = []
        if required is not None:
            details.append(f"Required data points: {required}")
        if available is not None:
            details.append(f"Available data points: {available}")

        super().__init__(
            message=message,
            code="INSUFFICIENT_DATA",
            status_code=422,
            details=details
        )


class DatabaseError(AppException):
    """Raised when the transaction store cannot be read."""

    def __init__(
        self,
        message: str = "Database operation failed",
        code: str = "DATABASE_ERROR",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=500,
            details=details
        )
