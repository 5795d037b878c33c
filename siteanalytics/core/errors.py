# ==============================================================================
# Analytics Errors
# ==============================================================================
"""
Structured error types with machine-readable codes.

Validation failures are raised as AnalyticsError before any storage call.
Storage failures are not wrapped here; they propagate as-is.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    PROJECT_REQUIRED = "PROJECT_REQUIRED"
    MISSING_FIELDS = "MISSING_FIELDS"
    INVALID_BODY = "INVALID_BODY"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    INVALID_METRIC = "INVALID_METRIC"
    INVALID_GROUP_BY = "INVALID_GROUP_BY"
    INVALID_FILTER_OP = "INVALID_FILTER_OP"
    INVALID_PROPERTY_KEY = "INVALID_PROPERTY_KEY"
    QUERY_FAILED = "QUERY_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AnalyticsError(Exception):
    """
    Caller-facing analytics failure.

    Attributes:
        code: ErrorCode identifying the failure
        message: Human-readable explanation
        status: HTTP-equivalent status code (400 for validation failures)
    """

    def __init__(self, code: ErrorCode, message: str, status: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_response(self) -> dict:
        return error_response(self.code, self.message)


def error_response(code: ErrorCode | str, message: str) -> dict:
    """Build the error body an outer transport sends back to the caller."""
    return {"error": ErrorCode(code).value, "message": message}
