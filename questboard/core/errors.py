"""Error taxonomy and classification utilities.

Every failure the service can surface is a ``QuestboardError`` subclass carrying
its HTTP status and a stable error code. The interface layer renders them as
``{"success": false, ...}`` payloads.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel

from questboard.core.config import Constants


class ErrorCategory(Enum):
    """Categories of upstream failures seen while calling the vision model."""

    SERVICE_QUOTA_EXCEEDED = "service_quota_exceeded"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Request errors
    ERR_BAD_REQUEST = "ERR_BAD_REQUEST"
    ERR_UNAUTHORIZED = "ERR_UNAUTHORIZED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Verification errors
    ERR_VERIFICATION_REJECTED = "ERR_VERIFICATION_REJECTED"
    ERR_CLASSIFIER_UNAVAILABLE = "ERR_CLASSIFIER_UNAVAILABLE"
    ERR_QUOTA_EXHAUSTED = "ERR_QUOTA_EXHAUSTED"

    # Storage errors
    ERR_PERSISTENCE_FAILURE = "ERR_PERSISTENCE_FAILURE"

    # Generic errors
    ERR_RATE_LIMITED = "ERR_RATE_LIMITED"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error payload returned to API clients."""

    success: bool = False
    error: str
    code: str
    analysis: str | None = None
    details: str | None = None


class QuestboardError(Exception):
    """Base class for all errors surfaced by the service layer."""

    status_code: int = Constants.HTTP_SERVER_ERROR
    code: str = ErrorCode.ERR_UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> ErrorResponse:
        """Build the client-facing payload for this error."""
        return ErrorResponse(error=self.message, code=self.code)


class BadRequestError(QuestboardError):
    """Missing or malformed caller input."""

    status_code = Constants.HTTP_BAD_REQUEST
    code = ErrorCode.ERR_BAD_REQUEST
    severity = ErrorSeverity.LOW


class UnauthorizedError(QuestboardError):
    """Missing, invalid or expired bearer token."""

    status_code = Constants.HTTP_UNAUTHORIZED
    code = ErrorCode.ERR_UNAUTHORIZED
    severity = ErrorSeverity.LOW


class NotFoundError(QuestboardError):
    """Resource is absent or not owned by the caller (the two are indistinguishable)."""

    status_code = Constants.HTTP_NOT_FOUND
    code = ErrorCode.ERR_NOT_FOUND
    severity = ErrorSeverity.LOW


class VerificationRejectedError(QuestboardError):
    """The classifier did not accept the proof image."""

    status_code = Constants.HTTP_BAD_REQUEST
    code = ErrorCode.ERR_VERIFICATION_REJECTED
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, *, analysis: str) -> None:
        super().__init__(message)
        self.analysis = analysis

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.code, analysis=self.analysis)


class ClassifierUnavailableError(QuestboardError):
    """The vision model call failed, timed out, or returned no content."""

    status_code = Constants.HTTP_SERVER_ERROR
    code = ErrorCode.ERR_CLASSIFIER_UNAVAILABLE
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.code, details=self.details)


class QuotaExhaustedError(QuestboardError):
    """No retry chances left for the current period."""

    status_code = Constants.HTTP_FORBIDDEN
    code = ErrorCode.ERR_QUOTA_EXHAUSTED
    severity = ErrorSeverity.LOW


class PersistenceFailureError(QuestboardError):
    """The storage engine failed while serving a query."""

    status_code = Constants.HTTP_SERVER_ERROR
    code = ErrorCode.ERR_PERSISTENCE_FAILURE
    severity = ErrorSeverity.CRITICAL


PatternName = Literal["quota", "rate_limit", "auth", "network"]

_ERROR_PATTERNS: dict[PatternName, dict[str, Any]] = {
    "quota": {
        "phrases": [
            "quota exceeded",
            "insufficient credits",
            "credit limit",
            "credits exhausted",
            "out of credits",
            "402",
        ],
        "exception_types": set(),
    },
    "rate_limit": {
        "phrases": [
            "rate limit",
            "too many requests",
            "rate_limit_exceeded",
            "throttled",
            "429",
        ],
        "exception_types": set(),
    },
    "auth": {
        "phrases": [
            "authentication failed",
            "invalid api key",
            "unauthorized",
            "invalid token",
            "401",
        ],
        "exception_types": {"AuthenticationError", "PermissionError"},
    },
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "timed out",
            "network",
            "503",
            "502",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError", "ConnectError", "ReadTimeout"},
    },
}


def _match_error_pattern(*, error_str: str, exception_type: str, pattern_type: PatternName) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_upstream_error(exception: BaseException) -> tuple[ErrorCategory, str]:
    """Classify a vision-model failure and return a user-friendly message.

    Args:
        exception: The exception raised while calling the model

    Returns:
        Tuple of (ErrorCategory, user_friendly_message)
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="quota"):
        return (
            ErrorCategory.SERVICE_QUOTA_EXCEEDED,
            "The verification service quota has been exceeded. Please try again later.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="rate_limit"):
        return (
            ErrorCategory.RATE_LIMIT_EXCEEDED,
            "The verification service is busy. Please wait a moment and resubmit.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return (
            ErrorCategory.AUTHENTICATION_FAILED,
            "The verification service rejected our credentials. Please contact support.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return (
            ErrorCategory.NETWORK_ERROR,
            "Could not reach the verification service. Please resubmit your proof.",
        )

    return (
        ErrorCategory.UNKNOWN,
        "Verification failed unexpectedly. Please resubmit your proof later.",
    )
