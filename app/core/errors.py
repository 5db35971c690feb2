"""
Standardized error message catalog.

Maps the exception taxonomy onto stable error codes so every collaborator
surface renders failures the same way.
"""
from enum import Enum
from typing import Dict, Optional

from app.core.exceptions import (
    AuthenticationFailed,
    AuthFailureReason,
    AuthorizationDenied,
    ExternalServiceError,
    NotFoundError,
    PlatformException,
    RateLimited,
    SelfReviewDenied,
    ValidationError,
    WorkflowConflict,
)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication Errors (AUTH_*)
    AUTH_INVALID_TOKEN = "AUTH_001"
    AUTH_TOKEN_EXPIRED = "AUTH_002"
    AUTH_REFRESH_TOKEN_REUSED = "AUTH_003"
    AUTH_SESSION_REVOKED = "AUTH_004"
    AUTH_INVALID_API_KEY = "AUTH_005"
    AUTH_ACCOUNT_INACTIVE = "AUTH_006"
    AUTH_CREDENTIALS_MISSING = "AUTH_007"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_008"
    AUTH_SELF_REVIEW = "AUTH_009"

    # Validation Errors (VAL_*)
    VAL_INVALID_INPUT = "VAL_001"

    # Security Errors (SEC_*)
    SEC_RATE_LIMIT_EXCEEDED = "SEC_001"

    # Business Logic Errors (BUS_*)
    BUS_RESOURCE_NOT_FOUND = "BUS_001"
    BUS_WORKFLOW_CONFLICT = "BUS_002"

    # System Errors (SYS_*)
    SYS_INTERNAL_ERROR = "SYS_001"
    SYS_EXTERNAL_SERVICE_ERROR = "SYS_002"


class ErrorMessages:
    """Centralized error message definitions."""

    _messages: Dict[ErrorCode, str] = {
        ErrorCode.AUTH_INVALID_TOKEN: "Invalid authentication token",
        ErrorCode.AUTH_TOKEN_EXPIRED: "Your session has expired. Please log in again",
        ErrorCode.AUTH_REFRESH_TOKEN_REUSED: "This session has been terminated. Please log in again",
        ErrorCode.AUTH_SESSION_REVOKED: "This session has been revoked",
        ErrorCode.AUTH_INVALID_API_KEY: "Invalid API key",
        ErrorCode.AUTH_ACCOUNT_INACTIVE: "This account is not active",
        ErrorCode.AUTH_CREDENTIALS_MISSING: "Authentication required",
        ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: "You don't have permission to perform this action",
        ErrorCode.AUTH_SELF_REVIEW: "You cannot review a resource you created",
        ErrorCode.VAL_INVALID_INPUT: "Invalid input provided",
        ErrorCode.SEC_RATE_LIMIT_EXCEEDED: "Too many requests. Please try again later",
        ErrorCode.BUS_RESOURCE_NOT_FOUND: "Requested resource not found",
        ErrorCode.BUS_WORKFLOW_CONFLICT: "The record was changed by someone else or cannot make this transition",
        ErrorCode.SYS_INTERNAL_ERROR: "An internal error occurred. Please try again later",
        ErrorCode.SYS_EXTERNAL_SERVICE_ERROR: "External service is temporarily unavailable",
    }

    _auth_reason_codes: Dict[AuthFailureReason, ErrorCode] = {
        AuthFailureReason.EXPIRED: ErrorCode.AUTH_TOKEN_EXPIRED,
        AuthFailureReason.MALFORMED: ErrorCode.AUTH_INVALID_TOKEN,
        AuthFailureReason.BAD_SIGNATURE: ErrorCode.AUTH_INVALID_TOKEN,
        AuthFailureReason.REUSED: ErrorCode.AUTH_REFRESH_TOKEN_REUSED,
        AuthFailureReason.REVOKED: ErrorCode.AUTH_SESSION_REVOKED,
        AuthFailureReason.NOT_FOUND: ErrorCode.AUTH_INVALID_API_KEY,
        AuthFailureReason.INACTIVE: ErrorCode.AUTH_ACCOUNT_INACTIVE,
        AuthFailureReason.MISSING: ErrorCode.AUTH_CREDENTIALS_MISSING,
    }

    @classmethod
    def get(cls, code: ErrorCode) -> str:
        """Get error message for a given error code."""
        return cls._messages.get(code, "An error occurred")

    @classmethod
    def code_for(cls, exc: PlatformException) -> ErrorCode:
        """Resolve the catalog code for an exception instance."""
        if isinstance(exc, AuthenticationFailed):
            return cls._auth_reason_codes.get(exc.reason, ErrorCode.AUTH_INVALID_TOKEN)
        if isinstance(exc, SelfReviewDenied):
            return ErrorCode.AUTH_SELF_REVIEW
        if isinstance(exc, AuthorizationDenied):
            return ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS
        if isinstance(exc, RateLimited):
            return ErrorCode.SEC_RATE_LIMIT_EXCEEDED
        if isinstance(exc, WorkflowConflict):
            return ErrorCode.BUS_WORKFLOW_CONFLICT
        if isinstance(exc, NotFoundError):
            return ErrorCode.BUS_RESOURCE_NOT_FOUND
        if isinstance(exc, ValidationError):
            return ErrorCode.VAL_INVALID_INPUT
        if isinstance(exc, ExternalServiceError):
            return ErrorCode.SYS_EXTERNAL_SERVICE_ERROR
        return ErrorCode.SYS_INTERNAL_ERROR


class ErrorResponse:
    """Standardized error response structure."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[Dict] = None,
    ):
        self.code = code
        self.message = message or ErrorMessages.get(code)
        self.details = details or {}

    def to_dict(self) -> Dict:
        """Convert to dictionary for API response."""
        response = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }

        if self.details:
            response["error"]["details"] = self.details

        return response

    @classmethod
    def from_exception(cls, exc: PlatformException) -> "ErrorResponse":
        """Build a response from a platform exception, keeping its message verbatim."""
        return cls(
            code=ErrorMessages.code_for(exc),
            message=exc.message,
            details=exc.details,
        )
