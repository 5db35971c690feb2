"""
Custom exceptions for the platform identity service.
"""
from enum import Enum
from typing import Any, Dict, Optional


class AuthFailureReason(str, Enum):
    """Why a credential was refused."""
    EXPIRED = "expired"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    REUSED = "reused"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    MISSING = "missing"


class PlatformException(Exception):
    """Base exception for all platform identity exceptions."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationFailed(PlatformException):
    """Bad, expired, malformed or replayed credential."""

    def __init__(self, reason: AuthFailureReason, message: Optional[str] = None):
        self.reason = AuthFailureReason(reason)
        super().__init__(
            message or f"Authentication failed: {self.reason.value}",
            status_code=401,
            details={"reason": self.reason.value},
        )


class AuthorizationDenied(PlatformException):
    """Role, capability or ownership insufficient."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        permission: Optional[str] = None,
    ):
        self.permission = permission
        details = {"missing_permission": permission} if permission else {}
        super().__init__(message, status_code=403, details=details)


class SelfReviewDenied(AuthorizationDenied):
    """A reviewer attempted to decide on a resource they created."""

    def __init__(self, message: str = "Reviewing your own resource is not allowed"):
        super().__init__(message)
        self.details["self_review"] = True


class RateLimited(PlatformException):
    """Rate limit exceeded exception."""

    def __init__(
        self,
        retry_after: int,
        message: str = "Rate limit exceeded",
        window: Optional[str] = None,
    ):
        self.retry_after = retry_after
        details: Dict[str, Any] = {"retry_after": retry_after}
        if window:
            details["window"] = window
        super().__init__(message, status_code=429, details=details)


class WorkflowConflict(PlatformException):
    """Transition invalid for the current state, or a concurrent decision won."""

    def __init__(
        self,
        message: str = "The record changed or is not in a state that allows this transition",
        current_status: Optional[str] = None,
    ):
        details = {"current_status": current_status} if current_status else {}
        super().__init__(message, status_code=409, details=details)


class NotFoundError(PlatformException):
    """Resource not found exception."""

    def __init__(self, resource: str, resource_id: Any):
        message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, status_code=404, details={"resource": resource})


class ValidationError(PlatformException):
    """Validation error exception."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, status_code=422, details=details)


class ExternalServiceError(PlatformException):
    """External service error exception."""

    def __init__(self, service: str, message: str):
        full_message = f"External service error ({service}): {message}"
        super().__init__(full_message, status_code=503, details={"service": service})
