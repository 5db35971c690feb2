"""
Enumerations shared by the persistence, service and API layers.
"""
from enum import Enum


class BaseRole(str, Enum):
    """Singular coarse-grained tier of an identity."""
    ADMINISTRATOR = "administrator"
    CURATOR = "curator"
    EXPLORATOR = "explorator"


class Capability(str, Enum):
    """Additive grants, only meaningful under the curator base role."""
    AGENT_ACCESS = "agent_access"
    ANALYTICS_ACCESS = "analytics_access"
    REVIEWER_STATUS = "reviewer_status"


class IdentityStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class APIKeyStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class RequestKind(str, Enum):
    BASE_ROLE = "base_role"
    CAPABILITY = "capability"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ResourceStatus(str, Enum):
    """Review lifecycle of collaborator-owned content."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class AuthMethod(str, Enum):
    """How the caller proved who they are."""
    ACCESS_TOKEN = "access_token"
    API_KEY = "api_key"
    ENROLLMENT_TOKEN = "enrollment_token"
    REFRESH_TOKEN = "refresh_token"
    OAUTH = "oauth"
    SYSTEM = "system"


class TokenFamilyRevocation(str, Enum):
    LOGOUT = "logout"
    REUSE_DETECTED = "reuse_detected"
    IDENTITY_SUSPENDED = "identity_suspended"
    IDENTITY_INACTIVE = "identity_inactive"
    ADMINISTRATIVE = "administrative"
