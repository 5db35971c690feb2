"""
Domain schemas for the platform identity service.
"""

from .api_key import APIKeyCreate, APIKeyIssued, APIKeyRead
from .audit import AuditEntryRead, AuditPage, AuditQuery
from .auth import (
    AccessClaims,
    ClientMeta,
    LoginResponse,
    Principal,
    PrincipalResponse,
    RefreshClaims,
    SessionInfo,
    TokenPair,
    TokenRefresh,
)
from .identity import IdentityActivate, IdentityRead
from .workflow import (
    CapabilityRequestCreate,
    CapabilityRequestDecision,
    CapabilityRequestRead,
    ResourceState,
)

__all__ = [
    # Auth schemas
    "AccessClaims",
    "RefreshClaims",
    "TokenPair",
    "TokenRefresh",
    "ClientMeta",
    "Principal",
    "PrincipalResponse",
    "SessionInfo",
    "LoginResponse",

    # Identity schemas
    "IdentityRead",
    "IdentityActivate",

    # API key schemas
    "APIKeyCreate",
    "APIKeyRead",
    "APIKeyIssued",

    # Workflow schemas
    "CapabilityRequestCreate",
    "CapabilityRequestDecision",
    "CapabilityRequestRead",
    "ResourceState",

    # Audit schemas
    "AuditQuery",
    "AuditEntryRead",
    "AuditPage",
]
