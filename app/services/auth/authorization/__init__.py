"""
Authorization for the platform.

A single base role per identity plus additive, curator-only capabilities,
resolved to permissions through static tables. API keys carry a snapshot of
the permissions their owner held when the key was issued.
"""

from .api_keys import APIKeyService
from .decorators import (
    authenticate,
    authenticate_enrollment,
    require,
    require_capability,
    require_ownership_or_permission,
    require_role,
)
from .permissions import (
    ALL_PERMISSIONS,
    BASE_ROLE_PERMISSIONS,
    CAPABILITY_PERMISSIONS,
    Permission,
    UsageTier,
    permissions_for,
    usage_tier,
)
from .rbac import PermissionResolver, permission_resolver

__all__ = [
    # Core services
    "PermissionResolver",
    "permission_resolver",
    "APIKeyService",

    # Static tables
    "Permission",
    "ALL_PERMISSIONS",
    "BASE_ROLE_PERMISSIONS",
    "CAPABILITY_PERMISSIONS",
    "UsageTier",
    "permissions_for",
    "usage_tier",

    # Guards
    "authenticate",
    "authenticate_enrollment",
    "require",
    "require_role",
    "require_capability",
    "require_ownership_or_permission",
]
