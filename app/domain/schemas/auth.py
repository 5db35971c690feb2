"""
Authentication schemas.
"""
from datetime import datetime
from typing import FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.enums import AuthMethod, BaseRole, Capability, IdentityStatus


class TokenPair(BaseModel):
    """Access and refresh token pair."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class TokenRefresh(BaseModel):
    """Token refresh / logout request schema."""
    refresh_token: str


class AccessClaims(BaseModel):
    """Verified access token claims."""
    sub: str  # Identity ID
    email: str
    role: Optional[BaseRole] = None
    capabilities: List[Capability] = Field(default_factory=list)
    type: str
    fid: str  # Token family ID
    iat: int
    exp: int
    nbf: Optional[int] = None
    iss: Optional[str] = None
    jti: str


class RefreshClaims(BaseModel):
    """Verified refresh token claims."""
    sub: str
    fid: str
    type: str
    iat: int
    exp: int
    iss: Optional[str] = None
    jti: str


class EnrollmentClaims(BaseModel):
    """Verified enrollment token claims."""
    sub: str
    type: str
    iat: int
    exp: int
    nbf: Optional[int] = None
    iss: Optional[str] = None
    jti: str


class ClientMeta(BaseModel):
    """Network/client metadata attached to sessions and audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


class Principal(BaseModel):
    """The authenticated caller of a request."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    email: str
    base_role: Optional[BaseRole] = None
    capabilities: FrozenSet[Capability] = frozenset()
    status: IdentityStatus = IdentityStatus.ACTIVE
    auth_method: AuthMethod
    permissions: FrozenSet[str] = frozenset()
    api_key_id: Optional[UUID] = None
    family_id: Optional[str] = None
    token_id: Optional[str] = None
    # Ceilings stored on the API key, when authenticated by one
    rate_limit_per_minute: Optional[int] = None
    rate_limit_per_day: Optional[int] = None

    @property
    def role(self) -> Optional[BaseRole]:
        return self.base_role

    @property
    def capability_set(self) -> FrozenSet[Capability]:
        return self.capabilities


class SessionInfo(BaseModel):
    """An active token family."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    last_rotated_at: Optional[datetime] = None
    expires_at: datetime
    rotation_count: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class OAuthCallback(BaseModel):
    """Authorization code returned by the identity provider."""
    code: str
    state: Optional[str] = None
    redirect_uri: Optional[str] = None


class AuthorizationURL(BaseModel):
    authorization_url: str
    state: str


class PrincipalResponse(BaseModel):
    """Caller information for ``/auth/me``."""
    id: UUID
    email: str
    base_role: Optional[BaseRole]
    capabilities: List[Capability]
    permissions: List[str]
    auth_method: AuthMethod


class LoginResponse(BaseModel):
    """
    Outcome of a provider login.

    Active identities get a token pair. Pending identities get only an
    enrollment token, good for filing a base-role request.
    """
    identity_id: UUID
    status: IdentityStatus
    tokens: Optional[TokenPair] = None
    enrollment_token: Optional[str] = None
