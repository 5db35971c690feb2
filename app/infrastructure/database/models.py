"""
Database models for identities, credentials, requests and the audit trail.
"""
import uuid
from datetime import datetime, timezone
from typing import FrozenSet, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from app.domain.enums import (
    APIKeyStatus,
    BaseRole,
    Capability,
    IdentityStatus,
    RequestStatus,
    ResourceStatus,
)
from app.infrastructure.database.base import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that reads back as UTC on every backend."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value is not None and dialect.name == "sqlite":
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class TimestampMixin:
    """Mixin for created_at and updated_at."""
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Identity(Base, TimestampMixin):
    """A person known to the platform through an external identity provider."""
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider = Column(String(50), nullable=False)
    provider_subject = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)

    base_role = Column(String(50), nullable=True)
    capabilities = Column(JSONType, default=list, nullable=False)
    status = Column(String(50), default=IdentityStatus.PENDING_APPROVAL.value, nullable=False, index=True)

    login_count = Column(Integer, default=0, nullable=False)
    last_login_at = Column(UTCDateTime)

    token_families = relationship("TokenFamily", back_populates="identity", cascade="all, delete-orphan")
    api_keys = relationship("APIKey", back_populates="identity", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("provider", "provider_subject", name="uq_identity_provider_subject"),
    )

    @property
    def role(self) -> Optional[BaseRole]:
        return BaseRole(self.base_role) if self.base_role else None

    @property
    def capability_set(self) -> FrozenSet[Capability]:
        return frozenset(Capability(c) for c in (self.capabilities or []))

    @property
    def is_active(self) -> bool:
        return self.status == IdentityStatus.ACTIVE.value

    def normalize_capabilities(self) -> None:
        """Capabilities only survive under the curator base role."""
        if self.base_role != BaseRole.CURATOR.value:
            self.capabilities = []
        else:
            self.capabilities = sorted({Capability(c).value for c in (self.capabilities or [])})


class TokenFamily(Base):
    """The rotating chain of refresh tokens belonging to one login session."""
    __tablename__ = "token_family"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    identity_id = Column(Uuid, ForeignKey("identity.id"), nullable=False, index=True)

    # The single unused refresh-token id of the chain
    current_jti = Column(String(64), nullable=False)
    rotation_count = Column(Integer, default=0, nullable=False)

    revoked = Column(Boolean, default=False, nullable=False)
    revoked_reason = Column(String(50))
    revoked_at = Column(UTCDateTime)

    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    last_rotated_at = Column(UTCDateTime)

    ip_address = Column(String(45))
    user_agent = Column(String(500))

    identity = relationship("Identity", back_populates="token_families")

    __table_args__ = (
        Index("idx_token_family_identity_revoked", "identity_id", "revoked"),
    )


class APIKey(Base):
    """Opaque long-lived credential; only the hash of the secret is stored."""
    __tablename__ = "api_key"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    identity_id = Column(Uuid, ForeignKey("identity.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    key_prefix = Column(String(20), nullable=False)
    key_hash = Column(String(64), unique=True, nullable=False, index=True)

    # Snapshot taken at issuance
    scopes = Column(JSONType, default=list, nullable=False)

    status = Column(String(20), default=APIKeyStatus.ACTIVE.value, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    rate_limit_per_minute = Column(Integer, nullable=False)
    rate_limit_per_day = Column(Integer, nullable=False)

    last_used_at = Column(UTCDateTime)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    revoked_at = Column(UTCDateTime)
    replaced_by_id = Column(Uuid, nullable=True)

    identity = relationship("Identity", back_populates="api_keys")

    @hybrid_property
    def is_active(self) -> bool:
        return self.status == APIKeyStatus.ACTIVE.value


class CapabilityRequest(Base):
    """An identity's request for a base role or extra capabilities."""
    __tablename__ = "capability_request"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    identity_id = Column(Uuid, ForeignKey("identity.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)

    requested_role = Column(String(50))
    requested_capabilities = Column(JSONType, default=list, nullable=False)
    granted_role = Column(String(50))
    granted_capabilities = Column(JSONType, default=list, nullable=False)
    justification = Column(Text, nullable=False)

    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False, index=True)
    reviewer_id = Column(Uuid, ForeignKey("identity.id"), nullable=True)
    decided_at = Column(UTCDateTime)
    decision_notes = Column(Text)

    version = Column(Integer, default=1, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_capability_request_identity_status", "identity_id", "status"),
    )

    @property
    def is_decided(self) -> bool:
        return self.status != RequestStatus.PENDING.value


class AuditEntry(Base):
    """Append-only record of an authorization-gated action."""
    __tablename__ = "audit_entry"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(Uuid, nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100))
    resource_id = Column(String(255))
    component = Column(String(100), nullable=False, index=True)
    details = Column(JSONType, default=dict, nullable=False)

    ip_address = Column(String(45))
    user_agent = Column(String(500))
    request_id = Column(String(100))
    auth_method = Column(String(30))

    timestamp = Column(UTCDateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_audit_entry_resource", "resource_type", "resource_id"),
    )


class ReviewableMixin:
    """
    Status and review metadata embedded by every collaborator resource.

    Collaborators own their domain columns; the review workflow engine only
    reads and writes the columns declared here.
    """
    creator_id = Column(Uuid, nullable=False, index=True)
    status = Column(String(30), default=ResourceStatus.DRAFT.value, nullable=False)
    is_day_zero = Column(Boolean, default=False, nullable=False)

    reviewer_id = Column(Uuid, nullable=True)
    review_decision = Column(String(30))
    review_comments = Column(Text)
    submitted_at = Column(UTCDateTime)
    reviewed_at = Column(UTCDateTime)

    version = Column(Integer, default=1, nullable=False)
