"""
Request and review workflow schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.domain.enums import BaseRole, Capability, RequestKind, RequestStatus, ResourceStatus


class CapabilityRequestCreate(BaseModel):
    kind: RequestKind
    requested_role: Optional[BaseRole] = None
    requested_capabilities: List[Capability] = Field(default_factory=list)
    justification: str = Field(..., min_length=1, max_length=4000)

    @model_validator(mode="after")
    def check_requested_value(self) -> "CapabilityRequestCreate":
        if self.kind == RequestKind.BASE_ROLE and self.requested_role is None:
            raise ValueError("requested_role is required for base_role requests")
        if self.kind == RequestKind.CAPABILITY and not self.requested_capabilities:
            raise ValueError("requested_capabilities is required for capability requests")
        return self


class CapabilityRequestDecision(BaseModel):
    """Administrator decision; a granted subset records partial approval."""
    notes: Optional[str] = Field(None, max_length=4000)
    granted_capabilities: Optional[List[Capability]] = None


class CapabilityRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    identity_id: UUID
    kind: RequestKind
    requested_role: Optional[BaseRole] = None
    requested_capabilities: List[Capability]
    granted_role: Optional[BaseRole] = None
    granted_capabilities: List[Capability]
    justification: str
    status: RequestStatus
    reviewer_id: Optional[UUID] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = None
    version: int
    created_at: datetime


class ResourceState(BaseModel):
    """
    Review-relevant view of a collaborator resource.

    Accepted by the permission resolver wherever a mapped resource is.
    """
    id: Optional[UUID] = None
    creator_id: UUID
    status: ResourceStatus
    is_day_zero: bool = False
