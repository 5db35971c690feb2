"""
Identity schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.domain.enums import BaseRole, Capability, IdentityStatus


class IdentityRead(BaseModel):
    """Identity response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    display_name: str
    provider: str
    base_role: Optional[BaseRole] = None
    capabilities: List[Capability]
    status: IdentityStatus
    login_count: int
    last_login_at: Optional[datetime] = None
    created_at: datetime


class IdentityActivate(BaseModel):
    """Administrator decision promoting a pending identity."""
    base_role: BaseRole
