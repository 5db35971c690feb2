"""
API key schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.enums import APIKeyStatus


class APIKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class APIKeyRead(BaseModel):
    """API key metadata; never includes the secret."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    key_prefix: str
    scopes: List[str]
    status: APIKeyStatus
    expires_at: datetime
    rate_limit_per_minute: int
    rate_limit_per_day: int
    last_used_at: Optional[datetime] = None
    usage_count: int
    created_at: datetime
    replaced_by_id: Optional[UUID] = None


class APIKeyIssued(BaseModel):
    """Returned once at creation; the plaintext key is not retrievable later."""
    key: str
    api_key: APIKeyRead
