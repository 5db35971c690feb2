"""
OAuth State Manager

Handles one-time state tokens for OAuth flows to prevent CSRF attacks.
Uses Redis for distributed state storage.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, Field

from app.infrastructure.cache import get_redis_client

logger = structlog.get_logger(__name__)


class OAuthStateData(BaseModel):
    """OAuth state data structure."""
    state: str = Field(..., description="Unique state token")
    provider: str
    redirect_uri: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime

    # Security
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class OAuthStateManager:
    """Manages OAuth state tokens for CSRF protection."""

    def __init__(self, state_ttl_seconds: int = 600, client: Optional[redis.Redis] = None):
        self.state_ttl = state_ttl_seconds
        self.state_prefix = "oauth:state"
        self._client = client

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis_client()
        return self._client

    async def create_state(
        self,
        provider: str,
        redirect_uri: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> OAuthStateData:
        """
        Create and store OAuth state.

        Args:
            provider: Identity provider name
            redirect_uri: OAuth redirect URI
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            OAuth state data
        """
        state = secrets.token_urlsafe(32)
        state_data = OAuthStateData(
            state=state,
            provider=provider,
            redirect_uri=redirect_uri,
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=self.state_ttl),
        )

        client = await self._redis()
        await client.setex(self._key(state), self.state_ttl, state_data.model_dump_json())

        logger.info(
            "oauth_state_created",
            provider=provider,
            state=state[:8],  # Log only first 8 chars
        )
        return state_data

    async def consume_state(self, state: str, provider: Optional[str] = None) -> Optional[OAuthStateData]:
        """
        Validate and consume OAuth state (one-time use).

        Returns:
            OAuth state data if valid, None otherwise
        """
        client = await self._redis()
        data = await client.getdel(self._key(state))
        if not data:
            logger.warning("oauth_state_not_found", state=state[:8])
            return None

        state_data = OAuthStateData.model_validate_json(data)
        if datetime.now(timezone.utc) > state_data.expires_at:
            logger.warning("oauth_state_expired", state=state[:8])
            return None
        if provider and state_data.provider != provider:
            logger.warning(
                "oauth_state_provider_mismatch",
                state=state[:8],
                expected=provider,
                actual=state_data.provider,
            )
            return None

        logger.info("oauth_state_consumed", state=state[:8], provider=state_data.provider)
        return state_data

    def _key(self, state: str) -> str:
        return f"{self.state_prefix}:{state}"


# Create default state manager instance
oauth_state_manager = OAuthStateManager()
