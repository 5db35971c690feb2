"""
Identity provider integration.

Providers are OAuth2 / OpenID Connect login backends; the platform keeps no
credentials of its own.
"""

from app.core.config import get_settings
from app.core.exceptions import NotFoundError

from .base import (
    OAuthError,
    OAuthProviderInterface,
    OAuthTokens,
    OAuthUserInfo,
)
from .google import GoogleOAuthProvider
from .state_manager import (
    OAuthStateData,
    OAuthStateManager,
    oauth_state_manager,
)


def get_oauth_provider(name: str) -> OAuthProviderInterface:
    """Configured provider by name; unknown or unconfigured names are not found."""
    settings = get_settings()
    redirect_base = settings.get_oauth_config()["redirect_base"]

    if name == GoogleOAuthProvider.name and settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
        return GoogleOAuthProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=f"{redirect_base}/{name}/callback",
        )
    raise NotFoundError("IdentityProvider", name)


__all__ = [
    # Base classes and types
    "OAuthError",
    "OAuthProviderInterface",
    "OAuthTokens",
    "OAuthUserInfo",

    # Providers
    "GoogleOAuthProvider",
    "get_oauth_provider",

    # State management
    "OAuthStateData",
    "OAuthStateManager",
    "oauth_state_manager",
]
