"""
Authentication endpoints: provider login, token refresh, logout.
"""
from typing import Any, List

from fastapi import APIRouter, Depends

from app.core.dependencies import (
    get_auth_service,
    get_client_meta,
    get_token_service,
    rate_limited,
)
from app.core.exceptions import AuthenticationFailed, AuthFailureReason
from app.domain.schemas.auth import (
    AuthorizationURL,
    ClientMeta,
    LoginResponse,
    OAuthCallback,
    Principal,
    PrincipalResponse,
    SessionInfo,
    TokenPair,
    TokenRefresh,
)
from app.services.auth.auth_service import AuthService
from app.services.auth.authorization import permission_resolver
from app.services.auth.oauth import (
    OAuthProviderInterface,
    OAuthStateManager,
    get_oauth_provider,
    oauth_state_manager,
)
from app.services.auth.token_service import TokenService

router = APIRouter()


def get_provider(provider: str) -> OAuthProviderInterface:
    return get_oauth_provider(provider)


def get_state_manager() -> OAuthStateManager:
    return oauth_state_manager


@router.get("/{provider}/authorize", response_model=AuthorizationURL)
async def authorize(
    provider: str,
    oauth_provider: OAuthProviderInterface = Depends(get_provider),
    states: OAuthStateManager = Depends(get_state_manager),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """Start a provider login; the returned state must come back on the callback."""
    state = await states.create_state(
        provider=provider,
        redirect_uri=oauth_provider.redirect_uri,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return AuthorizationURL(
        authorization_url=oauth_provider.generate_authorization_url(state.state),
        state=state.state,
    )


@router.post("/{provider}/callback", response_model=LoginResponse)
async def callback(
    provider: str,
    payload: OAuthCallback,
    oauth_provider: OAuthProviderInterface = Depends(get_provider),
    states: OAuthStateManager = Depends(get_state_manager),
    auth_service: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """
    Exchange the provider's authorization code for a token pair.

    - First logins create a pending identity; pending identities get only an
      enrollment token for filing a base-role request
    - Returns 503 when the provider exchange fails or times out
    """
    if not payload.state or await states.consume_state(payload.state, provider) is None:
        raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Invalid or expired OAuth state")
    return await auth_service.login_with_provider(oauth_provider, payload.code, client)


@router.post("/refresh", response_model=TokenPair)
async def refresh_token(
    payload: TokenRefresh,
    auth_service: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """
    Rotate the refresh token.

    Replaying an already-used refresh token revokes the whole session.
    """
    return await auth_service.refresh(payload.refresh_token, client)


@router.post("/logout")
async def logout(
    payload: TokenRefresh,
    auth_service: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """Revoke the session the refresh token belongs to."""
    revoked = await auth_service.logout(payload.refresh_token, client=client)
    return {"revoked": revoked}


@router.get("/me", response_model=PrincipalResponse)
async def me(principal: Principal = Depends(rate_limited)) -> Any:
    """Current caller, as seen by the authorization layer."""
    return PrincipalResponse(
        id=principal.id,
        email=principal.email,
        base_role=principal.base_role,
        capabilities=sorted(principal.capabilities, key=lambda c: c.value),
        permissions=sorted(p.value for p in permission_resolver.effective_permissions(principal)),
        auth_method=principal.auth_method,
    )


@router.get("/sessions", response_model=List[SessionInfo])
async def sessions(
    principal: Principal = Depends(rate_limited),
    token_service: TokenService = Depends(get_token_service),
) -> Any:
    """Active sessions (token families) of the caller."""
    return await token_service.list_sessions(principal.id)
