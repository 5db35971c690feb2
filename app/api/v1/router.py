"""
API v1 router configuration.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import (
    api_keys,
    audit,
    auth,
    capability_requests,
    health,
    identities,
)

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(api_keys.router, prefix="/api-keys", tags=["api-keys"])
api_router.include_router(capability_requests.router, prefix="/capability-requests", tags=["capability-requests"])
api_router.include_router(identities.router, prefix="/identities", tags=["identities"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
