"""
Role and capability request endpoints.
"""
from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.dependencies import enrollment_rate_limited, get_request_workflow, rate_limited, require
from app.domain.schemas.auth import Principal
from app.domain.schemas.workflow import (
    CapabilityRequestCreate,
    CapabilityRequestDecision,
    CapabilityRequestRead,
)
from app.services.auth.authorization import Permission
from app.services.workflows.requests import RequestWorkflowEngine

router = APIRouter()

decide_requests = require(Permission.REQUESTS_DECIDE)


@router.post("", response_model=CapabilityRequestRead, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: CapabilityRequestCreate,
    principal: Principal = Depends(enrollment_rate_limited),
    engine: RequestWorkflowEngine = Depends(get_request_workflow),
) -> Any:
    """
    Ask for a base role change or extra capabilities.

    Pending identities call this with the enrollment token their login
    returned; they may only ask for a base role.
    """
    return await engine.submit(principal, payload)


@router.get("/mine", response_model=List[CapabilityRequestRead])
async def my_requests(
    principal: Principal = Depends(enrollment_rate_limited),
    engine: RequestWorkflowEngine = Depends(get_request_workflow),
) -> Any:
    return await engine.list_for_identity(principal.id)


@router.get("/pending", response_model=List[CapabilityRequestRead], dependencies=[Depends(rate_limited)])
async def pending_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    _: Principal = Depends(decide_requests),
    engine: RequestWorkflowEngine = Depends(get_request_workflow),
) -> Any:
    """Undecided requests, oldest first."""
    return await engine.list_pending(skip=skip, limit=limit)


@router.post(
    "/{request_id}/approve", response_model=CapabilityRequestRead, dependencies=[Depends(rate_limited)]
)
async def approve_request(
    request_id: UUID,
    decision: CapabilityRequestDecision,
    principal: Principal = Depends(decide_requests),
    engine: RequestWorkflowEngine = Depends(get_request_workflow),
) -> Any:
    """
    Approve a request.

    - ``granted_capabilities`` narrows a capability request to a subset
    - Returns 409 if the request was already decided
    """
    return await engine.approve(
        principal,
        request_id,
        granted_capabilities=decision.granted_capabilities,
        notes=decision.notes,
    )


@router.post(
    "/{request_id}/reject", response_model=CapabilityRequestRead, dependencies=[Depends(rate_limited)]
)
async def reject_request(
    request_id: UUID,
    decision: CapabilityRequestDecision,
    principal: Principal = Depends(decide_requests),
    engine: RequestWorkflowEngine = Depends(get_request_workflow),
) -> Any:
    return await engine.reject(principal, request_id, notes=decision.notes)
