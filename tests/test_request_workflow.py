"""
Tests for the capability request workflow.
"""
import asyncio

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import AuthorizationDenied, ValidationError, WorkflowConflict
from app.domain.enums import BaseRole, Capability, IdentityStatus, RequestKind, RequestStatus
from app.domain.schemas.audit import AuditQuery
from app.domain.schemas.workflow import CapabilityRequestCreate
from app.repositories.identity import IdentityRepository
from app.services.auth.authorization import permission_resolver
from app.services.workflows.requests import RequestWorkflowEngine
from tests.fixtures.auth import create_identity


def capability_request(*capabilities: Capability) -> CapabilityRequestCreate:
    return CapabilityRequestCreate(
        kind=RequestKind.CAPABILITY,
        requested_capabilities=list(capabilities),
        justification="Needed for the curation backlog",
    )


def role_request(role: BaseRole) -> CapabilityRequestCreate:
    return CapabilityRequestCreate(
        kind=RequestKind.BASE_ROLE,
        requested_role=role,
        justification="Joining the curation team",
    )


class TestSubmit:
    """Filing requests."""

    @pytest.mark.asyncio
    async def test_curator_requests_capability(self, db_session, curator):
        request = await RequestWorkflowEngine(db_session).submit(
            curator, capability_request(Capability.AGENT_ACCESS)
        )
        assert request.status == RequestStatus.PENDING.value
        assert request.requested_capabilities == ["agent_access"]

    @pytest.mark.asyncio
    async def test_explorator_cannot_request_capabilities(self, db_session, explorator):
        with pytest.raises(AuthorizationDenied):
            await RequestWorkflowEngine(db_session).submit(explorator, capability_request(Capability.AGENT_ACCESS))

    @pytest.mark.asyncio
    async def test_pending_identity_may_request_base_role(self, db_session, pending_identity):
        request = await RequestWorkflowEngine(db_session).submit(pending_identity, role_request(BaseRole.CURATOR))
        assert request.requested_role == BaseRole.CURATOR.value

    @pytest.mark.asyncio
    async def test_suspended_identity_cannot_request(self, db_session):
        suspended = await create_identity(db_session, status=IdentityStatus.SUSPENDED)
        with pytest.raises(AuthorizationDenied):
            await RequestWorkflowEngine(db_session).submit(suspended, role_request(BaseRole.CURATOR))

    @pytest.mark.asyncio
    async def test_one_pending_request_per_kind(self, db_session, curator):
        engine = RequestWorkflowEngine(db_session)
        await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))

        with pytest.raises(WorkflowConflict):
            await engine.submit(curator, capability_request(Capability.ANALYTICS_ACCESS))
        # a different kind is still allowed
        await engine.submit(curator, role_request(BaseRole.EXPLORATOR))

    def test_payload_requires_requested_value(self):
        with pytest.raises(PydanticValidationError):
            CapabilityRequestCreate(kind=RequestKind.CAPABILITY, justification="empty")


class TestDecide:
    """Approval and rejection."""

    @pytest.mark.asyncio
    async def test_agent_access_grant_end_to_end(self, db_session, curator, admin, audit):
        """Curator asks for agent_access, administrator approves, the grant is live."""
        engine = RequestWorkflowEngine(db_session, audit=audit)
        request = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))
        assert not permission_resolver.has_capability(curator, Capability.AGENT_ACCESS)

        approved = await engine.approve(admin, request.id, notes="ok")

        assert approved.status == RequestStatus.APPROVED.value
        assert approved.reviewer_id == admin.id
        assert approved.granted_capabilities == ["agent_access"]
        identity = await IdentityRepository(db_session).get(curator.id)
        assert permission_resolver.has_capability(identity, Capability.AGENT_ACCESS)

        entries = await audit.query(AuditQuery(component="requests"))
        assert [e.action for e in entries.items] == ["request_approved", "request_submitted"]
        assert entries.items[0].details["partial"] is False

    @pytest.mark.asyncio
    async def test_partial_approval_records_subset(self, db_session, curator, admin):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(
            curator, capability_request(Capability.AGENT_ACCESS, Capability.ANALYTICS_ACCESS)
        )

        approved = await engine.approve(admin, request.id, granted_capabilities=[Capability.ANALYTICS_ACCESS])

        assert approved.granted_capabilities == ["analytics_access"]
        identity = await IdentityRepository(db_session).get(curator.id)
        assert identity.capabilities == ["analytics_access"]

    @pytest.mark.asyncio
    async def test_granted_must_be_subset(self, db_session, curator, admin):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))

        with pytest.raises(ValidationError):
            await engine.approve(admin, request.id, granted_capabilities=[Capability.REVIEWER_STATUS])
        with pytest.raises(ValidationError):
            await engine.approve(admin, request.id, granted_capabilities=[])

    @pytest.mark.asyncio
    async def test_base_role_approval_activates_pending_identity(self, db_session, pending_identity, admin):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(pending_identity, role_request(BaseRole.CURATOR))

        await engine.approve(admin, request.id)

        identity = await IdentityRepository(db_session).get(pending_identity.id)
        assert identity.status == IdentityStatus.ACTIVE.value
        assert identity.role == BaseRole.CURATOR

    @pytest.mark.asyncio
    async def test_reject_changes_nothing(self, db_session, curator, admin):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))

        rejected = await engine.reject(admin, request.id, notes="not now")

        assert rejected.status == RequestStatus.REJECTED.value
        assert rejected.decision_notes == "not now"
        identity = await IdentityRepository(db_session).get(curator.id)
        assert identity.capabilities == []

    @pytest.mark.asyncio
    async def test_decided_requests_are_terminal(self, db_session, curator, admin):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))
        await engine.reject(admin, request.id)

        with pytest.raises(WorkflowConflict) as exc_info:
            await engine.approve(admin, request.id)
        assert exc_info.value.details["current_status"] == RequestStatus.REJECTED.value

        # asking again creates a new record
        again = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))
        assert again.id != request.id

    @pytest.mark.asyncio
    async def test_non_admin_cannot_decide(self, db_session, curator, reviewer):
        engine = RequestWorkflowEngine(db_session)
        request = await engine.submit(curator, capability_request(Capability.AGENT_ACCESS))

        with pytest.raises(AuthorizationDenied):
            await engine.approve(reviewer, request.id)

    @pytest.mark.asyncio
    async def test_concurrent_decisions_have_one_winner(self, session_factory, curator, admin, second_admin):
        async with session_factory() as db:
            request = await RequestWorkflowEngine(db).submit(curator, capability_request(Capability.AGENT_ACCESS))

        async def decide(action, actor):
            async with session_factory() as db:
                engine = RequestWorkflowEngine(db)
                try:
                    return await getattr(engine, action)(actor, request.id)
                except WorkflowConflict as e:
                    return e

        results = await asyncio.gather(decide("approve", admin), decide("reject", second_admin))

        conflicts = [r for r in results if isinstance(r, WorkflowConflict)]
        assert len(conflicts) == 1
        async with session_factory() as db:
            final = await RequestWorkflowEngine(db).get(request.id)
        assert final.status in (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value)
        assert final.version == 2
