"""
Tests for the endpoint guards collaborators build on.
"""
from typing import AsyncIterator
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import dependencies
from app.core.exceptions import PlatformException
from app.domain.enums import BaseRole, Capability
from app.domain.schemas.audit import AuditQuery
from app.domain.schemas.auth import Principal
from app.main import platform_exception_handler
from app.services.auth.authorization import Permission
from app.services.auth.token_service import TokenService
from app.services.workflows.review import ReviewWorkflowEngine
from tests.fixtures.auth import bearer, create_identity
from tests.fixtures.models import KnowledgeDocument


async def path_owner(owner_id: UUID) -> UUID:
    return owner_id


documents = dependencies.review_workflow(KnowledgeDocument, component="knowledge")


def build_app() -> FastAPI:
    guarded = FastAPI()
    guarded.add_exception_handler(PlatformException, platform_exception_handler)

    @guarded.get("/admin-only")
    async def admin_only(principal: Principal = Depends(dependencies.require_role(BaseRole.ADMINISTRATOR))):
        return {"id": str(principal.id)}

    @guarded.get("/agents")
    async def agents(principal: Principal = Depends(dependencies.require_capability(Capability.AGENT_ACCESS))):
        return {"id": str(principal.id)}

    @guarded.get("/profiles/{owner_id}")
    async def profile(
        principal: Principal = Depends(
            dependencies.require_ownership_or_permission(Permission.IDENTITIES_MANAGE, path_owner)
        ),
    ):
        return {"id": str(principal.id)}

    @guarded.post("/documents")
    async def create_document(
        principal: Principal = Depends(dependencies.require(Permission.KNOWLEDGE_CREATE)),
        engine: ReviewWorkflowEngine = Depends(documents),
    ):
        doc = await engine.initialize(principal, KnowledgeDocument(title="Field notes"))
        return {"id": str(doc.id), "status": doc.status}

    return guarded


@pytest_asyncio.fixture
async def guarded_client(session_factory, audit) -> AsyncIterator[AsyncClient]:
    guarded = build_app()

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    guarded.dependency_overrides[dependencies.get_db] = override_get_db
    guarded.dependency_overrides[dependencies.get_audit_logger] = lambda: audit

    async with AsyncClient(transport=ASGITransport(app=guarded), base_url="http://test") as ac:
        yield ac


class TestRoleAndCapabilityGuards:

    @pytest.mark.asyncio
    async def test_require_role(self, guarded_client, db_session, admin, curator):
        assert (await guarded_client.get("/admin-only", headers=await bearer(db_session, admin))).status_code == 200
        denied = await guarded_client.get("/admin-only", headers=await bearer(db_session, curator))
        assert denied.status_code == 403

    @pytest.mark.asyncio
    async def test_require_capability(self, guarded_client, db_session, curator, admin):
        agent_user = await create_identity(db_session, capabilities=[Capability.AGENT_ACCESS])

        assert (await guarded_client.get("/agents", headers=await bearer(db_session, agent_user))).status_code == 200
        assert (await guarded_client.get("/agents", headers=await bearer(db_session, admin))).status_code == 200
        assert (await guarded_client.get("/agents", headers=await bearer(db_session, curator))).status_code == 403

    @pytest.mark.asyncio
    async def test_unauthenticated_is_401(self, guarded_client):
        response = await guarded_client.get("/agents")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_enrollment_token_opens_no_guarded_route(self, guarded_client, db_session, pending_identity):
        token = TokenService(db_session).issue_enrollment(pending_identity)
        headers = {"Authorization": f"Bearer {token}"}

        for path in ("/agents", "/admin-only", f"/profiles/{pending_identity.id}"):
            response = await guarded_client.get(path, headers=headers)
            assert response.status_code == 401
            assert response.json()["error"]["details"]["reason"] == "malformed"


class TestOwnershipGuard:

    @pytest.mark.asyncio
    async def test_owner_admin_and_stranger(self, guarded_client, db_session, curator, explorator, admin):
        path = f"/profiles/{curator.id}"

        assert (await guarded_client.get(path, headers=await bearer(db_session, curator))).status_code == 200
        assert (await guarded_client.get(path, headers=await bearer(db_session, admin))).status_code == 200

        stranger = await guarded_client.get(path, headers=await bearer(db_session, explorator))
        assert stranger.status_code == 403
        assert stranger.json()["error"]["details"]["missing_permission"] == "identities:manage"


class TestReviewWorkflowDependency:

    @pytest.mark.asyncio
    async def test_engine_is_wired_to_request_session(self, guarded_client, db_session, curator, explorator, audit):
        created = await guarded_client.post("/documents", headers=await bearer(db_session, curator))

        assert created.status_code == 200
        assert created.json()["status"] == "draft"
        trail = await audit.query(AuditQuery(component="knowledge"))
        assert trail.total == 1

        denied = await guarded_client.post("/documents", headers=await bearer(db_session, explorator))
        assert denied.status_code == 403
