"""
End-to-end tests through the HTTP API.
"""
import pytest

from app.core.config import get_settings
from app.core.errors import ErrorCode
from app.domain.enums import Capability, IdentityStatus
from app.repositories.identity import IdentityRepository
from tests.fixtures.auth import bearer
from tests.mocks.oauth_providers import user_info

settings = get_settings()
API = settings.API_V1_PREFIX


async def provider_login(client, code="code-1"):
    authorize = await client.get(f"{API}/auth/mock/authorize")
    assert authorize.status_code == 200
    state = authorize.json()["state"]
    return await client.post(f"{API}/auth/mock/callback", json={"code": code, "state": state})


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers


class TestAuthentication:
    """Credentials and the error envelope."""

    @pytest.mark.asyncio
    async def test_missing_credential(self, client):
        response = await client.get(f"{API}/auth/me")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        error = response.json()["error"]
        assert error["code"] == ErrorCode.AUTH_CREDENTIALS_MISSING.value
        assert error["details"]["reason"] == "missing"

    @pytest.mark.asyncio
    async def test_me_with_access_token(self, client, db_session, reviewer):
        response = await client.get(f"{API}/auth/me", headers=await bearer(db_session, reviewer))

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(reviewer.id)
        assert body["capabilities"] == ["reviewer_status"]
        assert "content:review" in body["permissions"]
        assert body["auth_method"] == "access_token"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == ErrorCode.AUTH_INVALID_TOKEN.value


class TestProviderLoginFlow:
    """Authorize, callback, refresh and logout over HTTP."""

    @pytest.mark.asyncio
    async def test_bootstrap_admin_login(self, client, mock_provider):
        mock_provider.user_info = user_info("root@platform.test", "sub-root")

        response = await provider_login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "active"
        assert body["tokens"]["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_callback_requires_state(self, client):
        response = await client.post(f"{API}/auth/mock/callback", json={"code": "c", "state": "forged"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client):
        response = await client.get(f"{API}/auth/myspace/authorize")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_pending_identity_requests_role_and_logs_in_once_approved(self, client, db_session, admin):
        first = await provider_login(client)
        assert first.status_code == 200
        body = first.json()
        assert body["status"] == "pending_approval"
        assert body["tokens"] is None
        enrolling = {"Authorization": f"Bearer {body['enrollment_token']}"}

        me = await client.get(f"{API}/auth/me", headers=enrolling)
        assert me.status_code == 401
        capability = await client.post(
            f"{API}/capability-requests",
            json={"kind": "capability", "requested_capabilities": ["agent_access"], "justification": "agents"},
            headers=enrolling,
        )
        assert capability.status_code == 403

        submitted = await client.post(
            f"{API}/capability-requests",
            json={"kind": "base_role", "requested_role": "curator", "justification": "Lab curator"},
            headers=enrolling,
        )
        assert submitted.status_code == 201
        mine = await client.get(f"{API}/capability-requests/mine", headers=enrolling)
        assert [r["id"] for r in mine.json()] == [submitted.json()["id"]]

        approved = await client.post(
            f"{API}/capability-requests/{submitted.json()['id']}/approve",
            json={"notes": "welcome"},
            headers=await bearer(db_session, admin),
        )
        assert approved.status_code == 200

        second = await provider_login(client, code="code-2")
        assert second.status_code == 200
        assert second.json()["status"] == "active"
        assert second.json()["tokens"]["access_token"]

        # the enrollment token stops working once the identity leaves pending
        stale = await client.get(f"{API}/capability-requests/mine", headers=enrolling)
        assert stale.status_code == 401
        assert stale.json()["error"]["code"] == ErrorCode.AUTH_ACCOUNT_INACTIVE.value

    @pytest.mark.asyncio
    async def test_pending_until_activated(self, client, db_session, admin):
        first = await provider_login(client)
        assert first.status_code == 200
        assert first.json()["status"] == "pending_approval"

        pending = await client.get(
            f"{API}/identities", params={"status": "pending_approval"}, headers=await bearer(db_session, admin)
        )
        assert pending.status_code == 200
        [identity] = pending.json()

        activated = await client.post(
            f"{API}/identities/{identity['id']}/activate",
            json={"base_role": "explorator"},
            headers=await bearer(db_session, admin),
        )
        assert activated.status_code == 200
        assert activated.json()["status"] == "active"

        second = await provider_login(client, code="code-2")
        assert second.status_code == 200

    @pytest.mark.asyncio
    async def test_refresh_reuse_and_logout(self, client, mock_provider):
        mock_provider.user_info = user_info("root@platform.test", "sub-root")
        tokens = (await provider_login(client)).json()["tokens"]

        rotated = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200

        replay = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["details"]["reason"] == "reused"

        logout = await client.post(f"{API}/auth/logout", json={"refresh_token": rotated.json()["refresh_token"]})
        assert logout.json() == {"revoked": False}


class TestAPIKeys:
    """Key management and key authentication."""

    @pytest.mark.asyncio
    async def test_issue_and_authenticate_with_key(self, client, db_session, curator):
        created = await client.post(
            f"{API}/api-keys", json={"name": "pipeline"}, headers=await bearer(db_session, curator)
        )
        assert created.status_code == 201
        assert "X-RateLimit-Limit" in created.headers
        plaintext = created.json()["key"]

        me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {plaintext}"})
        assert me.status_code == 200
        assert me.json()["auth_method"] == "api_key"

        listed = await client.get(f"{API}/api-keys", headers=await bearer(db_session, curator))
        assert [k["name"] for k in listed.json()] == ["pipeline"]
        assert "key" not in listed.json()[0]

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self, client, db_session, explorator, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_EXPLORATOR_PER_MINUTE", 1)
        headers = await bearer(db_session, explorator)

        assert (await client.post(f"{API}/api-keys", json={"name": "a"}, headers=headers)).status_code == 201
        limited = await client.post(f"{API}/api-keys", json={"name": "b"}, headers=headers)

        assert limited.status_code == 429
        assert int(limited.headers["Retry-After"]) > 0
        assert limited.json()["error"]["code"] == ErrorCode.SEC_RATE_LIMIT_EXCEEDED.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/auth/me", "/auth/sessions", "/capability-requests/mine", "/api-keys"])
    async def test_every_authenticated_route_is_limited(self, client, db_session, explorator, monkeypatch, path):
        monkeypatch.setattr(settings, "RATE_LIMIT_EXPLORATOR_PER_MINUTE", 1)
        headers = await bearer(db_session, explorator)

        first = await client.get(f"{API}{path}", headers=headers)
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"

        limited = await client.get(f"{API}{path}", headers=headers)
        assert limited.status_code == 429
        assert int(limited.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_admin_routes_count_once_per_request(self, client, db_session, admin, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_ADMINISTRATOR_PER_MINUTE", 2)
        headers = await bearer(db_session, admin)

        assert (await client.get(f"{API}/identities", headers=headers)).status_code == 200
        assert (await client.get(f"{API}/audit", headers=headers)).status_code == 200
        assert (await client.get(f"{API}/capability-requests/pending", headers=headers)).status_code == 429

    @pytest.mark.asyncio
    async def test_suspension_kills_keys(self, client, db_session, curator, admin):
        created = await client.post(
            f"{API}/api-keys", json={"name": "doomed"}, headers=await bearer(db_session, curator)
        )
        plaintext = created.json()["key"]

        suspended = await client.post(
            f"{API}/identities/{curator.id}/suspend", headers=await bearer(db_session, admin)
        )
        assert suspended.status_code == 200

        me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {plaintext}"})
        assert me.status_code == 401
        assert me.json()["error"]["details"]["reason"] == "revoked"


class TestCapabilityRequests:
    """Requests decided over HTTP."""

    @pytest.mark.asyncio
    async def test_partial_approval(self, client, db_session, curator, admin):
        submitted = await client.post(
            f"{API}/capability-requests",
            json={
                "kind": "capability",
                "requested_capabilities": ["agent_access", "analytics_access"],
                "justification": "Running the tagging agent and reporting",
            },
            headers=await bearer(db_session, curator),
        )
        assert submitted.status_code == 201
        request_id = submitted.json()["id"]

        forbidden = await client.get(f"{API}/capability-requests/pending", headers=await bearer(db_session, curator))
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["details"]["missing_permission"] == "requests:decide"

        approved = await client.post(
            f"{API}/capability-requests/{request_id}/approve",
            json={"granted_capabilities": ["agent_access"], "notes": "analytics later"},
            headers=await bearer(db_session, admin),
        )
        assert approved.status_code == 200
        assert approved.json()["granted_capabilities"] == ["agent_access"]

        again = await client.post(
            f"{API}/capability-requests/{request_id}/reject", json={}, headers=await bearer(db_session, admin)
        )
        assert again.status_code == 409
        assert again.json()["error"]["details"]["current_status"] == "approved"

        identity = await IdentityRepository(db_session).get(curator.id)
        assert identity.capability_set == frozenset({Capability.AGENT_ACCESS})
        assert identity.status == IdentityStatus.ACTIVE.value


class TestAuditEndpoint:

    @pytest.mark.asyncio
    async def test_admin_reads_trail(self, client, db_session, curator, admin):
        await client.post(f"{API}/api-keys", json={"name": "audited"}, headers=await bearer(db_session, curator))

        response = await client.get(
            f"{API}/audit", params={"component": "api_keys"}, headers=await bearer(db_session, admin)
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["actor_id"] == str(curator.id)
        assert body["items"][0]["request_id"]

    @pytest.mark.asyncio
    async def test_curator_cannot_read_trail(self, client, db_session, curator):
        response = await client.get(f"{API}/audit", headers=await bearer(db_session, curator))
        assert response.status_code == 403
