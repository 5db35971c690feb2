"""
Tests for fixed-window rate limiting.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import fakeredis
import pytest

from app.core.config import get_settings
from app.core.exceptions import ExternalServiceError, RateLimited
from app.domain.enums import AuthMethod, BaseRole, Capability
from app.domain.schemas.auth import Principal
from app.services.security.rate_limiter import RateLimiter, RateLimitSubject

settings = get_settings()

# 12:00:10 UTC, ten seconds into a minute window
NOW = datetime(2026, 3, 2, 12, 0, 10, tzinfo=timezone.utc)


@pytest.fixture
def subject():
    return RateLimitSubject(key=f"identity:{uuid4()}", per_minute=3, per_day=100)


class TestRateLimiter:
    """Admission within minute and day windows."""

    @pytest.mark.asyncio
    async def test_limit_plus_one_is_denied(self, rate_limiter, subject):
        for i in range(3):
            result = await rate_limiter.admit(subject, NOW)
            assert result.allowed
            assert result.remaining == 2 - i

        denied = await rate_limiter.admit(subject, NOW)
        assert not denied.allowed
        assert denied.window == "minute"
        assert denied.retry_after == 50
        assert denied.headers()["Retry-After"] == "50"

    @pytest.mark.asyncio
    async def test_next_window_admits_again(self, rate_limiter, subject):
        for _ in range(3):
            await rate_limiter.admit(subject, NOW)
        assert not (await rate_limiter.admit(subject, NOW)).allowed

        assert (await rate_limiter.admit(subject, NOW + timedelta(minutes=1))).allowed

    @pytest.mark.asyncio
    async def test_denied_requests_do_not_consume_quota(self, rate_limiter, subject):
        for _ in range(3):
            await rate_limiter.admit(subject, NOW)
        for _ in range(5):
            await rate_limiter.admit(subject, NOW)

        status = await rate_limiter.status(subject, NOW)
        assert status["minute"].remaining == 0
        assert status["day"].remaining == 97

    @pytest.mark.asyncio
    async def test_day_window_enforced(self, rate_limiter):
        subject = RateLimitSubject(key="api_key:day", per_minute=100, per_day=2)
        await rate_limiter.admit(subject, NOW)
        await rate_limiter.admit(subject, NOW + timedelta(minutes=5))

        with pytest.raises(RateLimited) as exc_info:
            await rate_limiter.enforce(subject, NOW + timedelta(minutes=10))
        assert exc_info.value.details["window"] == "day"
        assert exc_info.value.retry_after > 0

    @pytest.mark.asyncio
    async def test_concurrent_requests_admit_exactly_the_limit(self, rate_limiter):
        subject = RateLimitSubject(key="identity:burst", per_minute=5, per_day=1000)

        results = await asyncio.gather(*[rate_limiter.admit(subject, NOW) for _ in range(20)])

        assert sum(r.allowed for r in results) == 5

    @pytest.mark.asyncio
    async def test_subjects_are_independent(self, rate_limiter, subject):
        other = RateLimitSubject(key="identity:other", per_minute=3, per_day=100)
        for _ in range(3):
            await rate_limiter.admit(subject, NOW)

        assert (await rate_limiter.admit(other, NOW)).allowed

    @pytest.mark.asyncio
    async def test_reset(self, rate_limiter, subject):
        for _ in range(3):
            await rate_limiter.admit(subject, NOW)
        await rate_limiter.reset(subject, NOW)

        assert (await rate_limiter.admit(subject, NOW)).allowed


class TestUnavailableStore:
    """Behaviour when Redis cannot be reached."""

    @pytest.fixture
    def broken_redis(self):
        server = fakeredis.FakeServer()
        server.connected = False
        return fakeredis.FakeAsyncRedis(server=server)

    @pytest.mark.asyncio
    async def test_fails_open(self, broken_redis, subject, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_FAIL_OPEN", True)
        result = await RateLimiter(client=broken_redis, settings=settings).admit(subject, NOW)
        assert result.allowed

    @pytest.mark.asyncio
    async def test_fails_closed_when_configured(self, broken_redis, subject, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_FAIL_OPEN", False)
        with pytest.raises(ExternalServiceError):
            await RateLimiter(client=broken_redis, settings=settings).admit(subject, NOW)


class TestSubjects:
    """Mapping callers onto limit subjects."""

    def test_identity_uses_tier_table(self):
        principal = Principal(
            id=uuid4(),
            email="a@platform.test",
            base_role=BaseRole.CURATOR,
            capabilities=frozenset({Capability.ANALYTICS_ACCESS}),
            auth_method=AuthMethod.ACCESS_TOKEN,
        )
        subject = RateLimitSubject.for_principal(principal, settings)

        assert subject.key == f"identity:{principal.id}"
        assert subject.per_minute == settings.RATE_LIMIT_ANALYTICS_PER_MINUTE
        assert subject.per_day == settings.RATE_LIMIT_ANALYTICS_PER_DAY

    def test_api_key_uses_stored_ceilings(self):
        key_id = uuid4()
        principal = Principal(
            id=uuid4(),
            email="a@platform.test",
            base_role=BaseRole.EXPLORATOR,
            auth_method=AuthMethod.API_KEY,
            api_key_id=key_id,
            rate_limit_per_minute=7,
            rate_limit_per_day=70,
        )
        subject = RateLimitSubject.for_principal(principal, settings)

        assert subject == RateLimitSubject(key=f"api_key:{key_id}", per_minute=7, per_day=70)
