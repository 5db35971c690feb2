"""
Fixed-window rate limiting backed by Redis.

Every subject (an identity or an API key) has a per-minute and a per-day
window. Counters are keyed by window start and expire through Redis TTL, so
no cleanup job is needed. Both counters are incremented in one MULTI/EXEC
transaction; a denied request hands its increments back so rejected calls
do not consume quota.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import Settings, get_settings
from app.core.exceptions import ExternalServiceError, RateLimited
from app.core.logging import get_logger
from app.domain.enums import AuthMethod
from app.infrastructure.cache.redis import get_redis
from app.services.auth.authorization.permissions import usage_tier

logger = get_logger(__name__)

KEY_NAMESPACE = "rate"

# granularity -> window length in seconds
WINDOWS: Dict[str, int] = {
    "minute": 60,
    "day": 86400,
}


@dataclass(frozen=True)
class RateLimitSubject:
    """Who is being limited, with the ceilings that apply to them."""
    key: str
    per_minute: int
    per_day: int

    def limit_for(self, granularity: str) -> int:
        return self.per_minute if granularity == "minute" else self.per_day

    @classmethod
    def for_principal(cls, principal: Any, settings: Optional[Settings] = None) -> "RateLimitSubject":
        """
        Build the subject for an authenticated caller.

        API-key callers are limited per key using the ceilings stored on the
        key; everyone else per identity using the tier table.
        """
        if (
            principal.auth_method == AuthMethod.API_KEY
            and principal.api_key_id is not None
            and principal.rate_limit_per_minute is not None
        ):
            return cls(
                key=f"api_key:{principal.api_key_id}",
                per_minute=principal.rate_limit_per_minute,
                per_day=principal.rate_limit_per_day,
            )

        settings = settings or get_settings()
        tier = usage_tier(principal.role, principal.capability_set)
        ceilings = settings.get_rate_limit_tiers()[tier.value]
        return cls(
            key=f"identity:{principal.id}",
            per_minute=ceilings["per_minute"],
            per_day=ceilings["per_day"],
        )


@dataclass
class RateLimitResult:
    """Result of rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: datetime
    retry_after: Optional[int] = None
    window: str = "minute"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time.isoformat(),
            "retry_after": self.retry_after,
            "window": self.window,
        }

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_time.timestamp())),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def _epoch(now: Optional[datetime]) -> int:
    moment = now or datetime.now(timezone.utc)
    return int(moment.timestamp())


def _window_key(subject: RateLimitSubject, granularity: str, window_start: int) -> str:
    return f"{KEY_NAMESPACE}:{subject.key}:{granularity}:{window_start}"


class RateLimiter:
    """
    Redis-based fixed-window rate limiter.

    A Redis client can be injected (tests use fakeredis); otherwise the
    shared connection pool is used.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        settings: Optional[Settings] = None,
    ):
        self._client = client
        self.settings = settings or get_settings()

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    def _windows(self, subject: RateLimitSubject, now: int) -> List[Tuple[str, str, int, int, int]]:
        """(granularity, key, limit, window_start, seconds_left) for each window."""
        windows = []
        for granularity, length in WINDOWS.items():
            window_start = now - (now % length)
            seconds_left = window_start + length - now
            windows.append((
                granularity,
                _window_key(subject, granularity, window_start),
                subject.limit_for(granularity),
                window_start,
                seconds_left,
            ))
        return windows

    async def admit(self, subject: RateLimitSubject, now: Optional[datetime] = None) -> RateLimitResult:
        """
        Count one request against every window of ``subject``.

        Returns:
            RateLimitResult; on denial, ``window`` names the violated window
            and ``retry_after`` is the seconds left in it (at least 1)
        """
        epoch = _epoch(now)
        windows = self._windows(subject, epoch)

        try:
            client = await self._redis()
            async with client.pipeline(transaction=True) as pipe:
                for _, key, _, _, seconds_left in windows:
                    pipe.incr(key)
                    pipe.expire(key, seconds_left + 1)
                results = await pipe.execute()
        except (RedisError, OSError) as e:
            return self._unavailable(subject, windows, e)

        counts = results[0::2]
        violated = None
        for window, count in zip(windows, counts):
            if count > window[2]:
                violated = window
                break

        if violated is None:
            # Report the tightest window
            tightest = min(
                zip(windows, counts),
                key=lambda item: item[0][2] - item[1],
            )
            (granularity, _, limit, window_start, _), count = tightest
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - count),
                reset_time=datetime.fromtimestamp(window_start + WINDOWS[granularity], tz=timezone.utc),
                window=granularity,
            )

        await self._rollback(windows)
        granularity, _, limit, window_start, seconds_left = violated
        logger.info(
            "rate_limit_exceeded",
            subject=subject.key,
            window=granularity,
            limit=limit,
        )
        return RateLimitResult(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_time=datetime.fromtimestamp(window_start + WINDOWS[granularity], tz=timezone.utc),
            retry_after=max(1, seconds_left),
            window=granularity,
        )

    async def enforce(self, subject: RateLimitSubject, now: Optional[datetime] = None) -> RateLimitResult:
        """
        Admit or raise.

        Raises:
            RateLimited: carrying ``retry_after``
        """
        result = await self.admit(subject, now)
        if not result.allowed:
            raise RateLimited(
                retry_after=result.retry_after,
                message=f"Rate limit exceeded for the current {result.window}",
                window=result.window,
            )
        return result

    async def status(self, subject: RateLimitSubject, now: Optional[datetime] = None) -> Dict[str, RateLimitResult]:
        """Current usage of every window without consuming quota."""
        epoch = _epoch(now)
        windows = self._windows(subject, epoch)
        try:
            client = await self._redis()
            values = await client.mget([key for _, key, _, _, _ in windows])
        except (RedisError, OSError) as e:
            logger.warning("rate_limit_status_unavailable", subject=subject.key, error=str(e))
            values = [None] * len(windows)

        status = {}
        for (granularity, _, limit, window_start, seconds_left), value in zip(windows, values):
            used = int(value) if value is not None else 0
            status[granularity] = RateLimitResult(
                allowed=used < limit,
                limit=limit,
                remaining=max(0, limit - used),
                reset_time=datetime.fromtimestamp(window_start + WINDOWS[granularity], tz=timezone.utc),
                retry_after=None if used < limit else max(1, seconds_left),
                window=granularity,
            )
        return status

    async def reset(self, subject: RateLimitSubject, now: Optional[datetime] = None) -> None:
        """Drop the current counters of ``subject`` (administrative)."""
        client = await self._redis()
        await client.delete(*[key for _, key, _, _, _ in self._windows(subject, _epoch(now))])
        logger.info("rate_limit_reset", subject=subject.key)

    async def _rollback(self, windows) -> None:
        try:
            client = await self._redis()
            async with client.pipeline(transaction=True) as pipe:
                for _, key, _, _, _ in windows:
                    pipe.decr(key)
                await pipe.execute()
        except (RedisError, OSError) as e:
            logger.warning("rate_limit_rollback_failed", error=str(e))

    def _unavailable(self, subject: RateLimitSubject, windows, error: Exception) -> RateLimitResult:
        logger.error(
            "rate_limiter_unavailable",
            subject=subject.key,
            fail_open=self.settings.RATE_LIMIT_FAIL_OPEN,
            error=str(error),
        )
        if not self.settings.RATE_LIMIT_FAIL_OPEN:
            raise ExternalServiceError("redis", "Rate limiter unavailable")
        granularity, _, limit, window_start, _ = windows[0]
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=limit,
            reset_time=datetime.fromtimestamp(window_start + WINDOWS[granularity], tz=timezone.utc),
            window=granularity,
        )
