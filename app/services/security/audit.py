"""
Audit trail for authorization-gated actions.

Entries are appended through a session of their own so an audit write never
joins, commits or rolls back the caller's transaction. Services schedule
writes with ``record_nowait`` and never wait on them. A failed write is
reported on the operational error channel and swallowed: auditing must not
take down the action being audited.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger, get_operational_error_logger, log_error_details
from app.domain.enums import AuthMethod
from app.domain.schemas.audit import AuditEntryRead, AuditPage, AuditQuery
from app.domain.schemas.auth import ClientMeta
from app.infrastructure.database.base import AsyncSessionLocal
from app.infrastructure.database.models import AuditEntry
from app.repositories.audit import AuditEntryRepository

logger = get_logger(__name__)


class AuditComponent(str, Enum):
    """Subsystem that produced an entry."""
    AUTH = "auth"
    TOKENS = "tokens"
    API_KEYS = "api_keys"
    REQUESTS = "requests"
    IDENTITIES = "identities"
    REVIEW = "review"
    AUDIT = "audit"


class AuditAction(str, Enum):
    """Audit action names."""

    # Authentication events
    LOGIN_SUCCESS = "login_success"
    LOGIN_DENIED = "login_denied"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token_refresh"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"

    # API key events
    API_KEY_CREATED = "api_key_created"
    API_KEY_REVOKED = "api_key_revoked"
    API_KEY_REGENERATED = "api_key_regenerated"

    # Request workflow
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"

    # Identity administration
    IDENTITY_CREATED = "identity_created"
    IDENTITY_ACTIVATED = "identity_activated"
    IDENTITY_SUSPENDED = "identity_suspended"
    CAPABILITY_REVOKED = "capability_revoked"

    # Review workflow
    RESOURCE_CREATED = "resource_created"
    RESOURCE_SUBMITTED = "resource_submitted"
    RESOURCE_APPROVED = "resource_approved"
    RESOURCE_REJECTED = "resource_rejected"
    RESOURCE_CHANGES_REQUESTED = "resource_changes_requested"

    # Denials
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


SessionFactory = Callable[[], AsyncSession]


class AuditLogger:
    """
    Writes and reads the append-only audit trail.

    Entries are never updated or deleted.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self._pending: Set[asyncio.Task] = set()

    async def record(
        self,
        action: Union[AuditAction, str],
        *,
        actor_id: Optional[UUID] = None,
        component: Union[AuditComponent, str],
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        client: Optional[ClientMeta] = None,
        auth_method: Optional[Union[AuthMethod, str]] = None,
    ) -> Optional[AuditEntry]:
        """
        Append one entry.

        Returns:
            The stored entry, or None if the write failed
        """
        data = {
            "actor_id": actor_id,
            "action": _value(action),
            "component": _value(component),
            "resource_type": resource_type,
            "resource_id": str(resource_id) if resource_id is not None else None,
            "details": details or {},
            "ip_address": client.ip_address if client else None,
            "user_agent": client.user_agent if client else None,
            "request_id": client.request_id if client else None,
            "auth_method": _value(auth_method) if auth_method else None,
            "timestamp": datetime.now(timezone.utc),
        }
        try:
            async with self.session_factory() as session:
                entry = await AuditEntryRepository(session).append(data)
                await session.commit()
                return entry
        except Exception as e:
            get_operational_error_logger().error(
                "audit_write_failed",
                action=data["action"],
                component=data["component"],
                **log_error_details(
                    e,
                    request_id=data["request_id"],
                    identity_id=str(actor_id) if actor_id else None,
                ),
            )
            return None

    def record_nowait(self, action: Union[AuditAction, str], **kwargs: Any) -> asyncio.Task:
        """Schedule ``record`` on the running loop without awaiting it."""
        task = asyncio.create_task(self.record(action, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def query(self, query: AuditQuery) -> AuditPage:
        """
        Filtered, newest-first page of entries.

        Writes scheduled by this logger are flushed first, so a caller sees
        the entries its own request produced.
        """
        await self.drain()
        page_size = min(query.page_size, settings.AUDIT_MAX_PAGE_SIZE)
        offset = (query.page - 1) * page_size

        async with self.session_factory() as session:
            entries, total = await AuditEntryRepository(session).search(
                actor_id=query.actor_id,
                resource_type=query.resource_type,
                resource_id=query.resource_id,
                component=query.component,
                action=query.action,
                since=query.since,
                until=query.until,
                offset=offset,
                limit=page_size,
            )

        logger.debug("audit_query", total=total, page=query.page, page_size=page_size)
        return AuditPage(
            items=[AuditEntryRead.model_validate(entry) for entry in entries],
            total=total,
            page=query.page,
            page_size=page_size,
            has_next=offset + len(entries) < total,
        )


def _value(item: Union[Enum, str]) -> str:
    return item.value if isinstance(item, Enum) else item


# Shared instance bound to the application session factory
audit_logger = AuditLogger()
