"""
Content review workflow.

Drives any model that embeds ``ReviewableMixin`` through::

    draft --submit--> pending_review --approve--> published
                                     --reject--> rejected
                                     --request_changes--> changes_requested --submit--> pending_review

Day-zero resources are created directly in ``published`` and never enter
review. Every transition is a compare-and-swap on ``(id, status, version)``.
"""
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Generic, Optional, Type, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationDenied, NotFoundError, WorkflowConflict
from app.domain.enums import ResourceStatus, ReviewDecision
from app.infrastructure.database.models import ReviewableMixin
from app.repositories.base import BaseRepository
from app.services.auth.authorization.permissions import Permission
from app.services.auth.authorization.rbac import permission_resolver
from app.services.security.audit import AuditAction, AuditComponent, AuditLogger

logger = structlog.get_logger(__name__)

ResourceType = TypeVar("ResourceType", bound=ReviewableMixin)

_SUBMITTABLE: FrozenSet[ResourceStatus] = frozenset({
    ResourceStatus.DRAFT,
    ResourceStatus.CHANGES_REQUESTED,
})

_DECISIONS: Dict[ReviewDecision, ResourceStatus] = {
    ReviewDecision.APPROVED: ResourceStatus.PUBLISHED,
    ReviewDecision.REJECTED: ResourceStatus.REJECTED,
    ReviewDecision.CHANGES_REQUESTED: ResourceStatus.CHANGES_REQUESTED,
}

_DECISION_ACTIONS: Dict[ReviewDecision, AuditAction] = {
    ReviewDecision.APPROVED: AuditAction.RESOURCE_APPROVED,
    ReviewDecision.REJECTED: AuditAction.RESOURCE_REJECTED,
    ReviewDecision.CHANGES_REQUESTED: AuditAction.RESOURCE_CHANGES_REQUESTED,
}


class ReviewWorkflowEngine(Generic[ResourceType]):
    """
    Review state machine for one collaborator resource type.

    The collaborator owns the domain columns and passes its own component
    tag so audit entries are attributable to it.
    """

    def __init__(
        self,
        db: AsyncSession,
        model: Type[ResourceType],
        component: str = AuditComponent.REVIEW.value,
        audit: Optional[AuditLogger] = None,
    ):
        self.db = db
        self.model = model
        self.repository = BaseRepository(model, db)
        self.component = component
        self.audit = audit
        self.resource_type = getattr(model, "__tablename__", model.__name__.lower())

    async def initialize(self, actor: Any, resource: ResourceType) -> ResourceType:
        """
        Persist a new resource owned by ``actor``.

        Day-zero resources require an administrator and start published.
        """
        now = datetime.now(timezone.utc)
        resource.creator_id = actor.id
        resource.version = 1
        resource.reviewer_id = None
        resource.review_decision = None
        resource.review_comments = None

        if resource.is_day_zero:
            if not permission_resolver.is_administrator(actor):
                raise AuthorizationDenied(
                    "Only administrators can seed day-zero content",
                    permission=Permission.KNOWLEDGE_SEED.value,
                )
            resource.status = ResourceStatus.PUBLISHED.value
            resource.reviewed_at = now
        else:
            resource.is_day_zero = False
            resource.status = ResourceStatus.DRAFT.value

        self.db.add(resource)
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "resource_initialized",
            resource_type=self.resource_type,
            resource_id=str(resource.id),
            status=resource.status,
            day_zero=resource.is_day_zero,
        )
        self._audit(AuditAction.RESOURCE_CREATED, actor, resource, {"status": resource.status})
        return resource

    async def submit(self, actor: Any, resource_id: UUID) -> ResourceType:
        """Creator (or administrator) sends a draft or revision to review."""
        resource = await self._get(resource_id)
        if resource.is_day_zero:
            raise WorkflowConflict("Day-zero resources never enter review", current_status=resource.status)
        if not (
            permission_resolver.is_owner(actor, resource.creator_id)
            or permission_resolver.is_administrator(actor)
        ):
            raise AuthorizationDenied("Only the creator can submit this resource for review")
        if ResourceStatus(resource.status) not in _SUBMITTABLE:
            raise WorkflowConflict(
                f"Cannot submit a resource in status {resource.status}",
                current_status=resource.status,
            )

        resource = await self._transition(
            resource,
            ResourceStatus.PENDING_REVIEW,
            submitted_at=datetime.now(timezone.utc),
        )
        self._audit(AuditAction.RESOURCE_SUBMITTED, actor, resource, {"status": resource.status})
        return resource

    async def approve(self, reviewer: Any, resource_id: UUID, comments: Optional[str] = None) -> ResourceType:
        return await self._decide(reviewer, resource_id, ReviewDecision.APPROVED, comments)

    async def reject(self, reviewer: Any, resource_id: UUID, comments: Optional[str] = None) -> ResourceType:
        return await self._decide(reviewer, resource_id, ReviewDecision.REJECTED, comments)

    async def request_changes(self, reviewer: Any, resource_id: UUID, comments: Optional[str] = None) -> ResourceType:
        return await self._decide(reviewer, resource_id, ReviewDecision.CHANGES_REQUESTED, comments)

    async def get_visible(self, actor: Any, resource_id: UUID) -> ResourceType:
        """Load a resource the caller may see; hidden ones look missing."""
        resource = await self._get(resource_id)
        if not permission_resolver.can_view(actor, resource):
            raise NotFoundError(self.model.__name__, str(resource_id))
        return resource

    def ensure_can_edit(self, actor: Any, resource: ResourceType) -> None:
        """Gate for collaborators changing the resource's domain fields."""
        if not permission_resolver.can_edit(actor, resource):
            raise AuthorizationDenied(
                f"Cannot edit a {resource.status} resource",
                permission=Permission.CONTENT_EDIT_ANY.value,
            )

    async def _decide(
        self,
        reviewer: Any,
        resource_id: UUID,
        decision: ReviewDecision,
        comments: Optional[str],
    ) -> ResourceType:
        resource = await self._get(resource_id)
        permission_resolver.ensure_can_review(reviewer, resource)
        if resource.status != ResourceStatus.PENDING_REVIEW.value:
            raise WorkflowConflict(
                f"Cannot {decision.value} a resource in status {resource.status}",
                current_status=resource.status,
            )

        resource = await self._transition(
            resource,
            _DECISIONS[decision],
            reviewer_id=reviewer.id,
            review_decision=decision.value,
            review_comments=comments,
            reviewed_at=datetime.now(timezone.utc),
        )
        self._audit(
            _DECISION_ACTIONS[decision],
            reviewer,
            resource,
            {"status": resource.status, "comments": comments},
        )
        return resource

    async def _transition(self, resource: ResourceType, to_status: ResourceStatus, **values: Any) -> ResourceType:
        # rollback expires the instance, so read what we need up front
        resource_id = resource.id
        from_status = resource.status
        stmt = (
            update(self.model)
            .where(
                self.model.id == resource_id,
                self.model.status == from_status,
                self.model.version == resource.version,
            )
            .values(status=to_status.value, version=self.model.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            await self.db.rollback()
            current = await self.repository.get(resource_id)
            logger.info(
                "resource_transition_conflict",
                resource_type=self.resource_type,
                resource_id=str(resource_id),
                attempted=to_status.value,
                current_status=current.status if current else None,
            )
            raise WorkflowConflict(
                "Resource changed concurrently",
                current_status=current.status if current else None,
            )
        await self.db.commit()

        logger.info(
            "resource_transitioned",
            resource_type=self.resource_type,
            resource_id=str(resource_id),
            from_status=from_status,
            to_status=to_status.value,
        )
        return await self.repository.get(resource_id)

    async def _get(self, resource_id: UUID) -> ResourceType:
        resource = await self.repository.get(resource_id)
        if resource is None:
            raise NotFoundError(self.model.__name__, str(resource_id))
        return resource

    def _audit(self, action: AuditAction, actor: Any, resource: ResourceType, details: dict) -> None:
        if self.audit is None:
            return
        self.audit.record_nowait(
            action,
            actor_id=actor.id,
            component=self.component,
            resource_type=self.resource_type,
            resource_id=resource.id,
            details=details,
            auth_method=getattr(actor, "auth_method", None),
        )
