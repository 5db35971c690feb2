"""
A collaborator-owned resource used to exercise the review workflow.
"""
import uuid

from sqlalchemy import Column, String, Uuid

from app.infrastructure.database.base import Base
from app.infrastructure.database.models import ReviewableMixin


class KnowledgeDocument(Base, ReviewableMixin):
    """Minimal knowledge-curation document."""
    __tablename__ = "knowledge_document"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
