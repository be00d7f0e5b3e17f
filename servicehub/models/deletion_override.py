from sqlalchemy import Column, Integer, DateTime, ForeignKey, JSON, Enum

from ..db.base import Base
from ..enums import CatalogEntityKind
from ..models.base import utcnow


class DeletionOverride(Base):
    """Record of an admin forcing a catalog delete past the dependency guard."""

    __tablename__ = "deletion_overrides"

    id = Column(Integer, primary_key=True, index=True)
    entity_kind = Column(Enum(CatalogEntityKind), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    warnings = Column(JSON, nullable=False)
    counts = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
