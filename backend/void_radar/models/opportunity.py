import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .category import GUID


class Opportunity(Base):
    """A detected ecosystem gap.

    ``stable_id`` is the idempotency key across pipeline runs. Rows are never
    deleted; a gap the latest run no longer reproduces moves to ``filling``.
    """

    __tablename__ = "opportunities"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    stable_id = Column(String(16), nullable=False, unique=True, index=True)
    category_id = Column(GUID(), ForeignKey("categories.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    reasoning = Column(Text, nullable=True)

    gap_score = Column(Float, nullable=False, default=0.0)
    demand_score = Column(Float, nullable=True, default=0.0)
    competition_level = Column(String(16), nullable=False)  # low | medium | high
    difficulty = Column(String(16), nullable=False)  # beginner | intermediate | advanced
    void_confidence = Column(Integer, nullable=False, default=5)

    suggested_features_json = Column(Text, nullable=True)
    evidence_projects_json = Column(Text, nullable=True)

    status = Column(String(16), nullable=False, default="active", index=True)  # active | filling

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="opportunities")
