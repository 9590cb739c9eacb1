import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .category import GUID


class Project(Base):
    __tablename__ = "projects"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(GUID(), ForeignKey("categories.id"), nullable=True, index=True)

    tvl_usd = Column(Float, nullable=False, default=0.0)

    # GitHub activity, refreshed by the ecosystem sync
    github_stars = Column(Integer, nullable=False, default=0)
    github_forks = Column(Integer, nullable=False, default=0)
    github_open_issues = Column(Integer, nullable=False, default=0)
    last_github_commit = Column(DateTime, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="projects")
