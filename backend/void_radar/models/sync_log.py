import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from ..database import Base
from .category import GUID


class SyncLog(Base):
    __tablename__ = "sync_logs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    source = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="running")  # running | completed | failed
    records_processed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
