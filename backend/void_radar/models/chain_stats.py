import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer

from ..database import Base
from .category import GUID


class ChainStats(Base):
    """Point-in-time chain statistics written by the block-explorer sync."""

    __tablename__ = "chain_stats"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    total_transactions = Column(Integer, nullable=False, default=0)
    total_accounts = Column(Integer, nullable=False, default=0)
    block_height = Column(Integer, nullable=False, default=0)
    nodes_online = Column(Integer, nullable=False, default=0)
    avg_block_time = Column(Float, nullable=False, default=0.0)
    recorded_at = Column(DateTime, default=datetime.utcnow, index=True)
