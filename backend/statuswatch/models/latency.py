"""Latency model - one row per probe execution."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Index

from ..database import Base


class Latency(Base):
    """Latency sample. Failed probes are recorded with ping 0."""

    __tablename__ = "latency"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String, nullable=False, index=True)
    location = Column(String, nullable=False, default="local")
    ping = Column(Integer, nullable=False)  # milliseconds
    timestamp = Column(Integer, nullable=False, index=True)  # epoch seconds
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_latency_monitor_timestamp", "monitor_id", "timestamp"),
    )
