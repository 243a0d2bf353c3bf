"""Incident model - one contiguous down period of a monitor."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Index

from ..database import Base


class Incident(Base):
    """Down period for a monitor. ``end`` is NULL while the monitor is down.

    At most one open row exists per monitor.
    """

    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String, nullable=False, index=True)
    start = Column(Integer, nullable=False, index=True)  # epoch seconds
    end = Column(Integer, nullable=True)  # epoch seconds, NULL = open
    error = Column(String, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_incidents_monitor_start", "monitor_id", "start"),
    )
