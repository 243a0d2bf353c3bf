"""MonitorState model - the aggregate snapshot row."""
from sqlalchemy import Column, Integer

from ..database import Base

# The snapshot is a single row with a fixed key
SNAPSHOT_ROW_ID = 1


class MonitorState(Base):
    """Last computed overall up/down counts."""

    __tablename__ = "monitor_state"

    id = Column(Integer, primary_key=True)
    last_update = Column(Integer, nullable=False, default=0)  # epoch seconds
    overall_up = Column(Integer, nullable=False, default=0)
    overall_down = Column(Integer, nullable=False, default=0)
