"""Database models."""
from .monitor_state import MonitorState, SNAPSHOT_ROW_ID
from .incident import Incident
from .latency import Latency

__all__ = ["MonitorState", "SNAPSHOT_ROW_ID", "Incident", "Latency"]
