"""Incident and latency history schemas."""
from typing import List, Optional

from .base import CamelModel


class IncidentRecord(CamelModel):
    """One contiguous down period. ``end`` is None while the incident is open."""

    id: int
    monitor_id: str
    start: int
    end: Optional[int] = None
    error: str

    @property
    def is_open(self) -> bool:
        return self.end is None


class LatencySample(CamelModel):
    """Latency of a single probe. Failed probes are stored with ping 0."""

    id: Optional[int] = None
    monitor_id: str
    location: str
    ping: int
    timestamp: int


class HistoryResponse(CamelModel):
    """Latency samples (ascending) and the most recent incidents (descending)."""

    latency: List[LatencySample]
    incidents: List[IncidentRecord]
