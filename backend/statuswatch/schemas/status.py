"""Current status schemas."""
from typing import Dict

from .base import CamelModel


class AggregateSnapshot(CamelModel):
    """Last computed global summary - a single row, overwritten in place."""

    last_update: int = 0
    overall_up: int = 0
    overall_down: int = 0


class MonitorStatusOut(CamelModel):
    """Current state of one monitor."""

    up: bool
    latency: int
    location: str
    message: str


class StatusResponse(CamelModel):
    """Response of the status endpoint."""

    up: int
    down: int
    updated_at: int
    monitors: Dict[str, MonitorStatusOut]
