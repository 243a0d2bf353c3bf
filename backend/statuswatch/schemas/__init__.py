"""Pydantic schemas for configuration, storage records and API responses."""
from .monitor import (
    MonitorSpec,
    PublicMonitor,
    PublicConfig,
    TCP_PING,
)
from .status import (
    AggregateSnapshot,
    MonitorStatusOut,
    StatusResponse,
)
from .history import (
    IncidentRecord,
    LatencySample,
    HistoryResponse,
)

__all__ = [
    "MonitorSpec",
    "PublicMonitor",
    "PublicConfig",
    "TCP_PING",
    "AggregateSnapshot",
    "MonitorStatusOut",
    "StatusResponse",
    "IncidentRecord",
    "LatencySample",
    "HistoryResponse",
]
