"""Monitor definitions supplied by configuration."""
from typing import Dict, List, Optional, Union

from pydantic import ConfigDict, Field, field_validator

from .base import CamelModel

TCP_PING = "TCP_PING"
HTTP_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


class MonitorSpec(CamelModel):
    """A monitored endpoint - HTTP(S) request or raw TCP connect.

    Immutable for the lifetime of the process.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    method: str = "GET"  # HTTP verb or TCP_PING
    target: str = Field(..., min_length=1)  # URL or host:port
    timeout: int = Field(default=10000, gt=0)  # milliseconds
    expected_codes: Optional[List[int]] = None
    response_keyword: Optional[str] = None
    response_forbidden_keyword: Optional[str] = None
    headers: Optional[Dict[str, Union[str, int]]] = None
    body: Optional[str] = None

    # Display-only fields, passed through to the status page
    tooltip: Optional[str] = None
    status_page_link: Optional[str] = None
    hide_latency_chart: bool = False

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        method = value.strip().upper()
        if method != TCP_PING and method not in HTTP_METHODS:
            raise ValueError(f"Unsupported method: {value}")
        return method

    @property
    def is_tcp(self) -> bool:
        return self.method == TCP_PING


class PublicMonitor(CamelModel):
    """Monitor fields that are safe to expose to the status page."""

    id: str
    name: str
    target: str
    tooltip: Optional[str] = None
    status_page_link: Optional[str] = None
    hide_latency_chart: bool = False


class PublicConfig(CamelModel):
    """Public view of the configuration (no headers, bodies or secrets)."""

    title: str
    monitors: List[PublicMonitor]
