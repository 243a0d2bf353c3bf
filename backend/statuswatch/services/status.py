"""Status service - read paths for the status page."""
import time
from typing import Dict, Iterable, Optional

from ..errors import UnknownMonitorError
from ..schemas import (
    HistoryResponse,
    MonitorSpec,
    MonitorStatusOut,
    PublicConfig,
    PublicMonitor,
    StatusResponse,
)
from .incidents import RECOVERED_REASON
from .scheduler import LOCATION
from .store import StatusStore

# Incidents returned with a monitor's history
HISTORY_INCIDENT_LIMIT = 50

DEFAULT_HISTORY_HOURS = 12


class StatusService:
    """Answers status and history queries straight from the store."""

    def __init__(self, title: str, monitors: Iterable[MonitorSpec], store: StatusStore):
        self.title = title
        self.monitors: Dict[str, MonitorSpec] = {monitor.id: monitor for monitor in monitors}
        self.store = store

    async def get_status(self) -> StatusResponse:
        """Overall counts from the snapshot plus the current state of each monitor."""
        snapshot = await self.store.get_snapshot()
        statuses = {}

        for monitor_id in self.monitors:
            incident = await self.store.latest_incident(monitor_id)
            latency = await self.store.latest_latency(monitor_id)

            is_up = incident is None or not incident.is_open
            statuses[monitor_id] = MonitorStatusOut(
                up=is_up,
                latency=latency.ping if latency else 0,
                location=latency.location if latency else LOCATION,
                message=RECOVERED_REASON if is_up else incident.error,
            )

        return StatusResponse(
            up=snapshot.overall_up,
            down=snapshot.overall_down,
            updated_at=snapshot.last_update,
            monitors=statuses,
        )

    async def get_monitor_history(
        self,
        monitor_id: str,
        hours: int = DEFAULT_HISTORY_HOURS,
        now: Optional[int] = None,
    ) -> HistoryResponse:
        """Latency for the last ``hours`` and the most recent incidents."""
        if monitor_id not in self.monitors:
            raise UnknownMonitorError(monitor_id)

        now = int(now if now is not None else time.time())
        latency = await self.store.latency_since(monitor_id, now - hours * 60 * 60)
        incidents = await self.store.all_incidents(monitor_id, limit=HISTORY_INCIDENT_LIMIT)
        return HistoryResponse(latency=latency, incidents=incidents)

    def get_public_config(self) -> PublicConfig:
        """Configuration safe to expose: title and display fields of monitors."""
        return PublicConfig(
            title=self.title,
            monitors=[
                PublicMonitor(
                    id=monitor.id,
                    name=monitor.name,
                    target=monitor.target,
                    tooltip=monitor.tooltip,
                    status_page_link=monitor.status_page_link,
                    hide_latency_chart=monitor.hide_latency_chart,
                )
                for monitor in self.monitors.values()
            ],
        )
