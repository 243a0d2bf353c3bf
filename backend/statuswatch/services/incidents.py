"""Incident tracker - turns probe results into incident history."""
import logging
from dataclasses import dataclass
from typing import Optional

from ..schemas.monitor import MonitorSpec
from .alerter import StatusChange
from .checker import ProbeResult
from .store import StatusStore

logger = logging.getLogger(__name__)

RECOVERED_REASON = "OK"


@dataclass
class Evaluation:
    """Outcome of one state machine step for one monitor.

    ``transitioned`` is True only when the monitor went down or came back up.
    ``event`` is set for every step that leaves or finds the monitor down, and
    on recovery, so the alerter can apply its grace period.
    """
    monitor_id: str
    up: bool
    transitioned: bool = False
    event: Optional[StatusChange] = None


class IncidentTracker:
    """Per-monitor incident state machine.

    | open incident | probe up | action                 | transitioned |
    |---------------|----------|------------------------|--------------|
    | no            | yes      | none                   | no           |
    | no            | no       | open incident          | yes          |
    | yes           | yes      | close incident         | yes          |
    | yes           | no, same | none                   | no           |
    | yes           | no, new  | update incident error  | no           |
    """

    def __init__(self, store: StatusStore):
        self.store = store

    async def evaluate(self, monitor: MonitorSpec, result: ProbeResult, now: int) -> Evaluation:
        latest = await self.store.latest_incident(monitor.id)

        if latest is None:
            # First time this monitor is seen
            await self.store.seed_placeholder(monitor.id, now)

        current = latest if latest is not None and latest.is_open else None

        if result.up:
            if current is None:
                return Evaluation(monitor_id=monitor.id, up=True)

            await self.store.close_incident(current.id, now)
            logger.info(f"{monitor.name} recovered after {now - current.start}s")
            return Evaluation(
                monitor_id=monitor.id,
                up=True,
                transitioned=True,
                event=StatusChange(monitor, True, current.start, now, RECOVERED_REASON),
            )

        if current is None:
            await self.store.open_incident(monitor.id, now, result.error)
            logger.info(f"{monitor.name} is down: {result.error}")
            return Evaluation(
                monitor_id=monitor.id,
                up=False,
                transitioned=True,
                event=StatusChange(monitor, False, now, now, result.error),
            )

        if current.error != result.error:
            await self.store.update_incident_error(current.id, result.error)
            logger.info(f"{monitor.name} still down, reason changed: {result.error}")

        return Evaluation(
            monitor_id=monitor.id,
            up=False,
            event=StatusChange(monitor, False, current.start, now, result.error),
        )
