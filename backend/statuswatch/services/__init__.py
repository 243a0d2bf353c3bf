"""Services for probing, incident tracking, alerting and scheduling."""
from .checker import CheckerService, ProbeResult
from .store import StatusStore
from .incidents import IncidentTracker
from .alerter import AlerterService
from .scheduler import SchedulerService
from .status import StatusService

__all__ = [
    "CheckerService",
    "ProbeResult",
    "StatusStore",
    "IncidentTracker",
    "AlerterService",
    "SchedulerService",
    "StatusService",
]
