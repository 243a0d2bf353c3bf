"""Exception hierarchy for the monitoring engine.

Probe failures are never raised: they are returned as ``ProbeResult`` values
and recorded as incident data. Only store and configuration problems surface
as exceptions.
"""


class StatusWatchError(Exception):
    """Base class for all StatusWatch errors."""


class ConfigurationError(StatusWatchError):
    """Configuration could not be loaded or a monitor target is malformed."""


class StoreError(StatusWatchError):
    """A persistence operation failed (I/O, locking, corruption)."""


class StoreUnavailableError(StoreError):
    """The store could not be opened at all."""


class IncidentInvariantError(StoreError):
    """An incident was opened while another one is still open for the monitor."""


class UnknownMonitorError(StatusWatchError):
    """The requested monitor id is not configured."""

    def __init__(self, monitor_id: str):
        super().__init__(f"Unknown monitor: {monitor_id}")
        self.monitor_id = monitor_id
