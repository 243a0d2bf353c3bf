"""Scheduler service - runs the monitoring cycle on a fixed interval.

One cycle probes every configured monitor in order, feeds each result through
the incident tracker and the alerter, records latency, then refreshes the
aggregate snapshot and runs retention cleanup when due.

Only one cycle runs at a time. If probing takes longer than the interval the
next tick is skipped rather than racing on the same monitors.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..errors import StoreError
from ..schemas import AggregateSnapshot, LatencySample, MonitorSpec
from .alerter import AlerterService
from .checker import CheckerService, ProbeResult
from .incidents import IncidentTracker
from .store import StatusStore

logger = logging.getLogger(__name__)

# All checks run from this process
LOCATION = "local"

# Snapshot is rewritten without a transition once this close to a full interval
SNAPSHOT_SLACK_SECONDS = 10

# Seconds between retention purges
RETENTION_CHECK_SECONDS = 24 * 60 * 60

CYCLE_JOB_ID = "monitoring_cycle"


@dataclass
class CycleReport:
    """Summary of one monitoring cycle."""
    started_at: int
    up: int = 0
    down: int = 0
    transitioned: bool = False
    snapshot_written: bool = False
    purged: bool = False
    skipped: bool = False


class SchedulerService:
    """Service for scheduling and running monitoring cycles."""

    def __init__(
        self,
        monitors: Iterable[MonitorSpec],
        store: StatusStore,
        checker: CheckerService,
        tracker: IncidentTracker,
        alerter: AlerterService,
        check_interval_minutes: int = 1,
        retention_days: int = 90,
        clock: Callable[[], float] = time.time,
    ):
        self.monitors = list(monitors)
        self.store = store
        self.checker = checker
        self.tracker = tracker
        self.alerter = alerter
        self.check_interval = max(1, int(check_interval_minutes))
        self.retention_days = retention_days
        self._clock = clock

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._cycle_lock = asyncio.Lock()
        self._initial_cycle: Optional[asyncio.Task] = None
        self._last_cleanup: Optional[int] = None
        self._closing = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the interval timer and run one cycle right away.

        Must be called from a running event loop.
        """
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._scheduled_cycle,
            trigger=IntervalTrigger(minutes=self.check_interval),
            id=CYCLE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )
        self.scheduler.start()
        self._running = True

        # Status should be available before the first tick
        self._initial_cycle = asyncio.get_running_loop().create_task(self._scheduled_cycle())
        logger.info(
            f"Scheduler started (interval={self.check_interval}m, monitors={len(self.monitors)})"
        )

    def stop(self):
        """Stop the interval timer. A cycle already in flight is left to finish."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def shutdown(self):
        """Stop scheduling, wait for the in-flight cycle, then close the store."""
        self._closing = True
        self.stop()
        if self._initial_cycle is not None and not self._initial_cycle.done():
            await self._initial_cycle
        async with self._cycle_lock:
            await self.store.close()
        logger.info("Shutdown complete")

    async def _scheduled_cycle(self):
        try:
            await self.run_cycle()
        except Exception:
            logger.exception("Error in monitoring cycle")

    async def run_cycle(self, now: Optional[int] = None) -> CycleReport:
        """Run one monitoring cycle unless another one is still in flight."""
        current_time = int(now if now is not None else self._clock())

        if self._closing:
            logger.debug("Shutting down, skipping monitoring cycle")
            return CycleReport(started_at=current_time, skipped=True)

        if self._cycle_lock.locked():
            logger.warning("Previous monitoring cycle still running, skipping this one")
            return CycleReport(started_at=current_time, skipped=True)

        async with self._cycle_lock:
            return await self._run_cycle(current_time)

    async def _run_cycle(self, now: int) -> CycleReport:
        logger.info("Starting monitoring cycle...")
        report = CycleReport(started_at=now)

        for monitor in self.monitors:
            try:
                up, transitioned = await self._process_monitor(monitor, now)
            except Exception:
                logger.exception(f"Error processing monitor {monitor.id}")
                up, transitioned = False, False

            if up:
                report.up += 1
            else:
                report.down += 1
            report.transitioned = report.transitioned or transitioned

        await self._update_snapshot(report, now)
        await self._cleanup_if_due(report, now)

        logger.info(f"Monitoring cycle completed. Overall: {report.up} up, {report.down} down")
        return report

    async def _probe(self, monitor: MonitorSpec) -> ProbeResult:
        try:
            return await self.checker.check(monitor)
        except Exception as e:
            logger.exception(f"Checker failed for {monitor.id}")
            return ProbeResult(ping=0, up=False, error=f"Unexpected error: {e}")

    async def _process_monitor(self, monitor: MonitorSpec, now: int):
        """Probe, evaluate, notify and record latency for one monitor.

        Returns (up, transitioned).
        """
        logger.debug(f"Checking {monitor.name}...")
        result = await self._probe(monitor)

        try:
            evaluation = await self.tracker.evaluate(monitor, result, now)
        except StoreError as e:
            logger.error(f"Failed to update incidents for {monitor.id}: {e}")
            up, transitioned = result.up, False
        else:
            up, transitioned = evaluation.up, evaluation.transitioned
            if evaluation.event is not None:
                await self.alerter.notify(evaluation.event)

        try:
            await self.store.append_latency(LatencySample(
                monitor_id=monitor.id,
                location=LOCATION,
                ping=result.ping,
                timestamp=now,
            ))
        except StoreError as e:
            logger.error(f"Failed to record latency for {monitor.id}: {e}")

        return up, transitioned

    async def _update_snapshot(self, report: CycleReport, now: int):
        """Write the snapshot on any transition, or when a full interval has passed."""
        try:
            snapshot = await self.store.get_snapshot()
            elapsed = now - snapshot.last_update
            if report.transitioned or elapsed >= self.check_interval * 60 - SNAPSHOT_SLACK_SECONDS:
                await self.store.set_snapshot(AggregateSnapshot(
                    last_update=now,
                    overall_up=report.up,
                    overall_down=report.down,
                ))
                report.snapshot_written = True
            else:
                logger.debug("Skipping state update due to cooldown period")
        except StoreError as e:
            logger.error(f"Failed to update monitor state: {e}")

    async def _cleanup_if_due(self, report: CycleReport, now: int):
        if self._last_cleanup is not None and now - self._last_cleanup < RETENTION_CHECK_SECONDS:
            return

        try:
            await self.store.purge_older_than(self.retention_days, now=now)
        except StoreError as e:
            logger.error(f"Error cleaning up old data: {e}")
            return

        self._last_cleanup = now
        report.purged = True
