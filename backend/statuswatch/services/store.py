"""Persistence store - snapshot, incident log and latency log.

The store is the only owner of persisted rows. It is used from a single
scheduling context, so the check-then-act in ``open_incident`` needs no row
locks.
"""
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..database import Base, create_engine
from ..errors import IncidentInvariantError, StoreError, StoreUnavailableError
from ..models import Incident, Latency, MonitorState, SNAPSHOT_ROW_ID
from ..schemas import AggregateSnapshot, IncidentRecord, LatencySample
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

# Error text of the closed incident seeded on a monitor's first evaluation.
# It anchors uptime calculations at the first time the monitor was seen.
PLACEHOLDER_ERROR = "dummy"

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class PurgeResult:
    """Rows removed by a retention purge."""
    incidents: int
    latency: int


class StatusStore:
    """Async SQLAlchemy store for monitoring state."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    async def open(cls, url: str) -> "StatusStore":
        """Open the store, creating tables and the snapshot row if needed.

        Raises:
            StoreUnavailableError: if the database cannot be opened at all.
                Callers decide whether to fail fast or run degraded.
        """
        try:
            engine = create_engine(url)
        except (SQLAlchemyError, OSError, ValueError) as e:
            raise StoreUnavailableError(f"Cannot open store at {url}: {e}") from e

        store = cls(engine)
        try:
            await store._initialize()
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            raise StoreUnavailableError(f"Cannot open store at {url}: {e}") from e
        return store

    async def _initialize(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self._session_factory() as session:
            state = await session.get(MonitorState, SNAPSHOT_ROW_ID)
            if state is None:
                session.add(MonitorState(id=SNAPSHOT_ROW_ID, last_update=0, overall_up=0, overall_down=0))
                await retry_on_lock(session.commit)

    async def close(self):
        """Close database connections."""
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Session scope that turns driver errors into ``StoreError``."""
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    # Snapshot

    async def get_snapshot(self) -> AggregateSnapshot:
        async with self._session() as session:
            state = await session.get(MonitorState, SNAPSHOT_ROW_ID)
            if state is None:
                return AggregateSnapshot()
            return AggregateSnapshot.model_validate(state)

    async def set_snapshot(self, snapshot: AggregateSnapshot):
        """Overwrite the snapshot row."""
        async with self._session() as session:
            await session.merge(MonitorState(
                id=SNAPSHOT_ROW_ID,
                last_update=snapshot.last_update,
                overall_up=snapshot.overall_up,
                overall_down=snapshot.overall_down,
            ))
            await retry_on_lock(session.commit)

    # Incidents

    async def latest_incident(self, monitor_id: str) -> Optional[IncidentRecord]:
        """Most recent incident by start time, or None if the monitor has none."""
        async with self._session() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id)
                .order_by(Incident.start.desc(), Incident.id.desc())
                .limit(1)
            )
            incident = result.scalar_one_or_none()
            return IncidentRecord.model_validate(incident) if incident else None

    async def all_incidents(self, monitor_id: str, limit: Optional[int] = None) -> List[IncidentRecord]:
        """Incidents of a monitor, most recent first."""
        query = (
            select(Incident)
            .where(Incident.monitor_id == monitor_id)
            .order_by(Incident.start.desc(), Incident.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)

        async with self._session() as session:
            result = await session.execute(query)
            return [IncidentRecord.model_validate(i) for i in result.scalars().all()]

    async def open_incident(self, monitor_id: str, start: int, error: str) -> IncidentRecord:
        """Create an open incident.

        Raises:
            IncidentInvariantError: if the monitor already has an open incident.
        """
        async with self._session() as session:
            result = await session.execute(
                select(Incident.id)
                .where(Incident.monitor_id == monitor_id, Incident.end.is_(None))
                .limit(1)
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                raise IncidentInvariantError(
                    f"Monitor {monitor_id} already has open incident {existing}"
                )

            incident = Incident(monitor_id=monitor_id, start=start, end=None, error=error)
            session.add(incident)
            await retry_on_lock(session.commit)
            return IncidentRecord.model_validate(incident)

    async def seed_placeholder(self, monitor_id: str, now: int) -> IncidentRecord:
        """Insert the closed placeholder incident for a monitor seen for the first time."""
        async with self._session() as session:
            incident = Incident(monitor_id=monitor_id, start=now, end=now, error=PLACEHOLDER_ERROR)
            session.add(incident)
            await retry_on_lock(session.commit)
            return IncidentRecord.model_validate(incident)

    async def close_incident(self, incident_id: int, end: int):
        await self._update_incident(incident_id, end=end)

    async def update_incident_error(self, incident_id: int, error: str):
        """Replace the error text of an incident without touching its timing."""
        await self._update_incident(incident_id, error=error)

    async def _update_incident(self, incident_id: int, **values):
        async with self._session() as session:
            result = await session.execute(
                update(Incident).where(Incident.id == incident_id).values(**values)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise StoreError(f"Incident {incident_id} not found")
            await retry_on_lock(session.commit)

    # Latency

    async def append_latency(self, sample: LatencySample) -> LatencySample:
        async with self._session() as session:
            row = Latency(
                monitor_id=sample.monitor_id,
                location=sample.location,
                ping=sample.ping,
                timestamp=sample.timestamp,
            )
            session.add(row)
            await retry_on_lock(session.commit)
            return LatencySample.model_validate(row)

    async def latest_latency(self, monitor_id: str) -> Optional[LatencySample]:
        async with self._session() as session:
            result = await session.execute(
                select(Latency)
                .where(Latency.monitor_id == monitor_id)
                .order_by(Latency.timestamp.desc(), Latency.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return LatencySample.model_validate(row) if row else None

    async def latency_since(self, monitor_id: str, since: int) -> List[LatencySample]:
        """Samples newer than ``since``, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(Latency)
                .where(Latency.monitor_id == monitor_id, Latency.timestamp > since)
                .order_by(Latency.timestamp.asc(), Latency.id.asc())
            )
            return [LatencySample.model_validate(row) for row in result.scalars().all()]

    # Retention

    async def purge_older_than(self, retention_days: int, now: Optional[int] = None) -> PurgeResult:
        """Delete closed incidents and latency samples older than the retention window.

        Open incidents are kept regardless of age.
        """
        now = int(now if now is not None else time.time())
        cutoff = now - retention_days * SECONDS_PER_DAY

        async with self._session() as session:
            incidents = await session.execute(
                delete(Incident).where(Incident.end.is_not(None), Incident.end < cutoff)
            )
            latency = await session.execute(
                delete(Latency).where(Latency.timestamp < cutoff)
            )
            await retry_on_lock(session.commit)

        purged = PurgeResult(incidents=incidents.rowcount or 0, latency=latency.rowcount or 0)
        logger.info(
            f"Purged {purged.incidents} incidents and {purged.latency} latency samples "
            f"older than {retention_days} days"
        )
        return purged
