from __future__ import annotations

import pytest
from sqlalchemy import func, select

from statuswatch.errors import IncidentInvariantError, StoreError, StoreUnavailableError
from statuswatch.models import Incident
from statuswatch.schemas import AggregateSnapshot, LatencySample
from statuswatch.services.store import PLACEHOLDER_ERROR, SECONDS_PER_DAY, StatusStore

NOW = 1_700_000_000


async def _open_count(store: StatusStore, monitor_id: str) -> int:
    async with store._session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(Incident)
            .where(Incident.monitor_id == monitor_id, Incident.end.is_(None))
        )
        return result.scalar_one()


@pytest.mark.asyncio
async def test_snapshot_defaults_and_overwrite(store: StatusStore) -> None:
    snapshot = await store.get_snapshot()
    assert snapshot == AggregateSnapshot(last_update=0, overall_up=0, overall_down=0)

    await store.set_snapshot(AggregateSnapshot(last_update=NOW, overall_up=3, overall_down=1))
    await store.set_snapshot(AggregateSnapshot(last_update=NOW + 60, overall_up=4, overall_down=0))

    snapshot = await store.get_snapshot()
    assert snapshot.last_update == NOW + 60
    assert snapshot.overall_up == 4
    assert snapshot.overall_down == 0


@pytest.mark.asyncio
async def test_snapshot_survives_reopen(tmp_path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'data' / 'status.db'}"
    store = await StatusStore.open(url)
    await store.set_snapshot(AggregateSnapshot(last_update=NOW, overall_up=2, overall_down=0))
    await store.close()

    reopened = await StatusStore.open(url)
    try:
        snapshot = await reopened.get_snapshot()
        assert snapshot.last_update == NOW
        assert snapshot.overall_up == 2
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_open_fails_with_explicit_error(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    with pytest.raises(StoreUnavailableError):
        await StatusStore.open(f"sqlite+aiosqlite:///{blocker / 'status.db'}")


@pytest.mark.asyncio
async def test_latest_incident_is_none_for_unknown_monitor(store: StatusStore) -> None:
    assert await store.latest_incident("web") is None
    assert await store.all_incidents("web") == []


@pytest.mark.asyncio
async def test_open_incident_refuses_second_open_incident(store: StatusStore) -> None:
    first = await store.open_incident("web", NOW, "boom")
    assert first.end is None
    assert first.is_open

    with pytest.raises(IncidentInvariantError):
        await store.open_incident("web", NOW + 60, "boom again")

    assert await _open_count(store, "web") == 1

    # Other monitors are independent
    await store.open_incident("api", NOW, "down")
    assert await _open_count(store, "api") == 1


@pytest.mark.asyncio
async def test_close_then_reopen_keeps_single_open_incident(store: StatusStore) -> None:
    first = await store.open_incident("web", NOW, "boom")
    await store.close_incident(first.id, NOW + 120)
    second = await store.open_incident("web", NOW + 300, "boom")

    latest = await store.latest_incident("web")
    assert latest is not None
    assert latest.id == second.id
    assert await _open_count(store, "web") == 1


@pytest.mark.asyncio
async def test_all_incidents_sorted_by_start_descending(store: StatusStore) -> None:
    for offset in (0, 600, 300):
        incident = await store.open_incident("web", NOW + offset, f"err {offset}")
        await store.close_incident(incident.id, NOW + offset + 60)

    incidents = await store.all_incidents("web")
    assert [i.start for i in incidents] == [NOW + 600, NOW + 300, NOW]

    limited = await store.all_incidents("web", limit=2)
    assert [i.start for i in limited] == [NOW + 600, NOW + 300]


@pytest.mark.asyncio
async def test_update_incident_error_keeps_timing(store: StatusStore) -> None:
    incident = await store.open_incident("web", NOW, "timeout")
    await store.update_incident_error(incident.id, "refused")

    latest = await store.latest_incident("web")
    assert latest is not None
    assert latest.error == "refused"
    assert latest.start == NOW
    assert latest.end is None


@pytest.mark.asyncio
async def test_updating_missing_incident_raises_store_error(store: StatusStore) -> None:
    with pytest.raises(StoreError):
        await store.close_incident(12345, NOW)


@pytest.mark.asyncio
async def test_placeholder_and_real_incident_in_same_second(store: StatusStore) -> None:
    placeholder = await store.seed_placeholder("web", NOW)
    assert placeholder.error == PLACEHOLDER_ERROR
    assert placeholder.start == placeholder.end == NOW

    real = await store.open_incident("web", NOW, "down")
    latest = await store.latest_incident("web")
    assert latest is not None
    assert latest.id == real.id


@pytest.mark.asyncio
async def test_latency_ids_unique_within_same_second(store: StatusStore) -> None:
    first = await store.append_latency(LatencySample(monitor_id="web", location="local", ping=12, timestamp=NOW))
    second = await store.append_latency(LatencySample(monitor_id="web", location="local", ping=0, timestamp=NOW))
    assert first.id is not None
    assert first.id != second.id

    latest = await store.latest_latency("web")
    assert latest is not None
    assert latest.id == second.id


@pytest.mark.asyncio
async def test_latency_since_ascending_and_exclusive(store: StatusStore) -> None:
    for timestamp in (NOW + 120, NOW, NOW + 60, NOW - 60):
        await store.append_latency(LatencySample(monitor_id="web", location="local", ping=5, timestamp=timestamp))
    await store.append_latency(LatencySample(monitor_id="api", location="local", ping=5, timestamp=NOW + 30))

    samples = await store.latency_since("web", NOW)
    assert [s.timestamp for s in samples] == [NOW + 60, NOW + 120]
    assert all(s.monitor_id == "web" for s in samples)


@pytest.mark.asyncio
async def test_purge_removes_old_closed_incidents_and_keeps_open_ones(store: StatusStore) -> None:
    forty_days_ago = NOW - 40 * SECONDS_PER_DAY

    old_closed = await store.open_incident("web", forty_days_ago - 600, "old")
    await store.close_incident(old_closed.id, forty_days_ago)
    recent_closed = await store.open_incident("web", NOW - 3600, "recent")
    await store.close_incident(recent_closed.id, NOW - 1800)
    old_open = await store.open_incident("api", forty_days_ago, "still down")

    await store.append_latency(LatencySample(monitor_id="web", location="local", ping=5, timestamp=forty_days_ago))
    await store.append_latency(LatencySample(monitor_id="web", location="local", ping=7, timestamp=NOW - 60))

    purged = await store.purge_older_than(30, now=NOW)
    assert purged.incidents == 1
    assert purged.latency == 1

    assert [i.id for i in await store.all_incidents("web")] == [recent_closed.id]
    assert [i.id for i in await store.all_incidents("api")] == [old_open.id]
    assert [s.ping for s in await store.latency_since("web", 0)] == [7]
