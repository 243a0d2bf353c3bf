from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest_asyncio

from statuswatch.schemas import MonitorSpec
from statuswatch.services.store import StatusStore


def make_monitor(monitor_id: str = "web", **overrides: Any) -> MonitorSpec:
    fields: dict[str, Any] = {
        "id": monitor_id,
        "name": monitor_id.capitalize(),
        "method": "GET",
        "target": f"https://{monitor_id}.example.test/",
    }
    fields.update(overrides)
    return MonitorSpec(**fields)


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    store = await StatusStore.open(f"sqlite+aiosqlite:///{tmp_path / 'status.db'}")
    try:
        yield store
    finally:
        await store.close()
