"""Monitor history API."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..errors import UnknownMonitorError
from ..schemas import HistoryResponse
from ..services.status import DEFAULT_HISTORY_HOURS, StatusService
from .status import get_status_service

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


@router.get("/{monitor_id}/history", response_model=HistoryResponse)
async def get_monitor_history(
    monitor_id: str,
    hours: int = Query(DEFAULT_HISTORY_HOURS, ge=1, le=24 * 90),
    service: StatusService = Depends(get_status_service),
):
    """Latency samples (oldest first) and the 50 most recent incidents."""
    try:
        return await service.get_monitor_history(monitor_id, hours)
    except UnknownMonitorError:
        raise HTTPException(status_code=404, detail="Monitor not found")
