"""Status API for the status page."""
from fastapi import APIRouter, Depends, Request

from ..schemas import PublicConfig, StatusResponse
from ..services.status import StatusService

router = APIRouter(prefix="/api", tags=["status"])


def get_status_service(request: Request) -> StatusService:
    """Dependency to get the status service built at startup."""
    return request.app.state.status_service


@router.get("/status", response_model=StatusResponse)
async def get_status(service: StatusService = Depends(get_status_service)):
    """Overall counts and current state of each monitor."""
    return await service.get_status()


@router.get("/config", response_model=PublicConfig)
async def get_config(service: StatusService = Depends(get_status_service)):
    """Public configuration (title and display fields of monitors)."""
    return service.get_public_config()
