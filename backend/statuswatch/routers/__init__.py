"""API routers."""
from .status import router as status_router
from .monitors import router as monitors_router

__all__ = ["status_router", "monitors_router"]
