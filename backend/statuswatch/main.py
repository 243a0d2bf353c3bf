"""Main FastAPI application - wires the monitoring engine to the status API."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import AppConfig, Settings, get_database_url, load_config
from .routers import monitors_router, status_router
from .services import (
    AlerterService,
    CheckerService,
    IncidentTracker,
    SchedulerService,
    StatusService,
    StatusStore,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    config: AppConfig = app.state.config
    logger.info(f"Starting StatusWatch v{__version__}")
    logger.info(f"Monitors: {len(config.monitors)} configured")

    # A store that cannot be opened is fatal at startup
    store = await StatusStore.open(get_database_url(config.database))
    logger.info("Database initialized")

    scheduler = SchedulerService(
        monitors=config.monitors,
        store=store,
        checker=CheckerService(),
        tracker=IncidentTracker(store),
        alerter=AlerterService(config.notification),
        check_interval_minutes=config.server.check_interval,
        retention_days=config.database.cleanup_days,
    )
    app.state.scheduler = scheduler
    app.state.status_service = StatusService(config.title, config.monitors, store)

    if app.state.run_scheduler:
        scheduler.start()

    yield

    # Waits for an in-flight cycle before closing the store
    await scheduler.shutdown()


def create_app(config: Optional[AppConfig] = None, run_scheduler: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="StatusWatch",
        description="Uptime monitoring - HTTP(S) and TCP checks with incident history",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config or load_config()
    app.state.run_scheduler = run_scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    app.include_router(status_router)
    app.include_router(monitors_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


def run():
    """Console entry point."""
    import uvicorn

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = load_config(settings)
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    run()
