from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import Settings, get_settings
from .deps import build_orchestrator
from .routes import router
from .schemas import HealthResponse
from .sync.orchestrator import SyncOrchestrator
from .sync.scheduler import SyncScheduler
from .telemetry.log import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine on startup unless one was injected, and run the scheduler."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_format)
    remote_client = None
    if app.state.orchestrator is None:
        app.state.orchestrator, remote_client = build_orchestrator(settings)

    scheduler = SyncScheduler(app.state.orchestrator, settings.strategy, settings.sync_interval_minutes)
    scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        scheduler.shutdown()
        if remote_client is not None:
            await remote_client.aclose()


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[SyncOrchestrator] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=settings.version)

    return app


app = create_app()
