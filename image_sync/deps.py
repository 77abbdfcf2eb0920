"""FastAPI dependency providers and engine wiring."""
from typing import Optional

import httpx
from fastapi import Request

from .config import Settings
from .storage import CatalogStore
from .sync.local_directory import LocalDirectoryAdapter
from .sync.orchestrator import SyncOrchestrator
from .sync.remote_client import RemoteCatalogClient


def build_orchestrator(
    settings: Settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> tuple[SyncOrchestrator, RemoteCatalogClient]:
    """Wire the orchestrator from settings. The caller closes the returned client."""
    remote = RemoteCatalogClient(
        settings.remote_base_url,
        http_client=http_client,
        timeout=settings.remote_timeout,
        max_retries=settings.max_retries,
        backoff_factor=settings.backoff_factor,
    )
    orchestrator = SyncOrchestrator(
        settings.sync_folder,
        LocalDirectoryAdapter(),
        remote,
        CatalogStore.open(settings.db_path),
        page_size=settings.page_size,
        max_concurrency=settings.max_concurrency,
    )
    return orchestrator, remote


def get_settings(request: Request) -> Settings:
    """Get settings dependency."""
    return request.app.state.settings


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Get orchestrator dependency."""
    return request.app.state.orchestrator
