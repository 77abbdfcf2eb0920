"""Sync API routes."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .config import Settings
from .deps import get_orchestrator, get_settings
from .models import Strategy
from .schemas import (
    CancelResponse,
    StatusResponse,
    SyncLogResponse,
    SyncRequest,
    SyncResultResponse,
    SyncRunResponse,
)
from .sync.orchestrator import SyncOrchestrator
from .utils.errors import AppError, SyncFailedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync")


def _strategy(payload: Optional[SyncRequest], settings: Settings) -> Strategy:
    if payload is not None and payload.strategy is not None:
        return payload.strategy
    return settings.strategy


def _http_error(exc: AppError) -> HTTPException:
    detail: Dict[str, Any] = {"error": exc.__class__.__name__, "detail": exc.message}
    if isinstance(exc, SyncFailedError):
        detail["entry"] = exc.entry.to_dict()
    return HTTPException(status_code=exc.status_code, detail=detail)


@router.get("/status", response_model=StatusResponse)
async def get_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> StatusResponse:
    """Report item counts per replica and the last successful pass."""
    summary = await asyncio.to_thread(orchestrator.get_status)
    folder = orchestrator.sync_folder
    return StatusResponse(
        local_count=summary.local_count,
        remote_count=summary.remote_count,
        last_sync_time=summary.last_sync_time,
        sync_folder=str(folder) if folder is not None else None,
        strategy=settings.strategy,
        in_progress=orchestrator.in_progress,
    )


@router.post("/pull", response_model=SyncResultResponse)
async def trigger_pull(
    payload: Optional[SyncRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> SyncResultResponse:
    """Bring the remote catalog's changes into the local folder."""
    try:
        result = await orchestrator.pull(_strategy(payload, settings))
    except AppError as exc:
        raise _http_error(exc) from exc
    return SyncResultResponse.model_validate(result.to_dict())


@router.post("/push", response_model=SyncResultResponse)
async def trigger_push(
    payload: Optional[SyncRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> SyncResultResponse:
    """Send local changes to the remote catalog."""
    try:
        result = await orchestrator.push(_strategy(payload, settings))
    except AppError as exc:
        raise _http_error(exc) from exc
    return SyncResultResponse.model_validate(result.to_dict())


@router.post("/run", response_model=SyncRunResponse)
async def trigger_sync(
    payload: Optional[SyncRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> SyncRunResponse:
    """Trigger a manual sync run."""
    try:
        run = await orchestrator.sync(_strategy(payload, settings))
    except AppError as exc:
        raise _http_error(exc) from exc
    return SyncRunResponse(
        strategy=run.strategy,
        pull=SyncResultResponse.model_validate(run.pull.to_dict()) if run.pull else None,
        push=SyncResultResponse.model_validate(run.push.to_dict()) if run.push else None,
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> CancelResponse:
    return CancelResponse(cancelled=orchestrator.cancel())


@router.get("/logs", response_model=List[SyncLogResponse])
async def list_logs(
    limit: int = Query(default=50, ge=1, le=500),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[SyncLogResponse]:
    """Return the newest sync log entries, newest first."""
    entries = await asyncio.to_thread(orchestrator.logs, limit)
    return [SyncLogResponse.model_validate(entry.to_dict()) for entry in entries]
