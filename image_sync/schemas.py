"""API schemas for request/response models."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Strategy


class SyncRequest(BaseModel):
    """Request model for a manual pull, push or sync."""
    strategy: Optional[Strategy] = None


class ItemFailureResponse(BaseModel):
    name: str
    action: str
    error: Optional[str] = None


class ItemListsResponse(BaseModel):
    transferred: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    failed: List[ItemFailureResponse] = Field(default_factory=list)


class ConflictDetailResponse(BaseModel):
    name: str
    winner: Optional[str] = None
    local_modified_at: Optional[datetime] = None
    remote_modified_at: Optional[datetime] = None


class SyncResultResponse(BaseModel):
    """Outcome of one pull or push pass."""
    direction: str
    strategy: Strategy
    status: str
    transferred_count: int
    updated_count: int
    deleted_count: int
    failed_count: int
    conflicts_resolved: int
    item_lists: ItemListsResponse
    conflict_details: List[ConflictDetailResponse]


class SyncRunResponse(BaseModel):
    """Outcome of a combined sync; a half is null when the strategy skips it."""
    strategy: Strategy
    pull: Optional[SyncResultResponse] = None
    push: Optional[SyncResultResponse] = None


class SyncLogResponse(BaseModel):
    id: Optional[int] = None
    direction: str
    strategy: Strategy
    status: str
    timestamp: datetime
    message: str
    counts: Dict[str, int]
    item_lists: ItemListsResponse
    conflict_details: List[ConflictDetailResponse]
    primary_action: Optional[str] = None
    error_detail: Optional[str] = None


class StatusResponse(BaseModel):
    local_count: int
    remote_count: int
    last_sync_time: Optional[datetime] = None
    sync_folder: Optional[str] = None
    strategy: Strategy
    in_progress: bool


class CancelResponse(BaseModel):
    cancelled: bool


class HealthResponse(BaseModel):
    status: str
    version: str
