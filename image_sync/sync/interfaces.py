from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from image_sync.models import Item, SyncLogEntry, SyncStatusSummary


@dataclass(frozen=True, slots=True)
class FileStat:
    mtime: datetime
    size: int


@dataclass(frozen=True, slots=True)
class RemotePage:
    items: list[Item]
    page: int
    limit: int
    total: int
    total_pages: int


@runtime_checkable
class LocalDirectory(Protocol):
    def list_dir(self, directory: Path) -> list[str]: ...

    def read_file(self, path: Path) -> bytes: ...

    def write_file(self, path: Path, data: bytes) -> None: ...

    def delete_file(self, path: Path) -> None: ...

    def stat(self, path: Path) -> FileStat: ...

    def set_modified_time(self, path: Path, timestamp: datetime) -> None: ...

    def exists(self, path: Path) -> bool: ...

    def ensure_dir(self, path: Path) -> None: ...

    def is_corrupted(self, path: Path) -> bool: ...


@runtime_checkable
class RemoteCatalog(Protocol):
    async def list_items(self, page: int, limit: int) -> RemotePage: ...

    async def fetch_bytes(self, item_id: str) -> bytes: ...

    async def create_item(self, data: bytes, display_name: str) -> Item: ...

    async def delete_item(self, item_id: str) -> None: ...


@runtime_checkable
class SyncLogStore(Protocol):
    def append_sync_log(self, entry: SyncLogEntry) -> Any: ...

    def query_status(self) -> SyncStatusSummary: ...

    def query_logs(self, limit: int) -> list[SyncLogEntry]: ...

    def record_items(self, replica: Any, items: Any) -> None: ...
