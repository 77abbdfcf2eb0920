import asyncio
import inspect
import logging
import os
from io import BytesIO
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from image_sync.models import Item, Replica
from image_sync.storage import CatalogStore
from image_sync.sync.interfaces import RemotePage
from image_sync.sync.local_directory import LocalDirectoryAdapter
from image_sync.sync.orchestrator import SyncOrchestrator
from image_sync.utils.errors import RemoteError
from image_sync.utils.timestamps import from_millis, to_millis, to_mtime_ns

T0 = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


def pytest_pyfunc_call(pyfuncitem):
    if asyncio.iscoroutinefunction(pyfuncitem.obj):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            sig = inspect.signature(pyfuncitem.obj)
            accepted = {name: value for name, value in pyfuncitem.funcargs.items() if name in sig.parameters}
            loop.run_until_complete(pyfuncitem.obj(**accepted))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


def jpeg_bytes(color=(200, 120, 40), size=(16, 16)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="JPEG")
    return buffer.getvalue()


def write_image(folder: Path, name: str, modified_at: datetime, color=(200, 120, 40)) -> Path:
    path = folder / name
    path.write_bytes(jpeg_bytes(color))
    mtime_ns = to_mtime_ns(modified_at)
    os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


def local_mtime(path: Path) -> datetime:
    return from_millis(path.stat().st_mtime_ns // 1_000_000)


class FakeRemoteCatalog:
    """In-memory remote catalog with per-name failure injection."""

    def __init__(self) -> None:
        self.records: dict[str, tuple[Item, bytes]] = {}
        self._next_id = 1
        self.fail_fetch: set[str] = set()
        self.fail_create: set[str] = set()
        self.fail_delete: set[str] = set()
        self.list_error: Optional[Exception] = None
        self.list_calls: list[tuple[int, int]] = []
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.fetched: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.waiting = 0
        self.closed = False
        self.stamp_created = True

    def add(
        self,
        name: str,
        modified_at: Optional[datetime],
        data: Optional[bytes] = None,
        corrupted: bool = False,
    ) -> Item:
        data = data if data is not None else jpeg_bytes()
        item_id = str(self._next_id)
        self._next_id += 1
        item = Item(
            logical_name=name,
            storage_name=f"{item_id}-{name}",
            size_bytes=len(data),
            modified_at=modified_at,
            corrupted=corrupted,
            source_replica=Replica.REMOTE,
            item_id=item_id,
        )
        self.records[item_id] = (item, data)
        return item

    def names(self) -> list[str]:
        return sorted(item.logical_name for item, _ in self.records.values())

    def get(self, name: str) -> Item:
        for item, _ in self.records.values():
            if item.logical_name == name:
                return item
        raise KeyError(name)

    def data(self, name: str) -> bytes:
        return self.records[self.get(name).item_id][1]

    async def list_items(self, page: int, limit: int) -> RemotePage:
        self.list_calls.append((page, limit))
        if self.list_error is not None:
            raise self.list_error
        items = [item for item, _ in sorted(self.records.values(), key=lambda record: int(record[0].item_id))]
        total_pages = max(1, -(-len(items) // limit))
        start = (page - 1) * limit
        return RemotePage(
            items=items[start:start + limit],
            page=page,
            limit=limit,
            total=len(items),
            total_pages=total_pages,
        )

    async def fetch_bytes(self, item_id: str) -> bytes:
        item, data = self.records[item_id]
        if self.gate is not None:
            self.waiting += 1
            await self.gate.wait()
        if item.logical_name in self.fail_fetch:
            raise RemoteError(f"Remote catalog returned HTTP 500: {item.logical_name}", remote_status=500)
        self.fetched.append(item.logical_name)
        return data

    async def create_item(self, data: bytes, display_name: str) -> Item:
        if display_name in self.fail_create:
            raise RemoteError(f"Upload of {display_name} was rejected", remote_status=400)
        self.created.append(display_name)
        # Server stamps its own time, truncated to milliseconds.
        stamp = from_millis(to_millis(datetime.now(timezone.utc))) if self.stamp_created else None
        return self.add(display_name, stamp, data)

    async def delete_item(self, item_id: str) -> None:
        item, _ = self.records[item_id]
        if item.logical_name in self.fail_delete:
            raise RemoteError(f"Remote catalog returned HTTP 500: {item.logical_name}", remote_status=500)
        del self.records[item_id]
        self.deleted.append(item.logical_name)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def sync_folder(tmp_path: Path) -> Path:
    folder = tmp_path / "library"
    folder.mkdir()
    return folder


@pytest.fixture
def remote() -> FakeRemoteCatalog:
    return FakeRemoteCatalog()


@pytest.fixture
def catalog() -> CatalogStore:
    return CatalogStore()


@pytest.fixture
def orchestrator(sync_folder: Path, remote: FakeRemoteCatalog, catalog: CatalogStore) -> SyncOrchestrator:
    return SyncOrchestrator(
        sync_folder,
        LocalDirectoryAdapter(),
        remote,
        catalog,
        page_size=2,
        max_concurrency=2,
    )


@pytest.fixture
def restore_logging():
    """Undo ``setup_logging`` so later tests keep pytest's own capture."""
    logger = logging.getLogger("image_sync")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
