from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from image_sync.models import (
    BUCKETS,
    Action,
    ActionKind,
    Both,
    ConflictDetail,
    DeleteLocal,
    DeleteRemote,
    Direction,
    Download,
    Item,
    ItemOutcome,
    MatchResult,
    OnlyLocal,
    OnlyRemote,
    OrphanAction,
    PlannedAction,
    PullResult,
    PushResult,
    ReplaceLocal,
    ReplaceRemote,
    Replica,
    ReplicaSnapshot,
    Strategy,
    SyncLists,
    SyncLogEntry,
    SyncResult,
    SyncRunResult,
    SyncStatus,
    SyncStatusSummary,
    Upload,
)
from image_sync.telemetry.log import log_error, log_sync_event, log_timing
from image_sync.utils.errors import (
    ConfigurationError,
    LocalIOError,
    RemoteError,
    SyncFailedError,
    SyncInProgressError,
)

from .interfaces import LocalDirectory, RemoteCatalog, SyncLogStore
from .matcher import match
from .resolver import orphan_action, resolve

logger = logging.getLogger(__name__)

# Direction that owns each orphan action; the other direction leaves it alone.
_ORPHAN_DIRECTION: dict[OrphanAction, Direction] = {
    OrphanAction.DOWNLOAD: Direction.PULL,
    OrphanAction.DELETE_LOCAL: Direction.PULL,
    OrphanAction.UPLOAD: Direction.PUSH,
    OrphanAction.DELETE_REMOTE: Direction.PUSH,
}


@dataclass(slots=True)
class PassPlan:
    actions: list[PlannedAction] = field(default_factory=list)
    conflicts: list[ConflictDetail] = field(default_factory=list)


def plan_pass(direction: Direction, matches: Iterable[MatchResult], strategy: Strategy) -> PassPlan:
    """Turn match results into the actions one half-operation must perform."""
    plan = PassPlan()
    for result in matches:
        if isinstance(result, Both):
            decision = resolve(result, strategy)
            if decision.conflicting:
                plan.conflicts.append(
                    ConflictDetail(
                        name=result.name,
                        winner=decision.winner,
                        local_modified_at=result.local.modified_at,
                        remote_modified_at=result.remote.modified_at,
                    )
                )
            if decision.action is not Action.UPDATE:
                continue
            if decision.winner is Replica.REMOTE and direction is Direction.PULL:
                plan.actions.append(ReplaceLocal(local=result.local, remote=result.remote))
            elif decision.winner is Replica.LOCAL and direction is Direction.PUSH:
                plan.actions.append(ReplaceRemote(local=result.local, remote=result.remote))
        elif isinstance(result, (OnlyLocal, OnlyRemote)):
            action = orphan_action(result, strategy)
            if _ORPHAN_DIRECTION[action] is not direction:
                continue
            if action is OrphanAction.DOWNLOAD:
                plan.actions.append(Download(remote=result.item))
            elif action is OrphanAction.DELETE_LOCAL:
                plan.actions.append(DeleteLocal(local=result.item))
            elif action is OrphanAction.UPLOAD:
                plan.actions.append(Upload(local=result.item))
            elif action is OrphanAction.DELETE_REMOTE:
                plan.actions.append(DeleteRemote(remote=result.item))
        else:
            raise TypeError(f"Unknown match result: {result!r}")
    return plan


def primary_action(outcomes: Iterable[ItemOutcome]) -> Optional[ActionKind]:
    """Most frequent successful action kind; ties go to declaration order."""
    counts = Counter(outcome.action for outcome in outcomes if outcome.succeeded)
    if not counts:
        return None
    order = list(ActionKind)
    return max(counts, key=lambda kind: (counts[kind], -order.index(kind)))


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def _safe_local_path(folder: Path, name: str) -> Path:
    if not name or name in {".", ".."} or any(sep in name for sep in ("/", "\\", "\x00")):
        raise LocalIOError(f"Refusing unsafe file name {name!r}", path=name)
    return folder / name


class SyncOrchestrator:
    """Drive pull and push passes between a local folder and the remote catalog.

    One orchestrator serves one local/remote pair and runs one pass at a time.
    Strategy is passed per call; nothing is read from ambient configuration.
    """

    def __init__(
        self,
        sync_folder: Optional[Path],
        local: LocalDirectory,
        remote: RemoteCatalog,
        catalog: SyncLogStore,
        *,
        page_size: int = 100,
        max_concurrency: int = 4,
    ) -> None:
        self._sync_folder = Path(sync_folder) if sync_folder is not None else None
        self._local = local
        self._remote = remote
        self._catalog = catalog
        self._page_size = max(1, page_size)
        self._max_concurrency = max(1, max_concurrency)
        self._guard = asyncio.Lock()
        self._cancel_requested = False

    @property
    def sync_folder(self) -> Optional[Path]:
        return self._sync_folder

    @property
    def in_progress(self) -> bool:
        return self._guard.locked()

    def cancel(self) -> bool:
        """Ask the running pass to stop before its next item. Returns False when idle."""
        if not self.in_progress:
            return False
        self._cancel_requested = True
        logger.info("Cancellation requested")
        return True

    async def pull(self, strategy: Strategy) -> PullResult:
        async with self._exclusive():
            return await self._run_pass(Direction.PULL, strategy)

    async def push(self, strategy: Strategy) -> PushResult:
        async with self._exclusive():
            return await self._run_pass(Direction.PUSH, strategy)

    async def sync(self, strategy: Strategy) -> SyncRunResult:
        """Pull then push under last-write-wins; only the relevant half otherwise."""
        async with self._exclusive():
            run = SyncRunResult(strategy=strategy)
            if strategy in (Strategy.LAST_WRITE_WINS, Strategy.SERVER_ALWAYS_WINS):
                run.pull = await self._run_pass(Direction.PULL, strategy)
                if self._cancel_requested:
                    return run
            if strategy in (Strategy.LAST_WRITE_WINS, Strategy.LOCAL_ALWAYS_WINS):
                run.push = await self._run_pass(Direction.PUSH, strategy)
            return run

    def get_status(self) -> SyncStatusSummary:
        return self._catalog.query_status()

    def logs(self, limit: int = 50) -> list[SyncLogEntry]:
        return self._catalog.query_logs(limit)

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._guard.locked():
            raise SyncInProgressError()
        async with self._guard:
            self._cancel_requested = False
            try:
                yield
            finally:
                self._cancel_requested = False

    async def _run_pass(self, direction: Direction, strategy: Strategy) -> SyncResult:
        folder = await self._require_folder()
        started = time.perf_counter()

        try:
            remote_snapshot = await self._snapshot_remote()
            local_snapshot = await asyncio.to_thread(self._snapshot_local, folder)
        except (RemoteError, LocalIOError) as exc:
            entry = SyncLogEntry(
                direction=direction,
                strategy=strategy,
                status=SyncStatus.FAILED,
                error_detail=str(exc),
            )
            await asyncio.to_thread(self._catalog.append_sync_log, entry)
            log_error(exc, {"direction": direction.value, "strategy": strategy.value})
            raise SyncFailedError(f"{direction.value.title()} failed: {exc}", entry) from exc

        plan = plan_pass(direction, match(local_snapshot, remote_snapshot), strategy)
        outcomes = await self._execute(folder, plan.actions)
        skipped = len(plan.actions) - len(outcomes)

        lists = SyncLists()
        for outcome in outcomes:
            if not outcome.succeeded:
                lists.failed.append(outcome)
                continue
            getattr(lists, BUCKETS[outcome.action]).append(outcome.name)

        status = SyncStatus.CANCELLED if skipped else SyncStatus.SUCCESS
        result_type = PullResult if direction is Direction.PULL else PushResult
        result = result_type(
            direction=direction,
            strategy=strategy,
            status=status,
            item_lists=lists,
            conflicts_resolved=len(plan.conflicts),
            conflict_details=plan.conflicts,
        )

        entry = SyncLogEntry(
            direction=direction,
            strategy=strategy,
            status=status,
            item_lists=lists,
            conflicts_resolved=len(plan.conflicts),
            conflict_details=plan.conflicts,
            primary_action=primary_action(outcomes),
            error_detail=f"Cancelled with {skipped} item(s) not attempted" if skipped else None,
        )
        await asyncio.to_thread(self._catalog.append_sync_log, entry)
        await asyncio.to_thread(self._record_view, local_snapshot, remote_snapshot, outcomes)

        log_sync_event(
            "sync.pass",
            {
                "direction": direction.value,
                "strategy": strategy.value,
                "status": status.value,
                **entry.counts,
                "skipped": skipped,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return result

    async def _require_folder(self) -> Path:
        if self._sync_folder is None:
            raise ConfigurationError("No sync folder configured")
        exists = await asyncio.to_thread(self._local.exists, self._sync_folder)
        if not exists:
            raise ConfigurationError(f"Sync folder {self._sync_folder} does not exist")
        return self._sync_folder

    async def _snapshot_remote(self) -> ReplicaSnapshot:
        started = time.perf_counter()
        items: list[Item] = []
        page = 1
        while True:
            result = await self._remote.list_items(page=page, limit=self._page_size)
            items.extend(item for item in result.items if not _is_hidden(item.logical_name))
            if not result.items or page >= result.total_pages:
                break
            page += 1
        log_timing("snapshot.remote", (time.perf_counter() - started) * 1000, {"pages": page, "items": len(items)})
        return ReplicaSnapshot(replica=Replica.REMOTE, items=tuple(items))

    def _snapshot_local(self, folder: Path) -> ReplicaSnapshot:
        items = [
            self._describe_local(folder, name)
            for name in self._local.list_dir(folder)
            if not _is_hidden(name)
        ]
        return ReplicaSnapshot(replica=Replica.LOCAL, items=tuple(items))

    def _describe_local(self, folder: Path, name: str) -> Item:
        path = folder / name
        try:
            stat = self._local.stat(path)
        except LocalIOError as exc:
            logger.warning("Could not stat %s, continuing without a timestamp: %s", name, exc)
            return Item(logical_name=name, storage_name=name, size_bytes=0, modified_at=None)

        try:
            corrupted = self._local.is_corrupted(path)
        except LocalIOError as exc:
            logger.warning("Could not validate %s: %s", name, exc)
            corrupted = False

        return Item(
            logical_name=name,
            storage_name=name,
            size_bytes=stat.size,
            modified_at=stat.mtime,
            corrupted=corrupted,
        )

    async def _execute(self, folder: Path, actions: list[PlannedAction]) -> list[ItemOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def worker(action: PlannedAction) -> Optional[ItemOutcome]:
            async with semaphore:
                if self._cancel_requested:
                    return None
                return await self._apply(folder, action)

        results = await asyncio.gather(*(worker(action) for action in actions))
        return [outcome for outcome in results if outcome is not None]

    async def _apply(self, folder: Path, action: PlannedAction) -> ItemOutcome:
        try:
            result_item = await self._perform(folder, action)
        except (LocalIOError, RemoteError) as exc:
            logger.warning("%s of %r failed: %s", action.kind.value, action.name, exc)
            return ItemOutcome(name=action.name, action=action.kind, succeeded=False, error=str(exc))
        return ItemOutcome(name=action.name, action=action.kind, succeeded=True, result_item=result_item)

    async def _perform(self, folder: Path, action: PlannedAction) -> Optional[Item]:
        if isinstance(action, (Download, ReplaceLocal)):
            return await self._download(folder, action.remote)
        if isinstance(action, Upload):
            return await self._upload(folder, action.local)
        if isinstance(action, ReplaceRemote):
            # Read first so an unreadable file never costs the remote copy.
            path = _safe_local_path(folder, action.name)
            data = await asyncio.to_thread(self._local.read_file, path)
            await self._remote.delete_item(action.remote.item_id)
            return await self._create_remote(path, data, action.name)
        if isinstance(action, DeleteLocal):
            path = _safe_local_path(folder, action.name)
            await asyncio.to_thread(self._local.delete_file, path)
            return None
        if isinstance(action, DeleteRemote):
            await self._remote.delete_item(action.remote.item_id)
            return None
        raise TypeError(f"Unhandled action: {action!r}")

    async def _download(self, folder: Path, remote: Item) -> Item:
        path = _safe_local_path(folder, remote.logical_name)
        data = await self._remote.fetch_bytes(remote.item_id)
        await asyncio.to_thread(self._local.write_file, path, data)
        if remote.modified_at is not None:
            # Without this the next last-write-wins pass sees the file as newer.
            await asyncio.to_thread(self._local.set_modified_time, path, remote.modified_at)
        return replace(
            remote,
            storage_name=remote.logical_name,
            size_bytes=len(data),
            source_replica=Replica.LOCAL,
            item_id=None,
        )

    async def _upload(self, folder: Path, local: Item) -> Item:
        path = _safe_local_path(folder, local.logical_name)
        data = await asyncio.to_thread(self._local.read_file, path)
        return await self._create_remote(path, data, local.logical_name)

    async def _create_remote(self, path: Path, data: bytes, name: str) -> Item:
        created = await self._remote.create_item(data, name)
        if created.modified_at is not None:
            await asyncio.to_thread(self._local.set_modified_time, path, created.modified_at)
        return created

    def _record_view(
        self,
        local_snapshot: ReplicaSnapshot,
        remote_snapshot: ReplicaSnapshot,
        outcomes: list[ItemOutcome],
    ) -> None:
        local_view = {item.logical_name: item for item in local_snapshot}
        remote_view = {item.logical_name: item for item in remote_snapshot}

        for outcome in outcomes:
            if not outcome.succeeded:
                continue
            if outcome.action in (ActionKind.DOWNLOAD, ActionKind.REPLACE_LOCAL):
                local_view[outcome.name] = outcome.result_item
            elif outcome.action in (ActionKind.UPLOAD, ActionKind.REPLACE_REMOTE):
                remote_view[outcome.name] = outcome.result_item
                if outcome.name in local_view:
                    local_view[outcome.name] = replace(
                        local_view[outcome.name], modified_at=outcome.result_item.modified_at
                    )
            elif outcome.action is ActionKind.DELETE_LOCAL:
                local_view.pop(outcome.name, None)
            elif outcome.action is ActionKind.DELETE_REMOTE:
                remote_view.pop(outcome.name, None)

        self._catalog.record_items(Replica.LOCAL, local_view.values())
        self._catalog.record_items(Replica.REMOTE, remote_view.values())
