"""Durable catalog of replica items and the append-only sync log."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from image_sync.models import (
    ActionKind,
    ConflictDetail,
    Direction,
    Item,
    Replica,
    Strategy,
    SyncLists,
    SyncLogEntry,
    SyncStatus,
    SyncStatusSummary,
)

from .db import get_engine, init_db, session_scope
from .models import CatalogItem, SyncLog

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class CatalogStore:
    """SQLite-backed store for per-replica item metadata and sync history."""

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine or get_engine(None)
        self._sessions = init_db(self._engine)

    @classmethod
    def open(cls, path) -> "CatalogStore":
        return cls(get_engine(path))

    def append_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        counts = entry.counts
        row = SyncLog(
            direction=entry.direction.value,
            strategy=entry.strategy.value,
            status=entry.status.value,
            timestamp=entry.timestamp,
            transferred=counts["transferred"],
            updated=counts["updated"],
            deleted=counts["deleted"],
            conflicts_resolved=counts["conflicts_resolved"],
            failed=counts["failed"],
            primary_action=entry.primary_action.value if entry.primary_action else None,
            error_detail=entry.error_detail,
            details={
                "item_lists": entry.item_lists.to_dict(),
                "conflict_details": [detail.to_dict() for detail in entry.conflict_details],
            },
        )
        with session_scope(self._sessions) as session:
            session.add(row)
            session.flush()
            entry.id = row.id
        logger.debug("sync log %s appended (%s %s)", entry.id, entry.direction.value, entry.status.value)
        return entry

    def query_logs(self, limit: int = 50) -> list[SyncLogEntry]:
        """Return the newest ``limit`` entries, newest first."""
        query = sa.select(SyncLog).order_by(SyncLog.timestamp.desc(), SyncLog.id.desc()).limit(max(0, limit))
        with session_scope(self._sessions) as session:
            rows = session.execute(query).scalars().all()
            return [self._to_entry(row) for row in rows]

    def query_status(self) -> SyncStatusSummary:
        with session_scope(self._sessions) as session:
            local_count = session.execute(
                sa.select(sa.func.count()).select_from(CatalogItem).where(CatalogItem.replica == Replica.LOCAL.value)
            ).scalar_one()
            remote_count = session.execute(
                sa.select(sa.func.count()).select_from(CatalogItem).where(CatalogItem.replica == Replica.REMOTE.value)
            ).scalar_one()
            last_sync = session.execute(
                sa.select(sa.func.max(SyncLog.timestamp)).where(SyncLog.status == SyncStatus.SUCCESS.value)
            ).scalar_one_or_none()
        return SyncStatusSummary(
            local_count=local_count,
            remote_count=remote_count,
            last_sync_time=_aware(last_sync),
        )

    def record_items(self, replica: Replica, items: Iterable[Item]) -> None:
        """Replace the stored view of ``replica`` with ``items``."""
        rows = [
            CatalogItem(
                replica=replica.value,
                logical_name=item.logical_name,
                storage_name=item.storage_name,
                size_bytes=item.size_bytes,
                modified_at=item.modified_at,
                corrupted=item.corrupted,
                remote_id=item.item_id,
            )
            for item in items
        ]
        with session_scope(self._sessions) as session:
            session.execute(sa.delete(CatalogItem).where(CatalogItem.replica == replica.value))
            session.add_all(rows)

    def items(self, replica: Replica) -> list[Item]:
        query = (
            sa.select(CatalogItem)
            .where(CatalogItem.replica == replica.value)
            .order_by(CatalogItem.logical_name)
        )
        with session_scope(self._sessions) as session:
            return [
                Item(
                    logical_name=row.logical_name,
                    storage_name=row.storage_name,
                    size_bytes=row.size_bytes,
                    modified_at=_aware(row.modified_at),
                    corrupted=row.corrupted,
                    source_replica=replica,
                    item_id=row.remote_id,
                )
                for row in session.execute(query).scalars()
            ]

    @staticmethod
    def _to_entry(row: SyncLog) -> SyncLogEntry:
        details = row.details or {}
        return SyncLogEntry(
            id=row.id,
            direction=Direction(row.direction),
            strategy=Strategy(row.strategy),
            status=SyncStatus(row.status),
            timestamp=_aware(row.timestamp),
            item_lists=SyncLists.from_dict(details.get("item_lists", {})),
            conflicts_resolved=row.conflicts_resolved,
            conflict_details=[ConflictDetail.from_dict(d) for d in details.get("conflict_details", [])],
            primary_action=ActionKind(row.primary_action) if row.primary_action else None,
            error_detail=row.error_detail,
        )
