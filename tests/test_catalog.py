from datetime import timedelta
from pathlib import Path

import sqlalchemy as sa

from image_sync.models import (
    ActionKind,
    ConflictDetail,
    Direction,
    Item,
    ItemOutcome,
    Replica,
    Strategy,
    SyncLists,
    SyncLogEntry,
    SyncStatus,
)
from image_sync.storage import CatalogStore, get_engine, init_db
from image_sync.sync.interfaces import SyncLogStore

from conftest import T0, T1, T2


def _entry(timestamp, status=SyncStatus.SUCCESS, direction=Direction.PULL) -> SyncLogEntry:
    return SyncLogEntry(
        direction=direction,
        strategy=Strategy.LAST_WRITE_WINS,
        status=status,
        timestamp=timestamp,
        item_lists=SyncLists(
            transferred=["a.jpg"],
            updated=["b.jpg"],
            failed=[ItemOutcome("c.jpg", ActionKind.DOWNLOAD, False, error="HTTP 500")],
        ),
        conflicts_resolved=1,
        conflict_details=[ConflictDetail("b.jpg", Replica.REMOTE, T0, T1)],
        primary_action=ActionKind.DOWNLOAD,
    )


def test_init_db_creates_expected_tables(tmp_path: Path) -> None:
    engine = get_engine(tmp_path / "nested" / "catalog.db")
    init_db(engine)

    tables = set(sa.inspect(engine).get_table_names())
    assert {"catalog_items", "sync_logs"}.issubset(tables)
    assert (tmp_path / "nested" / "catalog.db").exists()


def test_store_satisfies_protocol() -> None:
    assert isinstance(CatalogStore(), SyncLogStore)


def test_append_and_query_logs_round_trip() -> None:
    store = CatalogStore()
    appended = store.append_sync_log(_entry(T0))

    assert appended.id is not None
    (loaded,) = store.query_logs(10)
    assert loaded.id == appended.id
    assert loaded.timestamp == T0
    assert loaded.counts == {
        "transferred": 1,
        "updated": 1,
        "deleted": 0,
        "conflicts_resolved": 1,
        "failed": 1,
    }
    assert loaded.item_lists.failed[0].error == "HTTP 500"
    assert loaded.conflict_details[0].winner is Replica.REMOTE
    assert loaded.conflict_details[0].remote_modified_at == T1
    assert loaded.primary_action is ActionKind.DOWNLOAD


def test_query_logs_newest_first_with_limit() -> None:
    store = CatalogStore()
    for offset in range(3):
        store.append_sync_log(_entry(T0 + timedelta(minutes=offset)))

    logs = store.query_logs(2)

    assert [entry.timestamp for entry in logs] == [T0 + timedelta(minutes=2), T0 + timedelta(minutes=1)]


def test_status_uses_latest_successful_entry() -> None:
    store = CatalogStore()
    store.append_sync_log(_entry(T1))
    store.append_sync_log(_entry(T2, status=SyncStatus.FAILED))

    assert store.query_status().last_sync_time == T1


def test_status_counts_recorded_items() -> None:
    store = CatalogStore()
    store.record_items(Replica.LOCAL, [Item("a.jpg", "a.jpg", 1, T0), Item("b.jpg", "b.jpg", 2, None)])
    store.record_items(
        Replica.REMOTE,
        [Item("a.jpg", "1-a.jpg", 1, T0, source_replica=Replica.REMOTE, item_id="1")],
    )

    status = store.query_status()
    assert (status.local_count, status.remote_count) == (2, 1)
    assert status.last_sync_time is None


def test_record_items_replaces_previous_view() -> None:
    store = CatalogStore()
    store.record_items(Replica.LOCAL, [Item("a.jpg", "a.jpg", 1, T0)])
    store.record_items(Replica.LOCAL, [Item("b.jpg", "b.jpg", 2, T1, corrupted=True)])

    (item,) = store.items(Replica.LOCAL)
    assert item.logical_name == "b.jpg"
    assert item.modified_at == T1
    assert item.corrupted


def test_file_backed_store_persists(tmp_path: Path) -> None:
    path = tmp_path / "catalog.db"
    CatalogStore.open(path).append_sync_log(_entry(T0))

    reopened = CatalogStore.open(path)
    assert len(reopened.query_logs(10)) == 1
