import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from image_sync.config import Settings
from image_sync.main import create_app
from image_sync.models import Strategy
from image_sync.sync.local_directory import LocalDirectoryAdapter
from image_sync.sync.orchestrator import SyncOrchestrator
from image_sync.utils.errors import RemoteError

from conftest import T0, T1, write_image


@pytest.fixture
def settings(sync_folder, tmp_path) -> Settings:
    return Settings(
        sync_folder=sync_folder,
        strategy=Strategy.SERVER_ALWAYS_WINS,
        db_path=tmp_path / "catalog.db",
    )


@pytest.fixture
def api(settings, orchestrator):
    return create_app(settings=settings, orchestrator=orchestrator)


def _client(api) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=api), base_url="http://testserver")


async def test_health(api) -> None:
    async with _client(api) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "0.1.0"}


async def test_pull_uses_configured_strategy_by_default(api, remote, sync_folder) -> None:
    write_image(sync_folder, "stale.jpg", T0)
    remote.add("a.jpg", T1)

    async with _client(api) as client:
        response = await client.post("/api/sync/pull")

    assert response.status_code == 200
    payload = response.json()
    assert payload["strategy"] == "server_always_wins"
    assert payload["transferred_count"] == 1
    assert payload["deleted_count"] == 1
    assert payload["item_lists"]["deleted"] == ["stale.jpg"]


async def test_push_with_explicit_strategy(api, remote, sync_folder) -> None:
    write_image(sync_folder, "local.jpg", T0)

    async with _client(api) as client:
        response = await client.post("/api/sync/push", json={"strategy": "local_always_wins"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["direction"] == "push"
    assert payload["item_lists"]["transferred"] == ["local.jpg"]
    assert remote.names() == ["local.jpg"]


async def test_invalid_strategy_is_rejected(api) -> None:
    async with _client(api) as client:
        response = await client.post("/api/sync/pull", json={"strategy": "newest_wins"})

    assert response.status_code == 422


async def test_run_reports_only_relevant_halves(api, remote) -> None:
    remote.add("a.jpg", T0)

    async with _client(api) as client:
        response = await client.post("/api/sync/run", json={"strategy": "local_always_wins"})

    payload = response.json()
    assert response.status_code == 200
    assert payload["pull"] is None
    assert payload["push"]["deleted_count"] == 1


async def test_status_and_logs(api, remote) -> None:
    remote.add("a.jpg", T0)

    async with _client(api) as client:
        await client.post("/api/sync/run", json={"strategy": "last_write_wins"})
        status_response = await client.get("/api/sync/status")
        logs_response = await client.get("/api/sync/logs", params={"limit": 1})

    status = status_response.json()
    assert status["local_count"] == 1
    assert status["remote_count"] == 1
    assert status["last_sync_time"] is not None
    assert status["in_progress"] is False

    logs = logs_response.json()
    assert len(logs) == 1
    assert logs[0]["direction"] == "push"
    assert logs[0]["message"] == "Push with Last Write Wins strategy"


async def test_missing_folder_maps_to_400(settings, remote, catalog) -> None:
    orchestrator = SyncOrchestrator(None, LocalDirectoryAdapter(), remote, catalog)
    api = create_app(settings=settings, orchestrator=orchestrator)

    async with _client(api) as client:
        response = await client.post("/api/sync/pull")

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "ConfigurationError"


async def test_failed_pass_maps_to_502_with_entry(api, remote) -> None:
    remote.list_error = RemoteError("catalog offline", remote_status=503)

    async with _client(api) as client:
        response = await client.post("/api/sync/push")

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["error"] == "SyncFailedError"
    assert detail["entry"]["status"] == "failed"
    assert detail["entry"]["error_detail"] == "catalog offline"


async def test_concurrent_request_gets_409_and_cancel_works(api, remote) -> None:
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        remote.add(name, T0)
    remote.gate = asyncio.Event()

    async with _client(api) as client:
        running = asyncio.create_task(client.post("/api/sync/pull"))
        for _ in range(200):
            if remote.waiting:
                break
            await asyncio.sleep(0.01)

        conflict = await client.post("/api/sync/push")
        cancel = await client.post("/api/sync/cancel")
        remote.gate.set()
        response = await running

    assert conflict.status_code == 409
    assert cancel.json() == {"cancelled": True}
    assert response.json()["status"] == "cancelled"


async def test_cancel_when_idle(api) -> None:
    async with _client(api) as client:
        response = await client.post("/api/sync/cancel")

    assert response.json() == {"cancelled": False}
