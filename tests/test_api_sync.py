from __future__ import annotations

from fastapi.testclient import TestClient

from storesync.api.app import SyncServices, create_app

from tests.fakes import FakeCloud, FakeQueue, FakeRunLog, FakeStoreConfig, make_engine, make_item


def _client(
    queue: FakeQueue | None = None,
    run_log: FakeRunLog | None = None,
    store_config: FakeStoreConfig | None = None,
    cloud: FakeCloud | None = None,
) -> TestClient:
    queue = queue if queue is not None else FakeQueue()
    run_log = run_log if run_log is not None else FakeRunLog()
    store_config = store_config if store_config is not None else FakeStoreConfig()
    engine = make_engine(queue=queue, run_log=run_log, store_config=store_config, cloud=cloud)
    services = SyncServices(
        engine=engine,
        queue=queue,
        run_log=run_log,
        store_config=store_config,
        autostart=False,
    )
    return TestClient(create_app(services))


def test_health_ok_payload() -> None:
    resp = _client().get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_status_reports_queue_partition() -> None:
    queue = FakeQueue()
    queue.add(make_item("shift", {}))
    queue.add(make_item("pack", {}, sync_attempts=5, max_attempts=5))

    payload = _client(queue=queue).get("/sync/status").json()

    assert payload["is_started"] is False
    assert payload["pending_count"] == 2
    assert payload["queued_count"] == 1
    assert payload["failed_count"] == 1
    assert payload["progress"] is None
    assert isinstance(payload["oldest_pending_at"], str)


def test_trigger_runs_a_cycle() -> None:
    run_log = FakeRunLog()

    payload = _client(run_log=run_log).post("/sync/trigger").json()

    assert payload == {"skipped": False, "sent": 0, "succeeded": 0, "failed": 0, "outcome": "success"}
    assert run_log.runs[0]["status"] == "COMPLETED"


def test_trigger_without_store_is_skipped() -> None:
    payload = _client(store_config=FakeStoreConfig(None)).post("/sync/trigger").json()
    assert payload == {"skipped": True}


def test_failed_items_listing_and_retry() -> None:
    queue = FakeQueue()
    dead = queue.add(make_item("pack", {}, sync_attempts=5, max_attempts=5, item_id="dead-1"))
    queue.add(make_item("pack", {}, sync_attempts=5, max_attempts=5, item_id="dead-2"))
    client = _client(queue=queue)

    listed = client.get("/sync/failed").json()["items"]
    assert {i["id"] for i in listed} == {"dead-1", "dead-2"}

    reset = client.post("/sync/failed/retry", json={"ids": ["dead-1"]}).json()
    assert reset == {"reset": 1}
    assert dead.sync_attempts == 0


def test_failed_listing_needs_a_store() -> None:
    resp = _client(store_config=FakeStoreConfig(None)).get("/sync/failed")
    assert resp.status_code == 409


def test_cleanup_passes_retention_days() -> None:
    queue = FakeQueue()

    payload = _client(queue=queue).post("/sync/cleanup", params={"days": 3}).json()

    assert payload == {"removed": 0}
    assert queue.cleanup_calls == [3]


def test_runs_are_listed_newest_first() -> None:
    client = _client()
    client.post("/sync/trigger")
    client.post("/sync/trigger")

    runs = client.get("/sync/runs").json()["runs"]

    assert [r["id"] for r in runs] == ["run-2", "run-1"]


def test_heartbeat_skipped_before_first_online_check() -> None:
    cloud = FakeCloud()

    payload = _client(cloud=cloud).post("/sync/heartbeat").json()

    assert payload == {"status": None}
    assert "heartbeat" not in cloud.names()
