from __future__ import annotations

import asyncio

from storesync.cloud.errors import CloudApiError
from storesync.sync.heartbeat import HeartbeatMonitor, clamp_heartbeat_interval

from tests.fakes import FakeCloud, ManualTimer, settle


def test_interval_is_clamped() -> None:
    assert clamp_heartbeat_interval(None) == 300
    assert clamp_heartbeat_interval(5) == 60
    assert clamp_heartbeat_interval(3600) == 900
    assert clamp_heartbeat_interval(120) == 120


def test_skipped_while_offline() -> None:
    cloud = FakeCloud()
    monitor = HeartbeatMonitor(cloud, is_online=lambda: False)

    assert asyncio.run(monitor.run_once()) is None
    assert cloud.calls == []


def test_success_records_server_time() -> None:
    cloud = FakeCloud()
    changes: list[int] = []
    monitor = HeartbeatMonitor(cloud, is_online=lambda: True, on_change=lambda: changes.append(1))

    assert asyncio.run(monitor.run_once()) == "ok"
    assert monitor.last_server_time == "2026-03-01T12:00:00Z"
    assert monitor.last_at is not None
    assert changes == [1]


def test_suspended_key_stops_heartbeat() -> None:
    cloud = FakeCloud()
    cloud.errors["heartbeat"] = CloudApiError("API key suspended", http_status=403)
    timer = ManualTimer()

    async def scenario() -> HeartbeatMonitor:
        monitor = HeartbeatMonitor(cloud, is_online=lambda: True, sleep=timer.sleep)
        monitor.start(60)
        await settle()
        return monitor

    monitor = asyncio.run(scenario())

    assert monitor.last_status == "suspended"
    assert monitor.is_active is False
    assert cloud.names() == ["heartbeat"]
    assert timer.delays == []


def test_plain_failure_keeps_heartbeat_running() -> None:
    cloud = FakeCloud()
    cloud.errors["heartbeat"] = CloudApiError("POST heartbeat failed", http_status=502)
    timer = ManualTimer()

    async def scenario() -> HeartbeatMonitor:
        monitor = HeartbeatMonitor(cloud, is_online=lambda: True, sleep=timer.sleep)
        monitor.start(90)
        await settle()
        await timer.advance()
        active = monitor.is_active
        monitor.stop()
        await settle()
        assert active is True
        return monitor

    monitor = asyncio.run(scenario())

    assert monitor.last_status == "failed"
    assert cloud.names() == ["heartbeat", "heartbeat"]
    assert timer.delays[0] == 90
