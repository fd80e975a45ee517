from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from loguru import logger

MIN_INTERVAL_SEC = 60
MAX_INTERVAL_SEC = 15 * 60
DEFAULT_INTERVAL_SEC = 5 * 60
DEFAULT_TIMEOUT_SEC = 10.0

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_heartbeat_interval(interval_sec: float | None) -> int:
    if not interval_sec:
        return DEFAULT_INTERVAL_SEC
    return int(max(MIN_INTERVAL_SEC, min(MAX_INTERVAL_SEC, interval_sec)))


class HeartbeatMonitor:
    def __init__(
        self,
        cloud: Any,
        *,
        is_online: Callable[[], bool],
        on_change: Callable[[], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utc_now,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._cloud = cloud
        self._is_online = is_online
        self._on_change = on_change
        self._sleep = sleep
        self._clock = clock
        self._timeout_sec = timeout_sec
        self._task: asyncio.Task | None = None
        self._active = False
        self.interval_sec = DEFAULT_INTERVAL_SEC
        self.last_at: datetime | None = None
        self.last_status: str | None = None
        self.last_server_time: str | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self, interval_sec: float | None = None) -> None:
        if self._active:
            logger.warning("heartbeat already running")
            return
        self.interval_sec = clamp_heartbeat_interval(interval_sec)
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("heartbeat started interval={}s", self.interval_sec)

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.info("heartbeat stopped")

    def next_in_sec(self) -> float:
        if not self._active or self.last_at is None:
            return 0.0
        elapsed = (self._clock() - self.last_at).total_seconds()
        return max(0.0, self.interval_sec - elapsed)

    async def _loop(self) -> None:
        try:
            while self._active:
                await self.run_once()
                if not self._active:
                    break
                await self._sleep(self.interval_sec)
        except asyncio.CancelledError:
            logger.info("heartbeat loop cancelled")
            raise

    async def run_once(self) -> str | None:
        if self._cloud is None:
            logger.debug("heartbeat skipped: no cloud client")
            return None
        if not self._is_online():
            logger.debug("heartbeat skipped: offline")
            return None

        try:
            response = await asyncio.wait_for(self._cloud.heartbeat(), timeout=self._timeout_sec)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.last_at = self._clock()
            self.last_status = "failed"
            message = str(exc).lower()
            logger.error("heartbeat failed err={}", exc)
            if "suspended" in message:
                self.last_status = "suspended"
            elif "revoked" in message:
                self.last_status = "revoked"
            if self.last_status != "failed":
                logger.warning("api key {} - stopping heartbeat", self.last_status)
                self.stop()
        else:
            self.last_at = self._clock()
            self.last_status = str(response.get("status") or "ok")
            self.last_server_time = response.get("server_time")
            logger.debug("heartbeat ok status={} server_time={}", self.last_status, self.last_server_time)

        self._notify()
        return self.last_status

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("heartbeat status listener failed")
