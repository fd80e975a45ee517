from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

from storesync.sync.engine import SyncEngine
from storesync.sync.types import ApiContext, QueueItem, QueueStats

STORE_ID = "store-1"
_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
_ids = itertools.count(1)


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_item(
    entity_type: str,
    payload: dict[str, Any] | None = None,
    *,
    operation: str = "CREATE",
    priority: int = 0,
    sync_attempts: int = 0,
    max_attempts: int = 5,
    age_sec: int = 0,
    item_id: str | None = None,
) -> QueueItem:
    n = next(_ids)
    return QueueItem(
        id=item_id or f"q-{n}",
        store_id=STORE_ID,
        entity_type=entity_type,
        entity_id=f"e-{n}",
        operation=operation,
        payload=dict(payload or {}),
        priority=priority,
        sync_attempts=sync_attempts,
        max_attempts=max_attempts,
        created_at=_T0 - timedelta(seconds=age_sec),
    )


class FakeQueue:
    def __init__(self, items: list[QueueItem] | None = None) -> None:
        self.items: list[QueueItem] = list(items or [])
        self.synced: dict[str, ApiContext | None] = {}
        self.errors: dict[str, str] = {}
        self.categories: dict[str, str] = {}
        self.enqueued: list[dict[str, Any]] = []
        self.cleanup_calls: list[int] = []
        self.fail_fetch: Exception | None = None
        self.next_retry_at: dict[str, datetime] = {}
        self.backoff_resets: list[tuple[str, int]] = []
        self.clock = lambda: datetime.now(timezone.utc)

    def add(self, item: QueueItem) -> QueueItem:
        self.items.append(item)
        return item

    def _pending(self, store_id: str) -> list[QueueItem]:
        return [i for i in self.items if i.store_id == store_id and i.id not in self.synced]

    async def enqueue(self, *, store_id, entity_type, entity_id, operation, payload, priority=0) -> QueueItem:
        self.enqueued.append(
            {
                "store_id": store_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "operation": operation,
                "payload": payload,
                "priority": priority,
            }
        )
        item = make_item(entity_type, payload, operation=operation, priority=priority)
        item.entity_id = entity_id
        item.created_at = datetime.now(timezone.utc)
        return self.add(item)

    async def get_retryable_items(self, store_id: str, limit: int) -> list[QueueItem]:
        if self.fail_fetch is not None:
            raise self.fail_fetch
        now = self.clock()
        rows = [
            i
            for i in self._pending(store_id)
            if i.sync_attempts < i.max_attempts and self.next_retry_at.get(i.id, now) <= now
        ]
        rows.sort(key=lambda i: (-i.priority, i.created_at))
        return [
            QueueItem(
                id=i.id,
                store_id=i.store_id,
                entity_type=i.entity_type,
                entity_id=i.entity_id,
                operation=i.operation,
                payload=dict(i.payload),
                priority=i.priority,
                sync_attempts=i.sync_attempts,
                max_attempts=i.max_attempts,
                created_at=i.created_at,
            )
            for i in rows[:limit]
        ]

    async def mark_synced(self, item_id: str, api_context: ApiContext | None = None) -> None:
        self.synced[item_id] = api_context

    async def increment_attempts(
        self,
        item_id: str,
        error: str,
        api_context: ApiContext | None = None,
        next_retry_at: datetime | None = None,
    ) -> None:
        for item in self.items:
            if item.id == item_id:
                item.sync_attempts += 1
        self.errors[item_id] = error
        if next_retry_at is None:
            self.next_retry_at.pop(item_id, None)
        else:
            self.next_retry_at[item_id] = next_retry_at

    async def reset_stuck_backoff(self, store_id: str, max_minutes: int) -> int:
        self.backoff_resets.append((store_id, max_minutes))
        return 0

    async def update_error_category(self, item_id: str, category: str) -> None:
        self.categories[item_id] = category

    async def get_stats(self, store_id: str) -> QueueStats:
        pending = self._pending(store_id)
        failed = [i for i in pending if i.sync_attempts >= i.max_attempts]
        return QueueStats(
            pending=len(pending),
            queued=len(pending) - len(failed),
            failed=len(failed),
            synced_today=len(self.synced),
            oldest_pending=min((i.created_at for i in pending), default=None),
        )

    async def get_failed_count(self, store_id: str) -> int:
        return (await self.get_stats(store_id)).failed

    async def get_failed_items(self, store_id: str, limit: int = 100) -> list[QueueItem]:
        return [i for i in self._pending(store_id) if i.sync_attempts >= i.max_attempts][:limit]

    async def retry_failed(self, store_id: str, item_ids: list[str] | None = None) -> int:
        count = 0
        for item in await self.get_failed_items(store_id):
            if item_ids and item.id not in item_ids:
                continue
            item.sync_attempts = 0
            self.next_retry_at.pop(item.id, None)
            count += 1
        return count

    async def cleanup_synced(self, older_than_days: int) -> int:
        self.cleanup_calls.append(older_than_days)
        removed = [i for i in self.items if i.id in self.synced]
        self.items = [i for i in self.items if i.id not in self.synced]
        return len(removed)


class FakeRunLog:
    def __init__(self) -> None:
        self.runs: list[dict[str, Any]] = []
        self.stale_cleanups: list[tuple[str, int]] = []

    async def start_sync(self, store_id: str, sync_type: str = "PUSH") -> str:
        run_id = f"run-{len(self.runs) + 1}"
        self.runs.append({"id": run_id, "store_id": store_id, "sync_type": sync_type, "status": "RUNNING"})
        return run_id

    def _get(self, run_id: str) -> dict[str, Any]:
        return next(r for r in self.runs if r["id"] == run_id)

    async def complete_sync(self, log_id, *, sent, succeeded, failed, outcome, error_message=None) -> None:
        self._get(log_id).update(
            status="COMPLETED",
            sent=sent,
            succeeded=succeeded,
            failed=failed,
            outcome=outcome,
            error_message=error_message,
        )

    async def fail_sync(self, log_id, error_message, *, sent=0, succeeded=0, failed=0) -> None:
        self._get(log_id).update(status="FAILED", outcome="failed", error_message=error_message, sent=sent)

    async def cleanup_stale_running(self, store_id: str, max_age_minutes: int) -> int:
        self.stale_cleanups.append((store_id, max_age_minutes))
        return 0

    async def get_recent(self, store_id: str, limit: int = 20) -> list[dict[str, Any]]:
        return list(reversed(self.runs))[:limit]


class FakeStoreConfig:
    def __init__(self, store_id: str | None = STORE_ID) -> None:
        self.store_id = store_id

    async def get_configured_store(self) -> dict[str, Any] | None:
        if self.store_id is None:
            return None
        return {"store_id": self.store_id, "name": "Main St", "timezone": "UTC"}


class FakeLookups:
    def __init__(
        self,
        *,
        games: dict[str, dict[str, Any]] | None = None,
        users: dict[str, dict[str, Any]] | None = None,
        days: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.games = games or {}
        self.users = users or {}
        self.days = days or {}

    async def find_game(self, game_id: str) -> dict[str, Any] | None:
        return self.games.get(game_id)

    async def find_user(self, user_id: str) -> dict[str, Any] | None:
        return self.users.get(user_id)

    async def find_business_day(self, day_id: str) -> dict[str, Any] | None:
        return self.days.get(day_id)


class FakeCloud:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.responses: dict[str, Any] = {}
        self.errors: dict[str, Exception] = {}
        self.online = True
        self.day_status: dict[str, dict[str, Any]] = {}
        self.gate: asyncio.Event | None = None
        self.heartbeat_response: dict[str, Any] = {"status": "ok", "server_time": "2026-03-01T12:00:00Z"}

    async def _call(self, name: str, body: Any) -> dict[str, Any]:
        self.calls.append((name, body))
        if self.gate is not None:
            await self.gate.wait()
        if name in self.errors:
            raise self.errors[name]
        return self.responses.get(name, {"success": True})

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def health_check(self) -> bool:
        return self.online

    async def heartbeat(self) -> dict[str, Any]:
        self.calls.append(("heartbeat", None))
        if "heartbeat" in self.errors:
            raise self.errors["heartbeat"]
        return self.heartbeat_response

    async def push_employees(self, employees):
        return await self._call("push_employees", employees)

    async def push_shift(self, shift):
        return await self._call("push_shift", shift)

    async def push_shift_opening(self, opening):
        return await self._call("push_shift_opening", opening)

    async def push_shift_closing(self, closing):
        return await self._call("push_shift_closing", closing)

    async def approve_variance(self, approval):
        return await self._call("approve_variance", approval)

    async def push_pack_receive(self, pack):
        return await self._call("push_pack_receive", pack)

    async def push_pack_activate(self, pack):
        return await self._call("push_pack_activate", pack)

    async def push_pack_deplete(self, pack):
        return await self._call("push_pack_deplete", pack)

    async def push_pack_return(self, pack):
        return await self._call("push_pack_return", pack)

    async def push_day_open(self, day):
        return await self._call("push_day_open", day)

    async def pull_day_status(self, business_date: str):
        self.calls.append(("pull_day_status", business_date))
        return self.day_status.get(business_date)

    async def prepare_day_close(self, day_id, *, closings, initiated_by, manual_entry_authorized_by=None, expire_minutes=None):
        body = {"day_id": day_id, "closings": closings, "initiated_by": initiated_by}
        return await self._call("prepare_day_close", body)

    async def commit_day_close(self, day_id, *, closed_by, notes=None):
        return await self._call("commit_day_close", {"day_id": day_id, "closed_by": closed_by})

    async def cancel_day_close(self, day_id, *, cancelled_by, reason):
        return await self._call("cancel_day_close", {"day_id": day_id, "cancelled_by": cancelled_by, "reason": reason})


class ManualTimer:
    """Stands in for asyncio.sleep: sleepers wait until advance() fires them."""

    def __init__(self) -> None:
        self.waiters: list[asyncio.Future] = []
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self.waiters.append(fut)
        await fut

    async def advance(self) -> None:
        await settle()
        waiters, self.waiters = self.waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
        await settle()


def make_engine(
    *,
    queue: FakeQueue | None = None,
    run_log: FakeRunLog | None = None,
    store_config: FakeStoreConfig | None = None,
    cloud: FakeCloud | None = None,
    lookups: FakeLookups | None = None,
    timer: ManualTimer | None = None,
    **kwargs: Any,
) -> SyncEngine:
    return SyncEngine(
        queue=queue if queue is not None else FakeQueue(),
        run_log=run_log if run_log is not None else FakeRunLog(),
        store_config=store_config if store_config is not None else FakeStoreConfig(),
        cloud=cloud if cloud is not None else FakeCloud(),
        lookups=lookups if lookups is not None else FakeLookups(),
        sleep=(timer or ManualTimer()).sleep,
        **kwargs,
    )
