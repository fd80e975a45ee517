from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from loguru import logger

from storesync.config import settings
from storesync.sync.adapters.base import AdapterContext, context_from_error, fail_all
from storesync.sync.adapters.registry import dispatch
from storesync.sync.errors import backoff_delay_sec, classify_error, extract_http_status, sanitize_error_message
from storesync.sync.heartbeat import HeartbeatMonitor
from storesync.sync.status import MAX_RECENT_ERRORS, ProgressError, SyncProgress, SyncStatus
from storesync.sync.types import EntityType, ItemResult, QueueItem, QueueStats, SyncOutcome, SyncResult

MIN_INTERVAL_SEC = 10
MAX_INTERVAL_SEC = 5 * 60
DEFAULT_INTERVAL_SEC = 60
DEFAULT_BATCH_SIZE = 100
STALE_RUN_MINUTES = 30

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]
StatusListener = Callable[[SyncStatus], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_interval(interval_sec: float | None) -> int:
    if not interval_sec:
        return DEFAULT_INTERVAL_SEC
    return int(max(MIN_INTERVAL_SEC, min(MAX_INTERVAL_SEC, interval_sec)))


class SyncEngine:
    """Pushes the store's sync queue to the cloud on a fixed interval.

    Collaborators are duck-typed: ``queue`` is the queue store, ``run_log``
    records one PUSH run per cycle, ``store_config`` resolves the configured
    store (or None), ``cloud`` is a CloudClient and ``lookups`` resolves games,
    users and business days for the adapters. Cycles never overlap; a trigger
    that arrives while a cycle runs is skipped.
    """

    def __init__(
        self,
        *,
        queue: Any,
        run_log: Any,
        store_config: Any,
        cloud: Any,
        lookups: Any,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utc_now,
        on_status_change: StatusListener | None = None,
        batch_size: int | None = None,
        stale_run_minutes: int | None = None,
        day_close_expire_minutes: int | None = None,
        retry_jitter: float | None = None,
    ) -> None:
        self._queue = queue
        self._run_log = run_log
        self._store_config = store_config
        self._cloud = cloud
        self._sleep = sleep
        self._clock = clock
        self._on_status_change = on_status_change
        self._batch_size = batch_size or settings.sync_batch_size or DEFAULT_BATCH_SIZE
        self._stale_run_minutes = stale_run_minutes or settings.stale_run_minutes or STALE_RUN_MINUTES
        self._retry_jitter = settings.sync_retry_jitter if retry_jitter is None else retry_jitter
        self._ctx = AdapterContext(
            cloud=cloud,
            lookups=lookups,
            queue=queue,
            day_close_expire_minutes=day_close_expire_minutes or settings.day_close_expire_minutes,
        )
        self._heartbeat = HeartbeatMonitor(
            cloud,
            is_online=lambda: self._is_online,
            on_change=self._notify,
            sleep=sleep,
            clock=clock,
            timeout_sec=settings.cloud_heartbeat_timeout_sec,
        )

        self._lock = asyncio.Lock()
        self._started = False
        self._loop_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Future | None = None
        self._interval_sec = DEFAULT_INTERVAL_SEC
        self._heartbeat_interval_sec: float | None = None
        self._next_sync_at: datetime | None = None
        self._is_online = False
        self._progress: SyncProgress | None = None
        self._recent_errors: list[ProgressError] = []
        self._last_stats = QueueStats()

        self.cycles_run = 0
        self.consecutive_failures = 0
        self.last_sync_at: datetime | None = None
        self.last_sync_status: str | None = None
        self.last_error_message: str | None = None
        self.last_error_at: datetime | None = None

    @property
    def interval_sec(self) -> int:
        return self._interval_sec

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    def is_started(self) -> bool:
        return self._started

    def is_syncing(self) -> bool:
        return self._lock.locked()

    def start(self, interval_sec: float | None = None, heartbeat_interval_sec: float | None = None) -> int:
        if self._started:
            logger.warning("sync engine already started interval={}s", self._interval_sec)
            return self._interval_sec

        self._interval_sec = clamp_interval(interval_sec)
        self._heartbeat_interval_sec = heartbeat_interval_sec or settings.heartbeat_interval_sec
        self._started = True
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info("sync engine started interval={}s batch_size={}", self._interval_sec, self._batch_size)
        self._notify()
        return self._interval_sec

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self._next_sync_at = None
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
        self._heartbeat.stop()
        logger.info("sync engine stopped")
        self._notify()

    async def _run_loop(self) -> None:
        try:
            previous = self._cycle_task
            if previous is not None and not previous.done():
                logger.info("sync engine waiting for in-flight cycle before startup")
                await asyncio.wait({previous})
            await self._cleanup_stale_runs()
            reason = "startup"
            while self._started:
                # a cancelled loop leaves the in-flight cycle running to completion
                self._cycle_task = asyncio.ensure_future(self.run_cycle(reason))
                try:
                    await asyncio.shield(self._cycle_task)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("sync cycle crashed reason={}", reason)
                if not self._started:
                    break
                if reason == "startup":
                    self._heartbeat.start(self._heartbeat_interval_sec)
                self._next_sync_at = self._clock() + timedelta(seconds=self._interval_sec)
                await self._sleep(self._interval_sec)
                reason = "interval"
        except asyncio.CancelledError:
            logger.info("sync engine loop cancelled")
            raise

    async def _cleanup_stale_runs(self) -> None:
        try:
            store = await self._store_config.get_configured_store()
            if not store:
                return
            cleaned = await self._run_log.cleanup_stale_running(store["store_id"], self._stale_run_minutes)
        except Exception:
            logger.exception("stale sync run cleanup failed")
            return
        if cleaned:
            logger.warning("stale sync runs reset count={}", cleaned)

    async def trigger_sync(self) -> SyncResult | None:
        return await self.run_cycle("manual")

    async def trigger_heartbeat(self) -> str | None:
        return await self._heartbeat.run_once()

    async def run_cycle(self, reason: str = "manual") -> SyncResult | None:
        if self._lock.locked():
            logger.warning("sync cycle skipped reason={} status=running", reason)
            return None
        async with self._lock:
            self.cycles_run += 1
            try:
                return await self._cycle(reason)
            except Exception as exc:
                logger.exception("sync cycle crashed reason={}", reason)
                self._apply_outcome(SyncOutcome.FAILED, sanitize_error_message(str(exc)))
                return None
            finally:
                self._progress = None
                self._notify()

    async def _cycle(self, reason: str) -> SyncResult | None:
        try:
            store = await self._store_config.get_configured_store()
        except Exception:
            logger.exception("sync cycle skipped reason={} status=store_lookup_failed", reason)
            return None
        if not store:
            logger.info("sync cycle skipped reason={} status=no_store", reason)
            return None
        store_id = store["store_id"]

        self._is_online = await self._check_online()
        if not self._is_online:
            logger.warning("sync cycle skipped reason={} status=offline", reason)
            return None

        try:
            log_id = await self._run_log.start_sync(store_id, "PUSH")
        except Exception as exc:
            logger.exception("sync cycle aborted reason={} status=run_log_unavailable", reason)
            self._apply_outcome(SyncOutcome.FAILED, sanitize_error_message(str(exc)))
            return None
        started_at = self._clock()
        self._progress = SyncProgress(total=0, started_at=started_at)
        logger.info("sync cycle start reason={} store_id={} run_id={}", reason, store_id, log_id)

        result = SyncResult()
        try:
            result = await self._process_queue(store_id, result)
            outcome = result.outcome
            error_message = await self._failure_message(store_id, result) if result.failed else None
            await self._run_log.complete_sync(
                log_id,
                sent=result.sent,
                succeeded=result.succeeded,
                failed=result.failed,
                outcome=outcome.value,
                error_message=error_message,
            )
        except Exception as exc:
            logger.exception("sync cycle error reason={} run_id={}", reason, log_id)
            await self._fail_run(log_id, exc, result)
            self._apply_outcome(SyncOutcome.FAILED, sanitize_error_message(str(exc)))
            return result

        self._apply_outcome(outcome, error_message)
        await self._refresh_stats(store_id)
        logger.info(
            "sync cycle end reason={} run_id={} outcome={} sent={} succeeded={} failed={}",
            reason,
            log_id,
            outcome.value,
            result.sent,
            result.succeeded,
            result.failed,
        )
        return result

    async def _check_online(self) -> bool:
        if self._cloud is None:
            return False
        try:
            return bool(await self._cloud.health_check())
        except Exception as exc:
            logger.warning("cloud health check error err={}", exc)
            return False

    async def _process_queue(self, store_id: str, result: SyncResult) -> SyncResult:
        await self._release_stuck_backoff(store_id)
        items = await self._queue.get_retryable_items(store_id, self._batch_size)
        result.sent = len(items)
        if self._progress is not None:
            self._progress.total = len(items)
        if not items:
            return result

        groups: dict[str, list[QueueItem]] = {}
        for item in items:
            groups.setdefault(item.entity_type, []).append(item)

        for tag, batch in groups.items():
            kind = EntityType.parse(tag)
            if self._progress is not None:
                self._progress.current_entity_type = tag
            try:
                outcomes = await dispatch(kind, batch, self._ctx)
            except Exception as exc:
                logger.error("sync batch failed entity_type={} count={} err={}", tag, len(batch), exc)
                outcomes = fail_all(batch, str(exc), context_from_error(exc, f"/api/v1/sync/{tag}"))

            by_id = {outcome.id: outcome for outcome in outcomes}
            for item in batch:
                outcome = by_id.get(item.id) or ItemResult.fail(item.id, "No result returned for queue item")
                await self._record(item, outcome, result)
        return result

    async def _record(self, item: QueueItem, outcome: ItemResult, result: SyncResult) -> None:
        if outcome.synced:
            await self._queue.mark_synced(item.id, outcome.api_context)
            result.succeeded += 1
            if self._progress is not None:
                self._progress.record_success()
            return

        error = outcome.error or "Unknown error"
        api_context = outcome.api_context
        http_status = api_context.http_status if api_context else extract_http_status(error)
        classification = classify_error(http_status, error, api_context.retry_after_sec if api_context else None)
        category = classification.category
        delay = backoff_delay_sec(
            item.sync_attempts,
            classification,
            base_sec=settings.sync_retry_base_delay_sec,
            max_sec=settings.sync_retry_max_delay_sec,
            jitter=self._retry_jitter,
        )
        next_retry_at = self._clock() + timedelta(seconds=delay)
        await self._queue.increment_attempts(item.id, error, api_context, next_retry_at)
        await self._queue.update_error_category(item.id, category.value)
        result.failed += 1
        logger.warning(
            "sync item failed item_id={} entity_type={} attempt={}/{} category={} retry_in={:.1f}s err={}",
            item.id,
            item.entity_type,
            item.sync_attempts + 1,
            item.max_attempts,
            category.value,
            delay,
            error,
        )

        entry = ProgressError(
            item_id=item.id,
            entity_type=item.entity_type,
            message=sanitize_error_message(error),
            at=self._clock(),
        )
        self._recent_errors.append(entry)
        del self._recent_errors[:-MAX_RECENT_ERRORS]
        if self._progress is not None:
            self._progress.record_failure(entry)

    async def _release_stuck_backoff(self, store_id: str) -> None:
        try:
            released = await self._queue.reset_stuck_backoff(store_id, settings.stuck_backoff_minutes)
        except Exception:
            logger.exception("stuck backoff reset failed store_id={}", store_id)
            return
        if released:
            logger.info("sync items released from backoff store_id={} count={}", store_id, released)

    async def _failure_message(self, store_id: str, result: SyncResult) -> str:
        try:
            dead = await self._queue.get_failed_count(store_id)
        except Exception:
            logger.exception("failed-count lookup error store_id={}", store_id)
            dead = 0
        if dead > 0:
            return f"{dead} item(s) exceeded retry limit"
        return f"{result.failed} item(s) failed, will retry automatically"

    async def _fail_run(self, log_id: str, exc: Exception, result: SyncResult) -> None:
        try:
            await self._run_log.fail_sync(
                log_id,
                str(exc) or type(exc).__name__,
                sent=result.sent,
                succeeded=result.succeeded,
                failed=result.failed,
            )
        except Exception:
            logger.exception("sync run could not be marked failed run_id={}", log_id)

    def _apply_outcome(self, outcome: SyncOutcome, error_message: str | None) -> None:
        now = self._clock()
        self.last_sync_at = now
        self.last_sync_status = outcome.value
        if outcome is SyncOutcome.SUCCESS:
            self.consecutive_failures = 0
            self.last_error_message = None
            self.last_error_at = None
            return
        if outcome is SyncOutcome.FAILED:
            self.consecutive_failures += 1
        self.last_error_message = error_message
        self.last_error_at = now

    async def _refresh_stats(self, store_id: str) -> QueueStats:
        try:
            self._last_stats = await self._queue.get_stats(store_id)
        except Exception:
            logger.exception("queue stats lookup failed store_id={}", store_id)
        return self._last_stats

    async def get_status(self) -> SyncStatus:
        try:
            store = await self._store_config.get_configured_store()
        except Exception:
            logger.exception("status store lookup failed")
            store = None
        if store:
            await self._refresh_stats(store["store_id"])
        else:
            self._last_stats = QueueStats()
        return self._build_status()

    def _build_status(self) -> SyncStatus:
        stats = self._last_stats
        next_in = 0.0
        if self._started and self._next_sync_at is not None:
            next_in = max(0.0, (self._next_sync_at - self._clock()).total_seconds())
        return SyncStatus(
            is_running=self.is_syncing(),
            is_started=self._started,
            last_sync_at=self.last_sync_at,
            last_sync_status=self.last_sync_status,
            pending_count=stats.pending,
            queued_count=stats.queued,
            failed_count=stats.failed,
            synced_today_count=stats.synced_today,
            oldest_pending_at=stats.oldest_pending,
            next_sync_in_sec=next_in,
            is_online=self._is_online,
            consecutive_failures=self.consecutive_failures,
            last_error_message=self.last_error_message,
            last_error_at=self.last_error_at,
            last_heartbeat_at=self._heartbeat.last_at,
            last_heartbeat_status=self._heartbeat.last_status,
            last_server_time=self._heartbeat.last_server_time,
            next_heartbeat_in_sec=self._heartbeat.next_in_sec(),
            progress=self._progress,
            recent_errors=list(self._recent_errors),
        )

    def _notify(self) -> None:
        if self._on_status_change is None:
            return
        try:
            self._on_status_change(self._build_status())
        except Exception:
            logger.exception("sync status listener failed")

    async def cleanup_queue(self, days: int = 7) -> int:
        try:
            removed = int(await self._queue.cleanup_synced(days))
        except Exception:
            logger.exception("sync queue cleanup failed days={}", days)
            return 0
        logger.info("sync queue cleanup days={} removed={}", days, removed)
        return removed
