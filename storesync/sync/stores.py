from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from storesync.config import settings
from storesync.db.models import SyncQueueItem
from storesync.db.repositories import lookups_repo, queue_repo, stores_repo, sync_log_repo
from storesync.db.session import SessionLocal, session_scope
from storesync.sync.types import ApiContext, QueueItem, QueueStats


def _to_queue_item(row: SyncQueueItem) -> QueueItem:
    try:
        payload = json.loads(row.payload_json or "{}")
    except json.JSONDecodeError:
        payload = {}
    return QueueItem(
        id=row.id,
        store_id=row.store_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        operation=row.operation,
        payload=payload if isinstance(payload, dict) else {},
        priority=row.priority,
        sync_attempts=row.sync_attempts,
        max_attempts=row.max_attempts,
        created_at=row.created_at,
        last_sync_error=row.last_sync_error,
        last_attempt_at=row.last_attempt_at,
    )


def _api_kwargs(api_context: ApiContext | None) -> dict[str, Any]:
    if api_context is None:
        return {}
    return {
        "api_endpoint": api_context.api_endpoint,
        "http_status": api_context.http_status,
        "response_body": api_context.response_body,
    }


class _SqlBacked:
    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        def _call() -> Any:
            with session_scope(self._session_factory) as session:
                return fn(session, *args, **kwargs)

        return await asyncio.to_thread(_call)


class SqlQueueStore(_SqlBacked):
    async def enqueue(
        self,
        *,
        store_id: str,
        entity_type: str,
        entity_id: str,
        operation: str,
        payload: dict[str, Any],
        priority: int = 0,
    ) -> QueueItem:
        def _enqueue(session: Session) -> QueueItem:
            row = queue_repo.enqueue(
                session,
                store_id=store_id,
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                payload=payload,
                priority=priority,
                max_attempts=settings.sync_max_attempts,
            )
            return _to_queue_item(row)

        return await self._run(_enqueue)

    async def get_retryable_items(self, store_id: str, limit: int) -> list[QueueItem]:
        def _fetch(session: Session) -> list[QueueItem]:
            return [_to_queue_item(row) for row in queue_repo.get_retryable_items(session, store_id, limit)]

        return await self._run(_fetch)

    async def mark_synced(self, item_id: str, api_context: ApiContext | None = None) -> None:
        await self._run(queue_repo.mark_synced, item_id, **_api_kwargs(api_context))

    async def increment_attempts(
        self,
        item_id: str,
        error: str,
        api_context: ApiContext | None = None,
        next_retry_at: datetime | None = None,
    ) -> None:
        await self._run(
            queue_repo.increment_attempts,
            item_id,
            error,
            next_retry_at=next_retry_at,
            **_api_kwargs(api_context),
        )

    async def reset_stuck_backoff(self, store_id: str, max_minutes: int) -> int:
        return await self._run(queue_repo.reset_stuck_backoff, store_id, max_minutes)

    async def update_error_category(self, item_id: str, category: str) -> None:
        await self._run(queue_repo.update_error_category, item_id, category)

    async def get_stats(self, store_id: str) -> QueueStats:
        raw = await self._run(queue_repo.get_stats, store_id)
        return QueueStats(**raw)

    async def get_failed_count(self, store_id: str) -> int:
        return await self._run(queue_repo.get_failed_count, store_id)

    async def get_failed_items(self, store_id: str, limit: int = 100) -> list[QueueItem]:
        def _fetch(session: Session) -> list[QueueItem]:
            return [_to_queue_item(row) for row in queue_repo.get_failed_items(session, store_id, limit)]

        return await self._run(_fetch)

    async def retry_failed(self, store_id: str, item_ids: list[str] | None = None) -> int:
        return await self._run(queue_repo.retry_failed, store_id, item_ids)

    async def cleanup_synced(self, older_than_days: int) -> int:
        return await self._run(queue_repo.cleanup_synced, older_than_days)


class SqlRunLog(_SqlBacked):
    async def start_sync(self, store_id: str, sync_type: str = "PUSH") -> str:
        return await self._run(sync_log_repo.start_sync, store_id, sync_type)

    async def complete_sync(
        self,
        log_id: str,
        *,
        sent: int,
        succeeded: int,
        failed: int,
        outcome: str,
        error_message: str | None = None,
    ) -> None:
        await self._run(
            sync_log_repo.complete_sync,
            log_id,
            sent=sent,
            succeeded=succeeded,
            failed=failed,
            outcome=outcome,
            error_message=error_message,
        )

    async def fail_sync(self, log_id: str, error_message: str, *, sent: int = 0, succeeded: int = 0, failed: int = 0) -> None:
        await self._run(sync_log_repo.fail_sync, log_id, error_message, sent=sent, succeeded=succeeded, failed=failed)

    async def cleanup_stale_running(self, store_id: str, max_age_minutes: int) -> int:
        return await self._run(sync_log_repo.cleanup_stale_running, store_id, max_age_minutes)

    async def get_recent(self, store_id: str, limit: int = 20) -> list[dict[str, Any]]:
        def _fetch(session: Session) -> list[dict[str, Any]]:
            return [
                {
                    "id": row.id,
                    "sync_type": row.sync_type,
                    "status": row.status,
                    "outcome": row.outcome,
                    "records_sent": row.records_sent,
                    "records_succeeded": row.records_succeeded,
                    "records_failed": row.records_failed,
                    "started_at": row.started_at.isoformat() if row.started_at else None,
                    "completed_at": row.completed_at.isoformat() if row.completed_at else None,
                    "error_message": row.error_message,
                }
                for row in sync_log_repo.get_recent(session, store_id, limit)
            ]

        return await self._run(_fetch)


class SqlStoreConfig(_SqlBacked):
    async def get_configured_store(self) -> dict[str, Any] | None:
        def _fetch(session: Session) -> dict[str, Any] | None:
            store = stores_repo.get_configured_store(session)
            if store is None:
                return None
            return {"store_id": store.store_id, "name": store.name, "timezone": store.timezone}

        return await self._run(_fetch)


class SqlLookups(_SqlBacked):
    async def find_game(self, game_id: str) -> dict[str, Any] | None:
        def _fetch(session: Session) -> dict[str, Any] | None:
            game = lookups_repo.find_game(session, game_id)
            if game is None:
                return None
            return {"game_id": game.game_id, "game_code": game.game_code, "tickets_per_pack": game.tickets_per_pack}

        return await self._run(_fetch)

    async def find_user(self, user_id: str) -> dict[str, Any] | None:
        def _fetch(session: Session) -> dict[str, Any] | None:
            user = lookups_repo.find_user(session, user_id)
            if user is None:
                return None
            return {
                "user_id": user.user_id,
                "name": user.name,
                "role": user.role,
                "pin_hash": user.pin_hash,
                "active": user.active,
            }

        return await self._run(_fetch)

    async def find_business_day(self, day_id: str) -> dict[str, Any] | None:
        def _fetch(session: Session) -> dict[str, Any] | None:
            day = lookups_repo.find_business_day(session, day_id)
            if day is None:
                return None
            return {"day_id": day.day_id, "business_date": day.business_date, "status": day.status}

        return await self._run(_fetch)
