from __future__ import annotations

import json
from datetime import datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.orm import Session

from storesync.db.models import SyncQueueItem

DEFAULT_MAX_ATTEMPTS = 5
RESPONSE_BODY_MAX = 2000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None or len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def enqueue(
    session: Session,
    *,
    store_id: str,
    entity_type: str,
    entity_id: str,
    operation: str,
    payload: dict[str, Any],
    priority: int = 0,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    created_at: datetime | None = None,
) -> SyncQueueItem:
    row = SyncQueueItem(
        store_id=store_id,
        entity_type=entity_type,
        entity_id=entity_id,
        operation=operation,
        payload_json=json.dumps(payload, ensure_ascii=False, default=str),
        priority=priority,
        max_attempts=max_attempts,
        created_at=created_at or _now_utc(),
    )
    session.add(row)
    session.flush()
    return row


def get_item(session: Session, item_id: str) -> SyncQueueItem | None:
    return session.get(SyncQueueItem, item_id)


def get_retryable_items(
    session: Session,
    store_id: str,
    limit: int = 100,
    *,
    now: datetime | None = None,
) -> list[SyncQueueItem]:
    now = now or _now_utc()
    stmt = (
        select(SyncQueueItem)
        .where(
            SyncQueueItem.store_id == store_id,
            SyncQueueItem.synced.is_(False),
            SyncQueueItem.sync_attempts < SyncQueueItem.max_attempts,
            or_(SyncQueueItem.next_retry_at.is_(None), SyncQueueItem.next_retry_at <= now),
        )
        .order_by(SyncQueueItem.priority.desc(), SyncQueueItem.created_at.asc())
        .limit(limit)
    )
    return list(session.scalars(stmt))


def mark_synced(
    session: Session,
    item_id: str,
    *,
    api_endpoint: str | None = None,
    http_status: int | None = None,
    response_body: str | None = None,
) -> bool:
    now = _now_utc()
    values: dict[str, Any] = {
        "synced": True,
        "synced_at": now,
        "last_attempt_at": now,
        "last_sync_error": None,
        "error_category": None,
        "next_retry_at": None,
    }
    if api_endpoint is not None:
        values["api_endpoint"] = api_endpoint
        values["http_status"] = http_status
        values["response_body"] = _truncate(response_body, RESPONSE_BODY_MAX)
    result = session.execute(update(SyncQueueItem).where(SyncQueueItem.id == item_id).values(**values))
    return int(result.rowcount or 0) > 0


def increment_attempts(
    session: Session,
    item_id: str,
    error: str,
    *,
    api_endpoint: str | None = None,
    http_status: int | None = None,
    response_body: str | None = None,
    next_retry_at: datetime | None = None,
) -> bool:
    values: dict[str, Any] = {
        "sync_attempts": SyncQueueItem.sync_attempts + 1,
        "last_sync_error": error,
        "last_attempt_at": _now_utc(),
        "next_retry_at": next_retry_at,
    }
    if api_endpoint is not None:
        values["api_endpoint"] = api_endpoint
        values["http_status"] = http_status
        values["response_body"] = _truncate(response_body, RESPONSE_BODY_MAX)
    result = session.execute(update(SyncQueueItem).where(SyncQueueItem.id == item_id).values(**values))
    return int(result.rowcount or 0) > 0


def update_error_category(session: Session, item_id: str, category: str) -> None:
    session.execute(update(SyncQueueItem).where(SyncQueueItem.id == item_id).values(error_category=category))


def reset_stuck_backoff(session: Session, store_id: str, max_minutes: int = 2, *, now: datetime | None = None) -> int:
    """Release items whose last attempt is older than ``max_minutes`` but are still held back."""
    now = now or _now_utc()
    cutoff = now - timedelta(minutes=max(0, int(max_minutes)))
    stmt = (
        update(SyncQueueItem)
        .where(
            SyncQueueItem.store_id == store_id,
            SyncQueueItem.synced.is_(False),
            SyncQueueItem.next_retry_at > now,
            SyncQueueItem.last_attempt_at < cutoff,
        )
        .values(next_retry_at=None)
    )
    return int(session.execute(stmt).rowcount or 0)


def get_stats(session: Session, store_id: str) -> dict[str, Any]:
    today_start = datetime.combine(_now_utc().date(), time.min, tzinfo=timezone.utc)
    pending = SyncQueueItem.synced.is_(False)
    dead = and_(pending, SyncQueueItem.sync_attempts >= SyncQueueItem.max_attempts)
    synced_today = and_(SyncQueueItem.synced.is_(True), SyncQueueItem.synced_at >= today_start)
    stmt = select(
        func.coalesce(func.sum(case((pending, 1), else_=0)), 0),
        func.coalesce(func.sum(case((dead, 1), else_=0)), 0),
        func.coalesce(func.sum(case((synced_today, 1), else_=0)), 0),
        func.min(case((pending, SyncQueueItem.created_at), else_=None)),
    ).where(SyncQueueItem.store_id == store_id)
    pending_count, failed_count, synced_today_count, oldest = session.execute(stmt).one()
    pending_count = int(pending_count)
    failed_count = int(failed_count)
    return {
        "pending": pending_count,
        "queued": pending_count - failed_count,
        "failed": failed_count,
        "synced_today": int(synced_today_count),
        "oldest_pending": oldest,
    }


def get_failed_count(session: Session, store_id: str) -> int:
    stmt = select(func.count(SyncQueueItem.id)).where(
        SyncQueueItem.store_id == store_id,
        SyncQueueItem.synced.is_(False),
        SyncQueueItem.sync_attempts >= SyncQueueItem.max_attempts,
    )
    return int(session.scalar(stmt) or 0)


def get_failed_items(session: Session, store_id: str, limit: int = 100) -> list[SyncQueueItem]:
    stmt = (
        select(SyncQueueItem)
        .where(
            SyncQueueItem.store_id == store_id,
            SyncQueueItem.synced.is_(False),
            SyncQueueItem.sync_attempts >= SyncQueueItem.max_attempts,
        )
        .order_by(SyncQueueItem.last_attempt_at.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt))


def retry_failed(session: Session, store_id: str, item_ids: list[str] | None = None) -> int:
    conditions = [
        SyncQueueItem.store_id == store_id,
        SyncQueueItem.synced.is_(False),
    ]
    if item_ids:
        conditions.append(SyncQueueItem.id.in_(item_ids))
    else:
        conditions.append(SyncQueueItem.sync_attempts >= SyncQueueItem.max_attempts)
    stmt = (
        update(SyncQueueItem)
        .where(*conditions)
        .values(sync_attempts=0, last_sync_error=None, error_category=None, next_retry_at=None)
    )
    return int(session.execute(stmt).rowcount or 0)


def cleanup_synced(session: Session, older_than_days: int = 7) -> int:
    cutoff = _now_utc() - timedelta(days=max(0, int(older_than_days)))
    stmt = delete(SyncQueueItem).where(
        SyncQueueItem.synced.is_(True),
        or_(SyncQueueItem.synced_at < cutoff, SyncQueueItem.synced_at.is_(None)),
    )
    return int(session.execute(stmt).rowcount or 0)
