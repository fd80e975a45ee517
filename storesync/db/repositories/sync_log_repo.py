from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session

from storesync.db.models import SyncLog

ERROR_MESSAGE_MAX = 1000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def start_sync(session: Session, store_id: str, sync_type: str = "PUSH") -> str:
    row = SyncLog(store_id=store_id, sync_type=sync_type, status="RUNNING", started_at=_now_utc())
    session.add(row)
    session.flush()
    return row.id


def complete_sync(
    session: Session,
    log_id: str,
    *,
    sent: int,
    succeeded: int,
    failed: int,
    outcome: str,
    error_message: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    session.execute(
        update(SyncLog)
        .where(SyncLog.id == log_id, SyncLog.status == "RUNNING")
        .values(
            status="COMPLETED",
            outcome=outcome,
            records_sent=sent,
            records_succeeded=succeeded,
            records_failed=failed,
            completed_at=_now_utc(),
            error_message=error_message[:ERROR_MESSAGE_MAX] if error_message else None,
            details_json=json.dumps(details, ensure_ascii=False, default=str) if details else None,
        )
    )


def fail_sync(
    session: Session,
    log_id: str,
    error_message: str,
    *,
    sent: int = 0,
    succeeded: int = 0,
    failed: int = 0,
) -> None:
    session.execute(
        update(SyncLog)
        .where(SyncLog.id == log_id, SyncLog.status == "RUNNING")
        .values(
            status="FAILED",
            outcome="failed",
            records_sent=sent,
            records_succeeded=succeeded,
            records_failed=failed,
            completed_at=_now_utc(),
            error_message=error_message[:ERROR_MESSAGE_MAX],
        )
    )


def cleanup_stale_running(session: Session, store_id: str, max_age_minutes: int = 30) -> int:
    cutoff = _now_utc() - timedelta(minutes=max_age_minutes)
    result = session.execute(
        update(SyncLog)
        .where(SyncLog.store_id == store_id, SyncLog.status == "RUNNING", SyncLog.started_at < cutoff)
        .values(
            status="FAILED",
            outcome="failed",
            completed_at=_now_utc(),
            error_message="Sync interrupted (stale RUNNING entry cleaned up)",
        )
    )
    return int(result.rowcount or 0)


def get_log(session: Session, log_id: str) -> SyncLog | None:
    return session.get(SyncLog, log_id)


def get_recent(session: Session, store_id: str, limit: int = 20) -> list[SyncLog]:
    stmt = (
        select(SyncLog)
        .where(SyncLog.store_id == store_id)
        .order_by(desc(SyncLog.started_at))
        .limit(limit)
    )
    return list(session.scalars(stmt))
