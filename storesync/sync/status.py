from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

MAX_RECENT_ERRORS = 5


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(slots=True)
class ProgressError:
    item_id: str
    entity_type: str
    message: str
    at: datetime


@dataclass(slots=True)
class SyncProgress:
    total: int
    started_at: datetime
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    current_entity_type: str | None = None
    recent_errors: list[ProgressError] = field(default_factory=list)

    def record_success(self) -> None:
        self.completed += 1
        self.succeeded += 1

    def record_failure(self, error: ProgressError) -> None:
        self.completed += 1
        self.failed += 1
        self.recent_errors.append(error)
        del self.recent_errors[:-MAX_RECENT_ERRORS]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "current_entity_type": self.current_entity_type,
            "started_at": _iso(self.started_at),
            "recent_errors": [_error_dict(e) for e in self.recent_errors],
        }


def _error_dict(error: ProgressError) -> dict[str, Any]:
    return {
        "item_id": error.item_id,
        "entity_type": error.entity_type,
        "message": error.message,
        "at": _iso(error.at),
    }


@dataclass(slots=True)
class SyncStatus:
    is_running: bool = False
    is_started: bool = False
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    pending_count: int = 0
    queued_count: int = 0
    failed_count: int = 0
    synced_today_count: int = 0
    oldest_pending_at: datetime | None = None
    next_sync_in_sec: float = 0.0
    is_online: bool = False
    consecutive_failures: int = 0
    last_error_message: str | None = None
    last_error_at: datetime | None = None
    last_heartbeat_at: datetime | None = None
    last_heartbeat_status: str | None = None
    last_server_time: str | None = None
    next_heartbeat_in_sec: float = 0.0
    progress: SyncProgress | None = None
    recent_errors: list[ProgressError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        data["progress"] = self.progress.to_dict() if self.progress else None
        data["recent_errors"] = [_error_dict(e) for e in self.recent_errors]
        return data
