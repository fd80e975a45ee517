from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EntityType(str, Enum):
    EMPLOYEE = "employee"
    SHIFT = "shift"
    SHIFT_OPENING = "shift_opening"
    SHIFT_CLOSING = "shift_closing"
    PACK = "pack"
    DAY_OPEN = "day_open"
    DAY_CLOSE = "day_close"
    VARIANCE_APPROVAL = "variance_approval"
    USER = "user"
    BIN = "bin"
    GAME = "game"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, tag: str | None) -> "EntityType":
        try:
            value = cls((tag or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return value

    @property
    def local_only(self) -> bool:
        return self in _LOCAL_ONLY


_LOCAL_ONLY = frozenset({EntityType.USER, EntityType.BIN, EntityType.GAME})


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_counts(cls, sent: int, failed: int) -> "SyncOutcome":
        if failed <= 0:
            return cls.SUCCESS
        if failed >= sent:
            return cls.FAILED
        return cls.PARTIAL


DEFAULT_PRIORITY = 0
SHIFT_PRIORITY = 10
DAY_CLOSE_COMMIT_PRIORITY = 2
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(slots=True, frozen=True)
class LocalDayId:
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class CloudDayId:
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class ApiContext:
    api_endpoint: str
    http_status: int | None = None
    response_body: str | None = None
    retry_after_sec: float | None = None


@dataclass(slots=True)
class QueueItem:
    id: str
    store_id: str
    entity_type: str
    entity_id: str
    operation: str
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY
    sync_attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime | None = None
    last_sync_error: str | None = None
    last_attempt_at: datetime | None = None

    @property
    def kind(self) -> EntityType:
        return EntityType.parse(self.entity_type)


@dataclass(slots=True)
class ItemResult:
    id: str
    synced: bool
    error: str | None = None
    api_context: ApiContext | None = None

    @classmethod
    def ok(cls, item_id: str, api_context: ApiContext | None = None) -> "ItemResult":
        return cls(id=item_id, synced=True, api_context=api_context)

    @classmethod
    def fail(cls, item_id: str, error: str, api_context: ApiContext | None = None) -> "ItemResult":
        return cls(id=item_id, synced=False, error=error, api_context=api_context)


@dataclass(slots=True)
class SyncResult:
    sent: int = 0
    succeeded: int = 0
    failed: int = 0

    @property
    def outcome(self) -> SyncOutcome:
        return SyncOutcome.from_counts(self.sent, self.failed)


@dataclass(slots=True)
class QueueStats:
    pending: int = 0
    queued: int = 0
    failed: int = 0
    synced_today: int = 0
    oldest_pending: datetime | None = None
