from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from storesync.cloud.errors import CloudApiError
from storesync.sync.types import ApiContext, ItemResult, QueueItem


@dataclass(slots=True)
class AdapterContext:
    """Collaborators handed to every push adapter.

    ``cloud`` follows the CloudClient method set, ``lookups`` exposes
    ``find_game``/``find_user``/``find_business_day`` and ``queue`` is the
    queue store (used by the day-close coordinator to schedule a COMMIT).
    """

    cloud: Any
    lookups: Any
    queue: Any
    day_close_expire_minutes: int | None = None


Adapter = Callable[[list[QueueItem], AdapterContext], Awaitable[list[ItemResult]]]


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_fields(payload: dict[str, Any], names: Iterable[str]) -> list[str]:
    return [name for name in names if is_blank(payload.get(name))]


def missing_message(names: list[str]) -> str:
    return f"Missing required fields: {', '.join(names)}"


def is_success(response: Any) -> bool:
    if not isinstance(response, dict):
        return False
    return response.get("success", True) is not False


def response_error(response: Any, default: str) -> str:
    if isinstance(response, dict):
        error = response.get("error") or response.get("message")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    return default


def context_from_error(exc: BaseException, endpoint: str) -> ApiContext | None:
    if isinstance(exc, CloudApiError):
        return ApiContext(
            api_endpoint=exc.endpoint or endpoint,
            http_status=exc.http_status,
            response_body=exc.truncated_body(),
            retry_after_sec=exc.retry_after_sec,
        )
    return None


def fail_all(items: list[QueueItem], error: str, api_context: ApiContext | None = None) -> list[ItemResult]:
    return [ItemResult.fail(item.id, error, api_context) for item in items]
