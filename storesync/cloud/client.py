from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from loguru import logger

from storesync.cloud.errors import CloudApiError
from storesync.config import settings
from storesync.sync.errors import parse_retry_after
from storesync.sync.types import CloudDayId

HEALTH_PATH = "/api/v1/health"
HEARTBEAT_PATH = "/api/v1/keys/heartbeat"
EMPLOYEES_PATH = "/api/v1/sync/employees"
SHIFTS_PATH = "/api/v1/sync/lottery/shifts"
SHIFT_OPENING_PATH = "/api/v1/sync/lottery/shift/open"
SHIFT_CLOSING_PATH = "/api/v1/sync/lottery/shift/close"
VARIANCE_APPROVE_PATH = "/api/v1/sync/lottery/variances/approve"
PACK_RECEIVE_PATH = "/api/v1/sync/lottery/packs/receive"
PACK_ACTIVATE_PATH = "/api/v1/sync/lottery/packs/activate"
PACK_DEPLETE_PATH = "/api/v1/sync/lottery/packs/deplete"
PACK_RETURN_PATH = "/api/v1/sync/lottery/packs/return"
DAY_OPEN_PATH = "/api/v1/sync/lottery/day/open"
DAY_STATUS_PATH = "/api/v1/sync/lottery/day/status"
DAY_PREPARE_CLOSE_PATH = "/api/v1/sync/lottery/day/prepare-close"
DAY_COMMIT_CLOSE_PATH = "/api/v1/sync/lottery/day/commit-close"
DAY_CANCEL_CLOSE_PATH = "/api/v1/sync/lottery/day/cancel-close"

Sleep = Callable[[float], Awaitable[None]]


def _require_cloud_day(day_id: Any) -> CloudDayId:
    if not isinstance(day_id, CloudDayId):
        raise TypeError(f"cloud day id required, got {type(day_id).__name__}")
    return day_id


class CloudClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        timeout_sec: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._base_url = (base_url or settings.cloud_api_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.cloud_api_key
        self._timeout = timeout_sec if timeout_sec is not None else settings.cloud_timeout_sec
        self._max_retries = max_retries if max_retries is not None else settings.cloud_max_retries
        self._retry_base_delay = (
            retry_base_delay_sec if retry_base_delay_sec is not None else settings.cloud_retry_base_delay_sec
        )
        self._transport = transport
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self._api_key,
            "X-Client-Version": settings.client_version,
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> dict[str, Any]:
        max_retries = self._max_retries if retries is None else retries
        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=timeout or self._timeout,
                    transport=self._transport,
                ) as client:
                    resp = await client.request(method, path, headers=self._headers(), json=json, params=params)
            except httpx.TimeoutException as exc:
                error = CloudApiError(f"{method} {path} timed out: {exc}", endpoint=path)
            except httpx.TransportError as exc:
                error = CloudApiError(f"{method} {path} network error: {exc}", endpoint=path)
            else:
                if resp.status_code < 400:
                    if not resp.content:
                        return {}
                    data = resp.json()
                    return data if isinstance(data, dict) else {"data": data}
                error = CloudApiError(
                    f"{method} {path} failed",
                    http_status=resp.status_code,
                    response_body=resp.text,
                    endpoint=path,
                    retry_after_sec=parse_retry_after(resp.headers.get("Retry-After")),
                )
                if resp.status_code < 500:
                    raise error

            if attempt >= max_retries:
                raise error
            delay = self._retry_base_delay * (2**attempt)
            attempt += 1
            logger.warning(
                "cloud request retry method={} path={} attempt={} delay={}s err={}",
                method,
                path,
                attempt,
                delay,
                error,
            )
            await self._sleep(delay)

    async def health_check(self) -> bool:
        try:
            await self._request("GET", HEALTH_PATH, timeout=settings.cloud_health_timeout_sec, retries=0)
        except CloudApiError as exc:
            logger.info("cloud health check failed err={}", exc)
            return False
        return True

    async def heartbeat(self) -> dict[str, Any]:
        data = await self._request(
            "POST",
            HEARTBEAT_PATH,
            json={},
            timeout=settings.cloud_heartbeat_timeout_sec,
            retries=0,
        )
        return {
            "status": data.get("status") or "ok",
            "server_time": data.get("server_time") or data.get("serverTime"),
        }

    async def push_employees(self, employees: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request("POST", EMPLOYEES_PATH, json={"employees": employees})

    async def push_shift(self, shift: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", SHIFTS_PATH, json=shift)

    async def push_shift_opening(self, opening: dict[str, Any]) -> dict[str, Any]:
        if not opening.get("openings"):
            return {"success": True}
        return await self._request("POST", SHIFT_OPENING_PATH, json=opening)

    async def push_shift_closing(self, closing: dict[str, Any]) -> dict[str, Any]:
        if not closing.get("closings"):
            return {"success": True}
        return await self._request("POST", SHIFT_CLOSING_PATH, json=closing)

    async def approve_variance(self, approval: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", VARIANCE_APPROVE_PATH, json=approval)

    async def push_pack_receive(self, pack: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", PACK_RECEIVE_PATH, json=pack)

    async def push_pack_activate(self, pack: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", PACK_ACTIVATE_PATH, json=pack)

    async def push_pack_deplete(self, pack: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", PACK_DEPLETE_PATH, json=pack)

    async def push_pack_return(self, pack: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", PACK_RETURN_PATH, json=pack)

    async def push_day_open(self, day: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", DAY_OPEN_PATH, json=day)

    async def pull_day_status(self, business_date: str) -> dict[str, Any] | None:
        data = await self._request("GET", DAY_STATUS_PATH, params={"business_date": business_date})
        day = data.get("day")
        return day if isinstance(day, dict) else None

    async def prepare_day_close(
        self,
        day_id: CloudDayId,
        *,
        closings: list[dict[str, Any]],
        initiated_by: str,
        manual_entry_authorized_by: str | None = None,
        expire_minutes: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "day_id": _require_cloud_day(day_id).value,
            "closings": closings,
            "initiated_by": initiated_by,
        }
        if manual_entry_authorized_by:
            body["manual_entry_authorized_by"] = manual_entry_authorized_by
        if expire_minutes is not None:
            body["expire_minutes"] = expire_minutes
        return await self._request("POST", DAY_PREPARE_CLOSE_PATH, json=body)

    async def commit_day_close(self, day_id: CloudDayId, *, closed_by: str, notes: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"day_id": _require_cloud_day(day_id).value, "closed_by": closed_by}
        if notes:
            body["notes"] = notes
        return await self._request("POST", DAY_COMMIT_CLOSE_PATH, json=body)

    async def cancel_day_close(self, day_id: CloudDayId, *, cancelled_by: str, reason: str) -> dict[str, Any]:
        body = {"day_id": _require_cloud_day(day_id).value, "cancelled_by": cancelled_by, "reason": reason}
        return await self._request("POST", DAY_CANCEL_CLOSE_PATH, json=body)
