"""Two-phase day close.

PREPARE stages the close against the cloud's own day record, which is found
by pulling the day status for the local day's business date. COMMIT and
CANCEL items carry the cloud day id captured at PREPARE time and are never
re-resolved; one without it is rejected before any network call.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from loguru import logger

from storesync.cloud.client import DAY_CANCEL_CLOSE_PATH, DAY_COMMIT_CLOSE_PATH, DAY_PREPARE_CLOSE_PATH
from storesync.sync.adapters.base import (
    AdapterContext,
    context_from_error,
    is_blank,
    is_success,
    missing_fields,
    response_error,
)
from storesync.sync.types import (
    DAY_CLOSE_COMMIT_PRIORITY,
    ApiContext,
    CloudDayId,
    EntityType,
    ItemResult,
    LocalDayId,
    Operation,
    QueueItem,
)


class DayCloseOp(str, Enum):
    PREPARE = "PREPARE"
    COMMIT = "COMMIT"
    CANCEL = "CANCEL"


class DayCloseError(ValueError):
    pass


_ENDPOINTS = {
    DayCloseOp.PREPARE: DAY_PREPARE_CLOSE_PATH,
    DayCloseOp.COMMIT: DAY_COMMIT_CLOSE_PATH,
    DayCloseOp.CANCEL: DAY_CANCEL_CLOSE_PATH,
}


def _missing_categories(op: DayCloseOp, payload: dict[str, Any]) -> list[str]:
    categories: list[str] = []
    if op is DayCloseOp.PREPARE:
        ids = missing_fields(payload, ("day_id", "store_id"))
        if ids:
            categories.append(f"identifiers ({', '.join(ids)})")
        closings = payload.get("closings")
        if not isinstance(closings, list) or not closings:
            categories.append("pack closings (closings)")
        if is_blank(payload.get("initiated_by")):
            categories.append("actor (initiated_by)")
    elif op is DayCloseOp.COMMIT:
        if is_blank(payload.get("cloud_day_id")):
            categories.append("resolved cloud day id (cloud_day_id)")
        if is_blank(payload.get("closed_by")):
            categories.append("actor (closed_by)")
    else:
        if is_blank(payload.get("cloud_day_id")):
            categories.append("resolved cloud day id (cloud_day_id)")
        if is_blank(payload.get("reason")):
            categories.append("reason")
        if is_blank(payload.get("cancelled_by")):
            categories.append("actor (cancelled_by)")
    return categories


def parse_operation(payload: dict[str, Any]) -> DayCloseOp:
    raw = payload.get("operation_type")
    if is_blank(raw):
        raise DayCloseError("Missing required fields: operation_type")
    try:
        return DayCloseOp(str(raw).upper())
    except ValueError:
        raise DayCloseError(f"Unknown day close operation type: {raw}") from None


def validate(op: DayCloseOp, payload: dict[str, Any]) -> None:
    categories = _missing_categories(op, payload)
    if categories:
        raise DayCloseError(f"Day close {op.value} missing required fields: {', '.join(categories)}")


async def resolve_cloud_day(local_day: LocalDayId, ctx: AdapterContext) -> CloudDayId:
    day = await ctx.lookups.find_business_day(local_day.value)
    if not day or is_blank(day.get("business_date")):
        raise DayCloseError(f"Local business day not found: {local_day}")
    business_date = str(day["business_date"])
    remote = await ctx.cloud.pull_day_status(business_date)
    if not remote or is_blank(remote.get("day_id")):
        raise DayCloseError(f"No cloud day found for business date {business_date}")
    status = str(remote.get("status") or "").upper()
    if status != "OPEN":
        raise DayCloseError(f"Cloud day for {business_date} is not OPEN (status: {status or 'unknown'})")
    cloud_day = CloudDayId(str(remote["day_id"]))
    logger.info("day close resolved local_day={} business_date={} cloud_day={}", local_day, business_date, cloud_day)
    return cloud_day


async def _prepare(item: QueueItem, ctx: AdapterContext) -> ItemResult:
    payload = item.payload
    cloud_day = await resolve_cloud_day(LocalDayId(str(payload["day_id"])), ctx)
    expire_minutes = payload.get("expire_minutes", ctx.day_close_expire_minutes)
    response = await ctx.cloud.prepare_day_close(
        cloud_day,
        closings=payload["closings"],
        initiated_by=payload["initiated_by"],
        manual_entry_authorized_by=payload.get("manual_entry_authorized_by"),
        expire_minutes=expire_minutes,
    )
    api_context = ApiContext(api_endpoint=DAY_PREPARE_CLOSE_PATH, http_status=200)
    if not is_success(response):
        return ItemResult.fail(item.id, response_error(response, "Day close PREPARE rejected by cloud"), api_context)

    prepared_day = CloudDayId(str(response.get("day_id") or cloud_day.value))
    logger.info(
        "day close prepared cloud_day={} closings={} expires_at={}",
        prepared_day,
        len(payload["closings"]),
        response.get("expires_at"),
    )
    await _enqueue_commit(item, prepared_day, ctx)
    return ItemResult.ok(item.id, api_context)


async def _enqueue_commit(item: QueueItem, cloud_day: CloudDayId, ctx: AdapterContext) -> None:
    payload = item.payload
    commit_payload = {
        "operation_type": DayCloseOp.COMMIT.value,
        "day_id": payload["day_id"],
        "cloud_day_id": cloud_day.value,
        "store_id": payload["store_id"],
        "closed_by": payload.get("closed_by") or payload["initiated_by"],
    }
    try:
        await ctx.queue.enqueue(
            store_id=payload["store_id"],
            entity_type=EntityType.DAY_CLOSE.value,
            entity_id=cloud_day.value,
            operation=Operation.UPDATE.value,
            payload=commit_payload,
            priority=DAY_CLOSE_COMMIT_PRIORITY,
        )
    except Exception:
        logger.exception("day close COMMIT enqueue failed cloud_day={} local_day={}", cloud_day, payload["day_id"])
        return
    logger.info("day close COMMIT queued cloud_day={} local_day={}", cloud_day, payload["day_id"])


async def _commit(item: QueueItem, ctx: AdapterContext) -> ItemResult:
    payload = item.payload
    cloud_day = CloudDayId(str(payload["cloud_day_id"]))
    response = await ctx.cloud.commit_day_close(cloud_day, closed_by=payload["closed_by"], notes=payload.get("notes"))
    if not is_success(response):
        api_context = ApiContext(api_endpoint=DAY_COMMIT_CLOSE_PATH, http_status=200)
        return ItemResult.fail(item.id, response_error(response, "Day close COMMIT rejected by cloud"), api_context)
    summary = response.get("summary") or {}
    logger.info(
        "day close committed cloud_day={} total_packs={} total_tickets_sold={}",
        cloud_day,
        summary.get("total_packs"),
        summary.get("total_tickets_sold"),
    )
    body = json.dumps({"summary": summary}, ensure_ascii=False, default=str) if summary else None
    return ItemResult.ok(item.id, ApiContext(api_endpoint=DAY_COMMIT_CLOSE_PATH, http_status=200, response_body=body))


async def _cancel(item: QueueItem, ctx: AdapterContext) -> ItemResult:
    payload = item.payload
    cloud_day = CloudDayId(str(payload["cloud_day_id"]))
    response = await ctx.cloud.cancel_day_close(cloud_day, cancelled_by=payload["cancelled_by"], reason=payload["reason"])
    api_context = ApiContext(api_endpoint=DAY_CANCEL_CLOSE_PATH, http_status=200)
    if not is_success(response):
        return ItemResult.fail(item.id, response_error(response, "Day close CANCEL rejected by cloud"), api_context)
    logger.info("day close cancelled cloud_day={} reason={}", cloud_day, payload["reason"])
    return ItemResult.ok(item.id, api_context)


_HANDLERS = {
    DayCloseOp.PREPARE: _prepare,
    DayCloseOp.COMMIT: _commit,
    DayCloseOp.CANCEL: _cancel,
}


async def push_day_closes(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        op: DayCloseOp | None = None
        try:
            op = parse_operation(item.payload)
            validate(op, item.payload)
            results.append(await _HANDLERS[op](item, ctx))
        except DayCloseError as exc:
            logger.warning("day close rejected item_id={} op={} err={}", item.id, item.payload.get("operation_type"), exc)
            results.append(ItemResult.fail(item.id, str(exc)))
        except Exception as exc:
            endpoint = _ENDPOINTS[op] if op else DAY_PREPARE_CLOSE_PATH
            logger.error("day close push failed item_id={} op={} err={}", item.id, item.payload.get("operation_type"), exc)
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, endpoint)))
    return results
