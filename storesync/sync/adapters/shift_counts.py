from __future__ import annotations

from typing import Any

from loguru import logger

from storesync.cloud.client import SHIFT_CLOSING_PATH, SHIFT_OPENING_PATH
from storesync.sync.adapters.base import (
    AdapterContext,
    context_from_error,
    is_blank,
    is_success,
    missing_fields,
    missing_message,
    response_error,
)
from storesync.sync.types import ApiContext, ItemResult, QueueItem


def _build_body(payload: dict[str, Any], rows_key: str, at_key: str, by_key: str) -> dict[str, Any] | str:
    missing = missing_fields(payload, ("shift_id", "store_id"))
    if payload.get(rows_key) is None:
        missing.append(rows_key)
    if is_blank(payload.get(at_key)):
        missing.append(at_key)
    if missing:
        return missing_message(missing)
    if not isinstance(payload[rows_key], list):
        return f"Invalid payload: {rows_key} must be a list"
    return {
        "shift_id": payload["shift_id"],
        "store_id": payload["store_id"],
        rows_key: payload[rows_key],
        at_key: payload[at_key],
        by_key: payload.get(by_key),
    }


def build_opening_body(payload: dict[str, Any]) -> dict[str, Any] | str:
    return _build_body(payload, "openings", "opened_at", "opened_by")


def build_closing_body(payload: dict[str, Any]) -> dict[str, Any] | str:
    return _build_body(payload, "closings", "closed_at", "closed_by")


async def _push_each(
    items: list[QueueItem],
    *,
    label: str,
    endpoint: str,
    build,
    send,
) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        body = build(item.payload)
        if isinstance(body, str):
            logger.warning("{} sync rejected item_id={} err={}", label, item.id, body)
            results.append(ItemResult.fail(item.id, body))
            continue
        try:
            response = await send(body)
        except Exception as exc:
            logger.error("{} push failed item_id={} shift_id={} err={}", label, item.id, body["shift_id"], exc)
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, endpoint)))
            continue

        api_context = ApiContext(api_endpoint=endpoint, http_status=200)
        if not is_success(response):
            error = response_error(response, f"{label.capitalize()} rejected by cloud")
            results.append(ItemResult.fail(item.id, error, api_context))
            continue
        results.append(ItemResult.ok(item.id, api_context))
    return results


async def push_shift_openings(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results = await _push_each(
        items,
        label="shift opening",
        endpoint=SHIFT_OPENING_PATH,
        build=build_opening_body,
        send=ctx.cloud.push_shift_opening,
    )
    logger.info("shift openings pushed count={} synced={}", len(items), sum(r.synced for r in results))
    return results


async def push_shift_closings(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results = await _push_each(
        items,
        label="shift closing",
        endpoint=SHIFT_CLOSING_PATH,
        build=build_closing_body,
        send=ctx.cloud.push_shift_closing,
    )
    logger.info("shift closings pushed count={} synced={}", len(items), sum(r.synced for r in results))
    return results
