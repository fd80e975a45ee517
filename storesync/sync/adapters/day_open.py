from __future__ import annotations

from typing import Any

from loguru import logger

from storesync.cloud.client import DAY_OPEN_PATH
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

_REQUIRED = ("day_id", "store_id", "business_date", "opened_by", "opened_at")


def build_day_open_body(payload: dict[str, Any]) -> dict[str, Any] | str:
    missing = missing_fields(payload, _REQUIRED)
    if missing:
        return missing_message(missing)
    body = {key: payload[key] for key in _REQUIRED}
    if not is_blank(payload.get("notes")):
        body["notes"] = payload["notes"]
    return body


async def push_day_opens(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        body = build_day_open_body(item.payload)
        if isinstance(body, str):
            logger.warning("day open sync rejected item_id={} err={}", item.id, body)
            results.append(ItemResult.fail(item.id, body))
            continue
        try:
            response = await ctx.cloud.push_day_open(body)
        except Exception as exc:
            logger.error("day open push failed item_id={} day_id={} err={}", item.id, body["day_id"], exc)
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, DAY_OPEN_PATH)))
            continue

        api_context = ApiContext(api_endpoint=DAY_OPEN_PATH, http_status=200)
        if not is_success(response):
            results.append(ItemResult.fail(item.id, response_error(response, "Day open rejected by cloud"), api_context))
            continue
        if response.get("is_idempotent"):
            logger.info("day already open in cloud business_date={}", body["business_date"])
        results.append(ItemResult.ok(item.id, api_context))
    return results
