from __future__ import annotations

from typing import Any

from loguru import logger

from storesync.cloud.client import SHIFTS_PATH
from storesync.sync.adapters.base import (
    AdapterContext,
    context_from_error,
    is_success,
    missing_fields,
    missing_message,
    response_error,
)
from storesync.sync.types import ApiContext, ItemResult, QueueItem

_REQUIRED = ("shift_id", "store_id", "business_date", "shift_number", "opened_at", "status")
_FORWARDED = (
    "shift_id",
    "store_id",
    "business_date",
    "shift_number",
    "opened_at",
    "opened_by",
    "closed_at",
    "closed_by",
    "status",
    "cashier_id",
    "register_id",
    "external_register_id",
    "external_cashier_id",
    "external_till_id",
)


def validate_shift(payload: dict[str, Any]) -> str | None:
    missing = missing_fields(payload, _REQUIRED)
    if str(payload.get("status") or "").upper() == "CLOSED" and not payload.get("closed_at"):
        missing.append("closed_at")
    if missing:
        return missing_message(missing)
    number = payload["shift_number"]
    if isinstance(number, bool) or not isinstance(number, int):
        return "Invalid shift_number: must be an integer"
    return None


def build_shift_body(payload: dict[str, Any]) -> dict[str, Any]:
    body = {key: payload[key] for key in _FORWARDED if key in payload}
    body["status"] = str(payload["status"]).upper()
    return body


async def push_shifts(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        error = validate_shift(item.payload)
        if error:
            logger.warning("shift sync rejected item_id={} err={}", item.id, error)
            results.append(ItemResult.fail(item.id, error))
            continue
        try:
            response = await ctx.cloud.push_shift(build_shift_body(item.payload))
        except Exception as exc:
            logger.error("shift push failed item_id={} shift_id={} err={}", item.id, item.payload.get("shift_id"), exc)
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, SHIFTS_PATH)))
            continue

        api_context = ApiContext(api_endpoint=SHIFTS_PATH, http_status=200)
        if not is_success(response):
            results.append(ItemResult.fail(item.id, response_error(response, "Shift rejected by cloud"), api_context))
            continue
        if response.get("idempotent"):
            logger.info("shift already present in cloud shift_id={}", item.payload.get("shift_id"))
        results.append(ItemResult.ok(item.id, api_context))
    return results
