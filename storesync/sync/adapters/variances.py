from __future__ import annotations

from typing import Any

from loguru import logger

from storesync.cloud.client import VARIANCE_APPROVE_PATH
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

VARIANCE_TYPES = frozenset({"SERIAL_MISMATCH", "MISSING_PACK", "EXTRA_PACK", "COUNT_MISMATCH"})

_REQUIRED = ("store_id", "variance_id", "business_date", "approved_by", "resolution")
_OPTIONAL = ("bin_id", "pack_id", "expected_serial", "actual_serial", "variance_type")


def build_variance_body(payload: dict[str, Any]) -> dict[str, Any] | str:
    missing = missing_fields(payload, _REQUIRED)
    if missing:
        return missing_message(missing)
    variance_type = payload.get("variance_type")
    if not is_blank(variance_type) and str(variance_type).upper() not in VARIANCE_TYPES:
        return f"Invalid payload: unknown variance_type {variance_type}"
    body = {key: payload[key] for key in _REQUIRED}
    for key in _OPTIONAL:
        if key in payload:
            body[key] = payload[key]
    if "variance_type" in body and body["variance_type"] is not None:
        body["variance_type"] = str(body["variance_type"]).upper()
    return body


async def push_variance_approvals(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        body = build_variance_body(item.payload)
        if isinstance(body, str):
            logger.warning("variance approval sync rejected item_id={} err={}", item.id, body)
            results.append(ItemResult.fail(item.id, body))
            continue
        try:
            response = await ctx.cloud.approve_variance(body)
        except Exception as exc:
            logger.error(
                "variance approval push failed item_id={} variance_id={} err={}", item.id, body["variance_id"], exc
            )
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, VARIANCE_APPROVE_PATH)))
            continue

        api_context = ApiContext(api_endpoint=VARIANCE_APPROVE_PATH, http_status=200)
        if not is_success(response):
            error = response_error(response, "Variance approval rejected by cloud")
            results.append(ItemResult.fail(item.id, error, api_context))
            continue
        logger.info(
            "variance approval synced variance_id={} approved_by={}", body["variance_id"], body["approved_by"]
        )
        results.append(ItemResult.ok(item.id, api_context))
    return results
