from __future__ import annotations

from typing import Any

from loguru import logger

from storesync.cloud.client import EMPLOYEES_PATH
from storesync.sync.adapters.base import (
    AdapterContext,
    context_from_error,
    is_success,
    missing_fields,
    missing_message,
    response_error,
)
from storesync.sync.types import ApiContext, ItemResult, QueueItem

_REQUIRED = ("user_id", "role", "name")


async def _validate(item: QueueItem, ctx: AdapterContext) -> dict[str, Any] | str:
    payload = item.payload
    if "pin" in payload:
        return "Plain-text pin must not be queued for sync"
    missing = missing_fields(payload, _REQUIRED)
    if missing:
        return missing_message(missing)
    user = await ctx.lookups.find_user(payload["user_id"])
    if not user or not user.get("pin_hash"):
        return "Employee not found or missing PIN hash"
    return {
        "user_id": payload["user_id"],
        "store_id": payload.get("store_id") or item.store_id,
        "name": payload["name"],
        "role": payload["role"],
        "pin_hash": user["pin_hash"],
        "active": bool(payload.get("active", user.get("active", True))),
    }


async def push_employees(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: dict[str, ItemResult] = {}
    valid: list[tuple[QueueItem, dict[str, Any]]] = []
    for item in items:
        checked = await _validate(item, ctx)
        if isinstance(checked, str):
            logger.warning("employee sync rejected item_id={} err={}", item.id, checked)
            results[item.id] = ItemResult.fail(item.id, checked)
        else:
            valid.append((item, checked))

    if valid:
        try:
            response = await ctx.cloud.push_employees([employee for _, employee in valid])
        except Exception as exc:
            api_context = context_from_error(exc, EMPLOYEES_PATH)
            logger.error("employee batch push failed count={} err={}", len(valid), exc)
            for item, _ in valid:
                results[item.id] = ItemResult.fail(item.id, str(exc), api_context)
        else:
            _fan_out(valid, response, results)

    return [results[item.id] for item in items]


def _fan_out(
    valid: list[tuple[QueueItem, dict[str, Any]]],
    response: dict[str, Any],
    results: dict[str, ItemResult],
) -> None:
    api_context = ApiContext(api_endpoint=EMPLOYEES_PATH, http_status=200)
    if not is_success(response):
        error = response_error(response, "Employee batch rejected by cloud")
        for item, _ in valid:
            results[item.id] = ItemResult.fail(item.id, error, api_context)
        return

    entries = response.get("results") or []
    by_user = {str(e.get("user_id")): e for e in entries if isinstance(e, dict) and e.get("user_id")}
    for item, employee in valid:
        if not entries:
            results[item.id] = ItemResult.ok(item.id, api_context)
            continue
        entry = by_user.get(str(employee["user_id"]))
        if entry is None:
            results[item.id] = ItemResult.fail(item.id, "No result returned for employee", api_context)
            continue
        if str(entry.get("status", "synced")).lower() in {"synced", "success", "ok", "created", "updated"}:
            results[item.id] = ItemResult.ok(item.id, api_context)
        else:
            results[item.id] = ItemResult.fail(
                item.id, str(entry.get("error") or "Employee rejected by cloud"), api_context
            )
    logger.info("employee batch pushed count={}", len(valid))
