from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from loguru import logger

from storesync.cloud.client import PACK_ACTIVATE_PATH, PACK_DEPLETE_PATH, PACK_RECEIVE_PATH, PACK_RETURN_PATH
from storesync.cloud.errors import CloudApiError
from storesync.sync.adapters.base import (
    AdapterContext,
    context_from_error,
    is_success,
    missing_fields,
    missing_message,
    response_error,
)
from storesync.sync.types import ApiContext, ItemResult, Operation, QueueItem

PACKS_PATH = "/api/v1/sync/lottery/packs"

DEPLETION_REASONS = frozenset({"SHIFT_CLOSE", "AUTO_REPLACED", "MANUAL_SOLD_OUT", "POS_LAST_TICKET"})
RETURN_REASONS = frozenset({"SUPPLIER_RECALL", "DAMAGED", "EXPIRED", "INVENTORY_ADJUSTMENT", "STORE_CLOSURE"})

_DEFAULT_SERIAL_START = "000"
_DEFAULT_SERIAL_END = "299"


class PackValidationError(ValueError):
    pass


def pack_endpoint(operation: str, status: str | None) -> str:
    if operation == Operation.CREATE.value:
        return PACK_RECEIVE_PATH
    if operation == Operation.UPDATE.value:
        return {
            "ACTIVE": PACK_ACTIVATE_PATH,
            "DEPLETED": PACK_DEPLETE_PATH,
            "RETURNED": PACK_RETURN_PATH,
        }.get((status or "").upper(), PACKS_PATH)
    return PACKS_PATH


def _serial_end(payload: dict[str, Any], game: dict[str, Any] | None) -> str:
    if payload.get("serial_end"):
        return str(payload["serial_end"])
    tickets = (game or {}).get("tickets_per_pack")
    if tickets:
        return str(int(tickets) - 1).zfill(3)
    return _DEFAULT_SERIAL_END


def build_receive_body(payload: dict[str, Any], game_code: str, game: dict[str, Any] | None) -> dict[str, Any]:
    missing = missing_fields(payload, ("pack_id", "store_id", "pack_number"))
    if missing:
        raise PackValidationError(missing_message(missing))
    return {
        "pack_id": payload["pack_id"],
        "store_id": payload["store_id"],
        "game_id": payload.get("game_id"),
        "game_code": game_code,
        "pack_number": payload["pack_number"],
        "serial_start": payload.get("serial_start") or _DEFAULT_SERIAL_START,
        "serial_end": _serial_end(payload, game),
        "received_at": payload.get("received_at") or datetime.now(timezone.utc).isoformat(),
        "received_by": payload.get("received_by"),
    }


def build_activate_body(payload: dict[str, Any], game_code: str, game: dict[str, Any] | None) -> dict[str, Any]:
    missing = missing_fields(payload, ("bin_id", "opening_serial", "activated_at", "received_at"))
    if missing:
        raise PackValidationError(missing_message(missing))
    body = {
        "pack_id": payload["pack_id"],
        "store_id": payload.get("store_id"),
        "bin_id": payload["bin_id"],
        "opening_serial": payload["opening_serial"],
        "game_code": game_code,
        "pack_number": payload.get("pack_number"),
        "serial_start": payload.get("serial_start") or _DEFAULT_SERIAL_START,
        "serial_end": _serial_end(payload, game),
        "activated_at": payload["activated_at"],
        "received_at": payload["received_at"],
        "activated_by": payload.get("activated_by"),
        "shift_id": payload.get("activated_shift_id", payload.get("shift_id")),
        "local_id": payload["pack_id"],
    }
    if int(payload.get("mark_sold_tickets") or 0) > 0:
        body["mark_sold_tickets"] = payload["mark_sold_tickets"]
        body["mark_sold_reason"] = payload.get("mark_sold_reason")
        body["mark_sold_approved_by"] = payload.get("mark_sold_approved_by")
    return body


def build_deplete_body(payload: dict[str, Any]) -> dict[str, Any]:
    missing = missing_fields(payload, ("closing_serial", "depleted_at", "depletion_reason"))
    if missing:
        raise PackValidationError(missing_message(missing))
    reason = payload["depletion_reason"]
    if reason not in DEPLETION_REASONS:
        raise PackValidationError(f"Invalid depletion_reason: {reason}")
    return {
        "pack_id": payload["pack_id"],
        "store_id": payload.get("store_id"),
        "closing_serial": payload["closing_serial"],
        "tickets_sold": payload.get("tickets_sold"),
        "sales_amount": payload.get("sales_amount"),
        "depleted_at": payload["depleted_at"],
        "depletion_reason": reason,
        "depleted_by": payload.get("depleted_by"),
        "shift_id": payload.get("depleted_shift_id"),
        "local_id": payload["pack_id"],
    }


def build_return_body(payload: dict[str, Any]) -> dict[str, Any]:
    missing = missing_fields(payload, ("returned_at", "return_reason"))
    if missing:
        raise PackValidationError(missing_message(missing))
    reason = payload["return_reason"]
    if reason not in RETURN_REASONS:
        raise PackValidationError(f"Invalid return_reason: {reason}")
    return {
        "pack_id": payload["pack_id"],
        "store_id": payload.get("store_id"),
        "closing_serial": payload.get("closing_serial"),
        "tickets_sold": payload.get("tickets_sold"),
        "sales_amount": payload.get("sales_amount"),
        "returned_at": payload["returned_at"],
        "return_reason": reason,
        "return_notes": payload.get("return_notes"),
        "returned_by": payload.get("returned_by"),
        "shift_id": payload.get("returned_shift_id"),
        "local_id": payload["pack_id"],
    }


async def _resolve_game(payload: dict[str, Any], ctx: AdapterContext) -> tuple[str, dict[str, Any] | None]:
    game: dict[str, Any] | None = None
    if payload.get("game_id"):
        game = await ctx.lookups.find_game(payload["game_id"])
    game_code = payload.get("game_code")
    if not game_code:
        if payload.get("game_id") and game is None:
            raise PackValidationError("Game not found for pack")
        game_code = (game or {}).get("game_code")
    if not game_code:
        raise PackValidationError("game_code missing")
    return str(game_code), game


async def _push_one(item: QueueItem, ctx: AdapterContext) -> ItemResult:
    payload = item.payload
    status = str(payload.get("status") or "").upper()
    endpoint = pack_endpoint(item.operation, status)

    if item.operation == Operation.DELETE.value:
        return ItemResult.fail(item.id, "Pack DELETE operation is not supported", ApiContext(PACKS_PATH, 501))
    if missing_fields(payload, ("pack_id",)):
        return ItemResult.fail(item.id, missing_message(["pack_id"]))

    game_code, game = await _resolve_game(payload, ctx)

    if item.operation == Operation.CREATE.value:
        body = build_receive_body(payload, game_code, game)
        try:
            response = await ctx.cloud.push_pack_receive(body)
        except CloudApiError as exc:
            if exc.http_status == 409 or "DUPLICATE_PACK" in (exc.response_body or ""):
                logger.info("pack already in cloud pack_id={}", payload["pack_id"])
                return ItemResult.ok(
                    item.id,
                    ApiContext(endpoint, 409, "DUPLICATE_PACK - Pack already exists in cloud"),
                )
            raise
    elif item.operation == Operation.UPDATE.value:
        if status == "ACTIVE":
            response = await ctx.cloud.push_pack_activate(build_activate_body(payload, game_code, game))
        elif status == "DEPLETED":
            response = await ctx.cloud.push_pack_deplete(build_deplete_body(payload))
        elif status == "RETURNED":
            response = await ctx.cloud.push_pack_return(build_return_body(payload))
        else:
            raise PackValidationError(f"Unsupported pack status for UPDATE: {status or '<missing>'}")
    else:
        raise PackValidationError(f"Unsupported pack operation: {item.operation}")

    api_context = ApiContext(endpoint, 200)
    if not is_success(response):
        error = response_error(response, f"Pack {status or item.operation} rejected by cloud")
        return ItemResult.fail(item.id, error, api_context)
    return ItemResult.ok(item.id, api_context)


async def push_packs(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    results: list[ItemResult] = []
    for item in items:
        if str(item.payload.get("action") or "").startswith("pull_"):
            results.append(ItemResult.ok(item.id))
            continue
        try:
            results.append(await _push_one(item, ctx))
        except PackValidationError as exc:
            logger.warning("pack sync rejected item_id={} err={}", item.id, exc)
            results.append(ItemResult.fail(item.id, str(exc)))
        except Exception as exc:
            endpoint = pack_endpoint(item.operation, item.payload.get("status"))
            logger.error("pack push failed item_id={} endpoint={} err={}", item.id, endpoint, exc)
            results.append(ItemResult.fail(item.id, str(exc), context_from_error(exc, endpoint)))
    return results
