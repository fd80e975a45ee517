from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel

router = APIRouter(prefix="/sync")


class RetryRequest(BaseModel):
    ids: list[str] | None = None


def _services(request: Request):
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Sync engine not initialised")
    return services


async def _store_id(request: Request) -> str:
    store = await _services(request).store_config.get_configured_store()
    if not store:
        raise HTTPException(status_code=409, detail="No store configured")
    return store["store_id"]


@router.get("/status")
async def sync_status(request: Request) -> dict:
    status = await _services(request).engine.get_status()
    return status.to_dict()


@router.post("/trigger")
async def sync_trigger(request: Request) -> dict:
    result = await _services(request).engine.trigger_sync()
    if result is None:
        return {"skipped": True}
    return {
        "skipped": False,
        "sent": result.sent,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "outcome": result.outcome.value,
    }


@router.post("/heartbeat")
async def sync_heartbeat(request: Request) -> dict:
    status = await _services(request).engine.trigger_heartbeat()
    return {"status": status}


@router.post("/cleanup")
async def sync_cleanup(request: Request, days: int = Query(default=7, ge=0)) -> dict:
    removed = await _services(request).engine.cleanup_queue(days)
    return {"removed": removed}


@router.get("/failed")
async def sync_failed(request: Request, limit: int = Query(default=100, ge=1, le=500)) -> dict:
    store_id = await _store_id(request)
    items = await _services(request).queue.get_failed_items(store_id, limit)
    return {
        "items": [
            {
                "id": item.id,
                "entity_type": item.entity_type,
                "entity_id": item.entity_id,
                "operation": item.operation,
                "sync_attempts": item.sync_attempts,
                "max_attempts": item.max_attempts,
                "last_sync_error": item.last_sync_error,
                "last_attempt_at": item.last_attempt_at.isoformat() if item.last_attempt_at else None,
            }
            for item in items
        ]
    }


@router.post("/failed/retry")
async def sync_retry_failed(request: Request, body: RetryRequest | None = None) -> dict:
    store_id = await _store_id(request)
    ids = body.ids if body else None
    reset = await _services(request).queue.retry_failed(store_id, ids)
    logger.info("sync failed items reset store_id={} count={}", store_id, reset)
    return {"reset": reset}


@router.get("/runs")
async def sync_runs(request: Request, limit: int = Query(default=20, ge=1, le=200)) -> dict:
    store_id = await _store_id(request)
    return {"runs": await _services(request).run_log.get_recent(store_id, limit)}
