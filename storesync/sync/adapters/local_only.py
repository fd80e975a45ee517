from __future__ import annotations

from loguru import logger

from storesync.sync.adapters.base import AdapterContext, fail_all
from storesync.sync.types import ItemResult, QueueItem


async def mark_local_only(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    # users, bins and games are pulled from the cloud; nothing to push
    if items:
        logger.info("local-only items marked synced entity_type={} count={}", items[0].entity_type, len(items))
    return [ItemResult.ok(item.id) for item in items]


async def reject_unsupported(items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    if not items:
        return []
    tag = items[0].entity_type
    logger.warning("unsupported entity type entity_type={} count={}", tag, len(items))
    return fail_all(items, f"Unsupported entity type: {tag}. No sync endpoint available.")
