from __future__ import annotations

from storesync.sync.adapters.base import Adapter, AdapterContext
from storesync.sync.adapters.day_close import push_day_closes
from storesync.sync.adapters.day_open import push_day_opens
from storesync.sync.adapters.employees import push_employees
from storesync.sync.adapters.local_only import mark_local_only, reject_unsupported
from storesync.sync.adapters.packs import push_packs
from storesync.sync.adapters.shift_counts import push_shift_closings, push_shift_openings
from storesync.sync.adapters.shifts import push_shifts
from storesync.sync.adapters.variances import push_variance_approvals
from storesync.sync.types import EntityType, ItemResult, QueueItem

ADAPTERS: dict[EntityType, Adapter] = {
    EntityType.EMPLOYEE: push_employees,
    EntityType.SHIFT: push_shifts,
    EntityType.SHIFT_OPENING: push_shift_openings,
    EntityType.SHIFT_CLOSING: push_shift_closings,
    EntityType.PACK: push_packs,
    EntityType.DAY_OPEN: push_day_opens,
    EntityType.DAY_CLOSE: push_day_closes,
    EntityType.VARIANCE_APPROVAL: push_variance_approvals,
    EntityType.USER: mark_local_only,
    EntityType.BIN: mark_local_only,
    EntityType.GAME: mark_local_only,
    EntityType.UNKNOWN: reject_unsupported,
}


def adapter_for(kind: EntityType) -> Adapter:
    return ADAPTERS.get(kind, reject_unsupported)


async def dispatch(kind: EntityType, items: list[QueueItem], ctx: AdapterContext) -> list[ItemResult]:
    return await adapter_for(kind)(items, ctx)
