from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from storesync.db.models import Store


def get_configured_store(session: Session) -> Store | None:
    stmt = select(Store).where(Store.status == "ACTIVE").order_by(Store.created_at.asc()).limit(1)
    return session.scalar(stmt)


def save_store(
    session: Session,
    *,
    store_id: str,
    name: str,
    company_id: str | None = None,
    timezone: str = "UTC",
) -> Store:
    store = session.get(Store, store_id)
    if store is None:
        store = Store(store_id=store_id, name=name)
        session.add(store)
    store.name = name
    store.company_id = company_id
    store.timezone = timezone
    store.status = "ACTIVE"
    session.flush()
    return store
