from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from storesync.config import settings


def build_database_url(sqlite_path: str | None = None) -> str:
    db_path = Path(sqlite_path or settings.sqlite_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    db_path = db_path.resolve()
    return f"sqlite+pysqlite:///{db_path.as_posix()}"


def build_engine(url: str) -> Engine:
    # repositories are called from worker threads via asyncio.to_thread
    new_engine = create_engine(url, future=True, connect_args={"check_same_thread": False})

    @event.listens_for(new_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return new_engine


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


engine = build_engine(build_database_url())
SessionLocal = build_session_factory(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
