from __future__ import annotations

from collections.abc import AsyncGenerator
import os
import sys

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from mat_program.config import settings


def _under_pytest() -> bool:
    return bool(os.getenv("PYTEST_CURRENT_TEST")) or "pytest" in sys.modules


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    # pysqlite opens transactions lazily and breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, *, pooled: bool = True) -> AsyncEngine:
    """Create an async engine for `url`.

    Pooling is off under pytest and for one-shot worker runs: each gets its own
    event loop and asyncpg connections cannot cross loops.
    """

    kwargs: dict = {}
    if url.startswith("sqlite"):
        engine = create_async_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    kwargs["pool_pre_ping"] = True
    if not pooled or _under_pytest():
        kwargs["poolclass"] = NullPool
    return create_async_engine(url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services keep using loaded rows after commit (notifications, responses).
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


engine = build_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session
