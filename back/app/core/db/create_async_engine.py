# Third-party imports
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine

# Local application imports
from app.settings import settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    # Vote and history rows rely on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_async_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Build an async engine for ``url`` (defaults to the configured database)."""
    url = url or settings.SQLALCHEMY_ASYNC_DATABASE_URI
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": 30})
    else:
        kwargs.setdefault("pool_pre_ping", True)

    engine = sa_create_async_engine(url, echo=settings.DATABASE_ECHO, **kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


# Asynchronous Engine
async_engine = create_async_engine()
