# Local application imports
from app.core.db.create_async_engine import async_engine, create_async_engine
from app.core.db.get_async_session import AsyncSessionLocal, get_async_session, make_session_factory
from app.core.db.run_with_new_session import run_with_new_session

__all__ = [
    "AsyncSessionLocal",
    "async_engine",
    "create_async_engine",
    "get_async_session",
    "make_session_factory",
    "run_with_new_session",
]
