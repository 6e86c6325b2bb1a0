# Standard library imports
from collections.abc import Awaitable, Callable
from typing import Any

# Third-party imports
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Local application imports
from app.core.db.get_async_session import AsyncSessionLocal


async def run_with_new_session(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    **kwargs: Any,
) -> Any:
    """
    Run any function with a fresh new DB session.

    Used by background work (scheduler ticks, Celery tasks) that has no
    request-scoped session.

    Args:
        func: The function to run, which must accept an
        AsyncSession as its first argument.
        *args: Positional arguments to pass to the function.
        session_factory: Factory to open the session from; defaults to the
        application's session factory.
        **kwargs: Keyword arguments to pass to the function.

    Returns:
        Any: The result of the function execution.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        return await func(session, *args, **kwargs)
