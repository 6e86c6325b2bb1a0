# Standard library imports
import asyncio
from collections.abc import Awaitable, Callable, Coroutine
import functools
from typing import Any, TypeVar

T = TypeVar("T")


def run_async_in_celery(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion from a synchronous Celery task.

    Each call runs on a fresh event loop that is closed afterwards, so nothing
    bound to a loop (database pools, Redis connections) may outlive the call.

    Args:
        coro: The coroutine to run

    Returns:
        The result of the coroutine
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # Called from inside a running loop (eager tasks in tests): use a private one
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def celery_async_task(func: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """
    Decorator to convert async functions to sync functions for Celery tasks.

    Usage:
        @celery_app.task(bind=True)
        @celery_async_task
        async def my_async_task(self, param1, param2):
            result = await some_async_function()
            return result
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return run_async_in_celery(func(*args, **kwargs))

    return wrapper
