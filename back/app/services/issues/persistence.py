"""
Atomic-step helpers shared by the vote ledger, issue services and scheduler.

Every mutation of an issue runs as one database transaction while the issue's
lock is held. The row is re-read inside the step (``SELECT ... FOR UPDATE`` on
PostgreSQL) and written back under the optimistic ``version_id`` check; a lost
race surfaces as ``PersistenceConflict`` and is retried a bounded number of
times.
"""

# Standard library imports
from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

# Third-party imports
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

# Local application imports
from app.core.monitoring.logging import get_contextual_logger
from app.models.issues.issue import Issue
from app.services.issues.errors import NotFound, PersistenceConflict

logger = get_contextual_logger(__name__)

T = TypeVar("T")


async def end_open_transaction(db: AsyncSession) -> None:
    """Close a read transaction left open by an earlier query on ``db``."""
    if db.in_transaction():
        await db.commit()


async def load_issue_for_update(db: AsyncSession, issue_id: UUID) -> Issue:
    issue = await db.get(Issue, issue_id, populate_existing=True, with_for_update=True)
    if issue is None:
        raise NotFound(f"Issue {issue_id} not found", issue_id=str(issue_id))
    return issue


# Serialization failure, deadlock, lock not available
LOCK_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_lock_conflict(error: DBAPIError) -> bool:
    """True when the database refused the write because of a competing writer."""
    original = error.orig
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True
    return isinstance(error, OperationalError) and "database is locked" in str(original).lower()


async def commit_or_conflict(db: AsyncSession) -> None:
    """Commit the atomic step; translate lost races into ``PersistenceConflict``.

    Other database errors (an unreachable server, a full disk) propagate as is.
    """
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise PersistenceConflict(str(e)) from e
    except DBAPIError as e:
        await db.rollback()
        if not is_lock_conflict(e):
            raise
        raise PersistenceConflict(str(e.orig)) from e


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    description: str,
) -> T:
    """Run ``operation`` again while it raises ``PersistenceConflict``."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except PersistenceConflict:
            if attempt == attempts:
                logger.error(f"{description} lost {attempts} write races, giving up")
                raise
            logger.warning(f"{description} hit a write conflict, retrying ({attempt}/{attempts})")
    raise PersistenceConflict(description)
