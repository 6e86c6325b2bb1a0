# Third-party imports
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

# Local application imports
from app.models.issues.vote import Vote
from app.services.issues import issue_services
from app.services.issues.errors import PersistenceConflict
from app.services.issues.persistence import commit_or_conflict
from app.services.issues.vote_ledger import cast_vote
from tests.conftest import ORIGIN, point_north_of

INSIDE = point_north_of(ORIGIN, 150)


def fail_vote_commits(monkeypatch, db, failures: int) -> list[int]:
    """Make commits that carry a new vote lose a version race ``failures`` times."""
    original_commit = db.commit
    attempts: list[int] = []

    async def commit():
        if any(isinstance(obj, Vote) for obj in db.new):
            attempts.append(1)
            if len(attempts) <= failures:
                raise StaleDataError("UPDATE statement on table 'issues' expected to update 1 row(s); 0 were matched.")
        await original_commit()

    monkeypatch.setattr(db, "commit", commit)
    return attempts


async def count_votes(db, issue_id) -> int:
    return await db.scalar(select(func.count()).select_from(Vote).where(Vote.issue_id == issue_id))


async def test_vote_succeeds_after_one_lost_race(db, engine, issue_factory, monkeypatch):
    issue = await issue_factory()
    attempts = fail_vote_commits(monkeypatch, db, failures=1)

    accepted = await cast_vote(db, engine, issue.id, "neighbour-1", True, INSIDE)

    assert len(attempts) == 2
    assert accepted.issue.yes_votes == 1
    stored = await issue_services.get_issue(db, issue.id)
    assert stored.yes_votes == await count_votes(db, issue.id) == 1


async def test_conflict_surfaces_after_max_attempts(db, engine, issue_factory, monkeypatch):
    issue = await issue_factory()
    attempts = fail_vote_commits(monkeypatch, db, failures=100)
    observer = engine.fanout.subscribe([issue.id])

    with pytest.raises(PersistenceConflict):
        await cast_vote(db, engine, issue.id, "neighbour-1", True, INSIDE)

    assert len(attempts) == engine.rules.vote_max_attempts
    stored = await issue_services.get_issue(db, issue.id)
    assert stored.yes_votes == await count_votes(db, issue.id) == 0
    assert observer.pending() == 0


def failing_commit(error: Exception):
    async def commit():
        raise error

    return commit


async def test_locked_database_is_a_conflict(db, monkeypatch):
    monkeypatch.setattr(db, "commit", failing_commit(OperationalError("COMMIT", {}, Exception("database is locked"))))

    with pytest.raises(PersistenceConflict):
        await commit_or_conflict(db)


async def test_serialization_failure_is_a_conflict(db, monkeypatch):
    class SerializationFailure(Exception):
        sqlstate = "40001"

    monkeypatch.setattr(db, "commit", failing_commit(DBAPIError("COMMIT", {}, SerializationFailure())))

    with pytest.raises(PersistenceConflict):
        await commit_or_conflict(db)


async def test_other_database_errors_are_not_retried(db, engine, issue_factory, monkeypatch):
    issue = await issue_factory()
    outage = OperationalError("COMMIT", {}, Exception("disk I/O error"))
    monkeypatch.setattr(db, "commit", failing_commit(outage))

    with pytest.raises(OperationalError):
        await commit_or_conflict(db)

    with pytest.raises(OperationalError):
        await cast_vote(db, engine, issue.id, "neighbour-1", True, INSIDE)
