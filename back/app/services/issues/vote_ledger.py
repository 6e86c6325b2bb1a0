"""
Vote ledger: at most one vote per (issue, voter), and a tally that always
matches the vote rows.

The vote insert, the tally increment and any resulting status change commit
together in one transaction, taken while the issue's lock is held. Checks run
in a fixed order: the issue accepts votes, the voter has not voted yet, the
voter stands inside the geofence.
"""

# Standard library imports
from dataclasses import dataclass
from uuid import UUID

# Third-party imports
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

# Local application imports
from app.core.monitoring.logging import get_contextual_logger
from app.models.issues.issue import IssueSeverity
from app.models.issues.status_change import StatusChangeKind
from app.models.issues.vote import Vote
from app.schemas.issues.event_schemas import EventKind
from app.schemas.issues.issue_schemas import IssueResponse
from app.schemas.issues.vote_schemas import VoteResponse
from app.services.issues import state_machine
from app.services.issues.engine import IssueEngine
from app.services.issues.errors import AlreadyVoted, IssueClosed, NotAuthenticated, OutOfRange, SelfVote
from app.services.issues.escalation import EscalationReason
from app.services.issues.geofence import GeoPoint, distance_to, validate_location
from app.services.issues.persistence import (
    commit_or_conflict,
    end_open_transaction,
    load_issue_for_update,
    retry_on_conflict,
)

logger = get_contextual_logger(__name__)


@dataclass(frozen=True)
class VoteAccepted:
    vote: VoteResponse
    issue: IssueResponse
    became_verified: bool


async def has_voted(db: AsyncSession, issue_id: UUID, voter_id: str) -> bool:
    result = await db.execute(
        select(Vote.id).where(and_(Vote.issue_id == issue_id, Vote.voter_id == voter_id)).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def cast_vote(
    db: AsyncSession,
    engine: IssueEngine,
    issue_id: UUID,
    voter_id: str | None,
    polarity: bool,
    voter_location: GeoPoint,
) -> VoteAccepted:
    """
    Record one yes/no vote.

    Raises:
        NotAuthenticated: no voter id was supplied.
        InvalidLocation: the voter's coordinates are malformed.
        NotFound: the issue does not exist.
        IssueClosed: the issue is not ``active`` or ``verified``.
        SelfVote: the reporter voted on their own issue (unless allowed).
        AlreadyVoted: the voter already has a vote on this issue.
        OutOfRange: the voter is outside the issue's current radius.
        PersistenceConflict: the write kept losing races after retries.
    """
    # Validation happens before anything is read or written
    if not voter_id:
        raise NotAuthenticated()
    validate_location(voter_location)

    log = logger.bind(issue_id=issue_id, voter_id=voter_id)

    async def _attempt() -> VoteAccepted:
        async with engine.locks.hold(issue_id):
            await end_open_transaction(db)
            try:
                issue = await load_issue_for_update(db, issue_id)

                if not state_machine.accepts_votes(issue):
                    raise IssueClosed(
                        f"Issue is {issue.status.value} and no longer accepts votes", status=issue.status.value
                    )
                if issue.reporter_id == voter_id and not engine.rules.allow_reporter_vote:
                    raise SelfVote()
                if await has_voted(db, issue_id, voter_id):
                    raise AlreadyVoted()

                # Always the issue's current radius, which reposts may have grown
                distance = distance_to(GeoPoint(issue.latitude, issue.longitude), voter_location)
                if distance > issue.radius_meters:
                    raise OutOfRange(
                        f"You are {distance:.0f}m away; this issue accepts votes within {issue.radius_meters:.0f}m",
                        distance_meters=round(distance, 1),
                        radius_meters=issue.radius_meters,
                    )

                now = engine.clock.now()
                vote = Vote(
                    issue_id=issue.id,
                    voter_id=voter_id,
                    is_yes=polarity,
                    latitude=voter_location.latitude,
                    longitude=voter_location.longitude,
                    distance_meters=distance,
                    cast_at=now,
                    weight=1,
                    created_at=now,
                    updated_at=now,
                )
                db.add(vote)
                if polarity:
                    issue.yes_votes += 1
                else:
                    issue.no_votes += 1
                issue.updated_at = now

                became_verified = state_machine.should_verify(issue, engine.rules)
                if became_verified:
                    state_machine.mark_verified(issue, kind=StatusChangeKind.VOTE, actor=voter_id, now=now)
            except Exception:
                await db.rollback()
                raise

            try:
                await commit_or_conflict(db)
            except IntegrityError as e:
                # Unique (issue_id, voter_id) fired: a concurrent writer elsewhere won
                await db.rollback()
                raise AlreadyVoted() from e

            accepted = VoteAccepted(
                vote=VoteResponse.model_validate(vote),
                issue=IssueResponse.model_validate(issue),
                became_verified=became_verified,
            )
            engine.fanout.publish(EventKind.UPDATED, accepted.issue)
            return accepted

    accepted = await retry_on_conflict(
        _attempt,
        attempts=engine.rules.vote_max_attempts,
        description=f"Vote on issue {issue_id}",
    )

    log.info(
        f"Vote accepted ({'yes' if polarity else 'no'}): "
        f"{accepted.issue.yes_votes}/{accepted.issue.vote_threshold} yes, {accepted.issue.no_votes} no"
    )
    if accepted.became_verified:
        reason = (
            EscalationReason.CRITICAL
            if accepted.issue.severity is IssueSeverity.CRITICAL
            else EscalationReason.THRESHOLD_REACHED
        )
        await engine.notify_escalation(accepted.issue, reason)
    return accepted


async def list_votes(db: AsyncSession, issue_id: UUID, *, limit: int = 50, offset: int = 0) -> list[VoteResponse]:
    result = await db.execute(
        select(Vote).where(Vote.issue_id == issue_id).order_by(Vote.cast_at, Vote.id).offset(offset).limit(limit)
    )
    return [VoteResponse.model_validate(vote) for vote in result.scalars().all()]
