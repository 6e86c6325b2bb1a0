"""
Escalation / repost scheduler.

Each tick reviews ``active`` issues whose expiry is strictly before the tick's
start. Inside the issue's atomic step the row is read again, so a vote that
committed first is always counted. An issue still short of its threshold is
reposted (wider radius, fresh expiry, tallies untouched) until its radius
reaches the maximum, after which it expires. A reposted issue's new expiry is
after the tick start, so running the same tick twice cannot expand it twice.
"""

# Standard library imports
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

# Third-party imports
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Local application imports
from app.core.db.run_with_new_session import run_with_new_session
from app.core.monitoring.logging import get_contextual_logger
from app.models.issues.issue import Issue, IssueSeverity, IssueStatus
from app.models.issues.status_change import StatusChangeKind
from app.schemas.issues.event_schemas import EventKind
from app.schemas.issues.issue_schemas import IssueResponse
from app.services.issues import state_machine
from app.services.issues.engine import IssueEngine
from app.services.issues.escalation import EscalationReason
from app.services.issues.persistence import (
    commit_or_conflict,
    end_open_transaction,
    load_issue_for_update,
    retry_on_conflict,
)

logger = get_contextual_logger(__name__)

SCHEDULER_ACTOR = "scheduler"


@dataclass
class ReviewReport:
    tick_started_at: datetime
    reposted: list[UUID] = field(default_factory=list)
    expired: list[UUID] = field(default_factory=list)
    verified: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.reposted) + len(self.expired) + len(self.verified)

    def summary(self) -> dict[str, int]:
        return {
            "reposted": len(self.reposted),
            "expired": len(self.expired),
            "verified": len(self.verified),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


async def find_expired_issue_ids(db: AsyncSession, tick_start: datetime) -> list[UUID]:
    result = await db.execute(
        select(Issue.id)
        .where(and_(Issue.status == IssueStatus.ACTIVE, Issue.expires_at < tick_start))
        .order_by(Issue.expires_at)
    )
    return list(result.scalars().all())


async def review_issue(
    db: AsyncSession,
    engine: IssueEngine,
    issue_id: UUID,
    tick_start: datetime,
) -> str:
    """Repost, expire or verify one candidate; returns the action taken."""
    rules = engine.rules
    log = logger.bind(issue_id=issue_id)

    async with engine.locks.hold(issue_id):
        await end_open_transaction(db)
        try:
            issue = await load_issue_for_update(db, issue_id)

            # Already handled this tick, or changed since the candidate query
            if not state_machine.is_expired(issue, tick_start):
                await db.rollback()
                return "skipped"

            now = engine.clock.now()
            if state_machine.threshold_reached(issue, rules):
                state_machine.mark_verified(issue, kind=StatusChangeKind.VOTE, actor=SCHEDULER_ACTOR, now=now)
                action = "verified"
            elif issue.radius_meters < rules.max_radius_meters:
                radius_before = issue.radius_meters
                issue.radius_meters = rules.expanded_radius(radius_before)
                issue.expires_at = tick_start + rules.expiry_window(issue.severity)
                issue.repost_count += 1
                issue.updated_at = now
                state_machine.record_change(
                    issue,
                    kind=StatusChangeKind.REPOST,
                    from_status=IssueStatus.ACTIVE,
                    to_status=IssueStatus.ACTIVE,
                    actor=SCHEDULER_ACTOR,
                    now=now,
                    radius_before=radius_before,
                    radius_after=issue.radius_meters,
                )
                action = "reposted"
            else:
                state_machine.transition(
                    issue, IssueStatus.EXPIRED, kind=StatusChangeKind.EXPIRY, actor=SCHEDULER_ACTOR, now=now
                )
                action = "expired"
        except Exception:
            await db.rollback()
            raise
        await commit_or_conflict(db)

        snapshot = IssueResponse.model_validate(issue)
        engine.fanout.publish(EventKind.UPDATED, snapshot)

    if action == "reposted":
        log.info(
            f"REPOST #{snapshot.repost_count}: radius {radius_before:g}m -> {snapshot.radius_meters:g}m, "
            f"expires {snapshot.expires_at.isoformat()}, tally {snapshot.yes_votes}/{snapshot.vote_threshold}"
        )
    elif action == "expired":
        log.info(f"EXPIRE: unresolved at max radius {snapshot.radius_meters:g}m")
    else:
        log.info("Verified at expiry check; a qualifying vote arrived before the tick")
        reason = (
            EscalationReason.CRITICAL
            if snapshot.severity is IssueSeverity.CRITICAL
            else EscalationReason.THRESHOLD_REACHED
        )
        await engine.notify_escalation(snapshot, reason)
    return action


async def review_expired_issues(db: AsyncSession, engine: IssueEngine) -> ReviewReport:
    """
    Run one scheduler tick.

    A failure on one issue is logged and the tick moves on to the next one.
    """
    tick_start = engine.clock.now()
    report = ReviewReport(tick_started_at=tick_start)

    await end_open_transaction(db)
    issue_ids = await find_expired_issue_ids(db, tick_start)
    await end_open_transaction(db)

    for issue_id in issue_ids:
        try:
            action = await retry_on_conflict(
                lambda issue_id=issue_id: review_issue(db, engine, issue_id, tick_start),
                attempts=engine.rules.vote_max_attempts,
                description=f"Expiry review of issue {issue_id}",
            )
        except Exception as e:
            logger.bind(issue_id=issue_id).exception(f"Expiry review failed: {e}")
            report.failed.append(issue_id)
            continue
        getattr(report, action).append(issue_id)

    if issue_ids:
        logger.info(f"Scheduler tick at {tick_start.isoformat()} finished: {report.summary()}")
    return report


class RepostScheduler:
    """In-process recurring runner used when Celery beat is not deployed."""

    def __init__(
        self,
        engine: IssueEngine,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float,
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def tick(self) -> ReviewReport:
        return await run_with_new_session(review_expired_issues, self.engine, session_factory=self.session_factory)

    async def run_forever(self) -> None:
        logger.info(f"Repost scheduler running every {self.interval_seconds:g}s")
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # A broken tick (e.g. database down) must not stop later ticks
                logger.exception(f"Scheduler tick failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="repost-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
