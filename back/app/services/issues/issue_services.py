# Standard library imports
import math
from uuid import UUID, uuid4

# Third-party imports
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

# Local application imports
from app.core.monitoring.logging import get_contextual_logger
from app.models.issues.issue import Issue, IssueCategory, IssueSeverity, IssueStatus
from app.models.issues.status_change import IssueStatusChange, StatusChangeKind
from app.schemas.issues.event_schemas import EventKind
from app.schemas.issues.issue_schemas import (
    IssueCreate,
    IssueListResponse,
    IssueResponse,
    IssueStatusChangeResponse,
)
from app.services.issues import state_machine
from app.services.issues.engine import IssueEngine
from app.services.issues.errors import InvalidIssueData, NotAuthenticated, NotFound
from app.services.issues.escalation import EscalationReason
from app.services.issues.geofence import GeoPoint, haversine_meters, validate_location
from app.services.issues.persistence import (
    commit_or_conflict,
    end_open_transaction,
    load_issue_for_update,
    retry_on_conflict,
)

logger = get_contextual_logger(__name__)

METERS_PER_DEGREE_LATITUDE = 111_320.0


async def create_issue(db: AsyncSession, engine: IssueEngine, reporter_id: str, data: IssueCreate) -> IssueResponse:
    """
    Create a new issue at the reporter's location.

    Radius, threshold and expiry default from the severity table. Critical
    issues are verified immediately unless they are configured to wait for a
    corroborating vote.
    """
    if not reporter_id:
        raise NotAuthenticated()

    validate_location(GeoPoint(data.latitude, data.longitude))
    rules = engine.rules
    policy = rules.policy_for(data.severity)

    radius_meters = data.radius_meters if data.radius_meters is not None else policy.radius_meters
    if radius_meters > rules.max_radius_meters:
        raise InvalidIssueData(
            f"radius_meters cannot exceed {rules.max_radius_meters:g}",
            radius_meters=radius_meters,
        )
    vote_threshold = data.vote_threshold if data.vote_threshold is not None else rules.default_threshold(data.severity)

    now = engine.clock.now()
    issue = Issue(
        id=uuid4(),
        reporter_id=reporter_id,
        title=data.title,
        question=data.question,
        category=data.category,
        severity=data.severity,
        status=IssueStatus.ACTIVE,
        latitude=data.latitude,
        longitude=data.longitude,
        radius_meters=radius_meters,
        vote_threshold=vote_threshold,
        yes_votes=0,
        no_votes=0,
        repost_count=0,
        expires_at=now + rules.expiry_window(data.severity),
        status_changed_at=now,
        created_at=now,
        updated_at=now,
    )

    escalation_reason: EscalationReason | None = None
    async with engine.locks.hold(issue.id):
        await end_open_transaction(db)
        try:
            db.add(issue)
            state_machine.record_change(
                issue,
                kind=StatusChangeKind.CREATION,
                from_status=None,
                to_status=IssueStatus.ACTIVE,
                actor=reporter_id,
                now=now,
            )
            if state_machine.verifies_on_creation(issue.severity, rules):
                escalation_reason = EscalationReason.CRITICAL
            elif state_machine.should_verify(issue, rules):
                escalation_reason = EscalationReason.THRESHOLD_REACHED
            if escalation_reason is not None:
                state_machine.mark_verified(issue, kind=StatusChangeKind.CREATION, actor=reporter_id, now=now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        snapshot = IssueResponse.model_validate(issue)
        engine.fanout.publish(EventKind.CREATED, snapshot)

    logger.info(
        f"Issue {snapshot.id} created by {reporter_id} "
        f"({snapshot.severity.value}, threshold={snapshot.vote_threshold}, radius={snapshot.radius_meters:g}m)"
    )
    if escalation_reason is not None:
        await engine.notify_escalation(snapshot, escalation_reason)
    return snapshot


async def get_issue(db: AsyncSession, issue_id: UUID) -> IssueResponse:
    issue = await db.get(Issue, issue_id, populate_existing=True)
    if issue is None:
        raise NotFound(f"Issue {issue_id} not found", issue_id=str(issue_id))
    return IssueResponse.model_validate(issue)


def _longitude_window(longitude: float, span: float):
    low, high = longitude - span, longitude + span
    # A window crossing the antimeridian is split into two ranges
    if low < -180:
        return or_(Issue.longitude.between(low + 360, 180), Issue.longitude.between(-180, high))
    if high > 180:
        return or_(Issue.longitude.between(low, 180), Issue.longitude.between(-180, high - 360))
    return Issue.longitude.between(low, high)


async def list_issues(
    db: AsyncSession,
    *,
    page: int = 1,
    per_page: int = 20,
    status: IssueStatus | None = None,
    category: IssueCategory | None = None,
    severity: IssueSeverity | None = None,
    near: GeoPoint | None = None,
    max_radius_meters: float | None = None,
) -> IssueListResponse:
    """
    List issues, newest first.

    With ``near`` only issues whose current geofence contains the point are
    returned; a bounding box on the largest possible radius narrows the query
    before the exact distance check.
    """
    filters = []
    if status:
        filters.append(Issue.status == status)
    if category:
        filters.append(Issue.category == category)
    if severity:
        filters.append(Issue.severity == severity)

    query = select(Issue).order_by(Issue.created_at.desc(), Issue.id)
    offset = (page - 1) * per_page

    if near is None:
        count_query = select(func.count()).select_from(Issue)
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))
        total = (await db.execute(count_query)).scalar() or 0
        result = await db.execute(query.offset(offset).limit(per_page))
        issues = list(result.scalars().all())
    else:
        validate_location(near)
        if max_radius_meters:
            lat_span = max_radius_meters / METERS_PER_DEGREE_LATITUDE
            filters.append(Issue.latitude.between(near.latitude - lat_span, near.latitude + lat_span))
            cos_lat = math.cos(math.radians(near.latitude))
            if cos_lat > 0.01:
                lng_span = lat_span / cos_lat
                if lng_span < 180:
                    filters.append(_longitude_window(near.longitude, lng_span))
        if filters:
            query = query.where(and_(*filters))
        result = await db.execute(query)
        issues = [
            issue
            for issue in result.scalars().all()
            if haversine_meters(GeoPoint(issue.latitude, issue.longitude), near) <= issue.radius_meters
        ]
        total = len(issues)
        issues = issues[offset : offset + per_page]

    return IssueListResponse(
        issues=[IssueResponse.model_validate(issue) for issue in issues],
        total=total,
        page=page,
        per_page=per_page,
    )


async def advance_issue_status(
    db: AsyncSession,
    engine: IssueEngine,
    issue_id: UUID,
    target: IssueStatus,
    actor: str,
) -> IssueResponse:
    """Apply an authority status command; only the next step is accepted."""

    async def _advance() -> IssueResponse:
        async with engine.locks.hold(issue_id):
            await end_open_transaction(db)
            try:
                issue = await load_issue_for_update(db, issue_id)
                state_machine.validate_authority_advance(issue.status, target)
                state_machine.transition(
                    issue,
                    target,
                    kind=StatusChangeKind.AUTHORITY,
                    actor=actor,
                    now=engine.clock.now(),
                )
            except Exception:
                await db.rollback()
                raise
            await commit_or_conflict(db)

            snapshot = IssueResponse.model_validate(issue)
            engine.fanout.publish(EventKind.UPDATED, snapshot)
            return snapshot

    return await retry_on_conflict(
        _advance,
        attempts=engine.rules.vote_max_attempts,
        description=f"Status advance of issue {issue_id}",
    )


async def delete_issue(db: AsyncSession, engine: IssueEngine, issue_id: UUID, actor: str) -> IssueResponse:
    """Moderation delete; votes and history go with the issue."""
    async with engine.locks.hold(issue_id):
        await end_open_transaction(db)
        try:
            issue = await load_issue_for_update(db, issue_id)
            snapshot = IssueResponse.model_validate(issue)
            await db.delete(issue)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        engine.fanout.publish(EventKind.DELETED, snapshot)

    logger.warning(f"Issue {issue_id} deleted by moderator {actor}")
    return snapshot


async def get_issue_history(db: AsyncSession, issue_id: UUID) -> list[IssueStatusChangeResponse]:
    if await db.get(Issue, issue_id) is None:
        raise NotFound(f"Issue {issue_id} not found", issue_id=str(issue_id))

    result = await db.execute(select(IssueStatusChange).where(IssueStatusChange.issue_id == issue_id))
    changes = sorted(
        result.scalars().all(),
        # Creation and an immediate verification share a timestamp
        key=lambda change: (
            change.occurred_at,
            -1 if change.from_status is None else state_machine.status_rank(change.from_status),
        ),
    )
    return [IssueStatusChangeResponse.model_validate(change) for change in changes]
