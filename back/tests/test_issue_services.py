# Standard library imports
from dataclasses import replace
from datetime import timedelta
import uuid

# Third-party imports
import pytest
from sqlalchemy import func, select

# Local application imports
from app.models.issues.issue import IssueSeverity, IssueStatus
from app.models.issues.status_change import StatusChangeKind
from app.models.issues.vote import Vote
from app.schemas.issues.event_schemas import EventKind
from app.schemas.issues.issue_schemas import IssueCreate
from app.services.issues import issue_services
from app.services.issues.engine import IssueEngine
from app.services.issues.errors import InvalidIssueData, InvalidLocation, InvalidTransition, NotAuthenticated, NotFound
from app.services.issues.escalation import EscalationReason
from app.services.issues.geofence import GeoPoint
from app.services.issues.vote_ledger import cast_vote
from tests.conftest import ORIGIN, point_north_of


async def test_new_issue_takes_severity_defaults(db, clock, issue_factory):
    created = await issue_factory(IssueSeverity.MEDIUM)

    fetched = await issue_services.get_issue(db, created.id)
    assert fetched == created
    assert fetched.status is IssueStatus.ACTIVE
    assert fetched.vote_threshold == 10
    assert fetched.radius_meters == 1_000
    assert fetched.expires_at == clock.now() + timedelta(hours=72)
    assert (fetched.yes_votes, fetched.no_votes, fetched.repost_count) == (0, 0, 0)
    assert fetched.escalated_at is None


async def test_overrides_replace_defaults(issue_factory):
    created = await issue_factory(IssueSeverity.LOW, radius_meters=750, vote_threshold=3)
    assert created.radius_meters == 750
    assert created.vote_threshold == 3


async def test_critical_issue_is_verified_and_escalated_on_creation(db, clock, issue_factory, escalation_hook):
    created = await issue_factory(IssueSeverity.CRITICAL)

    assert created.status is IssueStatus.VERIFIED
    assert created.vote_threshold == 1
    assert created.escalated_at == clock.now()
    assert [(call[0].id, call[1]) for call in escalation_hook.calls] == [(created.id, EscalationReason.CRITICAL)]

    history = await issue_services.get_issue_history(db, created.id)
    assert [(entry.kind, entry.from_status, entry.to_status) for entry in history] == [
        (StatusChangeKind.CREATION, None, IssueStatus.ACTIVE),
        (StatusChangeKind.CREATION, IssueStatus.ACTIVE, IssueStatus.VERIFIED),
    ]


async def test_critical_can_wait_for_one_corroborating_vote(db, clock, rules, escalation_hook):
    engine = IssueEngine(
        clock=clock,
        rules=replace(rules, critical_requires_corroboration=True),
        escalation=escalation_hook,
    )
    data = IssueCreate(
        title="Gas smell near school",
        question="Can you smell gas near the school entrance?",
        category="safety",
        severity=IssueSeverity.CRITICAL,
        latitude=ORIGIN.latitude,
        longitude=ORIGIN.longitude,
    )
    created = await issue_services.create_issue(db, engine, "reporter-1", data)
    assert created.status is IssueStatus.ACTIVE
    assert created.expires_at == clock.now() + timedelta(hours=1)
    assert escalation_hook.calls == []

    accepted = await cast_vote(db, engine, created.id, "neighbour-1", True, point_north_of(ORIGIN, 50))
    assert accepted.became_verified
    assert accepted.issue.status is IssueStatus.VERIFIED
    assert escalation_hook.calls[0][1] is EscalationReason.CRITICAL


async def test_critical_corroboration_ignores_reporter_implicit_vote(db, clock, rules, escalation_hook):
    engine = IssueEngine(
        clock=clock,
        rules=replace(rules, critical_requires_corroboration=True, reporter_counts_toward_threshold=True),
        escalation=escalation_hook,
    )
    data = IssueCreate(
        title="Gas smell near school",
        question="Can you smell gas near the school entrance?",
        category="safety",
        severity=IssueSeverity.CRITICAL,
        latitude=ORIGIN.latitude,
        longitude=ORIGIN.longitude,
    )
    created = await issue_services.create_issue(db, engine, "reporter-1", data)
    assert created.status is IssueStatus.ACTIVE
    assert escalation_hook.calls == []

    accepted = await cast_vote(db, engine, created.id, "neighbour-1", True, point_north_of(ORIGIN, 50))
    assert accepted.became_verified
    assert [call[1] for call in escalation_hook.calls] == [EscalationReason.CRITICAL]


async def test_radius_above_maximum_is_rejected(issue_factory):
    with pytest.raises(InvalidIssueData):
        await issue_factory(radius_meters=50_000)


async def test_reporter_location_is_validated(issue_factory):
    with pytest.raises(InvalidLocation):
        await issue_factory(location=GeoPoint(95.0, 13.0))


async def test_anonymous_reporter_is_rejected(db, engine):
    data = IssueCreate(
        title="Street light out",
        question="Is the street light at the corner off?",
        category="power",
        severity=IssueSeverity.LOW,
        latitude=ORIGIN.latitude,
        longitude=ORIGIN.longitude,
    )
    with pytest.raises(NotAuthenticated):
        await issue_services.create_issue(db, engine, "", data)


async def test_unknown_issue_is_not_found(db):
    with pytest.raises(NotFound):
        await issue_services.get_issue(db, uuid.uuid4())


async def test_creation_is_published_to_observers(engine, issue_factory):
    feed = engine.fanout.subscribe(feed=True)
    created = await issue_factory()

    event = feed.get_nowait()
    assert event.kind is EventKind.CREATED
    assert event.issue == created
    assert event.sequence == 1


async def test_list_filters_by_status_and_paginates(db, issue_factory):
    for _ in range(3):
        await issue_factory(IssueSeverity.MEDIUM)
    await issue_factory(IssueSeverity.CRITICAL)

    active = await issue_services.list_issues(db, status=IssueStatus.ACTIVE, page=1, per_page=2)
    assert active.total == 3
    assert len(active.issues) == 2
    assert all(issue.status is IssueStatus.ACTIVE for issue in active.issues)

    second_page = await issue_services.list_issues(db, status=IssueStatus.ACTIVE, page=2, per_page=2)
    assert len(second_page.issues) == 1


async def test_list_near_point_returns_only_containing_geofences(db, rules, issue_factory):
    near = await issue_factory(IssueSeverity.MEDIUM)
    far_origin = point_north_of(ORIGIN, 20_000)
    await issue_factory(IssueSeverity.MEDIUM, location=far_origin)

    result = await issue_services.list_issues(
        db, near=point_north_of(ORIGIN, 600), max_radius_meters=rules.max_radius_meters
    )
    assert [issue.id for issue in result.issues] == [near.id]

    nothing = await issue_services.list_issues(
        db, near=point_north_of(ORIGIN, 5_000), max_radius_meters=rules.max_radius_meters
    )
    assert nothing.total == 0


async def test_list_near_point_across_the_antimeridian(db, rules, issue_factory):
    east_of_dateline = await issue_factory(IssueSeverity.MEDIUM, location=GeoPoint(-17.0, 179.999))

    west = await issue_services.list_issues(
        db, near=GeoPoint(-17.0, -179.999), max_radius_meters=rules.max_radius_meters
    )
    assert [issue.id for issue in west.issues] == [east_of_dateline.id]

    other_side = await issue_factory(IssueSeverity.MEDIUM, location=GeoPoint(-17.0, -179.9995))
    east = await issue_services.list_issues(
        db, near=GeoPoint(-17.0, 179.9995), max_radius_meters=rules.max_radius_meters
    )
    assert {issue.id for issue in east.issues} == {east_of_dateline.id, other_side.id}


async def test_authority_advances_verified_issue_step_by_step(db, engine, issue_factory):
    created = await issue_factory(IssueSeverity.CRITICAL)

    acknowledged = await issue_services.advance_issue_status(
        db, engine, created.id, IssueStatus.ACKNOWLEDGED, "authority-1"
    )
    assert acknowledged.status is IssueStatus.ACKNOWLEDGED

    with pytest.raises(InvalidTransition):
        await issue_services.advance_issue_status(db, engine, created.id, IssueStatus.RESOLVED, "authority-1")

    in_progress = await issue_services.advance_issue_status(
        db, engine, created.id, IssueStatus.IN_PROGRESS, "authority-1"
    )
    resolved = await issue_services.advance_issue_status(db, engine, created.id, IssueStatus.RESOLVED, "authority-1")
    assert in_progress.status is IssueStatus.IN_PROGRESS
    assert resolved.status is IssueStatus.RESOLVED

    history = await issue_services.get_issue_history(db, created.id)
    assert [entry.to_status for entry in history][-3:] == [
        IssueStatus.ACKNOWLEDGED,
        IssueStatus.IN_PROGRESS,
        IssueStatus.RESOLVED,
    ]
    assert history[-1].actor == "authority-1"


async def test_active_issue_cannot_be_acknowledged(db, engine, issue_factory):
    created = await issue_factory(IssueSeverity.MEDIUM)
    with pytest.raises(InvalidTransition):
        await issue_services.advance_issue_status(db, engine, created.id, IssueStatus.ACKNOWLEDGED, "authority-1")
    assert (await issue_services.get_issue(db, created.id)).status is IssueStatus.ACTIVE


async def test_delete_removes_votes_and_notifies(db, engine, issue_factory):
    created = await issue_factory(IssueSeverity.MEDIUM)
    await cast_vote(db, engine, created.id, "neighbour-1", True, point_north_of(ORIGIN, 100))
    observer = engine.fanout.subscribe([created.id])

    await issue_services.delete_issue(db, engine, created.id, "moderator-1")

    with pytest.raises(NotFound):
        await issue_services.get_issue(db, created.id)
    remaining = await db.scalar(select(func.count()).select_from(Vote).where(Vote.issue_id == created.id))
    assert remaining == 0
    assert observer.get_nowait().kind is EventKind.DELETED
