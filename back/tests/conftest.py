"""
Shared fixtures.

Environment variables are set before anything under ``app`` is imported so the
settings object, the module-level engine and the logging setup all see the
test configuration.
"""

# Standard library imports
from datetime import UTC, datetime, timedelta
import os
from pathlib import Path
import tempfile
import uuid

_TEST_DIR = Path(tempfile.mkdtemp(prefix="nearby-verify-tests-"))

os.environ["ENVIRONMENT"] = "dev"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'app.db'}"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256"
os.environ["SCHEDULER_BACKEND"] = "disabled"
os.environ["REALTIME_REDIS_ENABLED"] = "false"

# Third-party imports
import pytest

# Local application imports
from app.core.db import create_async_engine, make_session_factory
from app.models.base import Base
from app.models.issues.issue import IssueCategory, IssueSeverity, IssueStatus
from app.schemas.issues.issue_schemas import IssueCreate, IssueResponse
from app.services.issues.engine import IssueEngine
from app.services.issues.escalation import EscalationReason
from app.services.issues.geofence import GeoPoint
from app.services.issues.issue_services import create_issue
from app.services.issues.severity_policy import EngineRules

ORIGIN = GeoPoint(52.5200, 13.4050)

# Length of one degree of latitude on the haversine sphere
METERS_PER_DEGREE = 6_371_000.0 * 3.141592653589793 / 180


def point_north_of(origin: GeoPoint, meters: float) -> GeoPoint:
    return GeoPoint(origin.latitude + meters / METERS_PER_DEGREE, origin.longitude)


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_snapshot(issue_id: uuid.UUID | None = None, version_id: int = 1, **fields) -> IssueResponse:
    """An issue snapshot as the engine publishes it, without touching the database."""
    values = {
        "id": issue_id or uuid.uuid4(),
        "reporter_id": "reporter-1",
        "title": "Power cut on Elm Road",
        "question": "Is the power out on your side of Elm Road?",
        "category": IssueCategory.POWER,
        "severity": IssueSeverity.HIGH,
        "status": IssueStatus.ACTIVE,
        "latitude": ORIGIN.latitude,
        "longitude": ORIGIN.longitude,
        "radius_meters": 1_000.0,
        "vote_threshold": 5,
        "yes_votes": 0,
        "no_votes": 0,
        "repost_count": 0,
        "escalated_at": None,
        "expires_at": NOW + timedelta(hours=24),
        "status_changed_at": NOW,
        "created_at": NOW,
        "updated_at": NOW,
        "version_id": version_id,
    }
    values.update(fields)
    return IssueResponse(**values)


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or NOW

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingEscalationHook:
    def __init__(self) -> None:
        self.calls: list[tuple[object, EscalationReason]] = []

    async def escalate(self, issue, reason: EscalationReason) -> None:
        self.calls.append((issue, reason))


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rules() -> EngineRules:
    return EngineRules.from_settings()


@pytest.fixture
def escalation_hook() -> RecordingEscalationHook:
    return RecordingEscalationHook()


@pytest.fixture
def engine(clock, rules, escalation_hook) -> IssueEngine:
    return IssueEngine(clock=clock, rules=rules, escalation=escalation_hook)


@pytest.fixture
def issue_factory(db, engine):
    async def _create(
        severity: IssueSeverity = IssueSeverity.MEDIUM,
        reporter_id: str = "reporter-1",
        location: GeoPoint = ORIGIN,
        **overrides,
    ):
        data = IssueCreate(
            title=overrides.pop("title", "No water on Main Street"),
            question=overrides.pop("question", "Is the water supply out at your place?"),
            category=overrides.pop("category", IssueCategory.WATER),
            severity=severity,
            latitude=location.latitude,
            longitude=location.longitude,
            **overrides,
        )
        return await create_issue(db, engine, reporter_id, data)

    return _create
