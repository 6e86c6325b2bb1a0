# Standard library imports
from datetime import datetime
from uuid import UUID

# Third-party imports
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Local application imports
from app.models.issues.issue import IssueCategory, IssueSeverity, IssueStatus
from app.models.issues.status_change import StatusChangeKind


class IssueCreate(BaseModel):
    title: str = Field(..., min_length=5, max_length=100)
    question: str = Field(..., min_length=10, max_length=200)
    category: IssueCategory
    severity: IssueSeverity
    # Range checks happen in the geofence evaluator (InvalidLocation)
    latitude: float
    longitude: float
    radius_meters: float | None = Field(None, gt=0)
    vote_threshold: int | None = Field(None, ge=1)

    @field_validator("title", "question", mode="before")
    @classmethod
    def strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class IssueStatusAdvance(BaseModel):
    status: IssueStatus


class IssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reporter_id: str
    title: str
    question: str
    category: IssueCategory
    severity: IssueSeverity
    status: IssueStatus
    latitude: float
    longitude: float
    radius_meters: float
    vote_threshold: int
    yes_votes: int
    no_votes: int
    repost_count: int
    escalated_at: datetime | None
    expires_at: datetime
    status_changed_at: datetime
    created_at: datetime
    updated_at: datetime
    version_id: int


class IssueListResponse(BaseModel):
    issues: list[IssueResponse]
    total: int
    page: int
    per_page: int


class IssueStatusChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: UUID
    kind: StatusChangeKind
    from_status: IssueStatus | None
    to_status: IssueStatus
    actor: str
    radius_before: float | None
    radius_after: float | None
    occurred_at: datetime
