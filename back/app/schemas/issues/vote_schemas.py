# Standard library imports
from datetime import datetime
from uuid import UUID

# Third-party imports
from pydantic import BaseModel, ConfigDict

# Local application imports
from app.schemas.issues.issue_schemas import IssueResponse


class VoteCreate(BaseModel):
    issue_id: UUID
    vote: bool
    latitude: float
    longitude: float


class VoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: UUID
    voter_id: str
    is_yes: bool
    distance_meters: float
    weight: int
    cast_at: datetime


class VoteAcceptedResponse(BaseModel):
    vote: VoteResponse
    issue: IssueResponse
    became_verified: bool
