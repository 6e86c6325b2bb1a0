# Standard library imports
from datetime import datetime
import enum
from uuid import UUID

# Third-party imports
from pydantic import BaseModel

# Local application imports
from app.schemas.issues.issue_schemas import IssueResponse


class EventKind(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class IssueEvent(BaseModel):
    """Change notification delivered to realtime observers."""

    kind: EventKind
    issue_id: UUID
    # Monotonic per issue within the emitting process
    sequence: int
    issue: IssueResponse
    emitted_at: datetime
    origin: str | None = None


class StreamCommand(BaseModel):
    """Client message on the realtime stream: subscribe, unsubscribe, feed or unfeed."""

    action: str
    issue_ids: list[UUID] = []
