# Standard library imports
from datetime import datetime
import enum
import uuid
from typing import TYPE_CHECKING

# Third-party imports
from sqlalchemy import Enum as SQLEnum, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# Local application imports
from app.models.base import Base
from app.models.issues.issue import IssueStatus, enum_values, issue_status_type
from app.models.mixins.uuid_timestamp import UTCDateTime, UUIDTimeStampMixin

if TYPE_CHECKING:
    # Local application imports
    from app.models.issues.issue import Issue


class StatusChangeKind(str, enum.Enum):
    CREATION = "creation"
    VOTE = "vote"
    AUTHORITY = "authority"
    EXPIRY = "expiry"
    REPOST = "repost"


class IssueStatusChange(Base, UUIDTimeStampMixin):
    """Append-only audit row for every lifecycle step of an issue."""

    __tablename__ = "issue_status_changes"

    issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[StatusChangeKind] = mapped_column(
        SQLEnum(StatusChangeKind, name="status_change_kind", values_callable=enum_values), nullable=False
    )
    from_status: Mapped[IssueStatus | None] = mapped_column(
        issue_status_type, nullable=True
    )
    to_status: Mapped[IssueStatus] = mapped_column(
        issue_status_type, nullable=False
    )
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    radius_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    radius_after: Mapped[float | None] = mapped_column(Float, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    issue: Mapped["Issue"] = relationship("Issue", back_populates="status_changes")
