# Standard library imports
from datetime import datetime
import enum
from typing import TYPE_CHECKING

# Third-party imports
from sqlalchemy import CheckConstraint, Enum as SQLEnum, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, WriteOnlyMapped, mapped_column, relationship

# Local application imports
from app.models.base import Base
from app.models.mixins.uuid_timestamp import UTCDateTime, UUIDTimeStampMixin

if TYPE_CHECKING:
    # Local application imports
    from app.models.issues.status_change import IssueStatusChange
    from app.models.issues.vote import Vote


class IssueStatus(str, enum.Enum):
    ACTIVE = "active"
    VERIFIED = "verified"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class IssueSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueCategory(str, enum.Enum):
    WATER = "water"
    POWER = "power"
    INTERNET = "internet"
    ROADS = "roads"
    SAFETY = "safety"
    SANITATION = "sanitation"
    NOISE = "noise"
    OTHER = "other"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# Shared by every column holding an issue status
issue_status_type = SQLEnum(IssueStatus, name="issue_status", values_callable=enum_values)


class Issue(Base, UUIDTimeStampMixin):
    __tablename__ = "issues"
    __table_args__ = (
        CheckConstraint("radius_meters > 0", name="radius_positive"),
        CheckConstraint("vote_threshold > 0", name="threshold_positive"),
        CheckConstraint("yes_votes >= 0 AND no_votes >= 0", name="tallies_non_negative"),
        Index("ix_issues_status_expires_at", "status", "expires_at"),
    )

    # Issue details
    reporter_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    question: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[IssueCategory] = mapped_column(
        SQLEnum(IssueCategory, name="issue_category", values_callable=enum_values), nullable=False
    )
    severity: Mapped[IssueSeverity] = mapped_column(
        SQLEnum(IssueSeverity, name="issue_severity", values_callable=enum_values), nullable=False
    )
    status: Mapped[IssueStatus] = mapped_column(
        issue_status_type,
        nullable=False,
        default=IssueStatus.ACTIVE,
        index=True,
    )

    # Geofence
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    radius_meters: Mapped[float] = mapped_column(Float, nullable=False)

    # Verification
    vote_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    yes_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    no_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status_changed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    repost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Bumped on every UPDATE; a stale write raises StaleDataError
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Write-only: appended to inside the atomic step without loading the trail
    votes: WriteOnlyMapped["Vote"] = relationship(
        "Vote", back_populates="issue", cascade="all, delete-orphan", passive_deletes=True
    )
    status_changes: WriteOnlyMapped["IssueStatusChange"] = relationship(
        "IssueStatusChange", back_populates="issue", cascade="all, delete-orphan", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __str__(self) -> str:
        return f"Issue {self.id}: {self.title} ({self.status.value}, {self.yes_votes}/{self.vote_threshold})"
