# Standard library imports
from datetime import datetime
import uuid
from typing import TYPE_CHECKING

# Third-party imports
from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# Local application imports
from app.models.base import Base
from app.models.mixins.uuid_timestamp import UTCDateTime, UUIDTimeStampMixin

if TYPE_CHECKING:
    # Local application imports
    from app.models.issues.issue import Issue


class Vote(Base, UUIDTimeStampMixin):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("issue_id", "voter_id", name="uq_votes_issue_voter"),)

    # Vote information
    issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    voter_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    is_yes: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Where the voter stood when the vote was cast
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    distance_meters: Mapped[float] = mapped_column(Float, nullable=False)
    cast_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Reserved for trust-score weighting; every vote currently counts once
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    issue: Mapped["Issue"] = relationship("Issue", back_populates="votes")
