"""
Pydantic schemas package.

This package contains all Pydantic schemas for request/response
validation and serialization.
"""

# Local application imports
from app.schemas.issues import (
    IssueCreate,
    IssueEvent,
    IssueListResponse,
    IssueResponse,
    IssueStatusAdvance,
    IssueStatusChangeResponse,
    VoteAcceptedResponse,
    VoteCreate,
    VoteResponse,
)

__all__ = [
    "IssueCreate",
    "IssueEvent",
    "IssueListResponse",
    "IssueResponse",
    "IssueStatusAdvance",
    "IssueStatusChangeResponse",
    "VoteAcceptedResponse",
    "VoteCreate",
    "VoteResponse",
]
