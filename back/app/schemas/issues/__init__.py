from .event_schemas import EventKind, IssueEvent, StreamCommand
from .issue_schemas import (
    IssueCreate,
    IssueListResponse,
    IssueResponse,
    IssueStatusAdvance,
    IssueStatusChangeResponse,
)
from .vote_schemas import VoteAcceptedResponse, VoteCreate, VoteResponse

__all__ = [
    "EventKind",
    "IssueCreate",
    "IssueEvent",
    "IssueListResponse",
    "IssueResponse",
    "IssueStatusAdvance",
    "IssueStatusChangeResponse",
    "VoteAcceptedResponse",
    "VoteCreate",
    "StreamCommand",
    "VoteResponse",
]
