# Local application imports
from app.services.issues.engine import IssueEngine
from app.services.issues.errors import (
    AlreadyVoted,
    EngineError,
    InvalidIssueData,
    InvalidLocation,
    InvalidTransition,
    IssueClosed,
    NotAuthenticated,
    NotFound,
    OutOfRange,
    PersistenceConflict,
    SelfVote,
    VoteRejected,
)
from app.services.issues.geofence import GeoPoint, haversine_meters, is_eligible
from app.services.issues.issue_services import (
    advance_issue_status,
    create_issue,
    delete_issue,
    get_issue,
    get_issue_history,
    list_issues,
)
from app.services.issues.repost_scheduler import RepostScheduler, ReviewReport, review_expired_issues
from app.services.issues.vote_ledger import VoteAccepted, cast_vote, list_votes

__all__ = [
    "AlreadyVoted",
    "EngineError",
    "GeoPoint",
    "InvalidIssueData",
    "InvalidLocation",
    "InvalidTransition",
    "IssueClosed",
    "IssueEngine",
    "NotAuthenticated",
    "NotFound",
    "OutOfRange",
    "PersistenceConflict",
    "RepostScheduler",
    "ReviewReport",
    "SelfVote",
    "VoteAccepted",
    "VoteRejected",
    "advance_issue_status",
    "cast_vote",
    "create_issue",
    "delete_issue",
    "get_issue",
    "get_issue_history",
    "haversine_meters",
    "is_eligible",
    "list_issues",
    "list_votes",
    "review_expired_issues",
]
