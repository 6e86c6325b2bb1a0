# Local application imports
from app.models.issues.issue import Issue, IssueCategory, IssueSeverity, IssueStatus
from app.models.issues.status_change import IssueStatusChange, StatusChangeKind
from app.models.issues.vote import Vote

__all__ = [
    "Issue",
    "IssueCategory",
    "IssueSeverity",
    "IssueStatus",
    "IssueStatusChange",
    "StatusChangeKind",
    "Vote",
]
