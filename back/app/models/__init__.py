"""
Database models package.

This package contains all SQLAlchemy models for the application.
"""

# Local application imports
from app.models.issues import Issue, IssueStatusChange, Vote

__all__ = [
    "Issue",
    "IssueStatusChange",
    "Vote",
]
