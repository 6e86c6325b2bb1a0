# Local application imports
from app.tasks.issue_tasks import review_expired_issues_task

__all__ = ["review_expired_issues_task"]
