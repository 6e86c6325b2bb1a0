# Standard library imports
import enum
from typing import Protocol

# Local application imports
from app.core.monitoring.logging import get_contextual_logger
from app.schemas.issues.issue_schemas import IssueResponse

logger = get_contextual_logger(__name__)


class EscalationReason(str, enum.Enum):
    CRITICAL = "critical"
    THRESHOLD_REACHED = "threshold_reached"


class EscalationHook(Protocol):
    """External collaborator that forwards verified issues to authorities."""

    async def escalate(self, issue: IssueResponse, reason: EscalationReason) -> None: ...


class LoggingEscalationHook:
    """Default hook: records the escalation; delivery is owned by another service."""

    async def escalate(self, issue: IssueResponse, reason: EscalationReason) -> None:
        message = f"Issue {issue.id} flagged for authority escalation: {reason.value}"
        if reason is EscalationReason.CRITICAL:
            logger.warning(message)
        else:
            logger.info(message)
