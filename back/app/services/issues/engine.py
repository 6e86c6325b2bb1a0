# Standard library imports
from dataclasses import dataclass, field

# Local application imports
from app.core.clock import Clock, SystemClock
from app.core.monitoring.logging import get_contextual_logger
from app.schemas.issues.issue_schemas import IssueResponse
from app.services.issues.escalation import EscalationHook, EscalationReason, LoggingEscalationHook
from app.services.issues.locks import IssueLockRegistry
from app.services.issues.severity_policy import EngineRules
from app.services.realtime.fanout import ChangeFanout

logger = get_contextual_logger(__name__)


@dataclass
class IssueEngine:
    """
    Collaborators shared by every engine operation in one process.

    The lock registry is the per-issue serialization point; it must be shared
    by everything that mutates issues in this process.
    """

    clock: Clock = field(default_factory=SystemClock)
    rules: EngineRules = field(default_factory=EngineRules.from_settings)
    fanout: ChangeFanout | None = None
    locks: IssueLockRegistry = field(default_factory=IssueLockRegistry)
    escalation: EscalationHook = field(default_factory=LoggingEscalationHook)

    def __post_init__(self) -> None:
        if self.fanout is None:
            self.fanout = ChangeFanout(clock=self.clock)

    async def notify_escalation(self, issue: IssueResponse, reason: EscalationReason) -> None:
        # Runs after commit; a failing collaborator never undoes the verification
        try:
            await self.escalation.escalate(issue, reason)
        except Exception as e:
            logger.exception(f"Escalation hook failed for issue {issue.id}: {e}")
