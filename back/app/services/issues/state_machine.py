"""
Verification state machine.

    active -> verified -> acknowledged -> in_progress -> resolved
    active -> expired

``active -> verified`` is driven by votes (or by creation for critical
issues), ``active -> expired`` by the scheduler, and the rest by authority
commands that may only move one step forward. Reposting keeps an issue
``active`` and is recorded with its own kind so it is never mistaken for a
transition.
"""

# Standard library imports
from datetime import datetime

# Local application imports
from app.core.monitoring.logging import get_contextual_logger
from app.models.issues.issue import Issue, IssueSeverity, IssueStatus
from app.models.issues.status_change import IssueStatusChange, StatusChangeKind
from app.services.issues.errors import InvalidTransition
from app.services.issues.severity_policy import EngineRules

logger = get_contextual_logger(__name__)

STATUS_ORDER: tuple[IssueStatus, ...] = (
    IssueStatus.ACTIVE,
    IssueStatus.VERIFIED,
    IssueStatus.ACKNOWLEDGED,
    IssueStatus.IN_PROGRESS,
    IssueStatus.RESOLVED,
)

# Authority commands: exactly one step at a time
AUTHORITY_TRANSITIONS: dict[IssueStatus, IssueStatus] = {
    IssueStatus.VERIFIED: IssueStatus.ACKNOWLEDGED,
    IssueStatus.ACKNOWLEDGED: IssueStatus.IN_PROGRESS,
    IssueStatus.IN_PROGRESS: IssueStatus.RESOLVED,
}

VOTING_STATUSES = frozenset({IssueStatus.ACTIVE, IssueStatus.VERIFIED})


def status_rank(status: IssueStatus) -> int:
    """Position along the pipeline; ``expired`` ranks after ``active`` only."""
    if status is IssueStatus.EXPIRED:
        return 1
    return STATUS_ORDER.index(status)


def accepts_votes(issue: Issue) -> bool:
    return issue.status in VOTING_STATUSES


def effective_yes_votes(issue: Issue, rules: EngineRules) -> int:
    # The reporter's own report may count as one implicit corroboration,
    # never for critical issues, which wait for someone else to confirm them
    implicit = rules.reporter_counts_toward_threshold and issue.severity is not IssueSeverity.CRITICAL
    return issue.yes_votes + (1 if implicit else 0)


def threshold_reached(issue: Issue, rules: EngineRules) -> bool:
    return effective_yes_votes(issue, rules) >= issue.vote_threshold


def verifies_on_creation(severity: IssueSeverity, rules: EngineRules) -> bool:
    return severity is IssueSeverity.CRITICAL and not rules.critical_requires_corroboration


def should_verify(issue: Issue, rules: EngineRules) -> bool:
    return issue.status is IssueStatus.ACTIVE and threshold_reached(issue, rules)


def is_expired(issue: Issue, now: datetime) -> bool:
    return issue.status is IssueStatus.ACTIVE and issue.expires_at < now


def record_change(
    issue: Issue,
    *,
    kind: StatusChangeKind,
    from_status: IssueStatus | None,
    to_status: IssueStatus,
    actor: str,
    now: datetime,
    radius_before: float | None = None,
    radius_after: float | None = None,
) -> IssueStatusChange:
    change = IssueStatusChange(
        kind=kind,
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        radius_before=radius_before,
        radius_after=radius_after,
        occurred_at=now,
        created_at=now,
        updated_at=now,
    )
    issue.status_changes.add(change)
    return change


def transition(issue: Issue, to_status: IssueStatus, *, kind: StatusChangeKind, actor: str, now: datetime) -> None:
    """Move ``issue`` forward to ``to_status``; never backward."""
    from_status = issue.status
    if to_status is IssueStatus.EXPIRED:
        allowed = from_status is IssueStatus.ACTIVE
    else:
        allowed = to_status is not from_status and status_rank(to_status) > status_rank(from_status)
        allowed = allowed and from_status is not IssueStatus.EXPIRED
    if not allowed:
        raise InvalidTransition(
            f"Cannot move issue from '{from_status.value}' to '{to_status.value}'",
            from_status=from_status.value,
            to_status=to_status.value,
        )

    issue.status = to_status
    issue.status_changed_at = now
    issue.updated_at = now
    record_change(issue, kind=kind, from_status=from_status, to_status=to_status, actor=actor, now=now)
    logger.info(
        f"Issue {issue.id} moved {from_status.value} -> {to_status.value} ({kind.value})",
    )


def mark_verified(issue: Issue, *, kind: StatusChangeKind, actor: str, now: datetime) -> None:
    """Verify ``issue`` and flag it for authority escalation."""
    transition(issue, IssueStatus.VERIFIED, kind=kind, actor=actor, now=now)
    issue.escalated_at = now


def validate_authority_advance(current: IssueStatus, target: IssueStatus) -> None:
    expected = AUTHORITY_TRANSITIONS.get(current)
    if expected is None or target is not expected:
        allowed = expected.value if expected else "none"
        raise InvalidTransition(
            f"Cannot move issue from '{current.value}' to '{target.value}' (next allowed: {allowed})",
            from_status=current.value,
            to_status=target.value,
        )
