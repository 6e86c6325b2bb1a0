# Standard library imports
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

# Local application imports
from app.models.issues.issue import IssueSeverity
from app.settings import settings


@dataclass(frozen=True)
class SeverityPolicy:
    vote_threshold: int
    radius_meters: float
    expiry_window: timedelta


def load_severity_policies(table: Mapping[str, Mapping[str, float]]) -> dict[IssueSeverity, SeverityPolicy]:
    """Build the severity lookup table from the ``SEVERITY_DEFAULTS`` setting."""
    policies: dict[IssueSeverity, SeverityPolicy] = {}
    for severity in IssueSeverity:
        try:
            row = table[severity.value]
        except KeyError:
            raise ValueError(f"SEVERITY_DEFAULTS has no entry for '{severity.value}'") from None

        policy = SeverityPolicy(
            vote_threshold=int(row["vote_threshold"]),
            radius_meters=float(row["radius_meters"]),
            expiry_window=timedelta(hours=float(row["expiry_hours"])),
        )
        if policy.vote_threshold < 1 or policy.radius_meters <= 0 or policy.expiry_window < timedelta(0):
            raise ValueError(f"Invalid severity defaults for '{severity.value}': {dict(row)}")
        policies[severity] = policy
    return policies


@dataclass(frozen=True)
class EngineRules:
    """Tunable verification rules, normally built from settings."""

    severity_policies: dict[IssueSeverity, SeverityPolicy] = field(
        default_factory=lambda: load_severity_policies(settings.SEVERITY_DEFAULTS)
    )
    max_radius_meters: float = 10_000.0
    repost_expansion_factor: float = 1.5
    vote_max_attempts: int = 3
    allow_reporter_vote: bool = False
    reporter_counts_toward_threshold: bool = False
    critical_requires_corroboration: bool = False
    critical_corroboration_window: timedelta = timedelta(hours=1)

    def __post_init__(self) -> None:
        if self.repost_expansion_factor <= 1:
            raise ValueError("repost_expansion_factor must be greater than 1")
        if self.vote_max_attempts < 1:
            raise ValueError("vote_max_attempts must be at least 1")
        if self.max_radius_meters <= 0:
            raise ValueError("max_radius_meters must be positive")

    @classmethod
    def from_settings(cls) -> "EngineRules":
        return cls(
            severity_policies=load_severity_policies(settings.SEVERITY_DEFAULTS),
            max_radius_meters=settings.MAX_RADIUS_METERS,
            repost_expansion_factor=settings.REPOST_EXPANSION_FACTOR,
            vote_max_attempts=settings.VOTE_MAX_ATTEMPTS,
            allow_reporter_vote=settings.ALLOW_REPORTER_VOTE,
            reporter_counts_toward_threshold=settings.REPORTER_COUNTS_TOWARD_THRESHOLD,
            critical_requires_corroboration=settings.CRITICAL_REQUIRES_CORROBORATION,
            critical_corroboration_window=timedelta(hours=settings.CRITICAL_CORROBORATION_WINDOW_HOURS),
        )

    def policy_for(self, severity: IssueSeverity) -> SeverityPolicy:
        return self.severity_policies[severity]

    def expiry_window(self, severity: IssueSeverity) -> timedelta:
        # Critical issues waiting for a corroborating vote get a short window instead of none
        if severity is IssueSeverity.CRITICAL and self.critical_requires_corroboration:
            return self.critical_corroboration_window
        return self.policy_for(severity).expiry_window

    def default_threshold(self, severity: IssueSeverity) -> int:
        # Critical issues verify on creation or on the first corroborating vote
        if severity is IssueSeverity.CRITICAL:
            return 1
        return self.policy_for(severity).vote_threshold

    def expanded_radius(self, radius_meters: float) -> float:
        return min(radius_meters * self.repost_expansion_factor, self.max_radius_meters)
