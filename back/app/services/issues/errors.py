"""
Error taxonomy of the verification engine.

Every error carries a stable ``code`` (used in the API error envelope) and the
HTTP status the API layer renders it with. Only ``PersistenceConflict`` is
retried internally; everything else is terminal for the triggering call.
"""


class EngineError(Exception):
    code = "engine_error"
    status_code = 400
    default_message = "The request could not be processed"

    def __init__(self, message: str | None = None, **details: object):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidLocation(EngineError):
    code = "invalid_location"
    status_code = 400
    default_message = "Latitude must be within [-90, 90] and longitude within [-180, 180]"


class InvalidIssueData(EngineError):
    code = "invalid_issue_data"
    status_code = 400
    default_message = "Issue data is invalid"


class NotAuthenticated(EngineError):
    code = "not_authenticated"
    status_code = 401
    default_message = "Could not validate credentials"


class NotFound(EngineError):
    code = "not_found"
    status_code = 404
    default_message = "Issue not found"


class InvalidTransition(EngineError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Status can only move one step forward"


class PersistenceConflict(EngineError):
    code = "persistence_conflict"
    status_code = 409
    default_message = "The issue was modified concurrently, please retry"


class VoteRejected(EngineError):
    """Base class for every reason a vote is not recorded."""

    code = "vote_rejected"


class AlreadyVoted(VoteRejected):
    code = "already_voted"
    status_code = 409
    default_message = "You have already voted on this issue"


class OutOfRange(VoteRejected):
    code = "out_of_range"
    status_code = 403
    default_message = "You are outside the area where this issue can be verified"


class IssueClosed(VoteRejected):
    code = "issue_closed"
    status_code = 409
    default_message = "This issue no longer accepts votes"


class SelfVote(VoteRejected):
    code = "self_vote"
    status_code = 409
    default_message = "Reporters cannot vote on their own issue"
