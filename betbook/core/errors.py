"""Exception taxonomy for the wagering engine.

Services raise these; ``betbook.main`` maps them onto HTTP responses.  Every
operation that raises one of the public errors must leave the ledger and bet
state exactly as it found them.
"""


class BetbookError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BetbookError):
    """Malformed input: bad prediction, non-positive stake, missing field."""

    status_code = 400
    code = "validation_error"


class StateError(BetbookError):
    """Operation not allowed in the event's (or request's) current state."""

    status_code = 409
    code = "state_error"


class NotFoundError(BetbookError):
    """Unknown account, event, bet or wallet request."""

    status_code = 404
    code = "not_found"


class InsufficientFundsError(BetbookError):
    """Debit would drive a balance negative."""

    status_code = 400
    code = "insufficient_funds"


class PermissionDeniedError(BetbookError):
    """Caller may not act on this resource (blocked, wrong role, not assigned)."""

    status_code = 403
    code = "permission_denied"


class EvaluationError(BetbookError):
    """A stored prediction cannot be scored against a declared result.

    Raised only inside settlement, which records the bet as a loss.
    """

    code = "evaluation_error"


class RecurrenceError(BetbookError):
    """The next cycle of a recurring event cannot be computed."""

    code = "recurrence_error"
