"""Domain exceptions.

Each error carries a short, user-presentable message; the API layer maps
the class to an HTTP status code.
"""


class DomainError(Exception):
    """Base class for every business-rule failure."""

    status_code = 400


class InvalidStateTransition(DomainError):
    """Raised when a job status change violates the state machine."""

    status_code = 409


class JobNoLongerAvailable(DomainError):
    """Raised when a conditional update lost a race (zero rows affected)."""

    status_code = 409

    def __init__(self, message: str = "Job is no longer available"):
        super().__init__(message)


class NegotiationStateError(DomainError):
    """Raised when accept/reject is called on a non-pending negotiation."""

    status_code = 409


class InvalidInput(DomainError):
    """Raised for malformed input, before any state is touched."""

    status_code = 422


class NotFoundError(DomainError):
    status_code = 404


class JobNotFound(NotFoundError):
    pass


class ProposalNotFound(NotFoundError):
    pass


class AssigneeNotFound(NotFoundError):
    pass


class WalletAccountNotFound(NotFoundError):
    pass


class FareConfigNotFound(NotFoundError):
    pass
