"""
Domain error types.

Raised by the ledgers and the settlement engine, mapped to exit codes
or HTTP statuses by the calling collaborator.
"""


class StakeShameError(Exception):
    """Base exception for all StakeShame errors."""
    pass


class ValidationError(StakeShameError):
    """Malformed input, inactive habit or off-schedule day. Nothing was written."""
    pass


class ConflictError(StakeShameError):
    """The write lost to an earlier one. Safe to treat as already handled."""
    pass


class TransactionStateError(ConflictError):
    """Transition requested out of a terminal or otherwise invalid status."""
    pass


class NotFoundError(StakeShameError):
    """Unknown habit, owner, log or transaction."""
    pass


class ExternalServiceError(StakeShameError):
    """Settlement network or HTTP collaborator failed."""
    pass


class PersistenceError(StakeShameError):
    """Store unavailable. The whole operation is aborted."""
    pass
