"""
Shared exception roots.

Component-specific errors (PolicyViolation, ProofGenerationFailure,
LedgerRejection, DecryptionFailure, ...) live next to the code that raises
them and derive from PrivacyError.
"""


class PrivacyError(Exception):
    """Base class for every error raised by gtx_privacy."""
    pass


class PreconditionError(PrivacyError):
    """Rejected before any external call; nothing was changed."""
    pass


class SessionLocked(PreconditionError):
    pass


class ReadOnlySession(PreconditionError):
    """The session was opened from a view key and cannot authorize operations."""
    pass


class BalanceNotInitialized(PreconditionError):
    pass


class BalanceUnknown(PreconditionError):
    """The cached plaintext amount is missing. Sync or recover first."""
    pass


class InsufficientBalance(PreconditionError):
    pass


class InvalidIdentity(PreconditionError):
    pass
