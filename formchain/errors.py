# formchain/errors.py
"""
Formchain Error Taxonomy

Every module raises its own exception types; each one also derives from
one of the categories below so callers can handle a whole class of
failure at once.

    FormchainError
    ├── NotFoundError             absent name / domain / entry (create it)
    ├── ConflictError             stale sequence, taken domain (re-read, retry)
    ├── AuthorizationError        caller does not own the entry
    ├── IntegrityError            bad signature, failed decryption (never tolerated)
    └── ExternalUnavailableError  store / ledger / signer unreachable (transient)
"""


class FormchainError(Exception):
    """Base error for all formchain operations."""
    pass


class NotFoundError(FormchainError):
    """Requested object does not exist."""
    pass


class ConflictError(FormchainError):
    """State changed underneath the caller."""
    pass


class AuthorizationError(FormchainError):
    """Caller is not allowed to perform the operation."""
    pass


class IntegrityError(FormchainError):
    """Data failed verification."""
    pass


class ExternalUnavailableError(FormchainError):
    """External system unreachable or timed out."""
    pass


class StepTimeoutError(ExternalUnavailableError):
    """An external call exceeded its deadline."""
    def __init__(self, system: str, timeout: float):
        self.system = system
        self.timeout = timeout
        super().__init__(f"{system} call timed out after {timeout:.1f}s")


__all__ = [
    "FormchainError",
    "NotFoundError",
    "ConflictError",
    "AuthorizationError",
    "IntegrityError",
    "ExternalUnavailableError",
    "StepTimeoutError",
]
