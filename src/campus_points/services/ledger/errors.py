"""Typed failures raised by the ledger engine.

Every engine operation either commits or raises exactly one of these, leaving the
ledger untouched. Callers translate ``code`` into transport-specific responses.
"""

from __future__ import annotations


class LedgerError(RuntimeError):
    """Base exception for ledger engine rejections."""

    code = "ledger_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed, missing or out-of-range input; rejected before any mutation."""

    code = "validation_error"


class NotFoundError(LedgerError):
    """A referenced user, promotion, event or transaction does not exist."""

    code = "not_found"


class PreconditionFailedError(LedgerError):
    """The request is well formed but the current ledger state does not allow it."""

    code = "precondition_failed"


class ConflictError(LedgerError):
    """A concurrent mutation of the same rows was detected; safe to retry."""

    code = "conflict"


class PermissionDeniedError(LedgerError):
    """The actor's role does not carry the capability for this operation."""

    code = "permission_denied"
