"""
Exceptions raised by the record store, state machine and resolution workflow.

Every error carries the record id (and, where relevant, the offending field)
so callers can show an actionable message.
"""

from __future__ import annotations

from typing import Any, Sequence


class LifecycleError(RuntimeError):
    """Base error for application lifecycle operations."""

    def __init__(self, message: str, *, record_id: str | None = None, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.record_id is not None:
            payload["record_id"] = self.record_id
        if self.field is not None:
            payload["field"] = self.field
        return payload


class ConflictError(LifecycleError):
    """Raised when creating a record under an id that already exists, or a write breaks a database constraint."""


class ValidationPreconditionError(LifecycleError):
    """Raised when a transition is missing a required input."""


class NotFoundError(LifecycleError):
    """Raised when an operation references an unknown record id."""


class InvalidTransitionError(LifecycleError):
    """Raised when a transition is not allowed from the record's current state."""


class StaleWriteError(LifecycleError):
    """Raised when a write targets an outdated revision of a record."""


class TransientIOError(LifecycleError):
    """Raised when the backing store fails mid-operation; nothing was committed."""


class AuditLogImmutableError(LifecycleError):
    """Raised when something tries to modify or delete a stored audit entry."""


class DuplicateReviewRequired(LifecycleError):
    """Raised when a save hits findings at/above the threshold without an operator decision."""

    def __init__(self, message: str, *, record_id: str | None = None, findings: Sequence = ()):
        super().__init__(message, record_id=record_id)
        self.findings = tuple(findings)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["findings"] = [finding.to_dict() for finding in self.findings]
        return payload


__all__ = [
    "LifecycleError",
    "ConflictError",
    "ValidationPreconditionError",
    "NotFoundError",
    "InvalidTransitionError",
    "StaleWriteError",
    "TransientIOError",
    "AuditLogImmutableError",
    "DuplicateReviewRequired",
]
