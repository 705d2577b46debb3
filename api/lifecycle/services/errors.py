"""
Typed error kinds returned by lifecycle operations.

Lifecycle operations never raise these to callers. Every failure is reported
as a ``TransitionError`` inside an operation result so the HTTP layer (and
bulk callers) can map it to a status code and an actionable message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    INVALID_TRANSITION = "InvalidTransition"
    FORBIDDEN = "Forbidden"
    REASON_REQUIRED = "ReasonRequired"
    CONFLICT = "Conflict"
    NOT_FOUND = "NotFound"
    STORE_UNAVAILABLE = "StoreUnavailable"
    VALIDATION = "Validation"
    CANCELLED = "Cancelled"


DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_TRANSITION: "This action is not available in the record's current status.",
    ErrorKind.FORBIDDEN: "You are not allowed to perform this action on this record.",
    ErrorKind.REASON_REQUIRED: "A reason is required to reject - please provide one and submit again.",
    ErrorKind.CONFLICT: (
        "This record was already updated by another reviewer - refresh to see the latest state."
    ),
    ErrorKind.NOT_FOUND: "This record no longer exists - refresh the list.",
    ErrorKind.STORE_UNAVAILABLE: "The service is temporarily unavailable - try again in a moment.",
    ErrorKind.VALIDATION: "The submitted data is invalid.",
    ErrorKind.CANCELLED: "The bulk operation was cancelled before this record was processed.",
}

# Kinds worth an automatic retry by an API client. Forbidden and the
# decision errors are never retried.
RETRYABLE_KINDS = frozenset({ErrorKind.CONFLICT, ErrorKind.STORE_UNAVAILABLE})


@dataclass(frozen=True, slots=True)
class TransitionError:
    kind: ErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, str]:
        return {"status": "error", "kind": self.kind.value, "message": self.message}


def make_error(kind: ErrorKind, detail: str | None = None) -> TransitionError:
    message = DEFAULT_MESSAGES[kind]
    if detail:
        message = f"{message} ({detail})"
    return TransitionError(kind=kind, message=message)
