"""Error taxonomy raised by the admission core."""

from __future__ import annotations

from enum import Enum


class Rejection(str, Enum):
    """Business reasons for refusing a scan or a sale."""

    ALREADY_ENTERED = "already_entered"
    NOT_YET_ENTERED = "not_yet_entered"
    ALREADY_EXITED = "already_exited"
    TICKET_SOLD = "ticket_sold"
    ALREADY_SOLD = "already_sold"
    REENTRY_DISABLED = "reentry_disabled"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]

    @property
    def is_duplicate(self) -> bool:
        return self in _DUPLICATE_REJECTIONS


_REJECTION_MESSAGES: dict[Rejection, str] = {
    Rejection.ALREADY_ENTERED: "This ticket has already entered.",
    Rejection.NOT_YET_ENTERED: "This ticket has not been validated for entry yet.",
    Rejection.ALREADY_EXITED: "This ticket has already exited.",
    Rejection.TICKET_SOLD: "This ticket was sold on-site and is not valid at the gates.",
    Rejection.ALREADY_SOLD: "This ticket has already been sold.",
    Rejection.REENTRY_DISABLED: "Re-entry is not allowed for this event.",
}

_DUPLICATE_REJECTIONS = frozenset(
    {Rejection.ALREADY_ENTERED, Rejection.ALREADY_EXITED, Rejection.ALREADY_SOLD}
)


class AdmissionError(RuntimeError):
    """Base error for the admission core."""

    code = "ADMISSION_ERROR"


class TicketNotFoundError(AdmissionError):
    """Raised when no ticket matches the scanned number."""

    code = "TICKET_NOT_FOUND"

    def __init__(self, ticket_number: str) -> None:
        super().__init__(f"Ticket {ticket_number} not found")
        self.ticket_number = ticket_number


class InvalidTransitionError(AdmissionError):
    """Raised when the state machine refuses the requested action."""

    code = "INVALID_TRANSITION"

    def __init__(self, reason: Rejection, *, status: str, action: str) -> None:
        super().__init__(reason.message)
        self.reason = reason
        self.status = status
        self.action = action


class ConcurrencyConflictError(AdmissionError):
    """Raised when optimistic retries are exhausted for a ticket."""

    code = "CONFLICT"

    def __init__(self, ticket_number: str, attempts: int) -> None:
        super().__init__(
            f"Ticket {ticket_number} was modified concurrently; gave up after {attempts} attempts"
        )
        self.ticket_number = ticket_number
        self.attempts = attempts


class StorageError(AdmissionError):
    """Raised when the underlying storage is unavailable or a write failed."""

    code = "STORAGE_ERROR"


class DuplicateTicketError(AdmissionError):
    """Raised when provisioning a ticket number that already exists."""

    code = "DUPLICATE_TICKET"

    def __init__(self, ticket_number: str) -> None:
        super().__init__(f"Ticket {ticket_number} already exists")
        self.ticket_number = ticket_number
