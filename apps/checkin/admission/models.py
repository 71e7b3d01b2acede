from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping

from .state import AdmissionStateMachine, ScanAction, TicketStatus


class TicketType(str, Enum):
    """Ticket categories issued for an event."""

    NORMAL = "NORMAL"
    VIP = "VIP"
    ARTISTE = "ARTISTE"
    STAFF = "STAFF"


class EntryType(str, Enum):
    """How a gate entry was captured."""

    SCAN = "SCAN"
    MANUAL = "MANUAL"


@dataclass(slots=True)
class Ticket:
    """Persisted state of a single ticket, returned to callers as a snapshot."""

    id: str
    number: str
    status: TicketStatus
    ticket_type: TicketType
    event_id: str | None
    entry_type: EntryType | None
    scanned_at: datetime | None
    sold_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ScanEvent:
    """Immutable ledger entry for an accepted scan or sale."""

    id: int
    ticket_id: str
    action: ScanAction
    scanned_at: datetime
    operator: str | None = None


@dataclass(slots=True)
class LedgerEntry:
    """Ledger event joined with the number of the ticket it belongs to."""

    event: ScanEvent
    ticket_number: str


@dataclass(slots=True)
class StatusCounts:
    """Ticket counts partitioned by admission status."""

    total: int = 0
    pending: int = 0
    entered: int = 0
    exited: int = 0
    vendus: int = 0

    def add(self, status: TicketStatus, count: int) -> None:
        self.total += count
        if status is TicketStatus.PENDING:
            self.pending += count
        elif status is TicketStatus.ENTERED:
            self.entered += count
        elif status is TicketStatus.EXITED:
            self.exited += count
        elif status is TicketStatus.VENDU:
            self.vendus += count


@dataclass(slots=True)
class TicketStats:
    """Live counts derived from the ticket store."""

    total: int
    pending: int
    entered: int
    exited: int
    vendus: int
    sold: int
    by_type: Mapping[TicketType, StatusCounts] = field(default_factory=dict)
    duplicates: int = 0


@dataclass(slots=True)
class ActivityEntry:
    """Row of the recent-activity feed."""

    ticket_number: str
    action: ScanAction
    scanned_at: datetime
    time_ago: str
    operator: str | None = None


@dataclass(slots=True)
class OperatorSales:
    """Number of on-site sales recorded by one operator."""

    operator: str
    total_sales: int


@dataclass(slots=True)
class SalesSummary:
    """Per-operator sales with their grand total."""

    operators: list[OperatorSales]
    total_sales: int


@dataclass(slots=True)
class PresenceSummary:
    """Registered users of an event, grouped by role."""

    count: int
    counts_by_role: Mapping[str, int]


@dataclass(slots=True)
class TicketLookup:
    """Ticket snapshot together with its most recent ledger event."""

    ticket: Ticket
    last_event: ScanEvent | None

    @property
    def matches_ledger(self) -> bool:
        """Whether the stored status is the one the last ledger event leads to."""

        if self.last_event is None:
            return self.ticket.status is AdmissionStateMachine.initial_state()
        return self.ticket.status is AdmissionStateMachine.status_after(self.last_event.action)
