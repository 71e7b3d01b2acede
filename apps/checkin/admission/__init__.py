"""Ticket admission core: state machine, scan ledger, engine and statistics."""

from .engine import AdmissionEngine
from .errors import (
    AdmissionError,
    ConcurrencyConflictError,
    DuplicateTicketError,
    InvalidTransitionError,
    Rejection,
    StorageError,
    TicketNotFoundError,
)
from .gate import GateOutcome, GateResult, GateService
from .ledger import ScanLedger
from .models import EntryType, ScanEvent, Ticket, TicketStats, TicketType
from .presence import EventMembershipDirectory, MembershipDirectory
from .state import AdmissionStateMachine, ScanAction, TicketStatus
from .stats import StatsAggregator, format_time_ago
from .store import TicketStore

__all__ = [
    "AdmissionEngine",
    "AdmissionError",
    "AdmissionStateMachine",
    "ConcurrencyConflictError",
    "DuplicateTicketError",
    "EntryType",
    "EventMembershipDirectory",
    "GateOutcome",
    "GateResult",
    "GateService",
    "InvalidTransitionError",
    "MembershipDirectory",
    "Rejection",
    "ScanAction",
    "ScanEvent",
    "ScanLedger",
    "StatsAggregator",
    "StorageError",
    "Ticket",
    "TicketNotFoundError",
    "TicketStats",
    "TicketStatus",
    "TicketStore",
    "TicketType",
    "format_time_ago",
]
