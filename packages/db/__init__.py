"""Database models and utilities."""

from .models import EventMemberTable, ScanEventTable, TicketTable

__all__ = [
    "EventMemberTable",
    "ScanEventTable",
    "TicketTable",
]
