"""SQLModel table definitions for the check-in data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DDL, CheckConstraint, Column, DateTime, ForeignKey, Index, String, event
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class TicketTable(SQLModel, table=True):
    """Physical tickets and their current admission status."""

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint("status IN ('PENDING', 'ENTERED', 'EXITED', 'VENDU')", name="ck_tickets_status"),
        CheckConstraint("(status = 'VENDU') = (sold_at IS NOT NULL)", name="ck_tickets_sold_at"),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    number: str = Field(sa_column=Column(String(255), nullable=False, unique=True, index=True))
    event_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True, index=True))
    ticket_type: str = Field(default="NORMAL", sa_column=Column(String(20), nullable=False, default="NORMAL"))
    status: str = Field(default="PENDING", sa_column=Column(String(20), nullable=False, index=True))
    entry_type: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    scanned_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    sold_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ScanEventTable(SQLModel, table=True):
    """Append-only ledger of gate scans and on-site sales."""

    __tablename__ = "scan_events"
    __table_args__ = (
        Index("ix_scan_events_scanned_at_id", "scanned_at", "id"),
        CheckConstraint("action IN ('ENTER', 'EXIT', 'SELL')", name="ck_scan_events_action"),
    )

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="RESTRICT"), nullable=False, index=True)
    )
    action: str = Field(sa_column=Column(String(10), nullable=False))
    operator: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    scanned_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class EventMemberTable(SQLModel, table=True):
    """Users registered on an event. Owned by the membership service, read-only here."""

    __tablename__ = "event_members"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    event_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    user_id: str = Field(sa_column=Column(String(36), nullable=False))
    role: str = Field(sa_column=Column(String(50), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


# Mirrors the append-only trigger of the initial migration.
event.listen(
    ScanEventTable.__table__,
    "after_create",
    DDL(
        """
        CREATE OR REPLACE FUNCTION scan_events_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'scan_events is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    ).execute_if(dialect="postgresql"),
)
event.listen(
    ScanEventTable.__table__,
    "after_create",
    DDL(
        """
        CREATE TRIGGER scan_events_no_mutation
        BEFORE UPDATE OR DELETE ON scan_events
        FOR EACH ROW EXECUTE FUNCTION scan_events_append_only()
        """
    ).execute_if(dialect="postgresql"),
)
