"""Ticket admission schema: tickets, scan ledger and event members."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20250601_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("number", sa.String(length=255), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=True),
        sa.Column("ticket_type", sa.String(length=20), nullable=False, server_default=sa.text("'NORMAL'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("entry_type", sa.String(length=20), nullable=True),
        sa.Column("scanned_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sold_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('PENDING', 'ENTERED', 'EXITED', 'VENDU')", name="ck_tickets_status"),
        sa.CheckConstraint("(status = 'VENDU') = (sold_at IS NOT NULL)", name="ck_tickets_sold_at"),
    )
    op.create_index("ix_tickets_number", "tickets", ["number"], unique=True)
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])

    op.create_table(
        "scan_events",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("tickets.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=10), nullable=False),
        sa.Column("operator", sa.String(length=255), nullable=True),
        sa.Column("scanned_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("action IN ('ENTER', 'EXIT', 'SELL')", name="ck_scan_events_action"),
    )
    op.create_index("ix_scan_events_ticket_id", "scan_events", ["ticket_id"])
    op.create_index("ix_scan_events_scanned_at_id", "scan_events", ["scanned_at", "id"])

    # The ledger is append-only: reject any UPDATE or DELETE at the database level.
    op.execute(
        """
        CREATE FUNCTION scan_events_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'scan_events is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER scan_events_no_mutation
        BEFORE UPDATE OR DELETE ON scan_events
        FOR EACH ROW EXECUTE FUNCTION scan_events_append_only()
        """
    )

    op.create_table(
        "event_members",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_event_members_event_id", "event_members", ["event_id"])


def downgrade() -> None:
    op.drop_table("event_members")
    op.execute("DROP TRIGGER IF EXISTS scan_events_no_mutation ON scan_events")
    op.execute("DROP FUNCTION IF EXISTS scan_events_append_only()")
    op.drop_table("scan_events")
    op.drop_table("tickets")
