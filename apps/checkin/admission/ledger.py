from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import ScanEventTable, TicketTable

from .errors import StorageError
from .models import LedgerEntry, ScanEvent
from .state import ScanAction


class ScanLedger:
    """Append-only access to the `scan_events` table.

    Events are ordered by ``scanned_at`` with the event id as tie-break, so two
    events written within the same clock tick keep a deterministic order.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        ticket_id: str,
        action: ScanAction,
        scanned_at: datetime,
        *,
        operator: str | None = None,
        session: AsyncSession | None = None,
    ) -> ScanEvent:
        row = ScanEventTable(
            ticket_id=ticket_id,
            action=action.value,
            operator=operator,
            scanned_at=scanned_at,
        )
        try:
            if session is not None:
                session.add(row)
                await session.flush()
                return self._table_to_event(row)
            async with self._session_factory() as own_session:
                async with own_session.begin():
                    own_session.add(row)
                    await own_session.flush()
                    return self._table_to_event(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to append {action.value} event for ticket {ticket_id}") from exc

    async def list_recent(self, limit: int, *, event_id: str | None = None) -> list[LedgerEntry]:
        statement = select(ScanEventTable, TicketTable.number).join(
            TicketTable, TicketTable.id == ScanEventTable.ticket_id
        )
        if event_id is not None:
            statement = statement.where(TicketTable.event_id == event_id)
        statement = statement.order_by(ScanEventTable.scanned_at.desc(), ScanEventTable.id.desc()).limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list recent scan events") from exc
        return [LedgerEntry(event=self._table_to_event(event), ticket_number=number) for event, number in rows]

    async def list_for_ticket(self, ticket_id: str) -> list[ScanEvent]:
        statement = (
            select(ScanEventTable)
            .where(ScanEventTable.ticket_id == ticket_id)
            .order_by(ScanEventTable.scanned_at.asc(), ScanEventTable.id.asc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load scan history of ticket {ticket_id}") from exc
        return [self._table_to_event(row) for row in rows]

    async def last_for_ticket(self, ticket_id: str) -> ScanEvent | None:
        statement = (
            select(ScanEventTable)
            .where(ScanEventTable.ticket_id == ticket_id)
            .order_by(ScanEventTable.scanned_at.desc(), ScanEventTable.id.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.scalars().first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load last scan of ticket {ticket_id}") from exc
        return None if row is None else self._table_to_event(row)

    async def count_by_operator(
        self, action: ScanAction = ScanAction.SELL, *, event_id: str | None = None
    ) -> dict[str, int]:
        statement = (
            select(ScanEventTable.operator, func.count(ScanEventTable.id))
            .join(TicketTable, TicketTable.id == ScanEventTable.ticket_id)
            .where(ScanEventTable.action == action.value, ScanEventTable.operator.is_not(None))
            .group_by(ScanEventTable.operator)
        )
        if event_id is not None:
            statement = statement.where(TicketTable.event_id == event_id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to count scan events by operator") from exc
        return {str(operator): int(total) for operator, total in rows}

    @staticmethod
    def _table_to_event(row: ScanEventTable) -> ScanEvent:
        if row.id is None:
            raise TypeError("Scan event has not been assigned an id")
        scanned_at = row.scanned_at
        if scanned_at.tzinfo is None:
            scanned_at = scanned_at.replace(tzinfo=timezone.utc)
        return ScanEvent(
            id=row.id,
            ticket_id=row.ticket_id,
            action=ScanAction(row.action),
            scanned_at=scanned_at,
            operator=row.operator,
        )
