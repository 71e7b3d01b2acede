from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import TicketTable

from .errors import DuplicateTicketError, StorageError
from .models import EntryType, Ticket, TicketType
from .state import AdmissionStateMachine, TicketStatus

logger = logging.getLogger(__name__)


class TicketStore:
    """Persistence helper wrapping the `tickets` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session whose writes commit together or not at all."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise StorageError("Ticket transaction failed") from exc

    async def create_ticket(
        self,
        number: str,
        *,
        ticket_type: TicketType = TicketType.NORMAL,
        event_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Ticket:
        now = created_at or datetime.now(timezone.utc)
        row = TicketTable(
            number=number,
            event_id=event_id,
            ticket_type=ticket_type.value,
            status=AdmissionStateMachine.initial_state().value,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    ticket = self._table_to_ticket(row)
        except IntegrityError as exc:
            raise DuplicateTicketError(number) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create ticket {number}") from exc
        logger.info("Provisioned ticket %s (type=%s, event=%s)", number, ticket_type.value, event_id)
        return ticket

    async def get_by_number(self, number: str, *, event_id: str | None = None) -> Ticket | None:
        statement = select(TicketTable).where(TicketTable.number == number)
        if event_id is not None:
            statement = statement.where(TicketTable.event_id == event_id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.scalars().first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load ticket {number}") from exc
        return None if row is None else self._table_to_ticket(row)

    async def get_by_id(self, ticket_id: str) -> Ticket | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load ticket {ticket_id}") from exc
        return None if row is None else self._table_to_ticket(row)

    async def compare_and_swap_status(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        new_status: TicketStatus,
        changes: Mapping[str, Any] | None = None,
        *,
        session: AsyncSession,
    ) -> bool:
        """Conditionally move ``ticket_id`` to ``new_status``.

        The update only applies while the stored status still equals
        ``expected_status``. Returns False when another writer got there first.
        """

        statement = (
            update(TicketTable)
            .where(TicketTable.id == ticket_id, TicketTable.status == expected_status.value)
            .values(status=new_status.value, **dict(changes or {}))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(statement)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update status of ticket {ticket_id}") from exc
        return result.rowcount == 1

    async def count(self, status: TicketStatus | None = None, *, event_id: str | None = None) -> int:
        statement = select(func.count(TicketTable.id))
        if status is not None:
            statement = statement.where(TicketTable.status == status.value)
        return await self._scalar(self._scoped(statement, event_id))

    async def count_sold(self, *, event_id: str | None = None) -> int:
        statement = select(func.count(TicketTable.id)).where(TicketTable.sold_at.is_not(None))
        return await self._scalar(self._scoped(statement, event_id))

    async def count_by_type_and_status(
        self, *, event_id: str | None = None
    ) -> list[tuple[TicketType, TicketStatus, int]]:
        statement = self._scoped(
            select(TicketTable.ticket_type, TicketTable.status, func.count(TicketTable.id)).group_by(
                TicketTable.ticket_type, TicketTable.status
            ),
            event_id,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to count tickets by type") from exc
        return [(TicketType(ticket_type), TicketStatus(status), int(total)) for ticket_type, status, total in rows]

    async def _scalar(self, statement: Any) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError("Failed to count tickets") from exc

    @staticmethod
    def _scoped(statement: Any, event_id: str | None) -> Any:
        if event_id is None:
            return statement
        return statement.where(TicketTable.event_id == event_id)

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            number=row.number,
            status=TicketStatus(row.status),
            ticket_type=TicketType(row.ticket_type),
            event_id=row.event_id,
            entry_type=EntryType(row.entry_type) if row.entry_type else None,
            scanned_at=_optional_datetime(row.scanned_at),
            sold_at=_optional_datetime(row.sold_at),
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else _ensure_datetime(value)
