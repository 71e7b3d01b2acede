from __future__ import annotations

from typing import Mapping, Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import EventMemberTable

from .errors import StorageError


class MembershipDirectory(Protocol):
    async def count_by_role(self, event_id: str) -> Mapping[str, int]:
        ...


class EventMembershipDirectory:
    """Read-only view over the `event_members` relation maintained by the membership service."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def count_by_role(self, event_id: str) -> Mapping[str, int]:
        statement = (
            select(EventMemberTable.role, func.count(EventMemberTable.id))
            .where(EventMemberTable.event_id == event_id)
            .group_by(EventMemberTable.role)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count members of event {event_id}") from exc
        return {str(role): int(total) for role, total in rows}
