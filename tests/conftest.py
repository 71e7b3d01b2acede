from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.checkin.admission import ScanLedger, TicketStore
from apps.checkin.metrics import MetricsRegistry, register_default_metrics

EVENT_START = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = EVENT_START, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        moment = self.current
        self.current = self.current + self.step
        return moment


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'checkin.db'}",
        connect_args={"timeout": 30},
    )
    store = TicketStore(async_sessionmaker(engine, expire_on_commit=False), engine=engine)
    await store.ensure_schema()
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def ticket_store(session_factory, db_engine):
    return TicketStore(session_factory, engine=db_engine)


@pytest.fixture
def scan_ledger(session_factory):
    return ScanLedger(session_factory)


@pytest.fixture
def registry():
    return register_default_metrics(MetricsRegistry())


@pytest.fixture
def clock():
    return FakeClock()
