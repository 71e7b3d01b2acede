from __future__ import annotations

import logging

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from apps.checkin.admission.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    Rejection,
    StorageError,
    TicketNotFoundError,
)
from apps.checkin.admission.gate import GateOutcome, GateService
from apps.checkin.admission.models import EntryType, ScanEvent, Ticket, TicketStats, TicketType
from apps.checkin.admission.state import ScanAction, TicketStatus
from apps.checkin.metrics import definitions as metric_names

NOW = datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc)


def _make_ticket(status: TicketStatus = TicketStatus.ENTERED) -> Ticket:
    return Ticket(
        id="ticket-1",
        number="T-001",
        status=status,
        ticket_type=TicketType.NORMAL,
        event_id=None,
        entry_type=None,
        scanned_at=None,
        sold_at=None,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def parts(registry):
    engine = AsyncMock()
    aggregator = AsyncMock()
    tickets = AsyncMock()
    ledger = AsyncMock()
    service = GateService(engine, aggregator, tickets, ledger, metrics=registry)
    return service, engine, aggregator, tickets, ledger


@pytest.mark.asyncio
async def test_scan_wraps_accepted_ticket(parts):
    service, engine, *_ = parts
    engine.record_gate_scan = AsyncMock(return_value=_make_ticket())

    result = await service.scan("T-001", ScanAction.ENTER, operator="gate-1")

    assert result.accepted
    assert result.ticket.status is TicketStatus.ENTERED
    engine.record_gate_scan.assert_awaited_once_with(
        "T-001", ScanAction.ENTER, operator="gate-1", entry_type=EntryType.SCAN
    )


@pytest.mark.asyncio
async def test_scan_maps_business_rejections(parts):
    service, engine, *_ = parts
    engine.record_gate_scan = AsyncMock(
        side_effect=InvalidTransitionError(Rejection.NOT_YET_ENTERED, status="PENDING", action="EXIT")
    )

    result = await service.scan("T-001", ScanAction.EXIT)

    assert result.status is GateOutcome.REJECTED
    assert result.code == "not_yet_entered"
    assert result.reason == Rejection.NOT_YET_ENTERED.message
    assert result.ticket is None


@pytest.mark.asyncio
async def test_sell_maps_unknown_ticket(parts):
    service, engine, *_ = parts
    engine.record_sale = AsyncMock(side_effect=TicketNotFoundError("T-404"))

    result = await service.sell("T-404", operator="vendor")

    assert result.status is GateOutcome.REJECTED
    assert result.code == "ticket_not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ConcurrencyConflictError("T-001", 3), StorageError("down")])
async def test_infrastructure_failures_propagate(parts, error):
    service, engine, *_ = parts
    engine.record_gate_scan = AsyncMock(side_effect=error)

    with pytest.raises(type(error)):
        await service.scan("T-001", ScanAction.ENTER)


@pytest.mark.asyncio
async def test_stats_include_duplicate_scans(parts, registry):
    service, _, aggregator, *_ = parts
    aggregator.compute_stats = AsyncMock(
        return_value=TicketStats(total=1, pending=0, entered=1, exited=0, vendus=0, sold=0)
    )
    rejections = registry.counter(metric_names.REJECTIONS_TOTAL)
    rejections.inc(labels={"action": "ENTER", "reason": "already_entered"})
    rejections.inc(labels={"action": "EXIT", "reason": "already_exited"})
    rejections.inc(labels={"action": "SELL", "reason": "already_sold"})
    rejections.inc(labels={"action": "ENTER", "reason": "ticket_sold"})

    stats = await service.stats()

    assert stats.duplicates == 3
    assert service.duplicate_scans() == 3


@pytest.mark.asyncio
async def test_lookup_returns_last_event(parts):
    service, _, _, tickets, ledger = parts
    ticket = _make_ticket()
    event = ScanEvent(id=3, ticket_id=ticket.id, action=ScanAction.ENTER, scanned_at=NOW)
    tickets.get_by_number = AsyncMock(return_value=ticket)
    ledger.last_for_ticket = AsyncMock(return_value=event)

    lookup = await service.lookup(" T-001 ", event_id="event-1")

    assert lookup.ticket is ticket
    assert lookup.last_event is event
    assert lookup.matches_ledger
    tickets.get_by_number.assert_awaited_once_with("T-001", event_id="event-1")


@pytest.mark.asyncio
async def test_history_of_unknown_ticket_raises(parts):
    service, _, _, tickets, ledger = parts
    tickets.get_by_number = AsyncMock(return_value=None)

    with pytest.raises(TicketNotFoundError):
        await service.history("T-404")

    ledger.list_for_ticket.assert_not_awaited()


@pytest.mark.asyncio
async def test_provision_strips_number(parts):
    service, _, _, tickets, _ = parts
    tickets.create_ticket = AsyncMock(return_value=_make_ticket(TicketStatus.PENDING))

    await service.provision("  T-001 ", ticket_type=TicketType.STAFF)

    tickets.create_ticket.assert_awaited_once_with("T-001", ticket_type=TicketType.STAFF, event_id=None)


@pytest.mark.asyncio
async def test_lookup_reports_status_ledger_mismatch(parts, caplog):
    service, _, _, tickets, ledger = parts
    ticket = _make_ticket(TicketStatus.EXITED)
    tickets.get_by_number = AsyncMock(return_value=ticket)
    ledger.last_for_ticket = AsyncMock(
        return_value=ScanEvent(id=4, ticket_id=ticket.id, action=ScanAction.ENTER, scanned_at=NOW)
    )

    with caplog.at_level(logging.ERROR, logger="apps.checkin.admission.gate"):
        lookup = await service.lookup("T-001")

    assert not lookup.matches_ledger
    assert "last ledger event is ENTER" in caplog.text


@pytest.mark.asyncio
async def test_lookup_of_untouched_ticket_matches_empty_ledger(parts):
    service, _, _, tickets, ledger = parts
    tickets.get_by_number = AsyncMock(return_value=_make_ticket(TicketStatus.PENDING))
    ledger.last_for_ticket = AsyncMock(return_value=None)

    lookup = await service.lookup("T-001")

    assert lookup.last_event is None
    assert lookup.matches_ledger
