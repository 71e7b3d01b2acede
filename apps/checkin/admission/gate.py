"""Boundary used by HTTP handlers and other callers of the admission core."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from apps.checkin.metrics import MetricsRegistry, metrics_registry
from apps.checkin.metrics import definitions as metric_names

from .engine import AdmissionEngine
from .errors import InvalidTransitionError, Rejection, TicketNotFoundError
from .ledger import ScanLedger
from .models import (
    ActivityEntry,
    EntryType,
    PresenceSummary,
    SalesSummary,
    ScanEvent,
    Ticket,
    TicketLookup,
    TicketStats,
    TicketType,
)
from .state import ScanAction
from .stats import StatsAggregator
from .store import TicketStore

logger = logging.getLogger(__name__)


class GateOutcome(str, Enum):
    OK = "ok"
    REJECTED = "rejected"


@dataclass(slots=True)
class GateResult:
    """Outcome of a scan or sale as presented to the caller."""

    status: GateOutcome
    ticket: Ticket | None = None
    reason: str | None = None
    code: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status is GateOutcome.OK


class GateService:
    """High level entry point for gates, vendors and dashboards.

    Unknown tickets and state machine rejections become ``rejected`` results.
    Concurrency conflicts and storage failures are raised to the caller.
    """

    def __init__(
        self,
        engine: AdmissionEngine,
        aggregator: StatsAggregator,
        tickets: TicketStore,
        ledger: ScanLedger,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._engine = engine
        self._aggregator = aggregator
        self._tickets = tickets
        self._ledger = ledger
        self._metrics = metrics or metrics_registry

    async def scan(
        self,
        ticket_number: str,
        direction: ScanAction | str,
        *,
        operator: str | None = None,
        entry_type: EntryType = EntryType.SCAN,
    ) -> GateResult:
        try:
            ticket = await self._engine.record_gate_scan(
                ticket_number, direction, operator=operator, entry_type=entry_type
            )
        except (TicketNotFoundError, InvalidTransitionError) as exc:
            return self._rejected(exc)
        return GateResult(status=GateOutcome.OK, ticket=ticket)

    async def sell(self, ticket_number: str, *, operator: str | None = None) -> GateResult:
        try:
            ticket = await self._engine.record_sale(ticket_number, operator=operator)
        except (TicketNotFoundError, InvalidTransitionError) as exc:
            return self._rejected(exc)
        return GateResult(status=GateOutcome.OK, ticket=ticket)

    async def provision(
        self,
        ticket_number: str,
        *,
        ticket_type: TicketType = TicketType.NORMAL,
        event_id: str | None = None,
    ) -> Ticket:
        """Register a single PENDING ticket ahead of the event."""

        return await self._tickets.create_ticket(ticket_number.strip(), ticket_type=ticket_type, event_id=event_id)

    async def stats(self, *, event_id: str | None = None) -> TicketStats:
        stats = await self._aggregator.compute_stats(event_id=event_id)
        stats.duplicates = self.duplicate_scans()
        return stats

    async def recent_activity(self, limit: int = 10, *, event_id: str | None = None) -> list[ActivityEntry]:
        return await self._aggregator.compute_recent_activity(limit, event_id=event_id)

    async def sales_by_operator(self, *, event_id: str | None = None) -> SalesSummary:
        return await self._aggregator.compute_sales_by_operator(event_id=event_id)

    async def online_presence(self, event_id: str) -> PresenceSummary:
        return await self._aggregator.compute_online_presence(event_id)

    async def lookup(self, ticket_number: str, *, event_id: str | None = None) -> TicketLookup:
        ticket = await self._require(ticket_number, event_id=event_id)
        last_event = await self._ledger.last_for_ticket(ticket.id)
        lookup = TicketLookup(ticket=ticket, last_event=last_event)
        if not lookup.matches_ledger:
            logger.error(
                "Ticket %s is %s but its last ledger event is %s",
                ticket.number,
                ticket.status.value,
                last_event.action.value if last_event is not None else "none",
            )
        return lookup

    async def history(self, ticket_number: str) -> list[ScanEvent]:
        ticket = await self._require(ticket_number)
        return await self._ledger.list_for_ticket(ticket.id)

    def duplicate_scans(self) -> int:
        """Duplicate scans rejected by this process since start-up."""

        rejections = self._metrics.counter(
            metric_names.REJECTIONS_TOTAL, label_names=("action", "reason")
        )
        return int(
            sum(rejections.total(reason=reason.value) for reason in Rejection if reason.is_duplicate)
        )

    async def _require(self, ticket_number: str, *, event_id: str | None = None) -> Ticket:
        number = (ticket_number or "").strip()
        ticket = await self._tickets.get_by_number(number, event_id=event_id) if number else None
        if ticket is None:
            raise TicketNotFoundError(number)
        return ticket

    @staticmethod
    def _rejected(exc: TicketNotFoundError | InvalidTransitionError) -> GateResult:
        if isinstance(exc, InvalidTransitionError):
            code = exc.reason.value
        else:
            code = exc.code.lower()
        logger.debug("Gate rejection %s: %s", code, exc)
        return GateResult(status=GateOutcome.REJECTED, reason=str(exc), code=code)
