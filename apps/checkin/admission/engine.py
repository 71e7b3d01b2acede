"""Admission engine applying the ticket state machine against storage.

Every accepted scan or sale is a single database transaction holding a
conditional status update (compare-and-swap on the status read a moment
earlier) followed by the matching ledger append. Gate devices run in separate
processes, so a lost CAS means another device won the race: the ticket is
re-read and the transition re-evaluated, up to ``max_attempts`` times.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

from opentelemetry import trace

from apps.checkin.metrics import MetricsRegistry, metrics_registry, register_default_metrics, track_duration
from apps.checkin.metrics import definitions as metric_names

from .errors import ConcurrencyConflictError, InvalidTransitionError, StorageError, TicketNotFoundError
from .ledger import ScanLedger
from .models import EntryType, ScanEvent, Ticket
from .state import GATE_ACTIONS, AdmissionStateMachine, ScanAction, TicketStatus
from .store import TicketStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AdmissionEngine:
    """Accept or reject gate scans and on-site sales."""

    def __init__(
        self,
        tickets: TicketStore,
        ledger: ScanLedger,
        *,
        state_machine: AdmissionStateMachine | None = None,
        clock: Clock | None = None,
        max_attempts: int = 3,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._tickets = tickets
        self._ledger = ledger
        self._state_machine = state_machine or AdmissionStateMachine()
        self._clock = clock or utcnow
        self._max_attempts = max_attempts
        self._metrics = register_default_metrics(metrics or metrics_registry)

    async def record_gate_scan(
        self,
        ticket_number: str,
        action: ScanAction | str,
        *,
        operator: str | None = None,
        entry_type: EntryType = EntryType.SCAN,
    ) -> Ticket:
        requested = ScanAction(action)
        if requested not in GATE_ACTIONS:
            raise ValueError(f"Gate scans only accept ENTER or EXIT, got {requested.value}")
        return await self._admit(ticket_number, requested, operator=operator, entry_type=entry_type)

    async def record_sale(self, ticket_number: str, *, operator: str | None = None) -> Ticket:
        return await self._admit(ticket_number, ScanAction.SELL, operator=operator, entry_type=None)

    async def _admit(
        self,
        ticket_number: str,
        action: ScanAction,
        *,
        operator: str | None,
        entry_type: EntryType | None,
    ) -> Ticket:
        number = (ticket_number or "").strip()
        if not number:
            raise ValueError("Ticket number must not be empty")

        labels = {"action": action.value}
        with tracer.start_as_current_span("admission.admit") as span:
            span.set_attribute("ticket.number", number)
            span.set_attribute("admission.action", action.value)
            with track_duration(self._metrics.distribution(metric_names.DURATION_SECONDS), labels=labels):
                for attempt in range(1, self._max_attempts + 1):
                    span.set_attribute("admission.attempt", attempt)
                    ticket = await self._load(number, action)
                    target = self._evaluate(ticket, action)
                    now = self._clock()
                    event = await self._commit(ticket, target, action, now, operator=operator, entry_type=entry_type)
                    if event is not None:
                        self._metrics.counter(metric_names.ADMISSIONS_TOTAL).inc(labels=labels)
                        logger.info(
                            "Ticket %s %s -> %s by %s (event %s)",
                            number,
                            ticket.status.value,
                            target.value,
                            operator or "unknown",
                            event.id,
                        )
                        return replace(ticket, status=target, updated_at=now, **self._changes(action, now, entry_type))

                    self._metrics.counter(metric_names.RETRIES_TOTAL).inc()
                    logger.info(
                        "Ticket %s changed while applying %s (attempt %d/%d)",
                        number,
                        action.value,
                        attempt,
                        self._max_attempts,
                    )

            self._metrics.counter(metric_names.CONFLICTS_TOTAL).inc()
            logger.warning("Giving up on %s for ticket %s after %d attempts", action.value, number, self._max_attempts)
            raise ConcurrencyConflictError(number, self._max_attempts)

    async def _load(self, number: str, action: ScanAction) -> Ticket:
        ticket = await self._tickets.get_by_number(number)
        if ticket is None:
            self._metrics.counter(metric_names.NOT_FOUND_TOTAL).inc(labels={"action": action.value})
            logger.info("Rejected %s for unknown ticket %s", action.value, number)
            raise TicketNotFoundError(number)
        return ticket

    def _evaluate(self, ticket: Ticket, action: ScanAction) -> TicketStatus:
        try:
            return self._state_machine.next_status(ticket.status, action)
        except InvalidTransitionError as exc:
            self._metrics.counter(metric_names.REJECTIONS_TOTAL).inc(
                labels={"action": action.value, "reason": exc.reason.value}
            )
            logger.info(
                "Rejected %s for ticket %s in status %s: %s",
                action.value,
                ticket.number,
                ticket.status.value,
                exc.reason.value,
            )
            raise

    async def _commit(
        self,
        ticket: Ticket,
        target: TicketStatus,
        action: ScanAction,
        now: datetime,
        *,
        operator: str | None,
        entry_type: EntryType | None,
    ) -> ScanEvent | None:
        changes = {"updated_at": now, **self._changes(action, now, entry_type)}
        if "entry_type" in changes:
            changes["entry_type"] = changes["entry_type"].value
        async with self._tickets.transaction() as session:
            swapped = await self._tickets.compare_and_swap_status(
                ticket.id, ticket.status, target, changes, session=session
            )
            if not swapped:
                return None
            try:
                return await self._ledger.append(ticket.id, action, now, operator=operator, session=session)
            except StorageError:
                # Raising here rolls back the status update of this transaction.
                self._metrics.counter(metric_names.LEDGER_FAILURES_TOTAL).inc()
                logger.critical(
                    "Ledger append failed after status update of ticket %s (%s -> %s); rolling back",
                    ticket.number,
                    ticket.status.value,
                    target.value,
                    exc_info=True,
                )
                raise

    @staticmethod
    def _changes(action: ScanAction, now: datetime, entry_type: EntryType | None) -> dict[str, Any]:
        changes: dict[str, Any] = {"scanned_at": now}
        if action is ScanAction.SELL:
            changes["sold_at"] = now
        elif action is ScanAction.ENTER and entry_type is not None:
            changes["entry_type"] = entry_type
        return changes
