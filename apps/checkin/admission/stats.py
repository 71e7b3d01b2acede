"""Read-only statistics derived from the ticket store and the scan ledger.

Counts come from independent queries and are not a transactional snapshot:
a refresh may mix tickets read before and after a concurrent transition.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping

from .engine import Clock, utcnow
from .ledger import ScanLedger
from .models import (
    ActivityEntry,
    OperatorSales,
    PresenceSummary,
    SalesSummary,
    StatusCounts,
    TicketStats,
    TicketType,
)
from .presence import MembershipDirectory
from .state import ScanAction, TicketStatus
from .store import TicketStore

TIME_AGO_LABELS: Mapping[str, Mapping[str, str]] = {
    "en": {
        "now": "just now",
        "minutes": "{value} min ago",
        "hours": "{value}h ago",
        "days": "{value}d ago",
    },
    "fr": {
        "now": "À l'instant",
        "minutes": "Il y a {value} min",
        "hours": "Il y a {value}h",
        "days": "Il y a {value}j",
    },
}


def format_time_ago(moment: datetime, *, now: datetime, locale: str = "en") -> str:
    """Render how long ago ``moment`` happened using fixed buckets.

    Under a minute is "now"; then whole minutes below an hour, whole hours
    below a day, and whole days beyond.
    """

    labels = TIME_AGO_LABELS.get(locale, TIME_AGO_LABELS["en"])
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return labels["now"]
    if seconds < 3600:
        return labels["minutes"].format(value=seconds // 60)
    if seconds < 86400:
        return labels["hours"].format(value=seconds // 3600)
    return labels["days"].format(value=seconds // 86400)


class StatsAggregator:
    """Compute live counters and the activity feed on demand."""

    def __init__(
        self,
        tickets: TicketStore,
        ledger: ScanLedger,
        *,
        membership: MembershipDirectory | None = None,
        clock: Clock | None = None,
        locale: str = "en",
        max_activity: int = 100,
    ) -> None:
        self._tickets = tickets
        self._ledger = ledger
        self._membership = membership
        self._clock = clock or utcnow
        self._locale = locale
        self._max_activity = max_activity

    async def compute_stats(self, *, event_id: str | None = None) -> TicketStats:
        total = await self._tickets.count(event_id=event_id)
        pending = await self._tickets.count(TicketStatus.PENDING, event_id=event_id)
        entered = await self._tickets.count(TicketStatus.ENTERED, event_id=event_id)
        exited = await self._tickets.count(TicketStatus.EXITED, event_id=event_id)
        vendus = await self._tickets.count(TicketStatus.VENDU, event_id=event_id)
        sold = await self._tickets.count_sold(event_id=event_id)

        by_type = {ticket_type: StatusCounts() for ticket_type in TicketType}
        for ticket_type, status, count in await self._tickets.count_by_type_and_status(event_id=event_id):
            by_type[ticket_type].add(status, count)

        return TicketStats(
            total=total,
            pending=pending,
            entered=entered,
            exited=exited,
            vendus=vendus,
            sold=sold,
            by_type=by_type,
        )

    async def compute_recent_activity(self, limit: int = 10, *, event_id: str | None = None) -> list[ActivityEntry]:
        if limit < 1:
            return []
        entries = await self._ledger.list_recent(min(limit, self._max_activity), event_id=event_id)
        now = self._clock()
        return [
            ActivityEntry(
                ticket_number=entry.ticket_number,
                action=entry.event.action,
                scanned_at=entry.event.scanned_at,
                time_ago=format_time_ago(entry.event.scanned_at, now=now, locale=self._locale),
                operator=entry.event.operator,
            )
            for entry in entries
        ]

    async def compute_sales_by_operator(self, *, event_id: str | None = None) -> SalesSummary:
        counts = await self._ledger.count_by_operator(ScanAction.SELL, event_id=event_id)
        operators = [
            OperatorSales(operator=operator, total_sales=total)
            for operator, total in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]
        return SalesSummary(operators=operators, total_sales=sum(counts.values()))

    async def compute_online_presence(self, event_id: str) -> PresenceSummary:
        """Count users registered on the event; unrelated to ticket occupancy."""

        if self._membership is None:
            raise RuntimeError("No membership directory configured")
        by_role = dict(await self._membership.count_by_role(event_id))
        return PresenceSummary(count=sum(by_role.values()), counts_by_role=by_role)
