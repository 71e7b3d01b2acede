from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from apps.checkin.admission.errors import StorageError
from apps.checkin.admission.models import StatusCounts, TicketStats
from apps.checkin.admission.state import ScanAction
from apps.checkin.core.config import get_settings
from apps.checkin.dependencies.auth import AdminUser, ViewerUser
from apps.checkin.dependencies.gate import GateServiceDep

router = APIRouter(prefix="/stats", tags=["stats"])


class StatusCountsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    pending: int
    entered: int
    exited: int
    vendus: int


class StatsResponse(BaseModel):
    total: int
    pending: int
    entered: int
    exited: int
    vendus: int
    sold: int
    duplicates: int = Field(
        description=(
            "Duplicate scans and sales rejected by this API process since it started. "
            "Not shared between processes and reset on restart."
        )
    )
    by_type: dict[str, StatusCountsResponse]


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_number: str
    action: ScanAction
    scanned_at: datetime
    time_ago: str
    operator: str | None


class OperatorSalesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    operator: str
    total_sales: int


class SalesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    operators: list[OperatorSalesResponse]
    total_sales: int


class PresenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    counts_by_role: dict[str, int]


def _counts(counts: StatusCounts) -> StatusCountsResponse:
    return StatusCountsResponse.model_validate(counts)


def _to_stats_response(stats: TicketStats) -> StatsResponse:
    return StatsResponse(
        total=stats.total,
        pending=stats.pending,
        entered=stats.entered,
        exited=stats.exited,
        vendus=stats.vendus,
        sold=stats.sold,
        duplicates=stats.duplicates,
        by_type={ticket_type.value: _counts(counts) for ticket_type, counts in stats.by_type.items()},
    )


def _storage_unavailable() -> HTTPException:
    return HTTPException(status_code=503, detail="Storage unavailable")


@router.get("", response_model=StatsResponse)
async def get_stats(
    service: GateServiceDep,
    _: ViewerUser,
    event_id: str | None = Query(default=None),
) -> StatsResponse:
    try:
        stats = await service.stats(event_id=event_id)
    except StorageError as exc:
        raise _storage_unavailable() from exc
    return _to_stats_response(stats)


@router.get("/activity", response_model=list[ActivityResponse])
async def get_recent_activity(
    service: GateServiceDep,
    _: ViewerUser,
    limit: int | None = Query(default=None, ge=1),
    event_id: str | None = Query(default=None),
) -> list[ActivityResponse]:
    if limit is None:
        limit = get_settings().activity_default_limit
    try:
        entries = await service.recent_activity(limit, event_id=event_id)
    except StorageError as exc:
        raise _storage_unavailable() from exc
    return [ActivityResponse.model_validate(entry) for entry in entries]


@router.get("/sales", response_model=SalesResponse)
async def get_sales_by_operator(
    service: GateServiceDep,
    _: AdminUser,
    event_id: str | None = Query(default=None),
) -> SalesResponse:
    try:
        summary = await service.sales_by_operator(event_id=event_id)
    except StorageError as exc:
        raise _storage_unavailable() from exc
    return SalesResponse.model_validate(summary)


@router.get("/presence/{event_id}", response_model=PresenceResponse)
async def get_online_presence(event_id: str, service: GateServiceDep, _: AdminUser) -> PresenceResponse:
    try:
        presence = await service.online_presence(event_id)
    except StorageError as exc:
        raise _storage_unavailable() from exc
    return PresenceResponse.model_validate(presence)
