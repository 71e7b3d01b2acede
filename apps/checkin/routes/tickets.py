from __future__ import annotations

from datetime import datetime
from typing import NoReturn

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from apps.checkin.admission.errors import (
    ConcurrencyConflictError,
    DuplicateTicketError,
    StorageError,
    TicketNotFoundError,
)
from apps.checkin.admission.gate import GateOutcome, GateResult
from apps.checkin.admission.models import EntryType, ScanEvent, Ticket, TicketType
from apps.checkin.admission.state import GATE_ACTIONS, ScanAction, TicketStatus
from apps.checkin.dependencies.auth import AdminUser, GateUser, VendorUser, ViewerUser
from apps.checkin.dependencies.gate import GateServiceDep

router = APIRouter(prefix="/tickets", tags=["tickets"])


class ScanRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    ticket_number: str = Field(..., min_length=1, max_length=255)
    action: ScanAction
    entry_type: EntryType = EntryType.SCAN

    @field_validator("action")
    @classmethod
    def ensure_gate_action(cls, value: ScanAction) -> ScanAction:
        if value not in GATE_ACTIONS:
            raise ValueError("Gate scans accept ENTER or EXIT")
        return value


class SaleRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    ticket_number: str = Field(..., min_length=1, max_length=255)


class TicketCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    number: str = Field(..., min_length=1, max_length=255)
    ticket_type: TicketType = TicketType.NORMAL
    event_id: str | None = Field(default=None, max_length=36)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    number: str
    status: TicketStatus
    ticket_type: TicketType
    event_id: str | None
    entry_type: EntryType | None
    scanned_at: datetime | None
    sold_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ScanEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: ScanAction
    scanned_at: datetime
    operator: str | None


class GateResultResponse(BaseModel):
    status: GateOutcome
    ticket: TicketResponse | None = None
    reason: str | None = None
    code: str | None = None


class TicketLookupResponse(BaseModel):
    ticket: TicketResponse
    last_action: ScanEventResponse | None
    matches_ledger: bool


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_event_response(event: ScanEvent) -> ScanEventResponse:
    return ScanEventResponse.model_validate(event)


def _to_gate_response(result: GateResult, response: Response) -> GateResultResponse:
    if not result.accepted:
        response.status_code = (
            status.HTTP_404_NOT_FOUND
            if result.code == TicketNotFoundError.code.lower()
            else status.HTTP_409_CONFLICT
        )
    return GateResultResponse(
        status=result.status,
        ticket=_to_response(result.ticket) if result.ticket is not None else None,
        reason=result.reason,
        code=result.code,
    )


def _raise_for_failure(exc: Exception) -> NoReturn:
    if isinstance(exc, ConcurrencyConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable") from exc


@router.post("/scan", response_model=GateResultResponse)
async def scan_ticket(
    payload: ScanRequest,
    response: Response,
    service: GateServiceDep,
    operator: GateUser,
) -> GateResultResponse:
    try:
        result = await service.scan(
            payload.ticket_number,
            payload.action,
            operator=operator.username,
            entry_type=payload.entry_type,
        )
    except (ConcurrencyConflictError, StorageError) as exc:
        _raise_for_failure(exc)
    return _to_gate_response(result, response)


@router.post("/sell", response_model=GateResultResponse)
async def sell_ticket(
    payload: SaleRequest,
    response: Response,
    service: GateServiceDep,
    operator: VendorUser,
) -> GateResultResponse:
    try:
        result = await service.sell(payload.ticket_number, operator=operator.username)
    except (ConcurrencyConflictError, StorageError) as exc:
        _raise_for_failure(exc)
    return _to_gate_response(result, response)


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: GateServiceDep, _: AdminUser) -> TicketResponse:
    try:
        ticket = await service.provision(payload.number, ticket_type=payload.ticket_type, event_id=payload.event_id)
    except DuplicateTicketError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StorageError as exc:
        _raise_for_failure(exc)
    return _to_response(ticket)


@router.get("/search", response_model=TicketLookupResponse)
async def search_ticket(
    service: GateServiceDep,
    _: ViewerUser,
    number: str = Query(..., min_length=1),
    event_id: str | None = Query(default=None),
) -> TicketLookupResponse:
    try:
        lookup = await service.lookup(number, event_id=event_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        _raise_for_failure(exc)
    return TicketLookupResponse(
        ticket=_to_response(lookup.ticket),
        last_action=_to_event_response(lookup.last_event) if lookup.last_event is not None else None,
        matches_ledger=lookup.matches_ledger,
    )


@router.get("/{ticket_number}/history", response_model=list[ScanEventResponse])
async def get_ticket_history(ticket_number: str, service: GateServiceDep, _: ViewerUser) -> list[ScanEventResponse]:
    try:
        events = await service.history(ticket_number)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        _raise_for_failure(exc)
    return [_to_event_response(event) for event in events]
