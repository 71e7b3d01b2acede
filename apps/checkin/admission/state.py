from __future__ import annotations

from enum import Enum
from typing import Mapping

from .errors import InvalidTransitionError, Rejection


class TicketStatus(str, Enum):
    """Admission states of a physical ticket."""

    PENDING = "PENDING"
    ENTERED = "ENTERED"
    EXITED = "EXITED"
    VENDU = "VENDU"


class ScanAction(str, Enum):
    """Actions recorded in the scan ledger."""

    ENTER = "ENTER"
    EXIT = "EXIT"
    SELL = "SELL"


GATE_ACTIONS = frozenset({ScanAction.ENTER, ScanAction.EXIT})


class AdmissionStateMachine:
    """Validate ticket admission transitions."""

    _DEFAULT_TRANSITIONS: Mapping[tuple[TicketStatus, ScanAction], TicketStatus] = {
        (TicketStatus.PENDING, ScanAction.ENTER): TicketStatus.ENTERED,
        (TicketStatus.ENTERED, ScanAction.EXIT): TicketStatus.EXITED,
        (TicketStatus.EXITED, ScanAction.ENTER): TicketStatus.ENTERED,
        (TicketStatus.PENDING, ScanAction.SELL): TicketStatus.VENDU,
        (TicketStatus.ENTERED, ScanAction.SELL): TicketStatus.VENDU,
        (TicketStatus.EXITED, ScanAction.SELL): TicketStatus.VENDU,
    }

    _REJECTIONS: Mapping[tuple[TicketStatus, ScanAction], Rejection] = {
        (TicketStatus.PENDING, ScanAction.EXIT): Rejection.NOT_YET_ENTERED,
        (TicketStatus.ENTERED, ScanAction.ENTER): Rejection.ALREADY_ENTERED,
        (TicketStatus.EXITED, ScanAction.EXIT): Rejection.ALREADY_EXITED,
        (TicketStatus.VENDU, ScanAction.ENTER): Rejection.TICKET_SOLD,
        (TicketStatus.VENDU, ScanAction.EXIT): Rejection.TICKET_SOLD,
        (TicketStatus.VENDU, ScanAction.SELL): Rejection.ALREADY_SOLD,
    }

    # Status each accepted action leaves behind; a ticket's last ledger event maps to its status.
    _ACTION_STATUS: Mapping[ScanAction, TicketStatus] = {
        ScanAction.ENTER: TicketStatus.ENTERED,
        ScanAction.EXIT: TicketStatus.EXITED,
        ScanAction.SELL: TicketStatus.VENDU,
    }

    def __init__(self, *, allow_reentry: bool = True) -> None:
        transitions = dict(self._DEFAULT_TRANSITIONS)
        rejections = dict(self._REJECTIONS)
        if not allow_reentry:
            del transitions[(TicketStatus.EXITED, ScanAction.ENTER)]
            rejections[(TicketStatus.EXITED, ScanAction.ENTER)] = Rejection.REENTRY_DISABLED
        self._transitions = transitions
        self._rejections = rejections

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.PENDING

    @classmethod
    def status_after(cls, action: ScanAction) -> TicketStatus:
        return cls._ACTION_STATUS[action]

    def next_status(self, current: TicketStatus, action: ScanAction) -> TicketStatus:
        """Return the status reached by applying ``action`` or raise the rejection."""

        target = self._transitions.get((current, action))
        if target is None:
            reason = self._rejections[(current, action)]
            raise InvalidTransitionError(reason, status=current.value, action=action.value)
        return target
