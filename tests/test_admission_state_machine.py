import pytest

from apps.checkin.admission.errors import InvalidTransitionError, Rejection
from apps.checkin.admission.state import AdmissionStateMachine, ScanAction, TicketStatus


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        (TicketStatus.PENDING, ScanAction.ENTER, TicketStatus.ENTERED),
        (TicketStatus.ENTERED, ScanAction.EXIT, TicketStatus.EXITED),
        (TicketStatus.EXITED, ScanAction.ENTER, TicketStatus.ENTERED),
        (TicketStatus.PENDING, ScanAction.SELL, TicketStatus.VENDU),
        (TicketStatus.ENTERED, ScanAction.SELL, TicketStatus.VENDU),
        (TicketStatus.EXITED, ScanAction.SELL, TicketStatus.VENDU),
    ],
)
def test_allowed_transitions(current, action, expected):
    machine = AdmissionStateMachine()

    assert machine.next_status(current, action) is expected


@pytest.mark.parametrize(
    ("current", "action", "reason"),
    [
        (TicketStatus.PENDING, ScanAction.EXIT, Rejection.NOT_YET_ENTERED),
        (TicketStatus.ENTERED, ScanAction.ENTER, Rejection.ALREADY_ENTERED),
        (TicketStatus.EXITED, ScanAction.EXIT, Rejection.ALREADY_EXITED),
        (TicketStatus.VENDU, ScanAction.ENTER, Rejection.TICKET_SOLD),
        (TicketStatus.VENDU, ScanAction.EXIT, Rejection.TICKET_SOLD),
        (TicketStatus.VENDU, ScanAction.SELL, Rejection.ALREADY_SOLD),
    ],
)
def test_rejected_transitions_carry_reason(current, action, reason):
    machine = AdmissionStateMachine()

    with pytest.raises(InvalidTransitionError) as excinfo:
        machine.next_status(current, action)

    assert excinfo.value.reason is reason
    assert excinfo.value.status == current.value
    assert excinfo.value.action == action.value
    assert str(excinfo.value) == reason.message


def test_every_status_action_pair_is_decided():
    machine = AdmissionStateMachine()

    for status in TicketStatus:
        for action in ScanAction:
            try:
                machine.next_status(status, action)
            except InvalidTransitionError:
                pass


def test_vendu_is_terminal():
    machine = AdmissionStateMachine()

    for action in ScanAction:
        with pytest.raises(InvalidTransitionError):
            machine.next_status(TicketStatus.VENDU, action)


def test_reentry_can_be_disabled():
    machine = AdmissionStateMachine(allow_reentry=False)

    with pytest.raises(InvalidTransitionError) as excinfo:
        machine.next_status(TicketStatus.EXITED, ScanAction.ENTER)

    assert excinfo.value.reason is Rejection.REENTRY_DISABLED
    assert machine.next_status(TicketStatus.PENDING, ScanAction.ENTER) is TicketStatus.ENTERED
    assert AdmissionStateMachine().next_status(TicketStatus.EXITED, ScanAction.ENTER) is TicketStatus.ENTERED


def test_initial_state_and_status_after_action():
    assert AdmissionStateMachine.initial_state() is TicketStatus.PENDING
    assert AdmissionStateMachine.status_after(ScanAction.ENTER) is TicketStatus.ENTERED
    assert AdmissionStateMachine.status_after(ScanAction.EXIT) is TicketStatus.EXITED
    assert AdmissionStateMachine.status_after(ScanAction.SELL) is TicketStatus.VENDU


def test_duplicate_reasons():
    assert Rejection.ALREADY_ENTERED.is_duplicate
    assert Rejection.ALREADY_EXITED.is_duplicate
    assert Rejection.ALREADY_SOLD.is_duplicate
    assert not Rejection.NOT_YET_ENTERED.is_duplicate
    assert not Rejection.TICKET_SOLD.is_duplicate
