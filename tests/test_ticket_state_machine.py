import pytest

from apps.api.core.errors import ConflictError, ForbiddenError, TicketClosedError
from apps.api.tickets.state import (
    AdminStatusChange,
    ClientClose,
    Effect,
    MessagePosted,
    TicketStateMachine,
    TicketStatus,
    UserRole,
)


def test_new_tickets_start_open():
    assert TicketStateMachine.initial_state() is TicketStatus.OPEN


def test_client_reply_while_waiting_moves_to_in_progress():
    transition = TicketStateMachine.transition(
        TicketStatus.WAITING_FOR_CUSTOMER, MessagePosted(role=UserRole.CLIENT)
    )

    assert transition.status is TicketStatus.IN_PROGRESS
    assert transition.audit_text == "Status automatically changed to: **In progress**"
    assert transition.effects == (Effect.STATUS_CHANGED, Effect.MESSAGE_POSTED)


def test_admin_reply_while_in_progress_waits_for_customer():
    transition = TicketStateMachine.transition(TicketStatus.IN_PROGRESS, MessagePosted(role=UserRole.ADMIN))

    assert transition.status is TicketStatus.WAITING_FOR_CUSTOMER
    assert transition.changed


@pytest.mark.parametrize(
    ("status", "role"),
    [
        (TicketStatus.OPEN, UserRole.CLIENT),
        (TicketStatus.OPEN, UserRole.ADMIN),
        (TicketStatus.IN_PROGRESS, UserRole.CLIENT),
        (TicketStatus.WAITING_FOR_CUSTOMER, UserRole.ADMIN),
        (TicketStatus.CLOSED, UserRole.ADMIN),
    ],
)
def test_other_messages_keep_status(status, role):
    transition = TicketStateMachine.transition(status, MessagePosted(role=role))

    assert transition.status is status
    assert not transition.changed
    assert transition.effects == (Effect.MESSAGE_POSTED,)


def test_internal_note_never_transitions():
    transition = TicketStateMachine.transition(
        TicketStatus.IN_PROGRESS, MessagePosted(role=UserRole.ADMIN, is_internal_note=True)
    )

    assert transition.status is TicketStatus.IN_PROGRESS
    assert transition.audit_text is None
    assert transition.effects == ()


def test_client_cannot_post_to_closed_ticket():
    with pytest.raises(TicketClosedError) as exc:
        TicketStateMachine.transition(TicketStatus.CLOSED, MessagePosted(role=UserRole.CLIENT))

    assert isinstance(exc.value, ForbiddenError)


def test_admin_status_change_is_always_recorded():
    transition = TicketStateMachine.transition(TicketStatus.OPEN, AdminStatusChange(TicketStatus.CLOSED))

    assert transition.status is TicketStatus.CLOSED
    assert transition.audit_text == "Status changed to: **Closed**"
    assert transition.effects == (Effect.STATUS_CHANGED,)


def test_client_close_twice_conflicts():
    transition = TicketStateMachine.transition(TicketStatus.IN_PROGRESS, ClientClose())
    assert transition.status is TicketStatus.CLOSED

    with pytest.raises(ConflictError):
        TicketStateMachine.transition(TicketStatus.CLOSED, ClientClose())
