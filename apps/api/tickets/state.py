from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Union

from apps.api.core.errors import ConflictError, TicketClosedError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_FOR_CUSTOMER = "waiting_for_customer"
    CLOSED = "closed"


class UserRole(str, Enum):
    """Roles of portal users."""

    ADMIN = "admin"
    CLIENT = "client"


STATUS_LABELS: Mapping[TicketStatus, str] = {
    TicketStatus.OPEN: "Open",
    TicketStatus.IN_PROGRESS: "In progress",
    TicketStatus.WAITING_FOR_CUSTOMER: "Waiting for customer",
    TicketStatus.CLOSED: "Closed",
}


class Effect(str, Enum):
    """Events a transition asks the caller to emit once it has committed."""

    STATUS_CHANGED = "status_changed"
    MESSAGE_POSTED = "message_posted"


@dataclass(frozen=True, slots=True)
class MessagePosted:
    """Someone posts a message to the ticket conversation."""

    role: UserRole
    is_internal_note: bool = False


@dataclass(frozen=True, slots=True)
class AdminStatusChange:
    """An admin sets the status explicitly."""

    status: TicketStatus


@dataclass(frozen=True, slots=True)
class ClientClose:
    """The customer closes their own ticket."""


TicketEvent = Union[MessagePosted, AdminStatusChange, ClientClose]


@dataclass(frozen=True, slots=True)
class Transition:
    """Outcome of applying an event to a status.

    ``audit_text`` is the content of the SYSTEM message that must be stored
    before anything else the event produces.
    """

    status: TicketStatus
    previous: TicketStatus
    audit_text: str | None = None
    effects: tuple[Effect, ...] = ()

    @property
    def changed(self) -> bool:
        return self.audit_text is not None


class TicketStateMachine:
    """Pure status transitions driven by the ticket conversation."""

    _IMPLICIT: Mapping[tuple[TicketStatus, UserRole], TicketStatus] = {
        (TicketStatus.WAITING_FOR_CUSTOMER, UserRole.CLIENT): TicketStatus.IN_PROGRESS,
        (TicketStatus.IN_PROGRESS, UserRole.ADMIN): TicketStatus.WAITING_FOR_CUSTOMER,
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def implicit_target(cls, current: TicketStatus, role: UserRole) -> TicketStatus | None:
        return cls._IMPLICIT.get((current, role))

    @classmethod
    def transition(cls, current: TicketStatus, event: TicketEvent) -> Transition:
        if isinstance(event, MessagePosted):
            return cls._on_message(current, event)
        if isinstance(event, AdminStatusChange):
            return Transition(
                status=event.status,
                previous=current,
                audit_text=f"Status changed to: **{STATUS_LABELS[event.status]}**",
                effects=(Effect.STATUS_CHANGED,),
            )
        if isinstance(event, ClientClose):
            if current is TicketStatus.CLOSED:
                raise ConflictError("Ticket is already closed", status=current.value)
            return Transition(
                status=TicketStatus.CLOSED,
                previous=current,
                audit_text="Ticket was closed by the customer.",
                effects=(Effect.STATUS_CHANGED,),
            )
        raise TypeError(f"Unsupported ticket event: {event!r}")

    @classmethod
    def _on_message(cls, current: TicketStatus, event: MessagePosted) -> Transition:
        if current is TicketStatus.CLOSED and event.role is not UserRole.ADMIN:
            raise TicketClosedError("Ticket is closed", status=current.value)
        if event.is_internal_note:
            return Transition(status=current, previous=current)

        target = cls.implicit_target(current, event.role)
        if target is None:
            return Transition(status=current, previous=current, effects=(Effect.MESSAGE_POSTED,))
        return Transition(
            status=target,
            previous=current,
            audit_text=f"Status automatically changed to: **{STATUS_LABELS[target]}**",
            effects=(Effect.STATUS_CHANGED, Effect.MESSAGE_POSTED),
        )
