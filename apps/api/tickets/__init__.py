"""Ticket conversations and their status state machine."""

from .models import Actor, Ticket, TicketChange, TicketMessage, TicketPriority
from .repository import TicketRepository
from .service import TicketService, clean_content
from .state import (
    AdminStatusChange,
    ClientClose,
    Effect,
    MessagePosted,
    TicketStateMachine,
    TicketStatus,
    Transition,
    UserRole,
)

__all__ = [
    "Actor",
    "AdminStatusChange",
    "ClientClose",
    "Effect",
    "MessagePosted",
    "Ticket",
    "TicketChange",
    "TicketMessage",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "Transition",
    "UserRole",
]
