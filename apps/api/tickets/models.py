from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, Sequence

from apps.api.notifications.events import DomainEvent

from .state import TicketStatus, UserRole


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Actor(Protocol):
    """The user on whose behalf a service operation runs."""

    id: str
    role: UserRole
    company_id: str | None


@dataclass(slots=True)
class Ticket:
    """Support ticket together with the name of the owning company."""

    id: str
    ticket_number: int
    company_id: str
    company_name: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    created_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TicketMessage:
    """Conversation entry; ``sequence`` orders messages within a ticket."""

    id: str
    ticket_id: str
    sequence: int
    author_id: str
    author_role: UserRole
    content: str
    is_internal_note: bool
    is_system_message: bool
    created_at: datetime


@dataclass(slots=True)
class TicketChange:
    """Result of a ticket write: the ticket, the stored messages and events to dispatch."""

    ticket: Ticket
    messages: Sequence[TicketMessage] = field(default_factory=list)
    events: Sequence[DomainEvent] = field(default_factory=list)

    @property
    def system_messages(self) -> list[TicketMessage]:
        return [message for message in self.messages if message.is_system_message]
