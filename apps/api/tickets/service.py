from __future__ import annotations

import html
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.core.database import SessionFactory, transaction
from apps.api.core.errors import ForbiddenError, NotFoundError, ValidationError
from apps.api.core.logging import get_tracer
from apps.api.notifications.events import DomainEvent
from apps.api.notifications.events import MessagePosted as MessagePostedEvent
from apps.api.notifications.events import StatusChanged

from .models import Actor, Ticket, TicketChange, TicketMessage, TicketPriority
from .repository import TicketRepository
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

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MAX_MESSAGE_LENGTH = 2000
MAX_TITLE_LENGTH = 200

PRIORITY_LABELS = {
    TicketPriority.LOW: "Low",
    TicketPriority.MEDIUM: "Medium",
    TicketPriority.HIGH: "High",
    TicketPriority.CRITICAL: "Critical",
}


def clean_content(
    content: str, *, field: str = "content", max_length: int = MAX_MESSAGE_LENGTH, escape: bool = True
) -> str:
    """Strip and HTML-escape user supplied text, enforcing a length window."""

    cleaned = (content or "").strip()
    if not cleaned:
        raise ValidationError(f"{field.capitalize()} must not be empty", field=field)
    if len(cleaned) > max_length:
        raise ValidationError(
            f"{field.capitalize()} must be at most {max_length} characters",
            field=field,
            max_length=max_length,
        )
    return html.escape(cleaned) if escape else cleaned


class TicketService:
    """Apply ticket conversation writes and the status transitions they trigger.

    Each write runs in a single transaction with the ticket row locked. When a
    transition produces an audit line, the SYSTEM message is stored first with
    the lower sequence number, followed by the message that caused it.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        repository: TicketRepository | None = None,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or TicketRepository()
        self._machine = state_machine
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_ticket(
        self,
        actor: Actor,
        *,
        title: str,
        description: str,
        priority: TicketPriority = TicketPriority.MEDIUM,
        company_id: str | None = None,
    ) -> TicketChange:
        if actor.role is UserRole.CLIENT:
            if actor.company_id is None:
                raise ForbiddenError("Client users must belong to a company")
            if company_id is not None and company_id != actor.company_id:
                raise ForbiddenError("Clients can only open tickets for their own company")
            company_id = actor.company_id
        if company_id is None:
            raise ValidationError("company_id is required", field="company_id")

        title = clean_content(title, field="title", max_length=MAX_TITLE_LENGTH, escape=False)
        description = clean_content(description, field="description")
        now = self._clock()

        with tracer.start_as_current_span("tickets.create"):
            async with transaction(self._session_factory) as session:
                company_name = await self._repository.get_company_name(session, company_id)
                if company_name is None:
                    raise NotFoundError(f"Company {company_id} not found", company_id=company_id)
                ticket = Ticket(
                    id=str(uuid.uuid4()),
                    ticket_number=await self._repository.next_ticket_number(session),
                    company_id=company_id,
                    company_name=company_name,
                    title=title,
                    description=description,
                    status=self._machine.initial_state(),
                    priority=priority,
                    created_by=actor.id,
                    created_at=now,
                    updated_at=now,
                )
                await self._repository.insert_ticket(session, ticket)
                first = self._message(ticket, 1, actor.id, actor.role, description, now)
                await self._repository.add_message(session, first)

        logger.info("Ticket #%d created for company %s", ticket.ticket_number, company_id)
        return TicketChange(ticket=ticket, messages=[first])

    async def list_tickets(self, actor: Actor, *, status: TicketStatus | None = None) -> list[Ticket]:
        company_id = None if actor.role is UserRole.ADMIN else actor.company_id
        if actor.role is not UserRole.ADMIN and company_id is None:
            return []
        async with self._session_factory() as session:
            return await self._repository.list_tickets(session, company_id=company_id, status=status)

    async def get_ticket(self, actor: Actor, ticket_id: str) -> Ticket:
        async with self._session_factory() as session:
            return await self._load(session, actor, ticket_id)

    async def list_messages(self, actor: Actor, ticket_id: str) -> list[TicketMessage]:
        async with self._session_factory() as session:
            await self._load(session, actor, ticket_id)
            return await self._repository.list_messages(
                session, ticket_id, include_internal=actor.role is UserRole.ADMIN
            )

    async def post_message(
        self, actor: Actor, ticket_id: str, *, content: str, is_internal_note: bool = False
    ) -> TicketChange:
        content = clean_content(content)
        # Internal notes are an admin-only concept.
        internal = is_internal_note and actor.role is UserRole.ADMIN
        now = self._clock()

        with tracer.start_as_current_span("tickets.post_message"):
            async with transaction(self._session_factory) as session:
                ticket = await self._load(session, actor, ticket_id, lock=True)
                transition = self._machine.transition(
                    ticket.status, MessagePosted(role=actor.role, is_internal_note=internal)
                )
                sequence = await self._repository.next_sequence(session, ticket_id)
                messages: list[TicketMessage] = []

                if transition.changed:
                    ticket = await self._apply(session, ticket, transition.status, ticket.priority, now)
                    system = self._system_message(ticket, sequence, actor, transition.audit_text or "", now)
                    await self._repository.add_message(session, system)
                    messages.append(system)
                    sequence += 1

                message = self._message(ticket, sequence, actor.id, actor.role, content, now, internal=internal)
                await self._repository.add_message(session, message)
                messages.append(message)
                if not transition.changed:
                    ticket = await self._touch(session, ticket, now)

        events = self._events(ticket, actor, transition, message=message, occurred_at=now, implicit=True)
        if transition.changed:
            logger.info(
                "Ticket #%d moved %s -> %s after a %s message",
                ticket.ticket_number,
                transition.previous.value,
                transition.status.value,
                actor.role.value,
            )
        return TicketChange(ticket=ticket, messages=messages, events=events)

    async def change_ticket(
        self,
        actor: Actor,
        ticket_id: str,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
    ) -> TicketChange:
        """Explicit admin change of status and/or priority, one SYSTEM message per field."""

        if actor.role is not UserRole.ADMIN:
            raise ForbiddenError("Only admins can change status or priority")
        if status is None and priority is None:
            raise ValidationError("Provide a status or a priority to change")
        now = self._clock()

        with tracer.start_as_current_span("tickets.change"):
            async with transaction(self._session_factory) as session:
                ticket = await self._load(session, actor, ticket_id, lock=True)
                original = ticket
                sequence = await self._repository.next_sequence(session, ticket_id)
                messages: list[TicketMessage] = []
                events: list[DomainEvent] = []

                transition = None
                if status is not None:
                    transition = self._machine.transition(ticket.status, AdminStatusChange(status))
                new_status = ticket.status if transition is None else transition.status
                new_priority = ticket.priority if priority is None else priority
                ticket = await self._apply(session, ticket, new_status, new_priority, now)

                if transition is not None:
                    system = self._system_message(ticket, sequence, actor, transition.audit_text or "", now)
                    await self._repository.add_message(session, system)
                    messages.append(system)
                    sequence += 1
                    events.extend(self._events(ticket, actor, transition, occurred_at=now, implicit=False))
                if priority is not None:
                    text = f"Priority changed to: **{PRIORITY_LABELS[priority]}**"
                    system = self._system_message(ticket, sequence, actor, text, now)
                    await self._repository.add_message(session, system)
                    messages.append(system)
                    events.append(
                        self._status_event(
                            ticket,
                            actor,
                            field="priority",
                            old_value=original.priority.value,
                            new_value=priority.value,
                            implicit=False,
                            occurred_at=now,
                        )
                    )

        logger.info("Admin %s changed ticket #%d", actor.id, ticket.ticket_number)
        return TicketChange(ticket=ticket, messages=messages, events=events)

    async def close_ticket(self, actor: Actor, ticket_id: str) -> TicketChange:
        if actor.role is not UserRole.CLIENT:
            raise ForbiddenError("Only the customer can close a ticket this way; admins change the status")
        now = self._clock()

        with tracer.start_as_current_span("tickets.close"):
            async with transaction(self._session_factory) as session:
                ticket = await self._load(session, actor, ticket_id, lock=True)
                transition = self._machine.transition(ticket.status, ClientClose())
                sequence = await self._repository.next_sequence(session, ticket_id)
                ticket = await self._apply(session, ticket, transition.status, ticket.priority, now)
                system = self._system_message(ticket, sequence, actor, transition.audit_text or "", now)
                await self._repository.add_message(session, system)

        logger.info("Ticket #%d closed by customer %s", ticket.ticket_number, actor.id)
        events = self._events(ticket, actor, transition, occurred_at=now, implicit=False)
        return TicketChange(ticket=ticket, messages=[system], events=events)

    async def _load(self, session: AsyncSession, actor: Actor, ticket_id: str, *, lock: bool = False) -> Ticket:
        ticket = await self._repository.get_ticket(session, ticket_id, lock=lock)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        if actor.role is not UserRole.ADMIN and actor.company_id != ticket.company_id:
            raise ForbiddenError("You do not have access to this ticket", ticket_id=ticket_id)
        return ticket

    async def _apply(
        self,
        session: AsyncSession,
        ticket: Ticket,
        status: TicketStatus,
        priority: TicketPriority,
        now: datetime,
    ) -> Ticket:
        await self._repository.update_ticket(session, ticket.id, status=status, priority=priority, updated_at=now)
        return replace(ticket, status=status, priority=priority, updated_at=now)

    async def _touch(self, session: AsyncSession, ticket: Ticket, now: datetime) -> Ticket:
        return await self._apply(session, ticket, ticket.status, ticket.priority, now)

    def _system_message(
        self, ticket: Ticket, sequence: int, actor: Actor, text: str, now: datetime
    ) -> TicketMessage:
        # A microsecond earlier keeps timestamp order equal to sequence order.
        return self._message(
            ticket, sequence, actor.id, actor.role, text, now - timedelta(microseconds=1), system=True
        )

    @staticmethod
    def _message(
        ticket: Ticket,
        sequence: int,
        author_id: str,
        author_role: UserRole,
        content: str,
        created_at: datetime,
        *,
        internal: bool = False,
        system: bool = False,
    ) -> TicketMessage:
        return TicketMessage(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            sequence=sequence,
            author_id=author_id,
            author_role=author_role,
            content=content,
            is_internal_note=internal,
            is_system_message=system,
            created_at=created_at,
        )

    def _events(
        self,
        ticket: Ticket,
        actor: Actor,
        transition: Transition,
        *,
        occurred_at: datetime,
        implicit: bool,
        message: TicketMessage | None = None,
    ) -> list[DomainEvent]:
        events: list[DomainEvent] = []
        if Effect.STATUS_CHANGED in transition.effects:
            events.append(
                self._status_event(
                    ticket,
                    actor,
                    field="status",
                    old_value=transition.previous.value,
                    new_value=transition.status.value,
                    implicit=implicit,
                    occurred_at=occurred_at,
                )
            )
        if Effect.MESSAGE_POSTED in transition.effects and message is not None:
            events.append(
                MessagePostedEvent(
                    ticket_id=ticket.id,
                    ticket_number=ticket.ticket_number,
                    ticket_title=ticket.title,
                    company_id=ticket.company_id,
                    company_name=ticket.company_name,
                    message_id=message.id,
                    author_id=actor.id,
                    author_role=actor.role.value,
                    content=message.content,
                    occurred_at=occurred_at,
                )
            )
        return events

    @staticmethod
    def _status_event(
        ticket: Ticket,
        actor: Actor,
        *,
        field: str,
        old_value: str,
        new_value: str,
        implicit: bool,
        occurred_at: datetime,
    ) -> StatusChanged:
        return StatusChanged(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            ticket_title=ticket.title,
            company_id=ticket.company_id,
            company_name=ticket.company_name,
            actor_id=actor.id,
            actor_role=actor.role.value,
            field=field,
            old_value=old_value,
            new_value=new_value,
            implicit=implicit,
            occurred_at=occurred_at,
        )
