from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apps.api.core.database import ensure_datetime
from packages.db.models import CompanyTable, TicketMessageTable, TicketTable

from .models import Ticket, TicketMessage, TicketPriority
from .state import TicketStatus, UserRole


class TicketRepository:
    """Persistence helper wrapping ``tickets`` and ``ticket_messages``.

    Like the ledger repository it works on the caller's session; the service
    decides where a transaction starts and ends.
    """

    async def get_ticket(self, session: AsyncSession, ticket_id: str, *, lock: bool = False) -> Ticket | None:
        statement = (
            select(TicketTable, CompanyTable.name)
            .join(CompanyTable, CompanyTable.id == TicketTable.company_id)
            .where(TicketTable.id == ticket_id)
        )
        if lock:
            statement = statement.with_for_update(of=TicketTable).execution_options(populate_existing=True)
        result = await session.execute(statement)
        row = result.first()
        if row is None:
            return None
        return self._table_to_ticket(row[0], row[1])

    async def list_tickets(
        self,
        session: AsyncSession,
        *,
        company_id: str | None = None,
        status: TicketStatus | None = None,
    ) -> list[Ticket]:
        statement = select(TicketTable, CompanyTable.name).join(
            CompanyTable, CompanyTable.id == TicketTable.company_id
        )
        if company_id is not None:
            statement = statement.where(TicketTable.company_id == company_id)
        if status is not None:
            statement = statement.where(TicketTable.status == status.value)
        result = await session.execute(statement.order_by(TicketTable.ticket_number.desc()))
        return [self._table_to_ticket(ticket, name) for ticket, name in result.all()]

    async def get_company_name(self, session: AsyncSession, company_id: str) -> str | None:
        company = await session.get(CompanyTable, company_id)
        return None if company is None else company.name

    async def next_ticket_number(self, session: AsyncSession) -> int:
        result = await session.execute(select(func.coalesce(func.max(TicketTable.ticket_number), 0)))
        return int(result.scalar_one()) + 1

    async def insert_ticket(self, session: AsyncSession, ticket: Ticket) -> None:
        session.add(
            TicketTable(
                id=ticket.id,
                ticket_number=ticket.ticket_number,
                company_id=ticket.company_id,
                title=ticket.title,
                description=ticket.description,
                status=ticket.status.value,
                priority=ticket.priority.value,
                created_by=ticket.created_by,
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
            )
        )
        await session.flush()

    async def update_ticket(
        self,
        session: AsyncSession,
        ticket_id: str,
        *,
        status: TicketStatus,
        priority: TicketPriority,
        updated_at: datetime,
    ) -> None:
        await session.execute(
            update(TicketTable)
            .where(TicketTable.id == ticket_id)
            .values(status=status.value, priority=priority.value, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )

    async def next_sequence(self, session: AsyncSession, ticket_id: str) -> int:
        result = await session.execute(
            select(func.coalesce(func.max(TicketMessageTable.sequence), 0)).where(
                TicketMessageTable.ticket_id == ticket_id
            )
        )
        return int(result.scalar_one()) + 1

    async def add_message(self, session: AsyncSession, message: TicketMessage) -> None:
        session.add(
            TicketMessageTable(
                id=message.id,
                ticket_id=message.ticket_id,
                sequence=message.sequence,
                author_id=message.author_id,
                author_role=message.author_role.value,
                content=message.content,
                is_internal_note=message.is_internal_note,
                is_system_message=message.is_system_message,
                created_at=message.created_at,
            )
        )
        # Flush per message so the insert order matches the sequence order.
        await session.flush()

    async def list_messages(
        self, session: AsyncSession, ticket_id: str, *, include_internal: bool
    ) -> list[TicketMessage]:
        statement = select(TicketMessageTable).where(TicketMessageTable.ticket_id == ticket_id)
        if not include_internal:
            statement = statement.where(TicketMessageTable.is_internal_note.is_(False))
        result = await session.execute(statement.order_by(TicketMessageTable.sequence.asc()))
        return [self._table_to_message(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_ticket(row: TicketTable, company_name: Any) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            company_id=row.company_id,
            company_name=str(company_name),
            title=row.title,
            description=row.description,
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            created_by=row.created_by,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_message(row: TicketMessageTable) -> TicketMessage:
        return TicketMessage(
            id=row.id,
            ticket_id=row.ticket_id,
            sequence=row.sequence,
            author_id=row.author_id,
            author_role=UserRole(row.author_role),
            content=row.content,
            is_internal_note=bool(row.is_internal_note),
            is_system_message=bool(row.is_system_message),
            created_at=ensure_datetime(row.created_at),
        )
