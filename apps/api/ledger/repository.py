from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apps.api.core.database import ensure_datetime, optional_datetime
from apps.api.core.errors import PersistenceError
from packages.db.models import CompanyTable, ServiceLevelTable, TicketTable, WorkEntryTable

from .models import RenewalType, ServiceLevel, TicketScope, WorkEntry, to_money


class LedgerRepository:
    """Data access for service levels and work entries.

    Methods take the caller's session so that one service operation reads and
    writes inside a single transaction. Service level rows are read with
    ``SELECT ... FOR UPDATE`` and written back with a compare-and-swap on
    ``version``.
    """

    async def get_ticket_scope(self, session: AsyncSession, ticket_id: str) -> TicketScope | None:
        result = await session.execute(
            select(TicketTable.id, TicketTable.ticket_number, TicketTable.company_id, CompanyTable.name)
            .join(CompanyTable, CompanyTable.id == TicketTable.company_id)
            .where(TicketTable.id == ticket_id)
        )
        row = result.first()
        if row is None:
            return None
        return TicketScope(ticket_id=row[0], ticket_number=row[1], company_id=row[2], company_name=row[3])

    async def get_company_name(self, session: AsyncSession, company_id: str) -> str | None:
        company = await session.get(CompanyTable, company_id)
        return None if company is None else company.name

    async def get_service_level(self, session: AsyncSession, company_id: str) -> ServiceLevel | None:
        result = await session.execute(
            select(ServiceLevelTable).where(ServiceLevelTable.company_id == company_id)
        )
        row = result.scalars().first()
        return None if row is None else self._table_to_service_level(row)

    async def lock_service_level(self, session: AsyncSession, company_id: str) -> ServiceLevel | None:
        result = await session.execute(
            select(ServiceLevelTable)
            .where(ServiceLevelTable.company_id == company_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return None if row is None else self._table_to_service_level(row)

    async def lock_due_service_levels(self, session: AsyncSession, now: datetime) -> list[ServiceLevel]:
        result = await session.execute(
            select(ServiceLevelTable)
            .where(ServiceLevelTable.next_renewal_at <= now)
            .order_by(ServiceLevelTable.next_renewal_at.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return [self._table_to_service_level(row) for row in result.scalars().all()]

    async def insert_service_level(self, session: AsyncSession, level: ServiceLevel) -> None:
        session.add(
            ServiceLevelTable(
                id=level.id,
                company_id=level.company_id,
                name=level.name,
                time_volume_minutes=level.time_volume_minutes,
                remaining_minutes=level.remaining_minutes,
                hourly_rate=level.hourly_rate,
                renewal_type=level.renewal_type.value,
                start_date=level.start_date,
                last_renewed_at=level.last_renewed_at,
                next_renewal_at=level.next_renewal_at,
                low_volume_warned=level.low_volume_warned,
                version=level.version,
            )
        )
        await session.flush()

    async def save_service_level(self, session: AsyncSession, level: ServiceLevel) -> ServiceLevel:
        """Write ``level`` if its row still carries ``level.version``."""

        result = await session.execute(
            update(ServiceLevelTable)
            .where(ServiceLevelTable.id == level.id, ServiceLevelTable.version == level.version)
            .values(
                remaining_minutes=level.remaining_minutes,
                low_volume_warned=level.low_volume_warned,
                last_renewed_at=level.last_renewed_at,
                next_renewal_at=level.next_renewal_at,
                version=level.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PersistenceError(
                f"Service level {level.id} was modified concurrently",
                service_level_id=level.id,
            )
        return replace(level, version=level.version + 1)

    async def lock_entry(self, session: AsyncSession, entry_id: str) -> WorkEntry | None:
        result = await session.execute(
            select(WorkEntryTable)
            .where(WorkEntryTable.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return None if row is None else self._table_to_entry(row)

    async def list_entries(self, session: AsyncSession, ticket_id: str) -> list[WorkEntry]:
        result = await session.execute(
            select(WorkEntryTable)
            .where(WorkEntryTable.ticket_id == ticket_id)
            .order_by(WorkEntryTable.created_at.desc())
        )
        return [self._table_to_entry(row) for row in result.scalars().all()]

    async def add_entry(self, session: AsyncSession, entry: WorkEntry) -> None:
        session.add(
            WorkEntryTable(
                id=entry.id,
                ticket_id=entry.ticket_id,
                minutes=entry.minutes,
                rounded_minutes=entry.rounded_minutes,
                description=entry.description,
                hourly_rate=entry.hourly_rate,
                total_amount=entry.total_amount,
                is_from_included_volume=entry.is_from_included_volume,
                is_billed=entry.is_billed,
                billed_at=entry.billed_at,
                created_at=entry.created_at,
                updated_at=entry.updated_at,
            )
        )
        await session.flush()

    async def update_entry(self, session: AsyncSession, entry: WorkEntry) -> None:
        await session.execute(
            update(WorkEntryTable)
            .where(WorkEntryTable.id == entry.id, WorkEntryTable.is_billed.is_(False))
            .values(
                minutes=entry.minutes,
                rounded_minutes=entry.rounded_minutes,
                description=entry.description,
                hourly_rate=entry.hourly_rate,
                total_amount=entry.total_amount,
                is_from_included_volume=entry.is_from_included_volume,
                updated_at=entry.updated_at,
            )
            .execution_options(synchronize_session=False)
        )

    async def delete_entry(self, session: AsyncSession, entry_id: str) -> None:
        row = await session.get(WorkEntryTable, entry_id)
        if row is not None:
            await session.delete(row)
            await session.flush()

    async def lock_unbilled_entries(
        self, session: AsyncSession, entry_ids: Sequence[str]
    ) -> list[tuple[WorkEntry, str]]:
        """Return unbilled entries among ``entry_ids`` with their company id."""

        result = await session.execute(
            select(WorkEntryTable, TicketTable.company_id)
            .join(TicketTable, TicketTable.id == WorkEntryTable.ticket_id)
            .where(WorkEntryTable.id.in_(list(entry_ids)), WorkEntryTable.is_billed.is_(False))
            .order_by(WorkEntryTable.created_at.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return [(self._table_to_entry(row), company_id) for row, company_id in result.all()]

    async def mark_billed(self, session: AsyncSession, entry_ids: Sequence[str], billed_at: datetime) -> int:
        if not entry_ids:
            return 0
        result = await session.execute(
            update(WorkEntryTable)
            .where(WorkEntryTable.id.in_(list(entry_ids)), WorkEntryTable.is_billed.is_(False))
            .values(is_billed=True, billed_at=billed_at, updated_at=billed_at)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def list_billable_entries(
        self, session: AsyncSession, company_id: str, *, start: datetime, end: datetime
    ) -> list[tuple[WorkEntry, int, str]]:
        """Unbilled, non-included entries of a company created in ``[start, end)``."""

        result = await session.execute(
            select(WorkEntryTable, TicketTable.ticket_number, TicketTable.title)
            .join(TicketTable, TicketTable.id == WorkEntryTable.ticket_id)
            .where(
                TicketTable.company_id == company_id,
                WorkEntryTable.is_from_included_volume.is_(False),
                WorkEntryTable.is_billed.is_(False),
                WorkEntryTable.created_at >= start,
                WorkEntryTable.created_at < end,
            )
            .order_by(WorkEntryTable.created_at.desc())
        )
        return [(self._table_to_entry(row), number, title) for row, number, title in result.all()]

    @staticmethod
    def _table_to_service_level(row: ServiceLevelTable) -> ServiceLevel:
        return ServiceLevel(
            id=row.id,
            company_id=row.company_id,
            name=row.name,
            time_volume_minutes=row.time_volume_minutes,
            remaining_minutes=row.remaining_minutes,
            hourly_rate=to_money(row.hourly_rate),
            renewal_type=RenewalType(row.renewal_type),
            start_date=ensure_datetime(row.start_date),
            last_renewed_at=ensure_datetime(row.last_renewed_at),
            next_renewal_at=ensure_datetime(row.next_renewal_at),
            low_volume_warned=bool(row.low_volume_warned),
            version=row.version,
        )

    @staticmethod
    def _table_to_entry(row: WorkEntryTable) -> WorkEntry:
        return WorkEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            minutes=row.minutes,
            rounded_minutes=row.rounded_minutes,
            description=row.description,
            hourly_rate=None if row.hourly_rate is None else to_money(row.hourly_rate),
            total_amount=None if row.total_amount is None else to_money(row.total_amount),
            is_from_included_volume=bool(row.is_from_included_volume),
            is_billed=bool(row.is_billed),
            billed_at=optional_datetime(row.billed_at),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )
