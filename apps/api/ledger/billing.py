from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from apps.api.core.database import SessionFactory
from apps.api.core.errors import NotFoundError, ValidationError

from .models import WorkEntry
from .repository import LedgerRepository


@dataclass(slots=True)
class BillableLine:
    """A billable work entry with the ticket it was logged on."""

    entry: WorkEntry
    ticket_number: int
    ticket_title: str


@dataclass(slots=True)
class BillingSummary:
    """Unbilled hourly work of a company for one calendar month."""

    company_id: str
    period_start: datetime
    period_end: datetime
    lines: Sequence[BillableLine] = field(default_factory=list)

    @property
    def total_minutes(self) -> int:
        return sum(line.entry.rounded_minutes for line in self.lines)

    @property
    def total_amount(self) -> Decimal:
        amounts = (line.entry.total_amount for line in self.lines if line.entry.total_amount is not None)
        return sum(amounts, Decimal("0.00"))


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", month=month)
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + (month == 12), month % 12 + 1, 1, tzinfo=timezone.utc)
    return start, end


class BillingService:
    """Collect billable entries for invoicing; marking them billed is the accountant's job."""

    def __init__(self, session_factory: SessionFactory, *, repository: LedgerRepository | None = None) -> None:
        self._session_factory = session_factory
        self._repository = repository or LedgerRepository()

    async def summary(self, company_id: str, *, year: int, month: int) -> BillingSummary:
        start, end = month_bounds(year, month)
        async with self._session_factory() as session:
            if await self._repository.get_company_name(session, company_id) is None:
                raise NotFoundError(f"Company {company_id} not found", company_id=company_id)
            rows = await self._repository.list_billable_entries(session, company_id, start=start, end=end)
        return BillingSummary(
            company_id=company_id,
            period_start=start,
            period_end=end,
            lines=[BillableLine(entry=entry, ticket_number=number, ticket_title=title) for entry, number, title in rows],
        )
