from __future__ import annotations

import calendar
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from apps.api.core.database import SessionFactory, transaction
from apps.api.core.errors import NotFoundError

from .models import RenewalType, ServiceLevel
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by whole months, clamping the day to the target month's end."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_renewal_after(value: datetime, renewal_type: RenewalType) -> datetime:
    if renewal_type is RenewalType.YEARLY:
        return add_months(value, 12)
    return add_months(value, 1)


def renew(service_level: ServiceLevel, now: datetime) -> ServiceLevel:
    """Reset the balance at a renewal boundary.

    The next renewal date advances by one period from its previous value, not
    from ``now``, so late renewals do not shift the billing cycle.
    """

    return replace(
        service_level,
        remaining_minutes=service_level.time_volume_minutes,
        last_renewed_at=now,
        next_renewal_at=next_renewal_after(service_level.next_renewal_at, service_level.renewal_type),
        low_volume_warned=False,
    )


class RenewalService:
    """Apply :func:`renew` to stored service levels.

    The scheduler deciding *when* to run is an external caller; it invokes
    :meth:`renew_due` periodically, admins use :meth:`renew_company`.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        repository: LedgerRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or LedgerRepository()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def renew_company(self, company_id: str) -> ServiceLevel:
        now = self._clock()
        async with transaction(self._session_factory) as session:
            level = await self._repository.lock_service_level(session, company_id)
            if level is None:
                raise NotFoundError(f"No service level found for company {company_id}", company_id=company_id)
            renewed = await self._repository.save_service_level(session, renew(level, now))
        logger.info(
            "Renewed service level %s for company %s; next renewal %s",
            renewed.id,
            company_id,
            renewed.next_renewal_at.isoformat(),
        )
        return renewed

    async def renew_due(self) -> Sequence[ServiceLevel]:
        now = self._clock()
        renewed: list[ServiceLevel] = []
        async with transaction(self._session_factory) as session:
            for level in await self._repository.lock_due_service_levels(session, now):
                renewed.append(await self._repository.save_service_level(session, renew(level, now)))
        logger.info("Renewed %d due service level(s)", len(renewed))
        return renewed
