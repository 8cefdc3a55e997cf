from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from apps.api.core.database import SessionFactory, transaction
from apps.api.core.errors import ConflictError, NotFoundError, ValidationError

from .models import RenewalType, ServiceLevel, to_money
from .renewal import next_renewal_after
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


class ServiceLevelService:
    """Onboarding and lookup of company service levels."""

    def __init__(self, session_factory: SessionFactory, *, repository: LedgerRepository | None = None) -> None:
        self._session_factory = session_factory
        self._repository = repository or LedgerRepository()

    async def get_for_company(self, company_id: str) -> ServiceLevel:
        async with self._session_factory() as session:
            level = await self._repository.get_service_level(session, company_id)
        if level is None:
            raise NotFoundError(f"No service level found for company {company_id}", company_id=company_id)
        return level

    async def create(
        self,
        *,
        company_id: str,
        name: str,
        time_volume_minutes: int,
        hourly_rate: Decimal | float,
        renewal_type: RenewalType,
        start_date: datetime,
    ) -> ServiceLevel:
        if time_volume_minutes <= 0:
            raise ValidationError("Time volume must be greater than zero", time_volume_minutes=time_volume_minutes)
        rate = to_money(hourly_rate)
        if rate <= 0:
            raise ValidationError("Hourly rate must be greater than zero", hourly_rate=float(hourly_rate))
        if not name.strip():
            raise ValidationError("Name is required")

        level = ServiceLevel(
            id=str(uuid.uuid4()),
            company_id=company_id,
            name=name.strip(),
            time_volume_minutes=time_volume_minutes,
            remaining_minutes=time_volume_minutes,
            hourly_rate=rate,
            renewal_type=renewal_type,
            start_date=start_date,
            last_renewed_at=start_date,
            next_renewal_at=next_renewal_after(start_date, renewal_type),
        )

        async with transaction(self._session_factory) as session:
            if await self._repository.get_company_name(session, company_id) is None:
                raise NotFoundError(f"Company {company_id} not found", company_id=company_id)
            if await self._repository.get_service_level(session, company_id) is not None:
                raise ConflictError(
                    f"Company {company_id} already has a service level",
                    company_id=company_id,
                )
            await self._repository.insert_service_level(session, level)

        logger.info("Created service level %s for company %s", level.id, company_id)
        return level
