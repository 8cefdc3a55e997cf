from datetime import datetime, timezone

import pytest

from apps.api.core.errors import NotFoundError
from apps.api.ledger import RenewalService, RenewalType, ServiceLevel, add_months, renew

from conftest import fetch_service_level, seed_company, seed_service_level


def _level(renewal_type: RenewalType, next_renewal_at: datetime) -> ServiceLevel:
    return ServiceLevel(
        id="sl-1",
        company_id="company-1",
        name="Premium",
        time_volume_minutes=600,
        remaining_minutes=15,
        hourly_rate=110.0,
        renewal_type=renewal_type,
        start_date=datetime(2025, 1, 31, tzinfo=timezone.utc),
        last_renewed_at=datetime(2025, 12, 31, tzinfo=timezone.utc),
        next_renewal_at=next_renewal_at,
        low_volume_warned=True,
    )


def test_monthly_renewal_clamps_to_month_end():
    now = datetime(2026, 1, 31, 0, 5, tzinfo=timezone.utc)
    renewed = renew(_level(RenewalType.MONTHLY, datetime(2026, 1, 31, tzinfo=timezone.utc)), now)

    assert renewed.next_renewal_at == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert renewed.remaining_minutes == 600
    assert renewed.last_renewed_at == now
    assert renewed.low_volume_warned is False


def test_monthly_renewal_clamps_in_leap_year():
    renewed = renew(
        _level(RenewalType.MONTHLY, datetime(2028, 1, 31, tzinfo=timezone.utc)),
        datetime(2028, 1, 31, tzinfo=timezone.utc),
    )

    assert renewed.next_renewal_at == datetime(2028, 2, 29, tzinfo=timezone.utc)


def test_yearly_renewal_adds_one_year():
    renewed = renew(
        _level(RenewalType.YEARLY, datetime(2026, 3, 15, tzinfo=timezone.utc)),
        datetime(2026, 3, 16, tzinfo=timezone.utc),
    )

    assert renewed.next_renewal_at == datetime(2027, 3, 15, tzinfo=timezone.utc)


def test_add_months_crosses_year_boundary():
    assert add_months(datetime(2026, 12, 31, tzinfo=timezone.utc), 2) == datetime(
        2027, 2, 28, tzinfo=timezone.utc
    )


@pytest.mark.asyncio
async def test_renew_company_resets_balance(session_factory, clock):
    company_id = await seed_company(session_factory)
    await seed_service_level(session_factory, company_id, remaining=30, low_volume_warned=True)
    service = RenewalService(session_factory, clock=clock)

    renewed = await service.renew_company(company_id)

    stored = await fetch_service_level(session_factory, company_id)
    assert renewed.remaining_minutes == 480
    assert stored.remaining_minutes == 480
    assert stored.low_volume_warned is False
    assert stored.version == 2
    assert renewed.next_renewal_at == datetime(2026, 5, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_renew_company_without_service_level(session_factory, clock):
    company_id = await seed_company(session_factory)

    with pytest.raises(NotFoundError):
        await RenewalService(session_factory, clock=clock).renew_company(company_id)


@pytest.mark.asyncio
async def test_renew_due_only_touches_expired_levels(session_factory, clock):
    due_company = await seed_company(session_factory, "Due AG")
    later_company = await seed_company(session_factory, "Later AG")
    await seed_service_level(
        session_factory, due_company, remaining=0, next_renewal_at=datetime(2026, 3, 1, tzinfo=timezone.utc)
    )
    await seed_service_level(
        session_factory, later_company, remaining=10, next_renewal_at=datetime(2026, 4, 1, tzinfo=timezone.utc)
    )

    renewed = await RenewalService(session_factory, clock=clock).renew_due()

    assert [level.company_id for level in renewed] == [due_company]
    assert (await fetch_service_level(session_factory, due_company)).remaining_minutes == 480
    assert (await fetch_service_level(session_factory, later_company)).remaining_minutes == 10
