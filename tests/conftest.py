from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

from apps.api.tickets import TicketStatus, UserRole
from packages.db.models import CompanyTable, ServiceLevelTable, TicketTable, UserTable

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


@dataclass
class Actor:
    id: str
    role: UserRole
    company_id: str | None = None


class Clock:
    """Settable clock handed to services instead of ``datetime.now``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def clock() -> Clock:
    return Clock()


async def seed_company(session_factory, name: str = "Acme GmbH") -> str:
    company_id = str(uuid.uuid4())
    async with session_factory() as session:
        session.add(CompanyTable(id=company_id, name=name, created_at=NOW))
        await session.commit()
    return company_id


async def seed_service_level(
    session_factory,
    company_id: str,
    *,
    total: int = 480,
    remaining: int | None = None,
    renewal_type: str = "monthly",
    next_renewal_at: datetime = datetime(2026, 4, 1, tzinfo=timezone.utc),
    low_volume_warned: bool = False,
) -> str:
    level_id = str(uuid.uuid4())
    async with session_factory() as session:
        session.add(
            ServiceLevelTable(
                id=level_id,
                company_id=company_id,
                name="Business",
                time_volume_minutes=total,
                remaining_minutes=total if remaining is None else remaining,
                hourly_rate=95.0,
                renewal_type=renewal_type,
                start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
                last_renewed_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
                next_renewal_at=next_renewal_at,
                low_volume_warned=low_volume_warned,
                version=1,
                created_at=NOW,
            )
        )
        await session.commit()
    return level_id


async def seed_ticket(
    session_factory,
    company_id: str,
    *,
    number: int = 1,
    status: TicketStatus = TicketStatus.OPEN,
    title: str = "Printer offline",
) -> str:
    ticket_id = str(uuid.uuid4())
    async with session_factory() as session:
        session.add(
            TicketTable(
                id=ticket_id,
                ticket_number=number,
                company_id=company_id,
                title=title,
                description="The office printer does not respond.",
                status=status.value,
                priority="medium",
                created_by="user-client",
                created_at=NOW,
                updated_at=NOW,
            )
        )
        await session.commit()
    return ticket_id


async def seed_user(
    session_factory,
    *,
    email: str,
    role: UserRole,
    company_id: str | None = None,
    first_name: str = "Alex",
    email_notifications: bool = True,
    service_level_warnings: bool = True,
) -> str:
    user_id = str(uuid.uuid4())
    async with session_factory() as session:
        session.add(
            UserTable(
                id=user_id,
                email=email,
                first_name=first_name,
                last_name="Doe",
                role=role.value,
                company_id=company_id,
                email_notifications=email_notifications,
                service_level_warnings=service_level_warnings,
                created_at=NOW,
            )
        )
        await session.commit()
    return user_id


async def fetch_service_level(session_factory, company_id: str) -> ServiceLevelTable:
    async with session_factory() as session:
        result = await session.execute(
            select(ServiceLevelTable).where(ServiceLevelTable.company_id == company_id)
        )
        return result.scalars().one()
