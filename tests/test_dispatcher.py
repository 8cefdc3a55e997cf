from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlmodel import select

from apps.api.notifications import (
    EntryBilled,
    EventDispatcher,
    MessagePosted,
    NotificationType,
    RecipientDirectory,
    SQLNotificationStore,
    StatusChanged,
    VolumeLow,
)
from apps.api.tickets import UserRole
from packages.db.models import NotificationTable

from conftest import NOW, seed_company, seed_user


def _dispatcher(session_factory, *, store=None, email=None) -> EventDispatcher:
    return EventDispatcher(
        store=store or SQLNotificationStore(session_factory),
        email_sender=email or AsyncMock(),
        recipients=RecipientDirectory(session_factory),
        dashboard_url="https://portal.example.com/",
        support_email="help@example.com",
    )


def _message_event(company_id: str, *, author_id: str, role: UserRole) -> MessagePosted:
    return MessagePosted(
        ticket_id="ticket-1",
        ticket_number=7,
        ticket_title="Printer offline",
        company_id=company_id,
        company_name="Acme GmbH",
        message_id="message-1",
        author_id=author_id,
        author_role=role.value,
        content="x" * 60,
        occurred_at=NOW,
    )


@pytest.mark.asyncio
async def test_volume_low_emails_opted_in_company_users(session_factory):
    company_id = await seed_company(session_factory)
    other_company = await seed_company(session_factory, "Other")
    await seed_user(session_factory, email="a@acme.test", role=UserRole.CLIENT, company_id=company_id, first_name="Ana")
    await seed_user(
        session_factory,
        email="b@acme.test",
        role=UserRole.CLIENT,
        company_id=company_id,
        service_level_warnings=False,
    )
    await seed_user(session_factory, email="c@other.test", role=UserRole.CLIENT, company_id=other_company)
    email = AsyncMock()

    await _dispatcher(session_factory, email=email).dispatch(
        [
            VolumeLow(
                company_id=company_id,
                company_name="Acme GmbH",
                service_level_id="sl-1",
                service_level_name="Business",
                remaining_minutes=45,
                total_minutes=480,
                usage_percentage=91,
                next_renewal_at=datetime(2026, 4, 1, tzinfo=timezone.utc),
                hourly_rate=95.0,
            )
        ]
    )

    email.send.assert_awaited_once()
    template, recipient, variables = email.send.await_args.args
    assert template == "sla-warning"
    assert recipient == "a@acme.test"
    assert variables["firstName"] == "Ana"
    assert variables["remainingMinutes"] == 45
    assert variables["nextRenewal"] == "2026-04-01"
    assert variables["hourlyRate"] == "95.00"
    assert variables["dashboardUrl"] == "https://portal.example.com/dashboard"


@pytest.mark.asyncio
async def test_admin_message_notifies_company_clients(session_factory):
    company_id = await seed_company(session_factory)
    admin_id = await seed_user(session_factory, email="admin@desk.test", role=UserRole.ADMIN)
    client_id = await seed_user(session_factory, email="client@acme.test", role=UserRole.CLIENT, company_id=company_id)
    await seed_user(
        session_factory,
        email="quiet@acme.test",
        role=UserRole.CLIENT,
        company_id=company_id,
        email_notifications=False,
    )
    email = AsyncMock()

    await _dispatcher(session_factory, email=email).dispatch(
        [_message_event(company_id, author_id=admin_id, role=UserRole.ADMIN)]
    )

    async with session_factory() as session:
        rows = (await session.execute(select(NotificationTable))).scalars().all()
    assert len(rows) == 2
    assert {row.type for row in rows} == {NotificationType.MESSAGE.value}
    assert client_id in {row.user_id for row in rows}
    assert rows[0].message.endswith("...")

    email.send.assert_awaited_once()
    template, recipient, variables = email.send.await_args.args
    assert template == "ticket-updated"
    assert recipient == "client@acme.test"
    assert variables["changedBy"] == "Support team"
    assert variables["ticketUrl"] == "https://portal.example.com/dashboard/tickets/ticket-1"


@pytest.mark.asyncio
async def test_client_message_notifies_admins_except_author(session_factory):
    company_id = await seed_company(session_factory)
    await seed_user(session_factory, email="admin@desk.test", role=UserRole.ADMIN)
    client_id = await seed_user(session_factory, email="client@acme.test", role=UserRole.CLIENT, company_id=company_id)
    store = AsyncMock()

    await _dispatcher(session_factory, store=store).dispatch(
        [_message_event(company_id, author_id=client_id, role=UserRole.CLIENT)]
    )

    store.create.assert_awaited_once()
    assert store.create.await_args.args[4] is NotificationType.MESSAGE


@pytest.mark.asyncio
async def test_implicit_status_change_only_notifies_in_app(session_factory):
    company_id = await seed_company(session_factory)
    await seed_user(session_factory, email="client@acme.test", role=UserRole.CLIENT, company_id=company_id)
    store = AsyncMock()
    email = AsyncMock()

    event = StatusChanged(
        ticket_id="ticket-1",
        ticket_number=7,
        ticket_title="Printer offline",
        company_id=company_id,
        company_name="Acme GmbH",
        actor_id="admin-1",
        actor_role=UserRole.ADMIN.value,
        field="status",
        old_value="in_progress",
        new_value="waiting_for_customer",
        implicit=True,
        occurred_at=NOW,
    )
    await _dispatcher(session_factory, store=store, email=email).dispatch([event])

    store.create.assert_awaited_once()
    assert "Waiting for customer" in store.create.await_args.args[2]
    email.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_failures_are_swallowed(session_factory):
    company_id = await seed_company(session_factory)
    await seed_user(session_factory, email="admin@desk.test", role=UserRole.ADMIN)
    store = AsyncMock()
    store.create.side_effect = RuntimeError("store down")
    email = AsyncMock()
    email.send.side_effect = RuntimeError("smtp down")

    await _dispatcher(session_factory, store=store, email=email).dispatch(
        [
            _message_event(company_id, author_id="client-1", role=UserRole.CLIENT),
            EntryBilled(
                entry_id="entry-1",
                ticket_id="ticket-1",
                company_id=company_id,
                total_amount=25.0,
                billed_at=NOW,
            ),
        ]
    )

    store.create.assert_awaited_once()
    email.send.assert_awaited_once()
