from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from apps.api.core.errors import InsufficientVolumeError, TicketClosedError
from apps.api.dependencies import auth as auth_deps
from apps.api.dependencies import services as service_deps
from apps.api.dependencies.auth import User
from apps.api.ledger import LedgerResult, WorkEntry
from apps.api.main import create_app
from apps.api.tickets import Ticket, TicketChange, TicketMessage, TicketPriority, TicketStatus, UserRole


NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)
ADMIN = User(id="user-admin", username="admin", role=UserRole.ADMIN)
CLIENT = User(id="user-client", username="client", role=UserRole.CLIENT, company_id="company-acme")


def _make_ticket(*, status: TicketStatus = TicketStatus.OPEN) -> Ticket:
    return Ticket(
        id="ticket-1",
        ticket_number=12,
        company_id="company-acme",
        company_name="Acme GmbH",
        title="Printer offline",
        description="The office printer does not respond.",
        status=status,
        priority=TicketPriority.MEDIUM,
        created_by="user-client",
        created_at=NOW,
        updated_at=NOW,
    )


def _make_message(sequence: int, content: str, *, system: bool = False) -> TicketMessage:
    return TicketMessage(
        id=f"message-{sequence}",
        ticket_id="ticket-1",
        sequence=sequence,
        author_id="user-client",
        author_role=UserRole.CLIENT,
        content=content,
        is_internal_note=False,
        is_system_message=system,
        created_at=NOW,
    )


def _make_entry() -> WorkEntry:
    return WorkEntry(
        id="entry-1",
        ticket_id="ticket-1",
        minutes=47,
        rounded_minutes=60,
        description="Reset mailbox",
        hourly_rate=None,
        total_amount=None,
        is_from_included_volume=True,
        is_billed=False,
        billed_at=None,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def api():
    app = create_app()
    tickets = AsyncMock()
    accountant = AsyncMock()
    dispatcher = AsyncMock()
    current = {"user": CLIENT}

    app.dependency_overrides[service_deps.get_ticket_service] = lambda: tickets
    app.dependency_overrides[service_deps.get_volume_accountant] = lambda: accountant
    app.dependency_overrides[service_deps.get_event_dispatcher] = lambda: dispatcher
    app.dependency_overrides[auth_deps.get_current_user] = lambda: current["user"]

    client = TestClient(app)
    try:
        yield client, tickets, accountant, dispatcher, current
    finally:
        app.dependency_overrides.clear()


def test_ping_is_public(api):
    client, *_ = api

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_post_message_returns_messages_in_order_and_dispatches(api):
    client, tickets, _, dispatcher, _ = api
    change = TicketChange(
        ticket=_make_ticket(status=TicketStatus.IN_PROGRESS),
        messages=[
            _make_message(3, "Status automatically changed to: **In progress**", system=True),
            _make_message(4, "Still broken"),
        ],
        events=["event"],
    )
    tickets.post_message = AsyncMock(return_value=change)

    response = client.post("/tickets/ticket-1/messages", json={"content": "Still broken"})

    assert response.status_code == 201
    body = response.json()
    assert body["ticket"]["status"] == "in_progress"
    assert [message["sequence"] for message in body["messages"]] == [3, 4]
    tickets.post_message.assert_awaited_with(CLIENT, "ticket-1", content="Still broken", is_internal_note=False)
    dispatcher.dispatch.assert_awaited_with(["event"])


def test_closed_ticket_maps_to_forbidden(api):
    client, tickets, *_ = api
    tickets.post_message = AsyncMock(side_effect=TicketClosedError("Ticket is closed", status="closed"))

    response = client.post("/tickets/ticket-1/messages", json={"content": "Hello?"})

    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "Forbidden"


def test_patch_requires_admin(api):
    client, tickets, *_ = api

    response = client.patch("/tickets/ticket-1", json={"status": "closed"})

    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "Forbidden"
    tickets.change_ticket.assert_not_called()


def test_patch_without_fields_is_rejected(api):
    client, tickets, _, _, current = api
    current["user"] = ADMIN

    response = client.patch("/tickets/ticket-1", json={})

    assert response.status_code == 400
    assert response.json()["detail"] == {"kind": "Validation", "message": "No fields provided for update"}
    tickets.change_ticket.assert_not_called()


def test_create_work_entry_reports_remaining_minutes(api):
    client, _, accountant, dispatcher, current = api
    current["user"] = ADMIN
    accountant.create_entry = AsyncMock(return_value=LedgerResult(entry=_make_entry(), remaining_minutes=420))

    response = client.post(
        "/tickets/ticket-1/work-entries",
        json={"minutes": 47, "description": "Reset mailbox", "is_from_included_volume": True},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["entry"]["rounded_minutes"] == 60
    assert body["remaining_minutes"] == 420
    accountant.create_entry.assert_awaited_with(
        "ticket-1", minutes=47, description="Reset mailbox", hourly_rate=None, from_included=True
    )
    dispatcher.dispatch.assert_awaited_with([])


def test_insufficient_volume_body_carries_context(api):
    client, _, accountant, _, current = api
    current["user"] = ADMIN
    accountant.create_entry = AsyncMock(side_effect=InsufficientVolumeError(available=10, required=30))

    response = client.post(
        "/tickets/ticket-1/work-entries",
        json={"minutes": 20, "description": "Patch", "is_from_included_volume": True},
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["kind"] == "InsufficientVolume"
    assert detail["available"] == 10
    assert detail["required"] == 30


def test_invalid_minutes_use_validation_kind(api):
    client, _, accountant, _, current = api
    current["user"] = ADMIN

    response = client.post(
        "/tickets/ticket-1/work-entries",
        json={"minutes": 0, "description": "Patch", "is_from_included_volume": True},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "Validation"
    accountant.create_entry.assert_not_called()


def test_client_listing_entries_checks_ticket_access(api):
    client, tickets, accountant, _, _ = api
    tickets.get_ticket = AsyncMock(return_value=_make_ticket())
    accountant.list_entries = AsyncMock(return_value=[_make_entry()])

    response = client.get("/tickets/ticket-1/work-entries")

    assert response.status_code == 200
    assert response.json()[0]["id"] == "entry-1"
    tickets.get_ticket.assert_awaited_with(CLIENT, "ticket-1")


def test_client_cannot_edit_work_entries(api):
    client, _, accountant, _, _ = api

    response = client.put(
        "/tickets/ticket-1/work-entries/entry-1",
        json={"minutes": 30, "description": "Reset mailbox", "is_from_included_volume": True},
    )

    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "Forbidden"
    accountant.update_entry.assert_not_called()


def test_missing_service_is_reported_as_unavailable():
    app = create_app()
    app.dependency_overrides[auth_deps.get_current_user] = lambda: ADMIN
    client = TestClient(app)

    response = client.get("/tickets")

    assert response.status_code == 503
    assert response.json()["detail"]["kind"] == "Unavailable"
