from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence

from apps.api.core.logging import get_tracer

from .email import EmailSender
from .events import DomainEvent, EntryBilled, MessagePosted, StatusChanged, VolumeLow
from .store import NotificationStore, NotificationType, Recipient, RecipientDirectory

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

SLA_WARNING_TEMPLATE = "sla-warning"
TICKET_UPDATED_TEMPLATE = "ticket-updated"
PREVIEW_LENGTH = 50

_ADMIN = "admin"
_CLIENT = "client"

_VALUE_LABELS = {
    "open": "Open",
    "in_progress": "In progress",
    "waiting_for_customer": "Waiting for customer",
    "closed": "Closed",
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "critical": "Critical",
}


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH] + "..."


class EventDispatcher:
    """Fan domain events out to in-app notifications and template emails.

    Runs after the originating transaction has committed. Delivery is best
    effort: every failure is logged and swallowed so that it can never undo
    or fail the write that produced the event.
    """

    def __init__(
        self,
        *,
        store: NotificationStore,
        email_sender: EmailSender,
        recipients: RecipientDirectory,
        dashboard_url: str,
        support_email: str,
    ) -> None:
        self._store = store
        self._email = email_sender
        self._recipients = recipients
        self._dashboard_url = dashboard_url.rstrip("/")
        self._support_email = support_email

    async def dispatch(self, events: Sequence[DomainEvent]) -> None:
        for event in events:
            try:
                with tracer.start_as_current_span("notifications.dispatch"):
                    await self._handle(event)
            except Exception:
                logger.exception("Dispatching %s failed", type(event).__name__)

    async def _handle(self, event: DomainEvent) -> None:
        if isinstance(event, VolumeLow):
            await self._on_volume_low(event)
        elif isinstance(event, MessagePosted):
            await self._on_message_posted(event)
        elif isinstance(event, StatusChanged):
            await self._on_status_changed(event)
        elif isinstance(event, EntryBilled):
            logger.info("Work entry %s billed (%s)", event.entry_id, event.total_amount)
        else:
            logger.warning("No handler for event %r", event)

    async def _on_volume_low(self, event: VolumeLow) -> None:
        users = await self._recipients.find(company_id=event.company_id, service_level_warnings=True)
        for user in users:
            await self._deliver(
                user,
                self._email.send,
                SLA_WARNING_TEMPLATE,
                user.email,
                {
                    "firstName": user.first_name,
                    "companyName": event.company_name,
                    "serviceLevelName": event.service_level_name,
                    "remainingMinutes": event.remaining_minutes,
                    "totalMinutes": event.total_minutes,
                    "usagePercentage": event.usage_percentage,
                    "nextRenewal": event.next_renewal_at.date().isoformat(),
                    "hourlyRate": f"{event.hourly_rate:.2f}",
                    "dashboardUrl": f"{self._dashboard_url}/dashboard",
                },
            )
        logger.info("Low-volume warning sent to %d users of company %s", len(users), event.company_id)

    async def _on_message_posted(self, event: MessagePosted) -> None:
        users = await self._other_side(event.author_role, event.company_id, event.author_id)
        for user in users:
            await self._deliver(
                user,
                self._store.create,
                user.id,
                "New message",
                f"New message in ticket #{event.ticket_number}: {_preview(event.content)}",
                event.ticket_id,
                NotificationType.MESSAGE,
            )
            if user.email_notifications:
                await self._deliver(
                    user,
                    self._email.send,
                    TICKET_UPDATED_TEMPLATE,
                    user.email,
                    self._ticket_variables(
                        user,
                        ticket_id=event.ticket_id,
                        ticket_number=event.ticket_number,
                        ticket_title=event.ticket_title,
                        company_name=event.company_name,
                        new_status="New message",
                        changed_by=event.author_role,
                        updated_at=event.occurred_at.isoformat(),
                        message=event.content,
                    ),
                )

    async def _on_status_changed(self, event: StatusChanged) -> None:
        label = _VALUE_LABELS.get(event.new_value, event.new_value)
        users = await self._other_side(event.actor_role, event.company_id, event.actor_id)
        for user in users:
            await self._deliver(
                user,
                self._store.create,
                user.id,
                "Ticket updated",
                f"Ticket #{event.ticket_number}: {event.field} changed to {label}",
                event.ticket_id,
                NotificationType.STATUS,
            )
            # Implicit changes travel with a message that already triggers an email.
            if user.email_notifications and not event.implicit:
                await self._deliver(
                    user,
                    self._email.send,
                    TICKET_UPDATED_TEMPLATE,
                    user.email,
                    self._ticket_variables(
                        user,
                        ticket_id=event.ticket_id,
                        ticket_number=event.ticket_number,
                        ticket_title=event.ticket_title,
                        company_name=event.company_name,
                        new_status=label,
                        changed_by=event.actor_role,
                        updated_at=event.occurred_at.isoformat(),
                        message=f"{event.field.capitalize()} changed to {label}",
                    ),
                )

    async def _other_side(self, author_role: str, company_id: str, author_id: str) -> Sequence[Recipient]:
        if author_role == _ADMIN:
            return await self._recipients.find(role=_CLIENT, company_id=company_id, exclude_id=author_id)
        return await self._recipients.find(role=_ADMIN, exclude_id=author_id)

    def _ticket_variables(
        self,
        user: Recipient,
        *,
        ticket_id: str,
        ticket_number: int,
        ticket_title: str,
        company_name: str,
        new_status: str,
        changed_by: str,
        updated_at: str,
        message: str,
    ) -> dict[str, Any]:
        return {
            "firstName": user.first_name,
            "companyName": company_name,
            "ticketNumber": f"#{ticket_number}",
            "ticketTitle": ticket_title,
            "newStatus": new_status,
            "changedBy": "Support team" if changed_by == _ADMIN else "Customer",
            "updatedAt": updated_at,
            "message": message,
            "ticketUrl": f"{self._dashboard_url}/dashboard/tickets/{ticket_id}",
            "supportEmail": self._support_email,
        }

    @staticmethod
    async def _deliver(user: Recipient, action: Callable[..., Awaitable[None]], *args: Any) -> None:
        try:
            await action(*args)
        except Exception:
            logger.exception("Notification delivery to user %s failed", user.id)
