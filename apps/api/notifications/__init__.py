"""Post-commit notification fan-out for ledger and ticket events."""

from .dispatcher import EventDispatcher
from .email import EmailSender, LoggingEmailSender
from .events import DomainEvent, EntryBilled, MessagePosted, StatusChanged, VolumeLow
from .store import NotificationStore, NotificationType, Recipient, RecipientDirectory, SQLNotificationStore

__all__ = [
    "DomainEvent",
    "EmailSender",
    "EntryBilled",
    "EventDispatcher",
    "LoggingEmailSender",
    "MessagePosted",
    "NotificationStore",
    "NotificationType",
    "Recipient",
    "RecipientDirectory",
    "SQLNotificationStore",
    "StatusChanged",
    "VolumeLow",
]
