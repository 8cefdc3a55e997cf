"""Database models and utilities."""

from .models import (
    CompanyTable,
    NotificationTable,
    ServiceLevelTable,
    TicketMessageTable,
    TicketTable,
    UserTable,
    WorkEntryTable,
)

__all__ = [
    "CompanyTable",
    "NotificationTable",
    "ServiceLevelTable",
    "TicketMessageTable",
    "TicketTable",
    "UserTable",
    "WorkEntryTable",
]
