"""Domain events emitted by the ledger and ticket services after commit."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union


@dataclass(frozen=True, slots=True)
class VolumeLow:
    """A service level balance crossed the low-volume warning threshold."""

    company_id: str
    company_name: str
    service_level_id: str
    service_level_name: str
    remaining_minutes: int
    total_minutes: int
    usage_percentage: int
    next_renewal_at: datetime
    hourly_rate: Decimal


@dataclass(frozen=True, slots=True)
class StatusChanged:
    """Status or priority of a ticket changed and a SYSTEM message was stored."""

    ticket_id: str
    ticket_number: int
    ticket_title: str
    company_id: str
    company_name: str
    actor_id: str
    actor_role: str
    field: str
    old_value: str
    new_value: str
    implicit: bool
    occurred_at: datetime


@dataclass(frozen=True, slots=True)
class MessagePosted:
    """A public message was added to a ticket conversation."""

    ticket_id: str
    ticket_number: int
    ticket_title: str
    company_id: str
    company_name: str
    message_id: str
    author_id: str
    author_role: str
    content: str
    occurred_at: datetime


@dataclass(frozen=True, slots=True)
class EntryBilled:
    """A work entry was marked as billed."""

    entry_id: str
    ticket_id: str
    company_id: str
    total_amount: Decimal | None
    billed_at: datetime


DomainEvent = Union[VolumeLow, StatusChanged, MessagePosted, EntryBilled]
