from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Sequence

from apps.api.notifications.events import DomainEvent


CENT = Decimal("0.01")


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Normalize an amount to a two place ``Decimal``."""

    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class RenewalType(str, Enum):
    """Renewal cadence of a service level."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(slots=True)
class ServiceLevel:
    """Per-company contract holding the prepaid minute balance."""

    id: str
    company_id: str
    name: str
    time_volume_minutes: int
    remaining_minutes: int
    hourly_rate: Decimal
    renewal_type: RenewalType
    start_date: datetime
    last_renewed_at: datetime
    next_renewal_at: datetime
    low_volume_warned: bool = False
    version: int = 1

    @property
    def used_minutes(self) -> int:
        return self.time_volume_minutes - self.remaining_minutes

    @property
    def usage_percentage(self) -> int:
        if self.time_volume_minutes <= 0:
            return 0
        # Half-up, so 12.5% reads as 13%.
        return math.floor(self.used_minutes * 100 / self.time_volume_minutes + 0.5)


@dataclass(slots=True)
class WorkEntry:
    """Logged work on a ticket."""

    id: str
    ticket_id: str
    minutes: int
    rounded_minutes: int
    description: str
    hourly_rate: Decimal | None
    total_amount: Decimal | None
    is_from_included_volume: bool
    is_billed: bool
    billed_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TicketScope:
    """Ticket identity together with the company it belongs to."""

    ticket_id: str
    ticket_number: int
    company_id: str
    company_name: str


@dataclass(slots=True)
class LedgerResult:
    """Outcome of a ledger mutation, with the events to dispatch after commit."""

    entry: WorkEntry
    remaining_minutes: int | None
    events: Sequence[DomainEvent] = field(default_factory=list)
