from __future__ import annotations

import logging
import math
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.core.database import SessionFactory, transaction
from apps.api.core.errors import (
    AlreadyBilledError,
    InsufficientVolumeError,
    NotFoundError,
    ValidationError,
)
from apps.api.core.logging import get_tracer
from apps.api.notifications.events import DomainEvent, EntryBilled

from .models import LedgerResult, ServiceLevel, TicketScope, WorkEntry, to_money
from .repository import LedgerRepository
from .threshold import ThresholdNotifier

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

ROUNDING_QUANTUM_MINUTES = 15


def round_minutes(raw: int, quantum: int = ROUNDING_QUANTUM_MINUTES) -> int:
    """Round ``raw`` minutes up to the next multiple of ``quantum``.

    >>> [round_minutes(value) for value in (0, 1, 15, 16, 45, 46)]
    [0, 15, 15, 30, 45, 60]
    """

    if raw < 0:
        raise ValidationError("Minutes must not be negative", minutes=raw)
    return math.ceil(raw / quantum) * quantum


def billable_amount(rounded_minutes: int, hourly_rate: Decimal) -> Decimal:
    """Price rounded minutes at an hourly rate, half up to the cent.

    >>> billable_amount(45, Decimal("95.00"))
    Decimal('71.25')
    """

    return to_money(Decimal(rounded_minutes) * hourly_rate / 60)


def balance_delta(
    *, was_included: bool, old_rounded: int, now_included: bool, new_rounded: int
) -> int:
    """Minutes to take from the balance (negative values are refunds) for an edit."""

    if was_included and now_included:
        return new_rounded - old_rounded
    if was_included:
        return -old_rounded
    if now_included:
        return new_rounded
    return 0


def _validate_minutes(minutes: int) -> None:
    if minutes <= 0:
        raise ValidationError("Minutes must be greater than zero", minutes=minutes)


def _validate_description(description: str) -> str:
    cleaned = (description or "").strip()
    if not cleaned:
        raise ValidationError("Description is required")
    return cleaned


def _require_rate(hourly_rate: Decimal | float | None) -> Decimal:
    rate = None if hourly_rate is None else to_money(hourly_rate)
    if rate is None or rate <= 0:
        raise ValidationError(
            "Billable work requires an hourly rate greater than zero",
            hourly_rate=None if hourly_rate is None else float(hourly_rate),
        )
    return rate


class VolumeAccountant:
    """Keep service level balances and included-volume work entries consistent.

    Every mutation runs in one transaction that locks the company's service level
    row and writes it back with a version check, so two concurrent requests
    cannot both pass the balance check against the same stale value.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        repository: LedgerRepository | None = None,
        threshold: ThresholdNotifier | None = None,
        quantum_minutes: int = ROUNDING_QUANTUM_MINUTES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or LedgerRepository()
        self._threshold = threshold or ThresholdNotifier()
        self._quantum = quantum_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def round_minutes(self, raw: int) -> int:
        return round_minutes(raw, self._quantum)

    async def list_entries(self, ticket_id: str) -> list[WorkEntry]:
        async with self._session_factory() as session:
            if await self._repository.get_ticket_scope(session, ticket_id) is None:
                raise NotFoundError(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
            return await self._repository.list_entries(session, ticket_id)

    async def create_entry(
        self,
        ticket_id: str,
        *,
        minutes: int,
        description: str,
        hourly_rate: Decimal | float | None = None,
        from_included: bool,
    ) -> LedgerResult:
        _validate_minutes(minutes)
        description = _validate_description(description)
        rounded = self.round_minutes(minutes)
        rate = None if from_included else _require_rate(hourly_rate)
        now = self._clock()

        with tracer.start_as_current_span("ledger.create_entry"):
            async with transaction(self._session_factory) as session:
                scope = await self._get_scope(session, ticket_id)
                level = await self._repository.lock_service_level(session, scope.company_id)
                events: list[DomainEvent] = []

                if from_included:
                    level = self._require_level(level, scope)
                    if level.remaining_minutes < rounded:
                        raise InsufficientVolumeError(available=level.remaining_minutes, required=rounded)
                    level, events = await self._set_balance(
                        session, scope, level, level.remaining_minutes - rounded
                    )

                entry = WorkEntry(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket_id,
                    minutes=minutes,
                    rounded_minutes=rounded,
                    description=description,
                    hourly_rate=rate,
                    total_amount=None if rate is None else billable_amount(rounded, rate),
                    is_from_included_volume=from_included,
                    is_billed=False,
                    billed_at=None,
                    created_at=now,
                    updated_at=now,
                )
                await self._repository.add_entry(session, entry)

        logger.info(
            "Logged %d min (rounded %d) on ticket %s from %s",
            minutes,
            rounded,
            ticket_id,
            "included volume" if from_included else "billing",
        )
        return LedgerResult(entry=entry, remaining_minutes=_remaining(level), events=events)

    async def update_entry(
        self,
        ticket_id: str,
        entry_id: str,
        *,
        minutes: int,
        description: str,
        hourly_rate: Decimal | float | None = None,
        from_included: bool,
    ) -> LedgerResult:
        _validate_minutes(minutes)
        description = _validate_description(description)
        rounded = self.round_minutes(minutes)
        rate = None if from_included else _require_rate(hourly_rate)
        now = self._clock()

        with tracer.start_as_current_span("ledger.update_entry"):
            async with transaction(self._session_factory) as session:
                scope = await self._get_scope(session, ticket_id)
                current = await self._get_unbilled_entry(session, ticket_id, entry_id)
                level = await self._repository.lock_service_level(session, scope.company_id)
                events: list[DomainEvent] = []

                delta = balance_delta(
                    was_included=current.is_from_included_volume,
                    old_rounded=current.rounded_minutes,
                    now_included=from_included,
                    new_rounded=rounded,
                )
                if current.is_from_included_volume or from_included:
                    level = self._require_level(level, scope)
                    if delta > 0 and level.remaining_minutes < delta:
                        raise InsufficientVolumeError(available=level.remaining_minutes, required=delta)
                    if delta != 0:
                        level, events = await self._set_balance(
                            session, scope, level, level.remaining_minutes - delta
                        )

                entry = replace(
                    current,
                    minutes=minutes,
                    rounded_minutes=rounded,
                    description=description,
                    hourly_rate=rate,
                    total_amount=None if rate is None else billable_amount(rounded, rate),
                    is_from_included_volume=from_included,
                    updated_at=now,
                )
                await self._repository.update_entry(session, entry)

        logger.info("Updated work entry %s on ticket %s (balance delta %+d)", entry_id, ticket_id, -delta)
        return LedgerResult(entry=entry, remaining_minutes=_remaining(level), events=events)

    async def delete_entry(self, ticket_id: str, entry_id: str) -> LedgerResult:
        with tracer.start_as_current_span("ledger.delete_entry"):
            async with transaction(self._session_factory) as session:
                scope = await self._get_scope(session, ticket_id)
                entry = await self._get_unbilled_entry(session, ticket_id, entry_id)
                level = await self._repository.lock_service_level(session, scope.company_id)

                if entry.is_from_included_volume:
                    if level is None:
                        logger.warning(
                            "Deleting included entry %s without a service level for company %s",
                            entry_id,
                            scope.company_id,
                        )
                    else:
                        level, _ = await self._set_balance(
                            session, scope, level, level.remaining_minutes + entry.rounded_minutes
                        )
                await self._repository.delete_entry(session, entry_id)

        logger.info("Deleted work entry %s on ticket %s", entry_id, ticket_id)
        return LedgerResult(entry=entry, remaining_minutes=_remaining(level))

    async def mark_billed(self, entry_ids: Sequence[str]) -> tuple[list[str], list[EntryBilled]]:
        """Mark unbilled entries as billed; already billed or unknown ids are skipped."""

        unique_ids = list(dict.fromkeys(entry_ids))
        if not unique_ids:
            return [], []
        billed_at = self._clock()

        with tracer.start_as_current_span("ledger.mark_billed"):
            async with transaction(self._session_factory) as session:
                pending = await self._repository.lock_unbilled_entries(session, unique_ids)
                # Bump each affected service level so concurrent edits of these
                # entries serialize behind this transaction.
                for company_id in sorted({company_id for _, company_id in pending}):
                    level = await self._repository.lock_service_level(session, company_id)
                    if level is not None:
                        await self._repository.save_service_level(session, level)
                billed_ids = [entry.id for entry, _ in pending]
                await self._repository.mark_billed(session, billed_ids, billed_at)

        events = [
            EntryBilled(
                entry_id=entry.id,
                ticket_id=entry.ticket_id,
                company_id=company_id,
                total_amount=entry.total_amount,
                billed_at=billed_at,
            )
            for entry, company_id in pending
        ]
        logger.info("Marked %d of %d work entries as billed", len(billed_ids), len(unique_ids))
        return billed_ids, events

    async def _get_scope(self, session: AsyncSession, ticket_id: str) -> TicketScope:
        scope = await self._repository.get_ticket_scope(session, ticket_id)
        if scope is None:
            raise NotFoundError(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        return scope

    async def _get_unbilled_entry(self, session: AsyncSession, ticket_id: str, entry_id: str) -> WorkEntry:
        entry = await self._repository.lock_entry(session, entry_id)
        if entry is None or entry.ticket_id != ticket_id:
            raise NotFoundError(f"Work entry {entry_id} not found", entry_id=entry_id)
        if entry.is_billed:
            raise AlreadyBilledError(f"Work entry {entry_id} is already billed", entry_id=entry_id)
        return entry

    @staticmethod
    def _require_level(level: ServiceLevel | None, scope: TicketScope) -> ServiceLevel:
        if level is None:
            raise NotFoundError(
                f"No service level found for company {scope.company_id}",
                company_id=scope.company_id,
            )
        return level

    async def _set_balance(
        self, session: AsyncSession, scope: TicketScope, level: ServiceLevel, remaining: int
    ) -> tuple[ServiceLevel, list[DomainEvent]]:
        if remaining > level.time_volume_minutes:
            logger.warning(
                "Refund would raise service level %s to %d of %d minutes; capping",
                level.id,
                remaining,
                level.time_volume_minutes,
            )
            remaining = level.time_volume_minutes

        previous = level.remaining_minutes
        updated = replace(level, remaining_minutes=remaining)
        decision = self._threshold.evaluate(updated, previous=previous, company_name=scope.company_name)
        saved = await self._repository.save_service_level(
            session, replace(updated, low_volume_warned=decision.warned)
        )
        if decision.event is not None:
            logger.info(
                "Service level %s crossed the low-volume threshold (%d minutes left)",
                level.id,
                remaining,
            )
            return saved, [decision.event]
        return saved, []


def _remaining(level: ServiceLevel | None) -> int | None:
    return None if level is None else level.remaining_minutes
