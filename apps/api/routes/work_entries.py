from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, status
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from apps.api.core.errors import ServiceError, to_http_exception
from apps.api.dependencies.auth import AdminUser, CurrentUser
from apps.api.dependencies.services import DispatcherDep, TicketServiceDep, VolumeAccountantDep
from apps.api.ledger import LedgerResult, WorkEntry
from apps.api.tickets import UserRole

router = APIRouter(prefix="/tickets/{ticket_id}/work-entries", tags=["work-entries"])

# Amounts are exact decimals internally and plain JSON numbers on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WorkEntryRequest(BaseModel):
    minutes: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    hourly_rate: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    is_from_included_volume: bool = False


class WorkEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    minutes: int
    rounded_minutes: int
    description: str
    hourly_rate: Money | None
    total_amount: Money | None
    is_from_included_volume: bool
    is_billed: bool
    billed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class LedgerResponse(BaseModel):
    entry: WorkEntryResponse
    remaining_minutes: int | None = None


def _to_response(entry: WorkEntry) -> WorkEntryResponse:
    return WorkEntryResponse.model_validate(entry)


def _to_ledger_response(result: LedgerResult) -> LedgerResponse:
    return LedgerResponse(entry=_to_response(result.entry), remaining_minutes=result.remaining_minutes)


@router.get("", response_model=list[WorkEntryResponse])
async def list_work_entries(
    ticket_id: str,
    accountant: VolumeAccountantDep,
    tickets: TicketServiceDep,
    user: CurrentUser,
) -> list[WorkEntryResponse]:
    try:
        if user.role is not UserRole.ADMIN:
            # Raises when the ticket belongs to another company.
            await tickets.get_ticket(user, ticket_id)
        entries = await accountant.list_entries(ticket_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return [_to_response(entry) for entry in entries]


@router.post("", response_model=LedgerResponse, status_code=status.HTTP_201_CREATED)
async def create_work_entry(
    ticket_id: str,
    payload: WorkEntryRequest,
    accountant: VolumeAccountantDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: AdminUser,
) -> LedgerResponse:
    try:
        result = await accountant.create_entry(
            ticket_id,
            minutes=payload.minutes,
            description=payload.description,
            hourly_rate=payload.hourly_rate,
            from_included=payload.is_from_included_volume,
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, result.events)
    return _to_ledger_response(result)


@router.put("/{entry_id}", response_model=LedgerResponse)
async def update_work_entry(
    ticket_id: str,
    entry_id: str,
    payload: WorkEntryRequest,
    accountant: VolumeAccountantDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: AdminUser,
) -> LedgerResponse:
    try:
        result = await accountant.update_entry(
            ticket_id,
            entry_id,
            minutes=payload.minutes,
            description=payload.description,
            hourly_rate=payload.hourly_rate,
            from_included=payload.is_from_included_volume,
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, result.events)
    return _to_ledger_response(result)


@router.delete("/{entry_id}", response_model=LedgerResponse)
async def delete_work_entry(
    ticket_id: str,
    entry_id: str,
    accountant: VolumeAccountantDep,
    user: AdminUser,
) -> LedgerResponse:
    try:
        result = await accountant.delete_entry(ticket_id, entry_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_ledger_response(result)
