from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Query
from pydantic import BaseModel, Field

from apps.api.core.errors import ServiceError, to_http_exception
from apps.api.dependencies.auth import AdminUser
from apps.api.dependencies.services import BillingServiceDep, DispatcherDep, VolumeAccountantDep

from .work_entries import Money, WorkEntryResponse

router = APIRouter(prefix="/billing", tags=["billing"])


class MarkBilledRequest(BaseModel):
    entry_ids: list[str] = Field(..., min_length=1)


class MarkBilledResponse(BaseModel):
    billed_ids: list[str]
    skipped_ids: list[str]


class BillableLineResponse(BaseModel):
    entry: WorkEntryResponse
    ticket_number: int
    ticket_title: str


class BillingSummaryResponse(BaseModel):
    company_id: str
    period_start: datetime
    period_end: datetime
    total_minutes: int
    total_amount: Money
    lines: list[BillableLineResponse]


@router.post("/mark-billed", response_model=MarkBilledResponse)
async def mark_billed(
    payload: MarkBilledRequest,
    accountant: VolumeAccountantDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: AdminUser,
) -> MarkBilledResponse:
    try:
        billed_ids, events = await accountant.mark_billed(payload.entry_ids)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, events)
    billed = set(billed_ids)
    skipped = [entry_id for entry_id in dict.fromkeys(payload.entry_ids) if entry_id not in billed]
    return MarkBilledResponse(billed_ids=billed_ids, skipped_ids=skipped)


@router.get("/summary", response_model=BillingSummaryResponse)
async def billing_summary(
    service: BillingServiceDep,
    user: AdminUser,
    company_id: str = Query(...),
    year: int = Query(..., ge=2000, le=9999),
    month: int = Query(..., ge=1, le=12),
) -> BillingSummaryResponse:
    try:
        summary = await service.summary(company_id, year=year, month=month)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return BillingSummaryResponse(
        company_id=summary.company_id,
        period_start=summary.period_start,
        period_end=summary.period_end,
        total_minutes=summary.total_minutes,
        total_amount=summary.total_amount,
        lines=[
            BillableLineResponse(
                entry=WorkEntryResponse.model_validate(line.entry),
                ticket_number=line.ticket_number,
                ticket_title=line.ticket_title,
            )
            for line in summary.lines
        ],
    )
