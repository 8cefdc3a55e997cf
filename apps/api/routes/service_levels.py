from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field

from apps.api.core.errors import ForbiddenError, ServiceError, to_http_exception
from apps.api.dependencies.auth import AdminUser, CurrentUser
from apps.api.dependencies.services import RenewalServiceDep, ServiceLevelServiceDep
from apps.api.ledger import RenewalType, ServiceLevel
from apps.api.tickets import UserRole

from .work_entries import Money

router = APIRouter(prefix="/service-levels", tags=["service-levels"])


class ServiceLevelCreateRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    time_volume_minutes: int = Field(..., gt=0)
    hourly_rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    renewal_type: RenewalType = RenewalType.MONTHLY
    start_date: datetime


class ServiceLevelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    name: str
    time_volume_minutes: int
    remaining_minutes: int
    used_minutes: int
    usage_percentage: int
    hourly_rate: Money
    renewal_type: RenewalType
    start_date: datetime
    last_renewed_at: datetime
    next_renewal_at: datetime


def _to_response(level: ServiceLevel) -> ServiceLevelResponse:
    return ServiceLevelResponse.model_validate(level)


@router.post("", response_model=ServiceLevelResponse, status_code=status.HTTP_201_CREATED)
async def create_service_level(
    payload: ServiceLevelCreateRequest,
    service: ServiceLevelServiceDep,
    user: AdminUser,
) -> ServiceLevelResponse:
    try:
        level = await service.create(
            company_id=payload.company_id,
            name=payload.name,
            time_volume_minutes=payload.time_volume_minutes,
            hourly_rate=payload.hourly_rate,
            renewal_type=payload.renewal_type,
            start_date=payload.start_date,
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)


@router.post("/renewals/run", response_model=list[ServiceLevelResponse])
async def run_due_renewals(service: RenewalServiceDep, user: AdminUser) -> list[ServiceLevelResponse]:
    try:
        renewed = await service.renew_due()
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return [_to_response(level) for level in renewed]


@router.get("/{company_id}", response_model=ServiceLevelResponse)
async def get_service_level(
    company_id: str,
    service: ServiceLevelServiceDep,
    user: CurrentUser,
) -> ServiceLevelResponse:
    try:
        if user.role is not UserRole.ADMIN and user.company_id != company_id:
            raise ForbiddenError("You do not have access to this service level", company_id=company_id)
        level = await service.get_for_company(company_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)


@router.post("/{company_id}/renew", response_model=ServiceLevelResponse)
async def renew_service_level(
    company_id: str,
    service: RenewalServiceDep,
    user: AdminUser,
) -> ServiceLevelResponse:
    try:
        level = await service.renew_company(company_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)
