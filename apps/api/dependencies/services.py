from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, Request

from apps.api.core.errors import UnavailableError, to_http_exception
from apps.api.ledger import BillingService, RenewalService, ServiceLevelService, VolumeAccountant
from apps.api.notifications import EventDispatcher
from apps.api.tickets import TicketService


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise to_http_exception(UnavailableError(f"{label} is not available"))
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket service")


async def get_volume_accountant(request: Request) -> VolumeAccountant:
    return _from_state(request, "volume_accountant", "Volume accountant")


async def get_billing_service(request: Request) -> BillingService:
    return _from_state(request, "billing_service", "Billing service")


async def get_service_level_service(request: Request) -> ServiceLevelService:
    return _from_state(request, "service_level_service", "Service level service")


async def get_renewal_service(request: Request) -> RenewalService:
    return _from_state(request, "renewal_service", "Renewal service")


async def get_event_dispatcher(request: Request) -> EventDispatcher:
    return _from_state(request, "event_dispatcher", "Event dispatcher")


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
VolumeAccountantDep = Annotated[VolumeAccountant, Depends(get_volume_accountant)]
BillingServiceDep = Annotated[BillingService, Depends(get_billing_service)]
ServiceLevelServiceDep = Annotated[ServiceLevelService, Depends(get_service_level_service)]
RenewalServiceDep = Annotated[RenewalService, Depends(get_renewal_service)]
DispatcherDep = Annotated[EventDispatcher, Depends(get_event_dispatcher)]
