from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Query, status
from pydantic import BaseModel, ConfigDict, Field

from apps.api.core.errors import ServiceError, ValidationError, to_http_exception
from apps.api.dependencies.auth import AdminUser, ClientUser, CurrentUser
from apps.api.dependencies.services import DispatcherDep, TicketServiceDep
from apps.api.tickets import Ticket, TicketChange, TicketMessage, TicketPriority, TicketStatus, UserRole

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    priority: TicketPriority = TicketPriority.MEDIUM
    company_id: str | None = None


class TicketUpdateRequest(BaseModel):
    status: TicketStatus | None = None
    priority: TicketPriority | None = None

    def ensure_payload(self) -> None:
        if self.status is None and self.priority is None:
            raise to_http_exception(ValidationError("No fields provided for update"))


class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    is_internal_note: bool = False


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: int
    company_id: str
    company_name: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    created_by: str
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    sequence: int
    author_id: str
    author_role: UserRole
    content: str
    is_internal_note: bool
    is_system_message: bool
    created_at: datetime


class TicketChangeResponse(BaseModel):
    ticket: TicketResponse
    messages: list[MessageResponse]


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_message_response(message: TicketMessage) -> MessageResponse:
    return MessageResponse.model_validate(message)


def _to_change_response(change: TicketChange) -> TicketChangeResponse:
    return TicketChangeResponse(
        ticket=_to_response(change.ticket),
        messages=[_to_message_response(message) for message in change.messages],
    )


@router.post("", response_model=TicketChangeResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketChangeResponse:
    try:
        change = await service.create_ticket(
            user,
            title=payload.title,
            description=payload.description,
            priority=payload.priority,
            company_id=payload.company_id,
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_change_response(change)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: CurrentUser,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(user, status=status_filter)
    return [_to_response(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> TicketResponse:
    try:
        ticket = await service.get_ticket(user, ticket_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}", response_model=TicketChangeResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: AdminUser,
) -> TicketChangeResponse:
    payload.ensure_payload()
    try:
        change = await service.change_ticket(user, ticket_id, status=payload.status, priority=payload.priority)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, change.events)
    return _to_change_response(change)


@router.post("/{ticket_id}/close", response_model=TicketChangeResponse)
async def close_ticket(
    ticket_id: str,
    service: TicketServiceDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: ClientUser,
) -> TicketChangeResponse:
    try:
        change = await service.close_ticket(user, ticket_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, change.events)
    return _to_change_response(change)


@router.get("/{ticket_id}/messages", response_model=list[MessageResponse])
async def list_messages(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> list[MessageResponse]:
    try:
        messages = await service.list_messages(user, ticket_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return [_to_message_response(message) for message in messages]


@router.post(
    "/{ticket_id}/messages",
    response_model=TicketChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    ticket_id: str,
    payload: MessageCreateRequest,
    service: TicketServiceDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
) -> TicketChangeResponse:
    try:
        change = await service.post_message(
            user, ticket_id, content=payload.content, is_internal_note=payload.is_internal_note
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(dispatcher.dispatch, change.events)
    return _to_change_response(change)
