from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, Sequence

from sqlmodel import select

from apps.api.core.database import SessionFactory, transaction
from packages.db.models import NotificationTable, UserTable


class NotificationType(str, Enum):
    MESSAGE = "MESSAGE"
    STATUS = "STATUS"
    SERVICE_LEVEL = "SERVICE_LEVEL"


@dataclass(frozen=True, slots=True)
class Recipient:
    id: str
    email: str
    first_name: str
    role: str
    company_id: str | None
    email_notifications: bool
    service_level_warnings: bool


class NotificationStore(Protocol):
    """Persistence of in-app notifications."""

    async def create(
        self,
        recipient_id: str,
        title: str,
        message: str,
        related_id: str | None,
        type: NotificationType,
    ) -> None:
        ...


class SQLNotificationStore:
    """Write notifications to the ``notifications`` table, one transaction each."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        recipient_id: str,
        title: str,
        message: str,
        related_id: str | None,
        type: NotificationType,
    ) -> None:
        async with transaction(self._session_factory) as session:
            session.add(
                NotificationTable(
                    id=str(uuid.uuid4()),
                    user_id=recipient_id,
                    title=title,
                    message=message,
                    type=type.value,
                    related_id=related_id,
                    is_read=False,
                    created_at=datetime.now(timezone.utc),
                )
            )


class RecipientDirectory:
    """Resolve notification recipients from the ``users`` table."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def find(
        self,
        *,
        role: str | None = None,
        company_id: str | None = None,
        exclude_id: str | None = None,
        service_level_warnings: bool = False,
    ) -> Sequence[Recipient]:
        statement = select(UserTable)
        if role is not None:
            statement = statement.where(UserTable.role == role)
        if company_id is not None:
            statement = statement.where(UserTable.company_id == company_id)
        if exclude_id is not None:
            statement = statement.where(UserTable.id != exclude_id)
        if service_level_warnings:
            statement = statement.where(
                UserTable.email_notifications.is_(True),
                UserTable.service_level_warnings.is_(True),
            )
        async with self._session_factory() as session:
            result = await session.execute(statement.order_by(UserTable.email))
            return [
                Recipient(
                    id=row.id,
                    email=row.email,
                    first_name=row.first_name,
                    role=row.role,
                    company_id=row.company_id,
                    email_notifications=bool(row.email_notifications),
                    service_level_warnings=bool(row.service_level_warnings),
                )
                for row in result.scalars().all()
            ]
