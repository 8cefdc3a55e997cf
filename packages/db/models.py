"""SQLModel table definitions for the support desk data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class CompanyTable(SQLModel, table=True):
    """Customer companies owning tickets and a service level."""

    __tablename__ = "companies"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserTable(SQLModel, table=True):
    """Portal users; only the notification preferences matter here."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    first_name: str = Field(default="", sa_column=Column(String(150), nullable=False, default=""))
    last_name: str = Field(default="", sa_column=Column(String(150), nullable=False, default=""))
    role: str = Field(sa_column=Column(String(20), nullable=False))
    company_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True),
    )
    email_notifications: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    service_level_warnings: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceLevelTable(SQLModel, table=True):
    """Prepaid minute balance and renewal schedule of a company."""

    __tablename__ = "service_levels"
    __table_args__ = (
        CheckConstraint(
            "remaining_minutes >= 0 AND remaining_minutes <= time_volume_minutes",
            name="ck_service_levels_remaining_in_range",
        ),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    company_id: str = Field(
        sa_column=Column(
            String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True
        )
    )
    name: str = Field(sa_column=Column(String(255), nullable=False))
    time_volume_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    remaining_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    hourly_rate: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    renewal_type: str = Field(sa_column=Column(String(20), nullable=False))
    start_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_renewed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    next_renewal_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    low_volume_warned: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Support tickets raised by a company."""

    __tablename__ = "tickets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_number: int = Field(sa_column=Column(Integer, nullable=False, unique=True))
    company_id: str = Field(
        sa_column=Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    )
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    status: str = Field(sa_column=Column(String(50), nullable=False))
    priority: str = Field(sa_column=Column(String(50), nullable=False))
    created_by: str = Field(sa_column=Column(String(36), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketMessageTable(SQLModel, table=True):
    """Conversation entries of a ticket, ordered by ``sequence``."""

    __tablename__ = "ticket_messages"
    __table_args__ = (UniqueConstraint("ticket_id", "sequence", name="uq_ticket_messages_sequence"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    author_id: str = Field(sa_column=Column(String(36), nullable=False))
    author_role: str = Field(sa_column=Column(String(20), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    is_internal_note: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    is_system_message: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class WorkEntryTable(SQLModel, table=True):
    """Logged work on a ticket, drawn from included volume or billed hourly."""

    __tablename__ = "work_entries"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    minutes: int = Field(sa_column=Column(Integer, nullable=False))
    rounded_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    hourly_rate: Decimal | None = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))
    total_amount: Decimal | None = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))
    is_from_included_volume: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    is_billed: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    billed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class NotificationTable(SQLModel, table=True):
    """In-app notifications shown to a user."""

    __tablename__ = "notifications"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    user_id: str = Field(
        sa_column=Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    )
    title: str = Field(sa_column=Column(String(255), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    related_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    is_read: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
