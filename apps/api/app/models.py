from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy import JSON as JsonType
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid

from packages.scheduling import DayPairKey


class Base(DeclarativeBase):
    pass


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ClientStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


PUBLISHABLE_SUBSCRIPTIONS: tuple[SubscriptionStatus, ...] = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class ContentItemStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    GENERATING = "GENERATING"
    REVIEW = "REVIEW"
    FAILED = "FAILED"
    APPROVED = "APPROVED"
    PUBLISHED = "PUBLISHED"


class RunLogStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SoftDeleteMixin:
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UsageMixin:
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class User(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    email: Mapped[str] = mapped_column(String(320), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role_enum"), nullable=False, default=Role.MEMBER)


class Client(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "clients"
    __table_args__ = (
        Index("ix_clients_schedule", "status", "auto_schedule_enabled", "schedule_time_slot"),
        Index("ix_clients_created_at", "created_at"),
    )

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ClientStatus] = mapped_column(
        Enum(ClientStatus, name="client_status_enum"), nullable=False, default=ClientStatus.ACTIVE
    )
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, name="subscription_status_enum"), nullable=False, default=SubscriptionStatus.TRIAL
    )
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="America/Denver")
    preferred_publish_time: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00")
    auto_schedule_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_schedule_frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    schedule_day_pair: Mapped[DayPairKey | None] = mapped_column(
        Enum(DayPairKey, name="day_pair_enum"), nullable=True
    )
    schedule_time_slot: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_auto_scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rotation_cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ClientPAA(Base, IdMixin, TimestampMixin, UsageMixin):
    __tablename__ = "client_paas"
    __table_args__ = (
        Index("ix_client_paas_client_id", "client_id"),
        Index("ix_client_paas_rotation", "client_id", "is_active", "priority"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ServiceLocation(Base, IdMixin, TimestampMixin, UsageMixin):
    __tablename__ = "service_locations"
    __table_args__ = (Index("ix_service_locations_client_id", "client_id"),)

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(64), nullable=False)
    neighborhood: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_headquarters: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CombinationUsage(Base, IdMixin, TimestampMixin):
    __tablename__ = "combination_usages"
    __table_args__ = (
        UniqueConstraint(
            "client_id",
            "cycle",
            "client_paa_id",
            "service_location_id",
            name="uq_combination_usages_client_cycle_pair",
        ),
        Index("ix_combination_usages_client_cycle", "client_id", "cycle"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    client_paa_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("client_paas.id"), nullable=False)
    service_location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service_locations.id"), nullable=False)
    cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ContentItem(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "content_items"
    __table_args__ = (
        Index("ix_content_items_client_id", "client_id"),
        Index("ix_content_items_scheduled_date", "scheduled_date"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    client_paa_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("client_paas.id"), nullable=True)
    service_location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("service_locations.id"), nullable=True)
    paa_question: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    status: Mapped[ContentItemStatus] = mapped_column(
        Enum(ContentItemStatus, name="content_item_status_enum"), nullable=False, default=ContentItemStatus.DRAFT
    )
    pipeline_step: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RunLog(Base, IdMixin, TimestampMixin):
    __tablename__ = "run_logs"
    __table_args__ = (
        Index("ix_run_logs_client_id", "client_id"),
        Index("ix_run_logs_action_created_at", "action", "created_at"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[RunLogStatus] = mapped_column(Enum(RunLogStatus, name="run_log_status_enum"), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AuditLog(Base, IdMixin, TimestampMixin):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_created_at", "created_at"),)

    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[str] = mapped_column(String(100), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)
