"""
SQLAlchemy ORM models
"""
from datetime import datetime, timezone

from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, Boolean, Float, Index, TypeDecorator, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from subtrack.infrastructure.db.session import Base


class UtcDateTime(TypeDecorator):
    """
    TIMESTAMP WITH TIME ZONE that always hands back aware UTC datetimes.

    SQLite drops tzinfo on the way in and returns naive values; naive values
    are treated as UTC in both directions.
    """
    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Account owner. Per-user settings live on the same row.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    primary_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    # IANA zone name, e.g. "Europe/Berlin"
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    push_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    onboarding_done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


class CategoryModel(Base):
    """Owner-scoped label; exactly one is_default row per owner"""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


class SubscriptionModel(Base):
    """Recurring charge tracked for one owner"""
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_status_renewal", "status", "next_renewal_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    merchant: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)  # minor units of currency
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    cadence_unit: Mapped[str] = mapped_column(String(8), nullable=False)  # day / week / month / year
    cadence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    next_renewal_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active / paused / archived
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # -> categories, same owner
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # currency -> owner's primary currency, frozen when the row was created
    rate_at_creation: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


class SubscriptionEventModel(Base):
    """Append-only payment/skip log; never updated or deleted"""
    __tablename__ = "subscription_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    owner_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # payment / skip
    occurred_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate_at_event: Mapped[float | None] = mapped_column(Float, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class FxRate(Base):
    """One row of an FX snapshot: units of target per 1 unit of base"""
    __tablename__ = "fx_rates"
    __table_args__ = (
        Index("ix_fx_rates_base_fetched", "base", "fetched_at"),
        Index("ix_fx_rates_base_target_fetched", "base", "target", "fetched_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    base: Mapped[str] = mapped_column(String(3), nullable=False)
    target: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    # only ever flipped false -> true
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class NotificationSnooze(Base):
    __tablename__ = "notification_snoozes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    snoozed_until: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


class PushSubscription(Base):
    """Web Push subscription for a user device."""
    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
