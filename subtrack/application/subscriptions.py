"""
Subscription use cases: CRUD, lifecycle (pause/resume/archive/restore) and
mark-paid with renewal advancement.

Lifecycle:
    active ⇄ paused
    active/paused → archived
    archived → active (restore, with a new next_renewal_at)

Conversion rates are frozen on write: rate_at_creation on create,
rate_at_event on each payment event.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from subtrack.application.categories import ensure_default_category
from subtrack.application.conversion import rate_to_primary
from subtrack.application.user_settings import primary_currency_for
from subtrack.domain.cadence import CadenceUnit, advance_renewal
from subtrack.domain.subscription import EventType, SubscriptionStatus, normalize_currency
from subtrack.errors import ConflictError, NotFoundError, ValidationError
from subtrack.infrastructure.db.models import (
    CategoryModel, SubscriptionModel, SubscriptionEventModel,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime, field: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be an ISO datetime")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name must not be empty")
    return name


def _validate_amount(amount_cents: int) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents < 0:
        raise ValidationError("amount_cents must be >= 0")
    return amount_cents


def _validate_cadence(unit: str, count: int) -> tuple[str, int]:
    try:
        unit = CadenceUnit(unit).value
    except ValueError:
        raise ValidationError(f"cadence_unit must be one of day, week, month, year, got {unit!r}")
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError("cadence_count must be a positive integer")
    return unit, count


def _validate_category(db: Session, owner_email: str, category_id: int | None) -> int | None:
    if category_id is None:
        return None
    exists = db.query(CategoryModel.id).filter(
        CategoryModel.id == category_id,
        CategoryModel.owner_email == owner_email,
    ).first()
    if not exists:
        raise ValidationError("category_id does not refer to one of your categories")
    return category_id


def get_subscription(db: Session, subscription_id: int, owner_email: str) -> SubscriptionModel:
    sub = db.query(SubscriptionModel).filter(
        SubscriptionModel.id == subscription_id,
        SubscriptionModel.owner_email == owner_email,
    ).first()
    if not sub:
        raise NotFoundError("Subscription not found")
    return sub


def list_subscriptions(
    db: Session,
    owner_email: str,
    status: str = SubscriptionStatus.ACTIVE.value,
    renewal_from: datetime | None = None,
    renewal_to: datetime | None = None,
) -> list[SubscriptionModel]:
    """Owner's subscriptions ordered by next renewal; status "all" disables the filter."""
    q = db.query(SubscriptionModel).filter(SubscriptionModel.owner_email == owner_email)
    if status != "all":
        try:
            status = SubscriptionStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")
        q = q.filter(SubscriptionModel.status == status)
    if renewal_from is not None:
        q = q.filter(SubscriptionModel.next_renewal_at >= _as_utc(renewal_from, "from"))
    if renewal_to is not None:
        q = q.filter(SubscriptionModel.next_renewal_at <= _as_utc(renewal_to, "to"))
    return q.order_by(SubscriptionModel.next_renewal_at, SubscriptionModel.id).all()


def list_events(db: Session, subscription_id: int, owner_email: str) -> list[SubscriptionEventModel]:
    """Event history of one subscription, newest first."""
    sub = get_subscription(db, subscription_id, owner_email)
    return (
        db.query(SubscriptionEventModel)
        .filter(SubscriptionEventModel.subscription_id == sub.id)
        .order_by(SubscriptionEventModel.occurred_at.desc(), SubscriptionEventModel.id.desc())
        .all()
    )


# ============================================================================
# CRUD
# ============================================================================


class CreateSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        owner_email: str,
        name: str,
        amount_cents: int,
        currency: str,
        cadence_unit: str,
        cadence_count: int,
        next_renewal_at: datetime,
        category_id: int | None = None,
        merchant: str | None = None,
        notes: str | None = None,
    ) -> SubscriptionModel:
        name = _validate_name(name)
        amount_cents = _validate_amount(amount_cents)
        currency = normalize_currency(currency)
        cadence_unit, cadence_count = _validate_cadence(cadence_unit, cadence_count)
        next_renewal_at = _as_utc(next_renewal_at, "next_renewal_at")

        ensure_default_category(self.db, owner_email)
        category_id = _validate_category(self.db, owner_email, category_id)

        primary = primary_currency_for(self.db, owner_email)
        now = _utcnow()
        sub = SubscriptionModel(
            owner_email=owner_email,
            name=name,
            merchant=merchant,
            amount_cents=amount_cents,
            currency=currency,
            cadence_unit=cadence_unit,
            cadence_count=cadence_count,
            next_renewal_at=next_renewal_at,
            status=SubscriptionStatus.ACTIVE.value,
            category_id=category_id,
            notes=notes,
            rate_at_creation=rate_to_primary(self.db, primary, currency),
            created_at=now,
            updated_at=now,
        )
        self.db.add(sub)
        self.db.flush()
        self.db.commit()
        return sub


class UpdateSubscriptionUseCase:
    """Partial update; only keys present in `changes` are applied."""

    FIELDS = frozenset({
        "name", "merchant", "amount_cents", "currency", "cadence_unit",
        "cadence_count", "next_renewal_at", "category_id", "notes",
    })

    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscription_id: int, owner_email: str, **changes) -> SubscriptionModel:
        unknown = set(changes) - self.FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        sub = get_subscription(self.db, subscription_id, owner_email)

        # validate everything before touching the row
        values = {}
        if "name" in changes:
            values["name"] = _validate_name(changes["name"])
        if "amount_cents" in changes:
            values["amount_cents"] = _validate_amount(changes["amount_cents"])
        if "currency" in changes:
            values["currency"] = normalize_currency(changes["currency"])
            if values["currency"] != sub.currency:
                # frozen rate belongs to the old currency
                primary = primary_currency_for(self.db, owner_email)
                values["rate_at_creation"] = rate_to_primary(self.db, primary, values["currency"])
        if "cadence_unit" in changes or "cadence_count" in changes:
            unit, count = _validate_cadence(
                changes.get("cadence_unit", sub.cadence_unit),
                changes.get("cadence_count", sub.cadence_count),
            )
            values["cadence_unit"] = unit
            values["cadence_count"] = count
        if "next_renewal_at" in changes:
            values["next_renewal_at"] = _as_utc(changes["next_renewal_at"], "next_renewal_at")
        if "category_id" in changes:
            values["category_id"] = _validate_category(self.db, owner_email, changes["category_id"])
        if "merchant" in changes:
            values["merchant"] = changes["merchant"]
        if "notes" in changes:
            values["notes"] = changes["notes"]

        for key, value in values.items():
            setattr(sub, key, value)
        sub.updated_at = _utcnow()
        self.db.commit()
        return sub


# ============================================================================
# Lifecycle
# ============================================================================


class ArchiveSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscription_id: int, owner_email: str) -> SubscriptionModel:
        sub = get_subscription(self.db, subscription_id, owner_email)
        if sub.status == SubscriptionStatus.ARCHIVED.value:
            return sub
        sub.status = SubscriptionStatus.ARCHIVED.value
        sub.updated_at = _utcnow()
        self.db.commit()
        return sub


class PauseSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscription_id: int, owner_email: str) -> SubscriptionModel:
        sub = get_subscription(self.db, subscription_id, owner_email)
        if sub.status == SubscriptionStatus.ARCHIVED.value:
            raise ConflictError("Cannot pause archived subscription")
        if sub.status == SubscriptionStatus.PAUSED.value:
            return sub
        sub.status = SubscriptionStatus.PAUSED.value
        sub.updated_at = _utcnow()
        self.db.commit()
        return sub


class ResumeSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscription_id: int, owner_email: str, next_renewal_at: datetime) -> SubscriptionModel:
        next_renewal_at = _as_utc(next_renewal_at, "next_renewal_at")
        sub = get_subscription(self.db, subscription_id, owner_email)
        if sub.status == SubscriptionStatus.ARCHIVED.value:
            raise ConflictError("Cannot resume archived subscription")
        if sub.status == SubscriptionStatus.ACTIVE.value:
            return sub
        sub.status = SubscriptionStatus.ACTIVE.value
        sub.next_renewal_at = next_renewal_at
        sub.updated_at = _utcnow()
        self.db.commit()
        return sub


class RestoreSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscription_id: int, owner_email: str, next_renewal_at: datetime) -> SubscriptionModel:
        next_renewal_at = _as_utc(next_renewal_at, "next_renewal_at")
        sub = get_subscription(self.db, subscription_id, owner_email)
        if sub.status != SubscriptionStatus.ARCHIVED.value:
            return sub
        sub.status = SubscriptionStatus.ACTIVE.value
        sub.next_renewal_at = next_renewal_at
        sub.updated_at = _utcnow()
        self.db.commit()
        return sub


# ============================================================================
# Mark paid
# ============================================================================


@dataclass
class MarkPaidResult:
    subscription: SubscriptionModel
    event: SubscriptionEventModel


class MarkPaidUseCase:
    """
    Record a payment event and move next_renewal_at to the first cadence
    occurrence strictly after the payment time.

    The event insert and the renewal update are committed together; any
    failure (including a cadence overflow) rolls both back.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        subscription_id: int,
        owner_email: str,
        amount_cents: int | None = None,
        note: str | None = None,
        occurred_at: datetime | None = None,
        next_renewal_override: datetime | None = None,
    ) -> MarkPaidResult:
        occurred = _as_utc(occurred_at, "occurred_at") if occurred_at is not None else _utcnow()
        override = (
            _as_utc(next_renewal_override, "next_renewal_at")
            if next_renewal_override is not None else None
        )
        sub = get_subscription(self.db, subscription_id, owner_email)
        amount = _validate_amount(amount_cents) if amount_cents is not None else sub.amount_cents

        next_renewal = advance_renewal(
            override or sub.next_renewal_at,
            sub.cadence_unit,
            sub.cadence_count,
            occurred,
        )
        primary = primary_currency_for(self.db, owner_email)

        try:
            event = SubscriptionEventModel(
                subscription_id=sub.id,
                owner_email=owner_email,
                type=EventType.PAYMENT.value,
                occurred_at=occurred,
                amount_cents=amount,
                currency=sub.currency,
                rate_at_event=rate_to_primary(self.db, primary, sub.currency),
                note=note,
            )
            self.db.add(event)
            sub.next_renewal_at = next_renewal
            sub.updated_at = _utcnow()
            self.db.flush()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Subscription %d marked paid at %s, next renewal %s",
            sub.id, occurred.isoformat(), next_renewal.isoformat(),
        )
        return MarkPaidResult(subscription=sub, event=event)
