"""
Subscription API endpoints
"""
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.subscriptions import (
    ArchiveSubscriptionUseCase, CreateSubscriptionUseCase, MarkPaidUseCase,
    PauseSubscriptionUseCase, RestoreSubscriptionUseCase, ResumeSubscriptionUseCase,
    UpdateSubscriptionUseCase, get_subscription, list_events, list_subscriptions,
)
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])

CadenceUnitField = Literal["day", "week", "month", "year"]


# === Request/Response models ===

class CreateSubscriptionRequest(BaseModel):
    name: str = Field(min_length=1)
    amount_cents: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    cadence_unit: CadenceUnitField
    cadence_count: int = Field(ge=1)
    next_renewal_at: datetime
    category_id: int | None = None
    merchant: str | None = None
    notes: str | None = None


class UpdateSubscriptionRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    amount_cents: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    cadence_unit: CadenceUnitField | None = None
    cadence_count: int | None = Field(default=None, ge=1)
    next_renewal_at: datetime | None = None
    category_id: int | None = None
    merchant: str | None = None
    notes: str | None = None


class RenewalDateRequest(BaseModel):
    next_renewal_at: datetime


class MarkPaidRequest(BaseModel):
    occurred_at: datetime | None = None
    amount_cents: int | None = Field(default=None, ge=0)
    note: str | None = None
    next_renewal_at: datetime | None = None


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_email: str
    name: str
    merchant: str | None
    amount_cents: int
    currency: str
    cadence_unit: str
    cadence_count: int
    next_renewal_at: datetime
    status: str
    category_id: int | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    rate_at_creation: float | None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    type: str
    occurred_at: datetime
    amount_cents: int
    currency: str
    rate_at_event: float | None
    note: str | None


def _item(sub) -> dict:
    return {"item": SubscriptionResponse.model_validate(sub)}


# === Endpoints ===

@router.get("")
def get_subscriptions(
    status: Literal["active", "paused", "archived", "all"] = "active",
    renewal_from: datetime | None = Query(default=None, alias="from"),
    renewal_to: datetime | None = Query(default=None, alias="to"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owner's subscriptions ordered by next renewal"""
    items = list_subscriptions(
        db, user.email, status=status, renewal_from=renewal_from, renewal_to=renewal_to,
    )
    return {"items": [SubscriptionResponse.model_validate(s) for s in items]}


@router.post("")
def create_subscription(
    req: CreateSubscriptionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = CreateSubscriptionUseCase(db).execute(
        user.email,
        name=req.name,
        amount_cents=req.amount_cents,
        currency=req.currency,
        cadence_unit=req.cadence_unit,
        cadence_count=req.cadence_count,
        next_renewal_at=req.next_renewal_at,
        category_id=req.category_id,
        merchant=req.merchant,
        notes=req.notes,
    )
    return _item(sub)


@router.get("/{subscription_id}")
def get_subscription_detail(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _item(get_subscription(db, subscription_id, user.email))


@router.put("/{subscription_id}")
def update_subscription(
    subscription_id: int,
    req: UpdateSubscriptionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partial update: only fields present in the body are changed"""
    changes = req.model_dump(exclude_unset=True)
    sub = UpdateSubscriptionUseCase(db).execute(subscription_id, user.email, **changes)
    return _item(sub)


@router.post("/{subscription_id}/archive")
def archive_subscription(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _item(ArchiveSubscriptionUseCase(db).execute(subscription_id, user.email))


@router.post("/{subscription_id}/pause")
def pause_subscription(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _item(PauseSubscriptionUseCase(db).execute(subscription_id, user.email))


@router.post("/{subscription_id}/resume")
def resume_subscription(
    subscription_id: int,
    req: RenewalDateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = ResumeSubscriptionUseCase(db).execute(subscription_id, user.email, req.next_renewal_at)
    return _item(sub)


@router.post("/{subscription_id}/restore")
def restore_subscription(
    subscription_id: int,
    req: RenewalDateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = RestoreSubscriptionUseCase(db).execute(subscription_id, user.email, req.next_renewal_at)
    return _item(sub)


@router.post("/{subscription_id}/mark-paid")
def mark_paid(
    subscription_id: int,
    req: MarkPaidRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a payment and advance the renewal date past the payment time"""
    req = req or MarkPaidRequest()
    result = MarkPaidUseCase(db).execute(
        subscription_id,
        user.email,
        amount_cents=req.amount_cents,
        note=req.note,
        occurred_at=req.occurred_at,
        next_renewal_override=req.next_renewal_at,
    )
    return {
        "item": SubscriptionResponse.model_validate(result.subscription),
        "event": EventResponse.model_validate(result.event),
    }


@router.get("/{subscription_id}/events")
def get_subscription_events(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = list_events(db, subscription_id, user.email)
    return {"items": [EventResponse.model_validate(e) for e in events]}
