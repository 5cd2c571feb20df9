"""
Web Push registration and renewal-reminder snooze endpoints.
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.push_service import (
    register_push_subscription, send_push_to_user, snooze_notifications,
    unregister_push_subscription,
)
from subtrack.application.subscriptions import get_subscription
from subtrack.infrastructure.db.models import User

router = APIRouter(prefix="/api/push", tags=["push"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["push"])


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class SubscribeRequest(BaseModel):
    endpoint: str
    keys: PushKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None


class SnoozeRequest(BaseModel):
    until: datetime | None = None


@router.post("/subscribe")
def subscribe(
    body: SubscribeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    register_push_subscription(db, user.id, body.endpoint, body.keys.p256dh, body.keys.auth)
    return {"ok": True}


@router.delete("/unsubscribe")
def unsubscribe(
    body: UnsubscribeRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Drop one endpoint, or every endpoint of the user when none is given."""
    deleted = unregister_push_subscription(db, user.id, body.endpoint if body else None)
    return {"ok": True, "deleted": deleted}


@router.post("/test")
def test_push(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Send a test push to verify the setup."""
    sent = send_push_to_user(db, user.id, {
        "title": "SubTrack",
        "body": "Push notifications are working",
        "url": "/settings",
    })
    return {"ok": True, "sent": sent}


@notifications_router.post("/{subscription_id}/snooze")
def snooze(
    subscription_id: int,
    body: SnoozeRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = get_subscription(db, subscription_id, user.email)
    record = snooze_notifications(db, sub.id, user.id, until=body.until if body else None)
    return {"ok": True, "snoozedUntil": record.snoozed_until.isoformat()}
