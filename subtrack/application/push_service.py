"""
Web Push notification service.

Sends push notifications via pywebpush, manages device registrations and
per-subscription notification snoozes.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

import requests
from pywebpush import webpush, WebPushException
from sqlalchemy.orm import Session

from subtrack.config import Settings, get_settings
from subtrack.errors import ValidationError
from subtrack.infrastructure.db.models import NotificationSnooze, PushSubscription, User

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE = timedelta(hours=24)
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    GONE = "gone"
    TRANSIENT_FAILURE = "transientFailure"


Deliver = Callable[[PushSubscription, dict], DeliveryOutcome]


def _vapid_private_key(raw_key: str) -> str:
    # .env may store PEM with literal \n or real newlines depending on quoting
    if "\\n" in raw_key:
        raw_key = raw_key.replace("\\n", "\n")
    # pywebpush accepts a raw base64url key; strip PEM armour if present
    if "BEGIN" in raw_key:
        lines = [line.strip() for line in raw_key.strip().splitlines()
                 if line.strip() and not line.strip().startswith("-----")]
        raw_key = "".join(lines)
    return raw_key


def send_web_push(
    subscription: PushSubscription,
    payload: dict,
    settings: Settings | None = None,
) -> DeliveryOutcome:
    """
    Deliver one payload to one endpoint.

    payload format:
        {"title": "...", "body": "...", "url": "/subscriptions/123"}

    404/410 from the push service means the endpoint is gone for good.
    """
    settings = settings or get_settings()
    if not settings.push_configured:
        logger.warning("VAPID keys not configured, skipping push")
        return DeliveryOutcome.TRANSIENT_FAILURE

    subscription_info = {
        "endpoint": subscription.endpoint,
        "keys": {
            "p256dh": subscription.p256dh,
            "auth": subscription.auth,
        },
    }
    try:
        webpush(
            subscription_info=subscription_info,
            data=json.dumps(payload, ensure_ascii=False),
            vapid_private_key=_vapid_private_key(settings.VAPID_PRIVATE_KEY),
            vapid_claims={"sub": settings.VAPID_MAILTO},
            ttl=DEFAULT_TTL_SECONDS,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        return DeliveryOutcome.DELIVERED
    except WebPushException as e:
        status_code = e.response.status_code if e.response is not None else 0
        if status_code in (404, 410):
            logger.info("Push endpoint gone (HTTP %d): %s", status_code, subscription.endpoint[:60])
            return DeliveryOutcome.GONE
        logger.error("WebPush error (HTTP %d): %s", status_code, e)
        return DeliveryOutcome.TRANSIENT_FAILURE
    except requests.RequestException as e:
        logger.error("WebPush transport error for %s: %s", subscription.endpoint[:60], e)
        return DeliveryOutcome.TRANSIENT_FAILURE


def send_push_to_user(
    db: Session,
    user_id: int,
    payload: dict,
    deliver: Deliver | None = None,
) -> int:
    """
    Send a payload to every registered endpoint of a user.

    Gone endpoints are deregistered; other failures are logged and do not stop
    delivery to the remaining endpoints. Returns the number delivered.
    """
    deliver = deliver or send_web_push
    subs = db.query(PushSubscription).filter(PushSubscription.user_id == user_id).all()

    sent = 0
    for sub in subs:
        try:
            outcome = deliver(sub, payload)
        except Exception:
            logger.exception("Push delivery raised for user_id=%s endpoint=%s", user_id, sub.endpoint[:60])
            continue
        if outcome is DeliveryOutcome.DELIVERED:
            sent += 1
        elif outcome is DeliveryOutcome.GONE:
            db.query(PushSubscription).filter(PushSubscription.id == sub.id).delete()
            db.commit()
        else:
            logger.warning("Push delivery failed for user_id=%s endpoint=%s", user_id, sub.endpoint[:60])
    return sent


# ============================================================================
# Registration
# ============================================================================


def register_push_subscription(db: Session, user_id: int, endpoint: str, p256dh: str, auth: str) -> PushSubscription:
    """Last write wins: any row with the same endpoint is replaced."""
    if not endpoint or not p256dh or not auth:
        raise ValidationError("endpoint, p256dh and auth are required")

    db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).delete()
    sub = PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
    db.add(sub)
    db.query(User).filter(User.id == user_id).update(
        {User.push_enabled: True, User.updated_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    db.commit()
    return sub


def unregister_push_subscription(db: Session, user_id: int, endpoint: str | None = None) -> int:
    """Remove one endpoint, or all of the user's endpoints when none is given."""
    q = db.query(PushSubscription).filter(PushSubscription.user_id == user_id)
    if endpoint:
        q = q.filter(PushSubscription.endpoint == endpoint)
    deleted = q.delete(synchronize_session=False)

    remaining = db.query(PushSubscription.id).filter(PushSubscription.user_id == user_id).first()
    if remaining is None:
        db.query(User).filter(User.id == user_id).update(
            {User.push_enabled: False, User.updated_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    db.commit()
    return deleted


# ============================================================================
# Snoozes
# ============================================================================


def snooze_notifications(
    db: Session,
    subscription_id: int,
    user_id: int,
    until: datetime | None = None,
    now: datetime | None = None,
) -> NotificationSnooze:
    """Replace any earlier snooze for (subscription, user) with a new one."""
    now = now or datetime.now(timezone.utc)
    if until is None:
        until = now + DEFAULT_SNOOZE
    elif until.tzinfo is None:
        until = until.replace(tzinfo=timezone.utc)

    db.query(NotificationSnooze).filter(
        NotificationSnooze.subscription_id == subscription_id,
        NotificationSnooze.user_id == user_id,
    ).delete(synchronize_session=False)
    snooze = NotificationSnooze(
        subscription_id=subscription_id,
        user_id=user_id,
        snoozed_until=until,
        created_at=now,
    )
    db.add(snooze)
    db.commit()
    return snooze


def has_active_snooze(db: Session, subscription_id: int, user_id: int, now: datetime) -> bool:
    return db.query(NotificationSnooze.id).filter(
        NotificationSnooze.subscription_id == subscription_id,
        NotificationSnooze.user_id == user_id,
        NotificationSnooze.snoozed_until >= now,
    ).first() is not None
