"""
Renewal reminders: daily sweep sending a push NOTIFY_DAYS_BEFORE days
before a subscription renews.

For each active subscription renewing roughly 2–4 days from now:
  - owner must have push enabled and a time zone set
  - the renewal must fall exactly NOTIFY_DAYS_BEFORE local calendar days
    after today in the owner's zone
  - no active snooze for (subscription, user)
Then every registered endpoint of the owner gets one delivery attempt.

No "already notified" state is persisted: the one-day-wide exact match is
what keeps a daily run from repeating itself.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from subtrack.application.push_service import (
    Deliver, has_active_snooze, send_push_to_user, send_web_push,
)
from subtrack.config import Settings, get_settings
from subtrack.domain.subscription import SubscriptionStatus
from subtrack.infrastructure.db.models import SubscriptionModel, User

logger = logging.getLogger(__name__)

NOTIFY_DAYS_BEFORE = 3
WINDOW_START = timedelta(days=2)
WINDOW_END = timedelta(days=4)


def local_day(at: datetime, tz_name: str) -> date | None:
    """Calendar date of `at` in the given IANA zone, None for an unknown zone."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(tz).date()


def local_days_until(now: datetime, renewal_at: datetime, tz_name: str) -> int | None:
    today = local_day(now, tz_name)
    renewal_day = local_day(renewal_at, tz_name)
    if today is None or renewal_day is None:
        return None
    return (renewal_day - today).days


def find_candidates(db: Session, now: datetime, margin: timedelta = timedelta(0)) -> list[tuple[SubscriptionModel, User]]:
    """Coarse instant-based pre-filter; the local-day test is authoritative."""
    start = now + WINDOW_START - margin
    end = now + WINDOW_END + margin
    return (
        db.query(SubscriptionModel, User)
        .join(User, User.email == SubscriptionModel.owner_email)
        .filter(
            SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
            SubscriptionModel.next_renewal_at >= start,
            SubscriptionModel.next_renewal_at <= end,
        )
        .order_by(SubscriptionModel.next_renewal_at, SubscriptionModel.id)
        .all()
    )


def is_due(db: Session, sub: SubscriptionModel, user: User, now: datetime) -> bool:
    if not user.push_enabled:
        return False
    if not user.timezone:
        return False
    days = local_days_until(now, sub.next_renewal_at, user.timezone)
    if days is None:
        logger.warning("Unknown timezone %r for user_id=%s", user.timezone, user.id)
        return False
    if days != NOTIFY_DAYS_BEFORE:
        return False
    return not has_active_snooze(db, sub.id, user.id, now)


def _payload(sub: SubscriptionModel) -> dict:
    return {
        "title": "Upcoming renewal",
        "body": f"{sub.name} renews in {NOTIFY_DAYS_BEFORE} days",
        "url": f"/subscriptions/{sub.id}",
        "subscriptionId": sub.id,
    }


def run_notification_sweep(
    db: Session,
    settings: Settings | None = None,
    now: datetime | None = None,
    deliver: Deliver | None = None,
) -> int:
    """
    Run one sweep. Returns the number of pushes delivered.

    A failure while handling one candidate is logged and the sweep moves on.
    """
    settings = settings or get_settings()
    if not settings.push_configured:
        logger.info("VAPID keys not configured, skipping renewal notifications")
        return 0

    now = now or datetime.now(timezone.utc)
    margin = timedelta(hours=max(settings.NOTIFY_WINDOW_MARGIN_HOURS, 0))
    if deliver is None:
        def deliver(sub, payload):
            return send_web_push(sub, payload, settings)

    total_sent = 0
    candidates = find_candidates(db, now, margin)
    for sub, user in candidates:
        sub_id = sub.id
        try:
            if not is_due(db, sub, user, now):
                continue
            total_sent += send_push_to_user(db, user.id, _payload(sub), deliver=deliver)
        except Exception:
            logger.exception("Renewal notification failed for subscription_id=%s", sub_id)
            db.rollback()

    logger.info("Renewal sweep: %d candidates, %d pushes delivered", len(candidates), total_sent)
    return total_sent
