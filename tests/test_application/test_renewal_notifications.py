"""
Tests for the daily renewal reminder sweep
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from subtrack.application.push_service import (
    DeliveryOutcome, register_push_subscription, snooze_notifications,
)
from subtrack.application.renewal_notifications import (
    find_candidates, local_days_until, run_notification_sweep,
)
from subtrack.application.subscriptions import (
    CreateSubscriptionUseCase, PauseSubscriptionUseCase,
)
from subtrack.config import Settings
from subtrack.infrastructure.db.models import PushSubscription, User


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def push_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        VAPID_PUBLIC_KEY="BTestPublicKey",
        VAPID_PRIVATE_KEY="test-private-key",
        _env_file=None,
    )


class RecordingDeliver:
    def __init__(self, outcome=DeliveryOutcome.DELIVERED):
        self.outcome = outcome
        self.calls = []

    def __call__(self, endpoint, payload):
        self.calls.append((endpoint.endpoint, payload))
        return self.outcome(endpoint) if callable(self.outcome) else self.outcome


def make_user(db, email, tz="UTC", push=True):
    user = User(email=email, name="", password_hash="x", primary_currency="USD", timezone=tz)
    db.add(user)
    db.commit()
    if push:
        register_push_subscription(db, user.id, f"https://push.example.com/{email}", "p256dh", "auth")
    return user


def make_sub(db, email, renews_at, name="Streaming"):
    return CreateSubscriptionUseCase(db).execute(email, name, 999, "USD", "month", 1, renews_at)


class TestLocalDays:
    def test_utc(self):
        assert local_days_until(NOW, utc(2026, 3, 13, 1), "UTC") == 3

    def test_zone_ahead_of_utc(self):
        # Auckland is UTC+13: 2026-03-13 10:00Z is still the 13th locally, today is the 11th
        assert local_days_until(NOW, utc(2026, 3, 13, 10), "Pacific/Auckland") == 2
        assert local_days_until(NOW, utc(2026, 3, 13, 11, 30), "Pacific/Auckland") == 3

    def test_zone_behind_utc(self):
        # Los Angeles is UTC-7: 2026-03-14 06:30Z is the evening of the 13th locally
        assert local_days_until(NOW, utc(2026, 3, 14, 6, 30), "America/Los_Angeles") == 3

    def test_unknown_zone(self):
        assert local_days_until(NOW, utc(2026, 3, 13), "Mars/Olympus") is None


class TestCandidates:
    def test_window_with_margin(self, db_session):
        make_user(db_session, "a@example.com")
        inside = make_sub(db_session, "a@example.com", NOW + timedelta(days=3))
        early = make_sub(db_session, "a@example.com", NOW + timedelta(hours=12))
        late = make_sub(db_session, "a@example.com", NOW + timedelta(days=5, hours=12))

        ids = [s.id for s, _ in find_candidates(db_session, NOW, margin=timedelta(hours=24))]
        assert inside.id in ids
        assert early.id not in ids
        assert late.id not in ids

    def test_inactive_subscriptions_skipped(self, db_session):
        make_user(db_session, "a@example.com")
        sub = make_sub(db_session, "a@example.com", NOW + timedelta(days=3))
        PauseSubscriptionUseCase(db_session).execute(sub.id, "a@example.com")

        assert find_candidates(db_session, NOW) == []


class TestNotificationSweep:
    def test_only_three_days_out_is_notified(self, db_session, push_settings):
        make_user(db_session, "a@example.com")
        due = make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9), name="Due")
        make_sub(db_session, "a@example.com", utc(2026, 3, 12, 9), name="Two days")
        make_sub(db_session, "a@example.com", utc(2026, 3, 14, 9), name="Four days")
        deliver = RecordingDeliver()

        sent = run_notification_sweep(db_session, push_settings, now=NOW, deliver=deliver)

        assert sent == 1
        assert len(deliver.calls) == 1
        payload = deliver.calls[0][1]
        assert payload["subscriptionId"] == due.id
        assert "Due" in payload["body"]

    def test_local_day_decides_not_utc_offset(self, db_session, push_settings):
        make_user(db_session, "nz@example.com", tz="Pacific/Auckland")
        make_user(db_session, "la@example.com", tz="America/Los_Angeles")
        make_sub(db_session, "nz@example.com", utc(2026, 3, 13, 10), name="NZ two local days")
        nz_due = make_sub(db_session, "nz@example.com", utc(2026, 3, 13, 11, 30), name="NZ due")
        la_due = make_sub(db_session, "la@example.com", utc(2026, 3, 14, 6, 30), name="LA due")
        deliver = RecordingDeliver()

        run_notification_sweep(db_session, push_settings, now=NOW, deliver=deliver)

        notified = sorted(p["subscriptionId"] for _, p in deliver.calls)
        assert notified == sorted([nz_due.id, la_due.id])

    def test_snoozed_subscription_skipped(self, db_session, push_settings):
        user = make_user(db_session, "a@example.com")
        sub = make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9))
        snooze_notifications(db_session, sub.id, user.id, now=NOW)
        deliver = RecordingDeliver()

        assert run_notification_sweep(db_session, push_settings, now=NOW, deliver=deliver) == 0
        assert deliver.calls == []

    def test_expired_snooze_does_not_block(self, db_session, push_settings):
        user = make_user(db_session, "a@example.com")
        sub = make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9))
        snooze_notifications(db_session, sub.id, user.id, until=NOW - timedelta(minutes=1), now=NOW)

        assert run_notification_sweep(db_session, push_settings, now=NOW, deliver=RecordingDeliver()) == 1

    def test_push_disabled_or_no_timezone_skipped(self, db_session, push_settings):
        make_user(db_session, "off@example.com", push=False)
        make_user(db_session, "notz@example.com", tz=None)
        make_sub(db_session, "off@example.com", utc(2026, 3, 13, 9))
        make_sub(db_session, "notz@example.com", utc(2026, 3, 13, 9))
        deliver = RecordingDeliver()

        assert run_notification_sweep(db_session, push_settings, now=NOW, deliver=deliver) == 0
        assert deliver.calls == []

    def test_gone_endpoint_is_removed(self, db_session, push_settings):
        user = make_user(db_session, "a@example.com")
        make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9))

        sent = run_notification_sweep(
            db_session, push_settings, now=NOW, deliver=RecordingDeliver(DeliveryOutcome.GONE),
        )

        assert sent == 0
        assert db_session.query(PushSubscription).filter(PushSubscription.user_id == user.id).count() == 0

    def test_transient_failure_keeps_endpoint_and_continues(self, db_session, push_settings):
        user = make_user(db_session, "a@example.com")
        register_push_subscription(db_session, user.id, "https://push.example.com/second", "k", "a")
        make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9))

        def outcome(endpoint):
            if endpoint.endpoint.endswith("second"):
                return DeliveryOutcome.DELIVERED
            return DeliveryOutcome.TRANSIENT_FAILURE

        sent = run_notification_sweep(
            db_session, push_settings, now=NOW, deliver=RecordingDeliver(outcome),
        )

        assert sent == 1
        assert db_session.query(PushSubscription).count() == 2

    def test_failing_item_does_not_abort_sweep(self, db_session, push_settings):
        make_user(db_session, "a@example.com")
        make_sub(db_session, "a@example.com", utc(2026, 3, 13, 8), name="First")
        make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9), name="Second")

        with patch(
            "subtrack.application.renewal_notifications.send_push_to_user",
            side_effect=[RuntimeError("boom"), 1],
        ) as send:
            sent = run_notification_sweep(db_session, push_settings, now=NOW, deliver=RecordingDeliver())

        assert sent == 1
        assert send.call_count == 2

    def test_without_vapid_keys_nothing_is_sent(self, db_session):
        make_user(db_session, "a@example.com")
        make_sub(db_session, "a@example.com", utc(2026, 3, 13, 9))
        deliver = RecordingDeliver()
        settings = Settings(DATABASE_URL="sqlite:///:memory:", _env_file=None)

        assert run_notification_sweep(db_session, settings, now=NOW, deliver=deliver) == 0
        assert deliver.calls == []
