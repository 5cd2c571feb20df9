"""
Tests for the HTTP API (session login, subscriptions, stats, FX, push)
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from subtrack.api.deps import get_db
from subtrack.application.rate_limit import RateLimiter
from subtrack.auth import create_user
from subtrack.main import create_app
from subtrack.infrastructure.db.models import FxRate


PASSWORD = "correct horse"


@pytest.fixture
def app(db_engine):
    SessionLocal = sessionmaker(bind=db_engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    application = create_app()
    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app):
    """Test client for the FastAPI app"""
    return TestClient(app)


@pytest.fixture
def authenticated_client(client, db_session):
    """Client with a logged-in session"""
    user = create_user(db_session, "me@example.com", PASSWORD, name="Me")
    user.primary_currency = "USD"
    user.timezone = "UTC"
    db_session.commit()
    response = client.post("/api/auth/login", json={"email": "me@example.com", "password": PASSWORD})
    assert response.status_code == 200
    return client


def _create(client, **overrides):
    body = {
        "name": "Streaming",
        "amount_cents": 1000,
        "currency": "USD",
        "cadence_unit": "month",
        "cadence_count": 1,
        "next_renewal_at": "2026-01-10T00:00:00Z",
    }
    body.update(overrides)
    response = client.post("/api/subscriptions", json=body)
    assert response.status_code == 200, response.text
    return response.json()["item"]


class TestSystem:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAuth:
    def test_requires_login(self, client):
        response = client.get("/api/subscriptions")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_wrong_password(self, client, db_session):
        create_user(db_session, "me@example.com", PASSWORD)
        response = client.post("/api/auth/login", json={"email": "me@example.com", "password": "nope"})
        assert response.status_code == 401

    def test_me_and_logout(self, authenticated_client):
        me = authenticated_client.get("/api/me").json()["user"]
        assert me["email"] == "me@example.com"
        assert me["primaryCurrency"] == "USD"

        authenticated_client.post("/api/auth/logout")
        assert authenticated_client.get("/api/me").status_code == 401


class TestSettingsApi:
    def test_update_settings(self, authenticated_client):
        response = authenticated_client.put(
            "/api/settings", json={"primaryCurrency": "eur", "timezone": "Europe/Berlin"},
        )
        assert response.status_code == 200
        me = authenticated_client.get("/api/me").json()["user"]
        assert me["primaryCurrency"] == "EUR"
        assert me["timezone"] == "Europe/Berlin"

    def test_bad_timezone(self, authenticated_client):
        response = authenticated_client.post("/api/onboarding/timezone", json={"timezone": "Nowhere/City"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_onboarding_complete(self, authenticated_client):
        authenticated_client.post("/api/onboarding/complete")
        assert authenticated_client.get("/api/me").json()["user"]["onboardingDone"] is True


class TestSubscriptionsApi:
    def test_create_and_list(self, authenticated_client):
        item = _create(authenticated_client)
        assert item["status"] == "active"
        assert item["currency"] == "USD"

        items = authenticated_client.get("/api/subscriptions").json()["items"]
        assert [i["id"] for i in items] == [item["id"]]

    def test_list_date_range(self, authenticated_client):
        _create(authenticated_client, name="Early", next_renewal_at="2026-01-05T00:00:00Z")
        late = _create(authenticated_client, name="Late", next_renewal_at="2026-02-05T00:00:00Z")

        response = authenticated_client.get(
            "/api/subscriptions", params={"from": "2026-01-20T00:00:00Z", "to": "2026-03-01T00:00:00Z"},
        )
        assert [i["id"] for i in response.json()["items"]] == [late["id"]]

    def test_validation_errors(self, authenticated_client):
        for body in (
            {"amount_cents": -5},
            {"cadence_count": 0},
            {"next_renewal_at": "not a date"},
            {"cadence_unit": "fortnight"},
        ):
            payload = {
                "name": "X", "amount_cents": 100, "currency": "USD",
                "cadence_unit": "month", "cadence_count": 1,
                "next_renewal_at": "2026-01-10T00:00:00Z",
            }
            payload.update(body)
            response = authenticated_client.post("/api/subscriptions", json=payload)
            assert response.status_code == 400, body
            assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_partial_update(self, authenticated_client):
        item = _create(authenticated_client, notes="old")
        response = authenticated_client.put(f"/api/subscriptions/{item['id']}", json={"amount_cents": 1500})
        updated = response.json()["item"]
        assert updated["amount_cents"] == 1500
        assert updated["notes"] == "old"

    def test_not_found(self, authenticated_client):
        response = authenticated_client.get("/api/subscriptions/999")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_pause_archived_conflicts(self, authenticated_client):
        item = _create(authenticated_client)
        authenticated_client.post(f"/api/subscriptions/{item['id']}/archive")

        response = authenticated_client.post(f"/api/subscriptions/{item['id']}/pause")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_restore_requires_date(self, authenticated_client):
        item = _create(authenticated_client)
        authenticated_client.post(f"/api/subscriptions/{item['id']}/archive")

        assert authenticated_client.post(f"/api/subscriptions/{item['id']}/restore", json={}).status_code == 400
        response = authenticated_client.post(
            f"/api/subscriptions/{item['id']}/restore", json={"next_renewal_at": "2026-09-01T00:00:00Z"},
        )
        assert response.json()["item"]["status"] == "active"

    def test_mark_paid_and_events(self, authenticated_client):
        item = _create(authenticated_client, next_renewal_at="2026-01-10T00:00:00Z")

        response = authenticated_client.post(
            f"/api/subscriptions/{item['id']}/mark-paid",
            json={"occurred_at": "2026-04-20T08:00:00Z"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["item"]["next_renewal_at"].startswith("2026-05-10T00:00:00")
        assert data["event"]["type"] == "payment"
        events = authenticated_client.get(f"/api/subscriptions/{item['id']}/events").json()["items"]
        assert len(events) == 1

    def test_mark_paid_without_body(self, authenticated_client):
        item = _create(authenticated_client, next_renewal_at="2020-01-10T00:00:00Z")
        response = authenticated_client.post(f"/api/subscriptions/{item['id']}/mark-paid")
        assert response.status_code == 200
        next_renewal = datetime.fromisoformat(response.json()["item"]["next_renewal_at"].replace("Z", "+00:00"))
        assert next_renewal > datetime.now(timezone.utc)


class TestCategoriesApi:
    def test_default_category_protected(self, authenticated_client):
        items = authenticated_client.get("/api/categories").json()["items"]
        default = next(c for c in items if c["is_default"])

        assert authenticated_client.put(f"/api/categories/{default['id']}", json={"name": "X"}).status_code == 409
        assert authenticated_client.delete(f"/api/categories/{default['id']}").status_code == 409

    def test_delete_moves_subscriptions(self, authenticated_client):
        video = authenticated_client.post("/api/categories", json={"name": "Video"}).json()["item"]
        sub = _create(authenticated_client, category_id=video["id"])

        assert authenticated_client.delete(f"/api/categories/{video['id']}").json() == {"ok": True}

        moved = authenticated_client.get(f"/api/subscriptions/{sub['id']}").json()["item"]
        items = authenticated_client.get("/api/categories").json()["items"]
        default = next(c for c in items if c["is_default"])
        assert moved["category_id"] == default["id"]
        assert default["subscription_count"] == 1


class TestStatsApi:
    def test_summary(self, authenticated_client):
        _create(authenticated_client, amount_cents=1000, cadence_unit="month")
        _create(authenticated_client, amount_cents=12000, cadence_unit="year")

        data = authenticated_client.get("/api/stats/summary").json()

        assert data["totals"]["totalMonthlySpend"] == pytest.approx(20.0)
        assert data["totals"]["totalYearlyProjection"] == pytest.approx(240.0)
        assert data["totals"]["activeCount"] == 2


class TestFxApi:
    def test_unavailable_without_snapshot(self, authenticated_client):
        response = authenticated_client.get("/api/fx/rates")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "FX_UNAVAILABLE"

    def test_serves_cached_snapshot(self, authenticated_client, db_session):
        fetched_at = datetime.now(timezone.utc) - timedelta(hours=1)
        db_session.add(FxRate(base="USD", target="EUR", rate=0.9, fetched_at=fetched_at))
        db_session.commit()

        data = authenticated_client.get("/api/fx/rates").json()

        assert data["base"] == "USD"
        assert data["rates"]["EUR"] == 0.9
        assert data["isStale"] is False

    def test_rate_limited(self, app, authenticated_client, db_session):
        db_session.add(FxRate(base="USD", target="EUR", rate=0.9, fetched_at=datetime.now(timezone.utc)))
        db_session.commit()
        app.state.rate_limiter = RateLimiter()

        statuses = [authenticated_client.get("/api/fx/rates").status_code for _ in range(31)]

        assert statuses[:30] == [200] * 30
        assert statuses[30] == 429


class TestPushApi:
    def test_subscribe_unsubscribe(self, authenticated_client):
        body = {"endpoint": "https://push.example.com/1", "keys": {"p256dh": "k", "auth": "a"}}
        assert authenticated_client.post("/api/push/subscribe", json=body).json() == {"ok": True}
        assert authenticated_client.get("/api/me").json()["user"]["pushEnabled"] is True

        response = authenticated_client.request("DELETE", "/api/push/unsubscribe", json={})
        assert response.json() == {"ok": True, "deleted": 1}
        assert authenticated_client.get("/api/me").json()["user"]["pushEnabled"] is False

    def test_test_push_reports_sent_count(self, authenticated_client):
        with patch("subtrack.api.v1.push.send_push_to_user", return_value=2) as send:
            response = authenticated_client.post("/api/push/test")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "sent": 2}
        payload = send.call_args.args[2]
        assert payload["title"] == "SubTrack"

    def test_test_push_requires_login(self, client):
        assert client.post("/api/push/test").status_code == 401

    def test_snooze(self, authenticated_client):
        item = _create(authenticated_client)
        response = authenticated_client.post(f"/api/notifications/{item['id']}/snooze")
        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_snooze_foreign_subscription(self, authenticated_client):
        response = authenticated_client.post("/api/notifications/12345/snooze")
        assert response.status_code == 404
