"""
Tests for user settings, onboarding and sign-in
"""
import pytest

from subtrack.application.user_settings import (
    UpdateSettingsUseCase, primary_currency_for, user_profile, validate_timezone,
)
from subtrack.auth import authenticate, create_user, hash_password, verify_password
from subtrack.config import Settings
from subtrack.errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError


class TestUpdateSettings:
    def test_partial_update(self, db_session, user):
        UpdateSettingsUseCase(db_session).execute(user.id, primary_currency="eur")
        assert user.primary_currency == "EUR"
        assert user.timezone == "UTC"

        UpdateSettingsUseCase(db_session).execute(user.id, timezone_name="Europe/Berlin", push_enabled=True)
        assert user.timezone == "Europe/Berlin"
        assert user.push_enabled is True
        assert primary_currency_for(db_session, user.email) == "EUR"

    def test_invalid_currency_rejected(self, db_session, user):
        with pytest.raises(ValidationError):
            UpdateSettingsUseCase(db_session).execute(user.id, primary_currency="EURO")

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            UpdateSettingsUseCase(db_session).execute(404, onboarding_done=True)

    def test_profile(self, db_session, user):
        profile = user_profile(user)
        assert profile == {
            "email": "owner@example.com",
            "name": "Owner",
            "primaryCurrency": "USD",
            "timezone": "UTC",
            "pushEnabled": False,
            "onboardingDone": True,
        }


class TestValidateTimezone:
    def test_valid_zone(self):
        assert validate_timezone(" Asia/Tokyo ") == "Asia/Tokyo"

    @pytest.mark.parametrize("name", ["", "Mars/Olympus", "../etc/passwd"])
    def test_invalid_zone(self, name):
        with pytest.raises(ValidationError):
            validate_timezone(name)


class TestAuthenticate:
    def test_password_hashing(self):
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_valid_credentials(self, db_session):
        create_user(db_session, "Me@Example.com", "s3cret")
        settings = Settings(DATABASE_URL="sqlite:///:memory:", _env_file=None)
        user = authenticate(db_session, "me@example.com", "s3cret", settings)
        assert user.email == "me@example.com"

    def test_wrong_password(self, db_session):
        create_user(db_session, "me@example.com", "s3cret")
        settings = Settings(DATABASE_URL="sqlite:///:memory:", _env_file=None)
        with pytest.raises(UnauthorizedError):
            authenticate(db_session, "me@example.com", "nope", settings)

    def test_allow_list(self, db_session):
        create_user(db_session, "me@example.com", "s3cret")
        settings = Settings(
            DATABASE_URL="sqlite:///:memory:", ALLOWED_EMAILS="friend@example.com", _env_file=None,
        )
        with pytest.raises(ForbiddenError):
            authenticate(db_session, "me@example.com", "s3cret", settings)
