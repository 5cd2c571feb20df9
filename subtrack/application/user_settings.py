"""
User settings and onboarding: primary currency, time zone, push flag.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from subtrack.domain.subscription import normalize_currency
from subtrack.errors import NotFoundError, ValidationError
from subtrack.infrastructure.db.models import User


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def primary_currency_for(db: Session, owner_email: str) -> str | None:
    """Primary currency configured by the owner, or None."""
    row = db.query(User.primary_currency).filter(User.email == owner_email).first()
    return row[0] if row else None


def validate_timezone(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("timezone must not be empty")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")
    return name


def user_profile(user: User) -> dict:
    return {
        "email": user.email,
        "name": user.name or user.email,
        "primaryCurrency": user.primary_currency,
        "timezone": user.timezone,
        "pushEnabled": bool(user.push_enabled),
        "onboardingDone": bool(user.onboarding_done),
    }


class UpdateSettingsUseCase:
    """Partial update: fields left as None are not touched."""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: int,
        primary_currency: str | None = None,
        timezone_name: str | None = None,
        push_enabled: bool | None = None,
        onboarding_done: bool | None = None,
    ) -> User:
        user = get_user(self.db, user_id)

        if primary_currency is not None:
            user.primary_currency = normalize_currency(primary_currency)
        if timezone_name is not None:
            user.timezone = validate_timezone(timezone_name)
        if push_enabled is not None:
            user.push_enabled = push_enabled
        if onboarding_done is not None:
            user.onboarding_done = onboarding_done

        user.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        return user
