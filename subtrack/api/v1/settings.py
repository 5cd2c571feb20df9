"""
User settings and onboarding endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.user_settings import UpdateSettingsUseCase
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api", tags=["settings"])


class SettingsRequest(BaseModel):
    primaryCurrency: str | None = Field(default=None, min_length=3, max_length=3)
    timezone: str | None = None
    pushEnabled: bool | None = None


class TimezoneRequest(BaseModel):
    timezone: str = Field(min_length=1)


class CurrencyRequest(BaseModel):
    currency: str = Field(min_length=3, max_length=3)


@router.put("/settings")
def update_settings(
    req: SettingsRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UpdateSettingsUseCase(db).execute(
        user.id,
        primary_currency=req.primaryCurrency,
        timezone_name=req.timezone,
        push_enabled=req.pushEnabled,
    )
    return {"ok": True}


@router.post("/onboarding/timezone")
def onboarding_timezone(
    req: TimezoneRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UpdateSettingsUseCase(db).execute(user.id, timezone_name=req.timezone)
    return {"ok": True}


@router.post("/onboarding/currency")
def onboarding_currency(
    req: CurrencyRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UpdateSettingsUseCase(db).execute(user.id, primary_currency=req.currency)
    return {"ok": True}


@router.post("/onboarding/complete")
def onboarding_complete(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UpdateSettingsUseCase(db).execute(user.id, onboarding_done=True)
    return {"ok": True}
