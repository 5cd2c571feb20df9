"""
Authentication routes (login, logout, current user)
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.user_settings import user_profile
from subtrack.auth import authenticate
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api", tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/auth/login")
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = authenticate(db, req.email, req.password)
    request.session["user_id"] = user.id
    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    return {"user": user_profile(user)}


@router.post("/auth/logout")
def logout(request: Request):
    request.session.clear()
    return {"ok": True}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": user_profile(user)}
