"""
FastAPI dependencies (DB session, authentication, rate limiting)
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from subtrack.application.rate_limit import RateLimiter
from subtrack.errors import UnauthorizedError
from subtrack.infrastructure.db.session import get_db as _get_db
from subtrack.infrastructure.db.models import User


# Re-export get_db for convenience
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the session cookie

    Raises:
        UnauthorizedError: not logged in, or the user no longer exists
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise UnauthorizedError("Not authenticated")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UnauthorizedError("User not found")

    return user


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter
