"""
Exchange rate endpoint
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db, get_rate_limiter
from subtrack.application.fx import FxRateStore
from subtrack.application.rate_limit import RateLimiter
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api/fx", tags=["fx"])

FX_RATES_LIMIT = 30
FX_RATES_WINDOW_SECONDS = 60


@router.get("/rates")
def get_rates(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Current USD-based snapshot; may be served stale when the provider is down."""
    limiter.check(f"fx-rates:{user.id}", FX_RATES_LIMIT, FX_RATES_WINDOW_SECONDS)
    return FxRateStore.from_settings(db).get_rates().as_dict()
