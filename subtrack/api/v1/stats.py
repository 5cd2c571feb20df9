"""
Spending summary endpoint
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.stats import StatsService
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/summary")
def get_summary(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return StatsService(db).get_summary(user.email).as_dict()
