"""
Spend summary: monthly/yearly projection of active subscriptions in the
owner's primary currency, per-category split, and month-over-month change of
recorded payments.

Pure read-layer: no mutations.
"""
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from subtrack.application.conversion import convert_cents, rate_to_primary, resolve_rate
from subtrack.application.user_settings import primary_currency_for
from subtrack.domain.cadence import monthly_factor
from subtrack.domain.subscription import SubscriptionStatus, UNCATEGORIZED
from subtrack.errors import ConversionError
from subtrack.infrastructure.db.models import (
    CategoryModel, SubscriptionModel, SubscriptionEventModel,
)

TRAILING_WINDOW = timedelta(days=30)


@dataclass
class CategorySpend:
    category_id: int | None
    category_name: str
    amount: float  # major units per month
    percentage: float

    def as_dict(self) -> dict:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "amount": self.amount,
            "percentage": self.percentage,
        }


@dataclass
class SpendTotals:
    total_monthly_spend: float
    total_yearly_projection: float
    active_count: int
    paused_count: int
    month_over_month_change: float

    def as_dict(self) -> dict:
        return {
            "totalMonthlySpend": self.total_monthly_spend,
            "totalYearlyProjection": self.total_yearly_projection,
            "activeCount": self.active_count,
            "pausedCount": self.paused_count,
            "monthOverMonthChange": self.month_over_month_change,
        }


@dataclass
class SpendSummary:
    totals: SpendTotals
    by_category: list[CategorySpend] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "totals": self.totals.as_dict(),
            "byCategory": [c.as_dict() for c in self.by_category],
        }


def month_over_month(last_cents: int, prior_cents: int) -> float:
    """Percent change; 0 when there is nothing to compare against."""
    if prior_cents <= 0:
        return 0.0
    return (last_cents - prior_cents) / prior_cents * 100


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise ConversionError(f"non-finite {what}: {value!r}")
    return value


class StatsService:
    def __init__(self, db: Session):
        self.db = db

    def get_summary(self, owner_email: str, now: datetime | None = None) -> SpendSummary:
        now = now or datetime.now(timezone.utc)
        primary = primary_currency_for(self.db, owner_email)

        subs = self.db.query(SubscriptionModel).filter(
            SubscriptionModel.owner_email == owner_email,
            SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
        ).all()
        category_names = dict(
            self.db.query(CategoryModel.id, CategoryModel.name)
            .filter(CategoryModel.owner_email == owner_email)
            .all()
        )

        live_rates = self._live_rates(primary, {s.currency for s in subs})
        total_monthly_cents = 0.0
        by_category: dict[int | str, float] = defaultdict(float)

        for sub in subs:
            rate = resolve_rate(live_rates.get(sub.currency), sub.rate_at_creation, sub.currency, primary)
            amount_cents = convert_cents(sub.amount_cents, rate)
            monthly = amount_cents * monthly_factor(sub.cadence_unit, sub.cadence_count)
            total_monthly_cents += monthly
            key = sub.category_id if sub.category_id is not None else UNCATEGORIZED
            by_category[key] += monthly

        total_monthly_cents = _finite(total_monthly_cents, "monthly total")
        total_yearly_cents = total_monthly_cents * 12

        categories = []
        for key, cents in by_category.items():
            if key == UNCATEGORIZED:
                category_id, name = None, "Uncategorized"
            else:
                category_id, name = key, category_names.get(key, "Unknown")
            percentage = cents / total_monthly_cents * 100 if total_monthly_cents else 0.0
            categories.append(CategorySpend(
                category_id=category_id,
                category_name=name,
                amount=cents / 100,
                percentage=percentage,
            ))

        last_cents, prior_cents = self._trailing_payments(owner_email, primary, now)

        totals = SpendTotals(
            total_monthly_spend=total_monthly_cents / 100,
            total_yearly_projection=total_yearly_cents / 100,
            active_count=len(subs),
            paused_count=self._count_by_status(owner_email, SubscriptionStatus.PAUSED),
            month_over_month_change=month_over_month(last_cents, prior_cents),
        )
        return SpendSummary(totals=totals, by_category=categories)

    # ------------------------------------------------------------------

    def _live_rates(self, primary: str | None, currencies: set[str]) -> dict[str, float | None]:
        """One lookup per distinct currency."""
        return {c: rate_to_primary(self.db, primary, c) for c in currencies}

    def _trailing_payments(self, owner_email: str, primary: str | None, now: datetime) -> tuple[int, int]:
        """Converted event totals for (last 30 days, the 30 days before that)."""
        start_30 = now - TRAILING_WINDOW
        start_60 = now - 2 * TRAILING_WINDOW

        events = self.db.query(SubscriptionEventModel).filter(
            SubscriptionEventModel.owner_email == owner_email,
            SubscriptionEventModel.occurred_at >= start_60,
        ).all()

        missing = {e.currency for e in events if e.rate_at_event is None}
        live_rates = self._live_rates(primary, missing)

        last_cents = 0
        prior_cents = 0
        for event in events:
            rate = resolve_rate(event.rate_at_event, live_rates.get(event.currency), event.currency, primary)
            amount = convert_cents(event.amount_cents, rate)
            if event.occurred_at >= start_30:
                last_cents += amount
            else:
                prior_cents += amount
        return last_cents, prior_cents

    def _count_by_status(self, owner_email: str, status: SubscriptionStatus) -> int:
        return (
            self.db.query(func.count(SubscriptionModel.id))
            .filter(
                SubscriptionModel.owner_email == owner_email,
                SubscriptionModel.status == status.value,
            )
            .scalar()
        ) or 0
