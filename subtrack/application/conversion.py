"""
Currency conversion into an owner's primary currency.

All stored rates are quoted against FX_BASE; the cross rate from a currency
into the primary currency is (base→primary) / (base→from).
"""
import math
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from subtrack.application.fx import FX_BASE
from subtrack.errors import ConversionError
from subtrack.infrastructure.db.models import FxRate


def _latest_rate(db: Session, target: str) -> float | None:
    row = (
        db.query(FxRate.rate)
        .filter(FxRate.base == FX_BASE, FxRate.target == target)
        .order_by(FxRate.fetched_at.desc())
        .first()
    )
    return row[0] if row else None


def rate_to_primary(db: Session, primary_currency: str | None, from_currency: str) -> float | None:
    """
    Factor converting `from_currency` into `primary_currency`, or None if unknown.
    """
    if not primary_currency:
        return None
    if primary_currency == from_currency:
        return 1.0

    to_primary = _latest_rate(db, primary_currency)
    from_base = _latest_rate(db, from_currency)
    if to_primary is None or from_base is None:
        return None
    if from_base == 0:
        return None
    return to_primary / from_base


def resolve_rate(
    preferred: float | None,
    fallback: float | None,
    currency: str,
    primary_currency: str | None,
) -> float:
    """
    First known rate of (preferred, fallback), else identity, else 0 (excluded).

    Subscriptions prefer the live rate over rate_at_creation; events prefer
    rate_at_event over the live rate.

    Without a primary currency nothing can be converted, so amounts are
    summed as-is (identity).
    """
    if preferred is not None:
        return preferred
    if fallback is not None:
        return fallback
    if not primary_currency or currency == primary_currency:
        return 1.0
    return 0.0


def convert_cents(amount_cents: int, rate: float) -> int:
    """Convert minor units with round-half-up to the nearest integer."""
    if not math.isfinite(rate):
        raise ConversionError(f"non-finite conversion rate {rate!r}")
    converted = Decimal(amount_cents) * Decimal(repr(rate))
    return int(converted.quantize(Decimal(1), rounding=ROUND_HALF_UP))
