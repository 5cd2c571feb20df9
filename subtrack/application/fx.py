"""
FX rate store: cached snapshots of rates quoted against FX_BASE.

Snapshot policy per call:
  - fresh (younger than 24h)        → served as-is
  - stale, upstream configured      → fetch, validate, persist new snapshot
  - fetch failed / no upstream      → previous snapshot marked stale (once)
  - nothing cached at all           → FxUnavailableError (interactive) / None (refresh)

The store is an explicit object bound to a DB session and an optional source,
so tests can build isolated instances.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

import requests
from sqlalchemy import func
from sqlalchemy.orm import Session

from subtrack.config import Settings, get_settings
from subtrack.errors import FxUnavailableError
from subtrack.infrastructure.db.models import FxRate

logger = logging.getLogger(__name__)

FX_BASE = "USD"
FX_REFRESH_INTERVAL = timedelta(hours=24)
OPEN_EXCHANGE_RATES_URL = "https://openexchangerates.org/api/latest.json"


@dataclass
class FxSnapshot:
    base: str
    rates: dict[str, float]
    fetched_at: datetime
    is_stale: bool = False

    def is_fresh(self, now: datetime) -> bool:
        return now - self.fetched_at < FX_REFRESH_INTERVAL

    def as_dict(self) -> dict[str, Any]:
        return {
            "base": self.base,
            "rates": dict(self.rates),
            "fetchedAt": self.fetched_at.isoformat(),
            "isStale": self.is_stale,
        }


class FxSourceError(Exception):
    """Upstream answered, but not with something we can use."""


class RateSource(Protocol):
    def fetch(self) -> FxSnapshot: ...


def normalize_rates(rates: dict[str, Any], base: str) -> dict[str, float]:
    """
    Keep 3-letter codes with finite positive numeric rates; force base to 1.
    """
    normalized: dict[str, float] = {}
    for code_raw, value in rates.items():
        code = str(code_raw).upper()
        if len(code) != 3:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value) or value <= 0:
            continue
        normalized[code] = float(value)
    if base not in normalized:
        normalized[base] = 1.0
    return normalized


@dataclass
class OpenExchangeRatesSource:
    """Fetches latest rates from openexchangerates.org."""
    app_id: str
    timeout: float = 10.0
    url: str = OPEN_EXCHANGE_RATES_URL
    http: Any = field(default=requests, repr=False)

    def fetch(self) -> FxSnapshot:
        response = self.http.get(self.url, params={"app_id": self.app_id}, timeout=self.timeout)
        if response.status_code != 200:
            raise FxSourceError(
                f"Open Exchange Rates request failed with status {response.status_code}"
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise FxSourceError("Open Exchange Rates response is not an object")

        base = str(payload.get("base") or FX_BASE).upper()
        if base != FX_BASE:
            raise FxSourceError(f"Open Exchange Rates returned unsupported base {base}")

        raw_rates = payload.get("rates")
        if not isinstance(raw_rates, dict):
            raise FxSourceError("Open Exchange Rates response missing rates")

        rates = normalize_rates(raw_rates, base)
        # base alone does not count as a usable rate
        if not any(code != base for code in rates):
            raise FxSourceError("Open Exchange Rates response has no usable rates")

        timestamp = payload.get("timestamp")
        if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool) and timestamp > 0:
            fetched_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        else:
            fetched_at = datetime.now(timezone.utc)

        return FxSnapshot(base=base, rates=rates, fetched_at=fetched_at)


class FxRateStore:
    def __init__(
        self,
        db: Session,
        source: RateSource | None = None,
        now: Callable[[], datetime] | None = None,
        base: str = FX_BASE,
    ):
        self.db = db
        self.source = source
        self.base = base
        self._now = now or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, db: Session, settings: Settings | None = None) -> "FxRateStore":
        settings = settings or get_settings()
        source = None
        if settings.OPEN_EXCHANGE_RATES_APP_ID:
            source = OpenExchangeRatesSource(
                app_id=settings.OPEN_EXCHANGE_RATES_APP_ID,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return cls(db, source=source)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_rates(self) -> FxSnapshot:
        """
        Current snapshot for the interactive read path.

        Raises:
            FxUnavailableError: no snapshot could be fetched and none is cached
        """
        snapshot = self._resolve()
        if snapshot is None:
            raise FxUnavailableError()
        return snapshot

    def refresh(self) -> FxSnapshot | None:
        """Background refresh; never raises, returns whatever is available."""
        try:
            return self._resolve()
        except Exception:
            logger.exception("FX refresh failed")
            self.db.rollback()
            return None

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def _resolve(self) -> FxSnapshot | None:
        cached = self.load_latest()
        now = self._now()
        if cached is not None and cached.is_fresh(now):
            return cached

        if self.source is not None:
            try:
                fetched = self.source.fetch()
            except Exception as exc:
                logger.warning("FX fetch failed, falling back to cached snapshot: %s", exc)
            else:
                return self._persist(fetched)

        if cached is None:
            logger.warning("No FX snapshot cached for base %s", self.base)
            return None
        if not cached.is_stale:
            self._mark_stale(cached)
        return FxSnapshot(
            base=cached.base,
            rates=cached.rates,
            fetched_at=cached.fetched_at,
            is_stale=True,
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def load_latest(self) -> FxSnapshot | None:
        latest = (
            self.db.query(func.max(FxRate.fetched_at))
            .filter(FxRate.base == self.base)
            .scalar()
        )
        if latest is None:
            return None
        return self._load_at(latest)

    def _load_at(self, fetched_at: datetime) -> FxSnapshot | None:
        rows = self.db.query(FxRate).filter(
            FxRate.base == self.base,
            FxRate.fetched_at == fetched_at,
        ).all()
        if not rows:
            return None
        return FxSnapshot(
            base=self.base,
            rates={row.target: row.rate for row in rows},
            fetched_at=rows[0].fetched_at,
            is_stale=any(row.is_stale for row in rows),
        )

    def _mark_stale(self, snapshot: FxSnapshot) -> None:
        logger.info("Marking FX snapshot %s as stale", snapshot.fetched_at.isoformat())
        self.db.query(FxRate).filter(
            FxRate.base == snapshot.base,
            FxRate.fetched_at == snapshot.fetched_at,
        ).update({FxRate.is_stale: True}, synchronize_session=False)
        self.db.commit()

    def _persist(self, snapshot: FxSnapshot) -> FxSnapshot:
        existing = self._load_at(snapshot.fetched_at)
        if existing is not None:
            # provider has not published a newer timestamp; rows are immutable
            return existing

        for target, rate in snapshot.rates.items():
            self.db.add(FxRate(
                base=snapshot.base,
                target=target,
                rate=rate,
                fetched_at=snapshot.fetched_at,
                is_stale=False,
            ))
        self.db.commit()
        logger.info("Stored FX snapshot %s (%d rates)", snapshot.fetched_at.isoformat(), len(snapshot.rates))
        return FxSnapshot(
            base=snapshot.base,
            rates=dict(snapshot.rates),
            fetched_at=snapshot.fetched_at,
            is_stale=False,
        )
