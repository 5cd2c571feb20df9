"""
Subscription domain values: statuses, event types, currency codes.
"""
import re
from enum import Enum

from subtrack.errors import ValidationError


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class EventType(str, Enum):
    PAYMENT = "payment"
    SKIP = "skip"


DEFAULT_CATEGORY_NAME = "Default"
UNCATEGORIZED = "uncategorized"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_currency(code: str) -> str:
    """Upper-case a 3-letter ISO code, rejecting anything else."""
    value = (code or "").strip().upper()
    if not _CURRENCY_RE.match(value):
        raise ValidationError(f"currency must be a 3-letter code, got {code!r}")
    return value
