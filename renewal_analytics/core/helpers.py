"""Small date and number utilities shared by the scoring and detection code."""

import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

Number = Union[int, float, Decimal]

SECONDS_PER_DAY = 24 * 60 * 60


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """
    Whole days from ``start`` to ``end``, rounded up.

    Negative when ``end`` is before ``start``.
    """
    delta = as_utc(end) - as_utc(start)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def is_within_days(value: datetime, days: int, now: Optional[datetime] = None) -> bool:
    """True if ``value`` falls between now and ``days`` days from now."""
    remaining = days_between(now or utcnow(), value)
    return 0 <= remaining <= days


def round_half_up(value: Number) -> int:
    return int(math.floor(float(value) + 0.5))


def calculate_percentage(part: Number, total: Number) -> int:
    """Whole-number percentage of ``part`` in ``total``; 0 when total is 0."""
    if total == 0:
        return 0
    return round_half_up(float(part) / float(total) * 100)


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def format_currency(amount: Number, currency: str = "USD") -> str:
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(float(amount)):,.2f}"


def iso_date(value: datetime) -> str:
    return as_utc(value).date().isoformat()
