"""Utility helpers: numeric coercion, clamping, date math."""

import json
import logging
import math
from datetime import date, datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

logger = logging.getLogger("horsai.helpers")


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def to_num(value, default: float | None = 0.0) -> float | None:
    """Coerce to a finite float, returning *default* for None/NaN/garbage."""
    if value is None or isinstance(value, bool):
        return default
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(v):
        return default
    return v


def round2(value: float) -> float:
    return round(value, 2)


def mean(values) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


# --- Dates ---

def to_date(value) -> date:
    """Accept a date, datetime or ISO string and return a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"Cannot convert {type(value).__name__} to date")


def to_iso(value) -> str | None:
    if value is None:
        return None
    return to_date(value).isoformat()


def add_days(value, days: int) -> date:
    return to_date(value) + timedelta(days=int(days))


def days_between(start, end) -> int:
    """Whole calendar days from *start* to *end* (negative if reversed)."""
    return (to_date(end) - to_date(start)).days


def local_today(now: datetime | None = None, timezone: str = "UTC") -> date:
    """Calendar date of *now* in the given IANA timezone.

    Naive datetimes are treated as UTC.
    """
    if now is None:
        now = datetime.now(dt_timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=dt_timezone.utc)
    return now.astimezone(ZoneInfo(timezone)).date()


def utc_now() -> datetime:
    return datetime.now(dt_timezone.utc)


# --- JSON columns ---

def load_json(raw, default):
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Unparseable JSON column, using default")
        return default
