"""Local wall-clock helpers.

Every timestamp the platform stores is a naive datetime in the configured
application timezone (``APP_TIMEZONE``; server local time when unset).
Report dates, end-of-day cutoffs and sweep windows are all computed from
``now()`` so tests can freeze time with a single monkeypatch:

    monkeypatch.setattr(clock, "now", lambda: datetime(2024, 5, 2, 16, 0))

Callers must use ``clock.now()`` (module attribute), never
``from app.utils.clock import now``.
"""

from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


def _zone() -> ZoneInfo | None:
    name = None
    if has_app_context():
        name = current_app.config.get("APP_TIMEZONE")
    name = name or os.getenv("APP_TIMEZONE")
    return ZoneInfo(name) if name else None


def now() -> datetime:
    """Current local wall-clock time (naive)."""
    zone = _zone()
    if zone is None:
        return datetime.now()
    return datetime.now(zone).replace(tzinfo=None)


def end_of_day(value: datetime | date) -> datetime:
    """23:59:59.999 local on the given day (millisecond cutoff)."""
    d = value.date() if isinstance(value, datetime) else value
    return datetime.combine(d, time(23, 59, 59, 999000))


def to_local(value: datetime) -> datetime:
    """Normalise an incoming datetime to naive local time.

    Aware values are converted into the application zone; naive values are
    assumed to already be local.
    """
    if value.tzinfo is None:
        return value
    zone = _zone()
    converted = value.astimezone(zone) if zone else value.astimezone()
    return converted.replace(tzinfo=None)


def parse_datetime(raw: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix accepted) to naive local time."""
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_local(datetime.fromisoformat(text))


def parse_date(raw: str) -> date:
    """Parse ``YYYY-MM-DD`` or a full ISO datetime down to its local date."""
    text = raw.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_datetime(text).date()


def days_until(target: datetime, reference: datetime) -> int:
    """Whole days remaining, rounded up (calendar ceiling)."""
    seconds = (target - reference).total_seconds()
    day = timedelta(days=1).total_seconds()
    whole, rest = divmod(seconds, day)
    return int(whole) + (1 if rest > 0 else 0)
