"""ISO week bucketing for weekly violation counts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def as_utc(ts: datetime) -> datetime:
    """Return ``ts`` in UTC; naive datetimes are taken to already be UTC."""

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def week_key(ts: datetime) -> str:
    """Map a timestamp to its ISO-8601 ``YYYY-WW`` week in UTC."""

    iso_year, iso_week, _ = as_utc(ts).isocalendar()
    return f"{iso_year}-{iso_week:02d}"


def current_week_key(now: datetime | None = None) -> str:
    return week_key(now or datetime.now(timezone.utc))


def week_start(ts: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing ``ts``."""

    utc = as_utc(ts)
    monday = utc - timedelta(days=utc.isoweekday() - 1)
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)
