"""Date and timestamp helpers shared by the cache, orchestrator and API."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

import pytz

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC timestamp in the ``2025-08-01T17:00:00.000Z`` form."""
    moment = (moment or utc_now()).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_date(value: object) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_valid_month(value: object) -> bool:
    if not isinstance(value, str) or not _MONTH_RE.match(value):
        return False
    return 1 <= int(value[5:7]) <= 12


def month_of(day: str) -> str:
    return day[:7]


def today_in(tz_name: str) -> date:
    return datetime.now(tz=pytz.timezone(tz_name)).date()


def date_range(start: date, days_ahead: int) -> list[str]:
    """ISO dates from ``start`` through ``start + days_ahead`` inclusive."""
    return [(start + timedelta(days=offset)).isoformat() for offset in range(days_ahead + 1)]
