"""Upgrade of cache files written before ``timeWindows`` existed.

Old park records carried one display string in ``bookingDetails``, e.g.
``"Courts 1,2,3 booked 2:30-5:00 PM"``. ``migrate_cache`` rewrites such
records into the current shape before anything else reads them.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from courtcal.models import MonthlyCache, TimeWindow
from courtcal.utils.text import format_time_range, to_24_hour

logger = logging.getLogger(__name__)

LEGACY_FIELD = "bookingDetails"

ALL_AVAILABLE = "All courts available"
ALL_BOOKED = "All courts booked"

ALL_DAY_START = "06:00:00"
ALL_DAY_END = "22:00:00"

_SEGMENT_RE = re.compile(
    r"Courts?\s+(?P<courts>[\d,\s]+?)\s+booked\s+"
    r"(?P<start>\d{1,2}:\d{2})\s*-\s*(?P<end>\d{1,2}:\d{2})\s*(?P<period>AM|PM)",
    re.IGNORECASE,
)
_RANGE_RE = re.compile(
    r"(?P<start>\d{1,2}:\d{2})\s*-\s*(?P<end>\d{1,2}:\d{2})\s*(?P<period>AM|PM)",
    re.IGNORECASE,
)
_COURTS_RE = re.compile(r"Courts?\s+([\d,\s]+)", re.IGNORECASE)


def decode_booking_details(text: str | None) -> list[TimeWindow]:
    """Parse a legacy ``bookingDetails`` string into time windows.

    Strings matching no known form become a single window without times
    whose ``displayTime`` keeps the original text.
    """
    if not text or text.strip() == ALL_AVAILABLE:
        return []

    text = text.strip()
    if text == ALL_BOOKED:
        return [
            TimeWindow(
                start_time=ALL_DAY_START,
                end_time=ALL_DAY_END,
                courts=["All courts"],
                display_time=format_time_range(ALL_DAY_START, ALL_DAY_END),
            )
        ]

    windows = [
        _window(m["start"], m["end"], m["period"], _court_names(m["courts"]))
        for m in _SEGMENT_RE.finditer(text)
    ]
    if not windows:
        courts_match = _COURTS_RE.search(text)
        courts = _court_names(courts_match.group(1)) if courts_match else ["Courts"]
        windows = [
            _window(m["start"], m["end"], m["period"], courts)
            for m in _RANGE_RE.finditer(text)
        ]
    if not windows:
        logger.warning("Unrecognised legacy booking details: %r", text)
        # Null times are stored as JSON null. Sort such windows with a key
        # that tolerates None, e.g. ``w.start_time or ""``.
        return [TimeWindow(start_time=None, end_time=None, courts=["Courts"], display_time=text)]
    return windows


def migrate_park_record(record: dict[str, Any]) -> bool:
    """Normalize one park record in place; True if it was changed."""
    if LEGACY_FIELD not in record:
        return False
    legacy = record.pop(LEGACY_FIELD)
    if not isinstance(record.get("timeWindows"), list):
        record["timeWindows"] = [w.to_dict() for w in decode_booking_details(legacy)]
    return True


def migrate_cache(cache: MonthlyCache) -> bool:
    """Bring every day of ``cache`` to the current format; True if anything changed."""
    changed = False
    for day in cache.days.values():
        if not isinstance(day, dict):
            continue
        for record in day.get("parks") or []:
            if isinstance(record, dict) and migrate_park_record(record):
                changed = True
    return changed


def _window(start12: str, end12: str, period: str, courts: list[str]) -> TimeWindow:
    start = to_24_hour(start12, period)
    end = to_24_hour(end12, period)
    # "11:00-1:00 PM": the single suffix belongs to the end time.
    if start >= end and period.upper() == "PM":
        start = to_24_hour(start12, "AM")
    return TimeWindow(
        start_time=start,
        end_time=end,
        courts=courts,
        display_time=format_time_range(start, end),
    )


def _court_names(raw: str) -> list[str]:
    return [f"Court {part.strip()}" for part in raw.split(",") if part.strip()]
