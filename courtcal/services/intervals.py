"""Turn one court's slot sequence into contiguous booked intervals."""

from __future__ import annotations

from typing import Iterable

from courtcal.models import CourtAnalysis, CourtRecord, Interval, Slot
from courtcal.services.normalizer import extract_park_name
from courtcal.utils.text import format_time_range

SLOT_MINUTES = 30

_DAY_MINUTES = 24 * 60


def find_booking_periods(
    slots: Iterable[Slot], slot_minutes: int = SLOT_MINUTES
) -> list[Interval]:
    """Scan ordered slots and emit one Interval per run of booked slots.

    An interval ends at the first available slot after it. A run that lasts
    until the last slot ends one slot duration after that slot's start.
    """
    periods: list[Interval] = []
    start: str | None = None
    last_booked: str | None = None

    for slot in slots:
        if slot.is_booked:
            if start is None:
                start = slot.time
            last_booked = slot.time
        elif start is not None:
            periods.append(Interval(start, slot.time))
            start = None

    if start is not None and last_booked is not None:
        periods.append(Interval(start, add_minutes(last_booked, slot_minutes)))

    return periods


def add_minutes(hhmmss: str, minutes: int) -> str:
    """Shift an ``HH:MM[:SS]`` time; results past midnight clamp to 24:00:00."""
    hours, mins = (int(part) for part in hhmmss.split(":")[:2])
    total = hours * 60 + mins + minutes
    if total >= _DAY_MINUTES:
        return "24:00:00"
    return f"{total // 60:02d}:{total % 60:02d}:00"


def analyze_court(court: CourtRecord, slot_minutes: int = SLOT_MINUTES) -> CourtAnalysis:
    booked = sum(1 for slot in court.time_slots if slot.is_booked)
    total = len(court.time_slots)
    periods = find_booking_periods(court.time_slots, slot_minutes)

    if periods:
        details = [f"Booked {format_time_range(p.start_time, p.end_time)}" for p in periods]
    else:
        details = ["Available all day"]

    return CourtAnalysis(
        resource_id=court.resource_id,
        resource_name=court.resource_name,
        park_name=extract_park_name(court.resource_name),
        total_slots=total,
        booked_slots=booked,
        available_slots=total - booked,
        booking_periods=periods,
        warnings=list(court.warnings),
        booking_detail_strings=details,
    )
