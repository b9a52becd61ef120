"""Group court analyses by park and build the park-level time windows.

No I/O. Input is the validated payload of one facility group for one date;
output is ``{park name: Park}``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from courtcal.models import CourtAnalysis, Park, ParkStatus, TimeWindow
from courtcal.services.intervals import analyze_court
from courtcal.services.normalizer import UNKNOWN_PARK, extract_court_records
from courtcal.utils.colors import park_color
from courtcal.utils.text import format_time_range

logger = logging.getLogger(__name__)


def aggregate_by_park(analyses: Iterable[CourtAnalysis]) -> dict[str, Park]:
    parks: dict[str, Park] = {}

    for court in analyses:
        name = court.park_name
        if not name or name == UNKNOWN_PARK:
            continue

        park = parks.get(name)
        if park is None:
            park = parks[name] = Park(name=name, color=park_color(name))

        park.courts.append(court)
        park.total_courts += 1
        # Partially booked courts count toward neither booked nor available.
        if court.is_fully_booked:
            park.booked_courts += 1
        elif court.is_fully_available:
            park.available_courts += 1
        else:
            park.partially_booked_courts += 1

    for park in parks.values():
        park.status = park_status(park)
        park.time_windows = build_time_windows(park.courts)

    return parks


def park_status(park: Park) -> ParkStatus:
    if park.booked_courts == park.total_courts:
        return ParkStatus.BOOKED
    if park.available_courts == park.total_courts:
        return ParkStatus.AVAILABLE
    return ParkStatus.PARTIAL


def build_time_windows(courts: Iterable[CourtAnalysis]) -> list[TimeWindow]:
    """One window per distinct ``(start, end)`` pair, listing every court on it."""
    grouped: dict[tuple[str, str], list[str]] = {}
    for court in courts:
        for period in court.booking_periods:
            key = (period.start_time, period.end_time)
            grouped.setdefault(key, []).append(court.resource_name)

    windows = [
        TimeWindow(
            start_time=start,
            end_time=end,
            courts=names,
            display_time=format_time_range(start, end),
        )
        for (start, end), names in grouped.items()
    ]
    # HH:MM:SS is zero-padded, so string order is chronological.
    windows.sort(key=lambda w: (w.start_time, w.end_time))
    return windows


def process_response(payload: Any) -> dict[str, Park]:
    """Validated payload -> parks. Raises ResponseValidationError."""
    records = extract_court_records(payload)
    parks = aggregate_by_park(analyze_court(record) for record in records)
    logger.debug(
        "%d courts -> %d parks (%s)",
        len(records), len(parks), ", ".join(parks) or "none",
    )
    return parks
