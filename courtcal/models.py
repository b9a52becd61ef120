"""Domain models: pure dataclasses, no framework dependencies.

JSON shapes written to the monthly cache use camelCase keys; ``to_dict``
produces them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SlotStatus(str, Enum):
    BOOKED = "booked"
    AVAILABLE = "available"


class ParkStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    PARTIAL = "partial"


class DateState(str, Enum):
    PENDING = "pending"
    FETCHING_SOURCES = "fetching-sources"
    MERGING = "merging"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Slot:
    time: str                      # HH:MM:SS
    status: SlotStatus

    @property
    def is_booked(self) -> bool:
        return self.status == SlotStatus.BOOKED


@dataclass(frozen=True)
class Interval:
    start_time: str
    end_time: str

    def to_dict(self) -> dict[str, str]:
        return {"startTime": self.start_time, "endTime": self.end_time}


@dataclass
class CourtRecord:
    """One court as delivered by the upstream availability payload."""

    resource_id: Any
    resource_name: str
    time_slots: list[Slot] = field(default_factory=list)
    warnings: list[Any] = field(default_factory=list)


@dataclass
class CourtAnalysis:
    resource_id: Any
    resource_name: str
    park_name: str | None
    total_slots: int
    booked_slots: int
    available_slots: int
    booking_periods: list[Interval] = field(default_factory=list)
    warnings: list[Any] = field(default_factory=list)
    booking_detail_strings: list[str] = field(default_factory=list)

    @property
    def is_fully_booked(self) -> bool:
        return self.total_slots > 0 and self.available_slots == 0

    @property
    def is_fully_available(self) -> bool:
        return self.booked_slots == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "resourceId": self.resource_id,
            "resourceName": self.resource_name,
            "parkName": self.park_name,
            "totalSlots": self.total_slots,
            "bookedSlots": self.booked_slots,
            "availableSlots": self.available_slots,
            "bookingPeriods": [p.to_dict() for p in self.booking_periods],
            "isFullyBooked": self.is_fully_booked,
            "isFullyAvailable": self.is_fully_available,
            "warnings": list(self.warnings),
            "bookingDetailStrings": list(self.booking_detail_strings),
        }


@dataclass
class TimeWindow:
    # None only for undecodable legacy text; see services/legacy.py.
    start_time: str | None
    end_time: str | None
    courts: list[str]
    display_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "courts": list(self.courts),
            "displayTime": self.display_time,
        }


@dataclass
class Park:
    name: str
    color: str
    courts: list[CourtAnalysis] = field(default_factory=list)
    total_courts: int = 0
    booked_courts: int = 0
    available_courts: int = 0
    partially_booked_courts: int = 0
    status: ParkStatus = ParkStatus.PARTIAL
    time_windows: list[TimeWindow] = field(default_factory=list)
    facility_group_id: int | None = None
    facility_group_name: str | None = None
    pdf_link: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "color": self.color,
            "totalCourts": self.total_courts,
            "bookedCourts": self.booked_courts,
            "availableCourts": self.available_courts,
            "partiallyBookedCourts": self.partially_booked_courts,
            "status": self.status.value,
            "courts": [c.to_dict() for c in self.courts],
            "timeWindows": [w.to_dict() for w in self.time_windows],
        }
        if self.facility_group_id is not None:
            data["facilityGroupId"] = self.facility_group_id
            data["facilityGroupName"] = self.facility_group_name
            data["pdfLink"] = self.pdf_link
        return data


@dataclass
class MonthlyCache:
    month: str                     # YYYY-MM
    last_updated: str              # ISO-8601, UTC
    park_list: list[dict[str, Any]] = field(default_factory=list)
    days: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> MonthlyCache | None:
        """Build from parsed JSON; None when a required field is missing."""
        if not isinstance(data, dict):
            return None
        if not data.get("month") or not data.get("lastUpdated"):
            return None
        if not isinstance(data.get("days"), dict):
            return None
        park_list = data.get("parkList") or []
        return cls(
            month=data["month"],
            last_updated=data["lastUpdated"],
            park_list=[p for p in park_list if isinstance(p, dict)],
            days=data["days"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "lastUpdated": self.last_updated,
            "parkList": self.park_list,
            "days": self.days,
        }

    def park_colors(self) -> dict[str, str]:
        return {p["name"]: p.get("color") for p in self.park_list if "name" in p}


@dataclass(frozen=True)
class AuthContext:
    """Credentials attached to one upstream request."""

    token: str | None
    session_cookies: str | None = None
    source: str = "html"


@dataclass
class SourceResult:
    """Outcome of fetching one facility group for one date."""

    success: bool
    group_id: int
    group_name: str
    date: str
    pdf_link: str | None = None
    data: Any = None
    error: str | None = None


@dataclass
class MergeResult:
    success: bool
    date: str
    parks: list[Park] = field(default_factory=list)
    successful_sources: int = 0
    failed_sources: int = 0
    processing_errors: list[FailureRecord] = field(default_factory=list)
    error: str | None = None


@dataclass
class DateResult:
    success: bool
    date: str
    state: DateState = DateState.PENDING
    parks_count: int = 0
    successful_facilities: int = 0
    failed_facilities: int = 0
    skipped: bool = False
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "date": self.date,
            "state": self.state.value,
            "parksCount": self.parks_count,
            "successfulFacilities": self.successful_facilities,
            "failedFacilities": self.failed_facilities,
            "skipped": self.skipped,
            "duration": self.duration_ms,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class FailureRecord:
    date: str
    error: str
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"date": self.date, "error": self.error}
        if self.source is not None:
            data["facilityGroup"] = self.source
        return data


@dataclass
class BackfillSummary:
    success: bool = True
    duration_ms: int = 0
    total_dates: int = 0
    processed_dates: int = 0
    skipped_dates: int = 0
    successful_dates: int = 0
    failed_dates: int = 0
    total_api_requests: int = 0
    successful_api_requests: int = 0
    failed_api_requests: int = 0
    errors: list[FailureRecord] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "duration": self.duration_ms,
            "totalDates": self.total_dates,
            "processedDates": self.processed_dates,
            "skippedDates": self.skipped_dates,
            "successfulDates": self.successful_dates,
            "failedDates": self.failed_dates,
            "totalApiRequests": self.total_api_requests,
            "successfulApiRequests": self.successful_api_requests,
            "failedApiRequests": self.failed_api_requests,
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.error:
            data["error"] = self.error
        return data
