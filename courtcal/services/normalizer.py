"""Validation and reshaping of the reservation availability payload.

Payload shape::

    {"headers": {"response_code": "0000", "response_message": "..."},
     "body": {"availability": {
         "time_slots": ["09:00:00", "09:30:00", ...],
         "resources": [{"resource_id": 1, "resource_name": "...",
                        "time_slot_details": [{"status": 0}, ...],
                        "warning_messages": [...]}]}}}

``time_slot_details`` is positional: entry N describes ``time_slots[N]``.
Upstream status 0 means booked and 1 means available.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from courtcal.models import CourtRecord, Slot, SlotStatus
from courtcal.services.base import ResponseValidationError

logger = logging.getLogger(__name__)

SUCCESS_CODE = "0000"

UNKNOWN_PARK = "Unknown Park"

_STATUS_MAP = {
    0: SlotStatus.BOOKED,
    1: SlotStatus.AVAILABLE,
}

# Checked in order after the sport filter; first match wins.
_PARK_NAME_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("kleinman",), "Kleinman Park"),
    (("christopher", "brady"), "Monterey Park"),
)

# Mesa Tennis & Pickleball Center lists its courts as "Pickleball Court 17" etc.
_GENERIC_COURT_RE = re.compile(r"^pickleball court \d+$")

_SLOT_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
_GENERIC_COURT_PARK = "Gene Autry Park"

_EXCLUDED_SPORTS = ("tennis",)


def validate_response(data: Any) -> dict:
    """Return ``data`` unchanged if structurally valid, else raise."""
    if not isinstance(data, dict):
        raise ResponseValidationError("Invalid response: Expected JSON object")

    headers = data.get("headers")
    body = data.get("body")
    if not isinstance(headers, dict) or not isinstance(body, dict):
        raise ResponseValidationError("Invalid response: Missing headers or body")

    if str(headers.get("response_code")) != SUCCESS_CODE:
        message = headers.get("response_message") or "Unknown error"
        raise ResponseValidationError(f"API error: {message}")

    availability = body.get("availability")
    if not isinstance(availability, dict):
        raise ResponseValidationError("Invalid response: Missing availability data")

    if not isinstance(availability.get("resources"), list):
        raise ResponseValidationError("Invalid response: Resources should be an array")

    if not isinstance(availability.get("time_slots"), list):
        raise ResponseValidationError("Invalid response: Time slots should be an array")

    return data


def extract_court_records(data: Any) -> list[CourtRecord]:
    """Validate the payload and turn every resource into a CourtRecord."""
    availability = validate_response(data)["body"]["availability"]
    times: list[str] = availability["time_slots"]
    for slot_time in times:
        if not isinstance(slot_time, str) or not _SLOT_TIME_RE.match(slot_time):
            raise ResponseValidationError(f"Invalid response: Bad time slot {slot_time!r}")

    records: list[CourtRecord] = []
    for resource in availability["resources"]:
        if not isinstance(resource, dict) or not resource.get("resource_name"):
            raise ResponseValidationError("Invalid response: Malformed resource entry")
        if not isinstance(resource["resource_name"], str):
            raise ResponseValidationError(
                f"Invalid response: resource_name {resource['resource_name']!r} is not a string"
            )

        details = resource.get("time_slot_details") or []
        if not isinstance(details, list):
            raise ResponseValidationError(
                f"Invalid response: time_slot_details of {resource['resource_name']} "
                "should be an array"
            )
        if len(details) != len(times):
            logger.warning(
                "%s: %d slot details for %d time slots",
                resource["resource_name"], len(details), len(times),
            )

        slots = [
            Slot(time=slot_time, status=_map_status(detail))
            for slot_time, detail in zip(times, details)
        ]
        records.append(
            CourtRecord(
                resource_id=resource.get("resource_id"),
                resource_name=resource["resource_name"],
                time_slots=slots,
                warnings=list(resource.get("warning_messages") or []),
            )
        )
    return records


def extract_park_name(court_name: str) -> str | None:
    """Map a court resource name to its park.

    None for courts of another sport; ``UNKNOWN_PARK`` when nothing matches.
    """
    name = court_name.lower().strip()

    if any(sport in name for sport in _EXCLUDED_SPORTS):
        return None

    for needles, park in _PARK_NAME_RULES:
        if any(needle in name for needle in needles):
            return park

    if _GENERIC_COURT_RE.match(name):
        return _GENERIC_COURT_PARK

    return UNKNOWN_PARK


def _map_status(detail: Any) -> SlotStatus:
    raw = detail.get("status") if isinstance(detail, dict) else None
    try:
        status = _STATUS_MAP.get(int(raw))
    except (TypeError, ValueError):
        status = None
    if status is None:
        logger.debug("Unrecognised slot status %r, treating as booked", raw)
        return SlotStatus.BOOKED
    return status
