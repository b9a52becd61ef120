"""Shared fixtures: upstream payloads, settings and a cache store in tmp_path."""

from __future__ import annotations

from typing import Any

import pytest

from courtcal.config import FacilityGroup, Settings
from courtcal.models import AuthContext, Slot, SlotStatus, SourceResult
from courtcal.services.cache_store import MonthlyCacheStore

TIME_SLOTS = ["09:00:00", "09:30:00", "10:00:00", "10:30:00"]


def make_payload(resources: list[tuple[str, list[int]]], time_slots: list[str] | None = None) -> dict:
    """Build an availability payload; each resource is ``(name, statuses)``."""
    return {
        "headers": {"response_code": "0000", "response_message": "Successful"},
        "body": {
            "availability": {
                "time_slots": list(time_slots or TIME_SLOTS),
                "resources": [
                    {
                        "resource_id": index + 1,
                        "resource_name": name,
                        "time_slot_details": [{"status": s} for s in statuses],
                        "warning_messages": [],
                    }
                    for index, (name, statuses) in enumerate(resources)
                ],
            }
        },
    }


def make_slots(pattern: str, start_hour: int = 9) -> list[Slot]:
    """``"ABB"`` -> available, booked, booked at 30-minute steps."""
    slots = []
    for index, char in enumerate(pattern):
        minutes = start_hour * 60 + index * 30
        slots.append(
            Slot(
                time=f"{minutes // 60:02d}:{minutes % 60:02d}:00",
                status=SlotStatus.BOOKED if char == "B" else SlotStatus.AVAILABLE,
            )
        )
    return slots


@pytest.fixture
def sample_payload() -> dict:
    """Kleinman: two courts booked 9:30-10:30, one free. Gene Autry: one court booked all day."""
    return make_payload([
        ("Kleinman Pickleball Court 1", [1, 0, 0, 1]),
        ("Kleinman Pickleball Court 2", [1, 0, 0, 1]),
        ("Kleinman Pickleball Court 3", [1, 1, 1, 1]),
        ("Tennis Court 1", [0, 0, 0, 0]),
        ("Pickleball Court 5", [0, 0, 0, 0]),
        ("Racquetball Room", [1, 1, 1, 1]),
    ])


@pytest.fixture
def monterey_payload() -> dict:
    return make_payload([
        ("Christopher Brady Pickleball Court 1", [0, 1, 1, 1]),
        ("Christopher Brady Pickleball Court 2", [1, 1, 1, 1]),
    ])


@pytest.fixture
def facility_groups() -> list[FacilityGroup]:
    return [
        FacilityGroup(id=29, name="Kleinman Park", pdf_link="https://example.test/kleinman.pdf"),
        FacilityGroup(id=33, name="Gene Autry Park"),
        FacilityGroup(id=35, name="Monterey Park", pdf_link="https://example.test/brady.pdf"),
    ]


@pytest.fixture
def settings(tmp_path, facility_groups) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        delay_between_requests=0,
        delay_between_dates=0,
        run_on_startup=False,
        scheduler_enabled=False,
        facility_groups=facility_groups,
    )


@pytest.fixture
def store(tmp_path) -> MonthlyCacheStore:
    return MonthlyCacheStore(tmp_path)


@pytest.fixture
def auth() -> AuthContext:
    return AuthContext(token="csrf-token", session_cookies="JSESSIONID=abc")


def source_result(
    group: FacilityGroup, day: str, data: Any = None, error: str | None = None
) -> SourceResult:
    return SourceResult(
        success=error is None,
        group_id=group.id,
        group_name=group.name,
        date=day,
        pdf_link=group.pdf_link,
        data=data,
        error=error,
    )
