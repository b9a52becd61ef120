"""Time-of-day text helpers shared by the aggregator and the legacy decoder."""

from __future__ import annotations


def format_time(time24: str) -> str:
    """``"14:30:00"`` -> ``"2:30 PM"``; no leading zero on the hour."""
    hours, minutes = time24.split(":")[:2]
    hour = int(hours) % 24
    suffix = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:{minutes} {suffix}"


def format_time_range(start: str, end: str) -> str:
    return f"{format_time(start)}-{format_time(end)}"


def to_24_hour(time12: str, period: str) -> str:
    """``("2:30", "PM")`` -> ``"14:30:00"``."""
    hours, minutes = time12.split(":")
    hour = int(hours)
    period = period.upper()
    if period == "PM" and hour != 12:
        hour += 12
    elif period == "AM" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minutes}:00"
