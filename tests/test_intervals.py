"""Booking interval detection for a single court."""

from itertools import product

from conftest import make_slots

from courtcal.models import CourtRecord, Interval
from courtcal.services.intervals import add_minutes, analyze_court, find_booking_periods


class TestFindBookingPeriods:
    def test_booking_running_to_end_of_window(self):
        assert find_booking_periods(make_slots("ABB")) == [Interval("09:30:00", "10:30:00")]

    def test_interval_closes_at_next_available_slot(self):
        assert find_booking_periods(make_slots("BBABA")) == [
            Interval("09:00:00", "10:00:00"),
            Interval("10:30:00", "11:00:00"),
        ]

    def test_all_available(self):
        assert find_booking_periods(make_slots("AAAA")) == []

    def test_all_booked(self):
        assert find_booking_periods(make_slots("BBBB")) == [Interval("09:00:00", "11:00:00")]

    def test_no_slots(self):
        assert find_booking_periods([]) == []

    def test_custom_slot_length(self):
        assert find_booking_periods(make_slots("AB"), slot_minutes=60) == [
            Interval("09:30:00", "10:30:00")
        ]

    def test_intervals_never_overlap_or_touch(self):
        for pattern in product("AB", repeat=6):
            periods = find_booking_periods(make_slots("".join(pattern)))
            for period in periods:
                assert period.end_time > period.start_time
            for current, following in zip(periods, periods[1:]):
                assert current.end_time < following.start_time

    def test_booked_slot_count_matches_interval_length(self):
        for pattern in product("AB", repeat=6):
            text = "".join(pattern)
            periods = find_booking_periods(make_slots(text))
            minutes = 0
            for period in periods:
                sh, sm = map(int, period.start_time.split(":")[:2])
                eh, em = map(int, period.end_time.split(":")[:2])
                minutes += (eh * 60 + em) - (sh * 60 + sm)
            assert minutes == text.count("B") * 30


class TestAddMinutes:
    def test_simple(self):
        assert add_minutes("09:00:00", 30) == "09:30:00"

    def test_hour_rollover(self):
        assert add_minutes("09:45:00", 30) == "10:15:00"

    def test_clamps_at_midnight(self):
        assert add_minutes("23:30:00", 30) == "24:00:00"
        assert add_minutes("23:45:00", 60) == "24:00:00"


class TestAnalyzeCourt:
    def test_partial_court(self):
        court = CourtRecord(1, "Kleinman Pickleball Court 1", make_slots("ABBA"))
        analysis = analyze_court(court)

        assert analysis.park_name == "Kleinman Park"
        assert analysis.total_slots == 4
        assert analysis.booked_slots == 2
        assert analysis.available_slots == 2
        assert analysis.booking_periods == [Interval("09:30:00", "10:30:00")]
        assert analysis.booking_detail_strings == ["Booked 9:30 AM-10:30 AM"]
        assert not analysis.is_fully_booked
        assert not analysis.is_fully_available

    def test_fully_booked(self):
        analysis = analyze_court(CourtRecord(2, "Pickleball Court 3", make_slots("BB")))
        assert analysis.is_fully_booked
        assert not analysis.is_fully_available

    def test_available_all_day(self):
        analysis = analyze_court(CourtRecord(3, "Pickleball Court 3", make_slots("AAA")))
        assert analysis.is_fully_available
        assert analysis.booking_detail_strings == ["Available all day"]

    def test_empty_court_is_available_not_booked(self):
        analysis = analyze_court(CourtRecord(4, "Pickleball Court 4", []))
        assert analysis.total_slots == 0
        assert analysis.booking_periods == []
        assert analysis.is_fully_available
        assert not analysis.is_fully_booked

    def test_to_dict_uses_camel_case(self):
        data = analyze_court(CourtRecord(5, "Pickleball Court 5", make_slots("AB"))).to_dict()
        assert data["resourceName"] == "Pickleball Court 5"
        assert data["bookingPeriods"] == [{"startTime": "09:30:00", "endTime": "10:00:00"}]
        assert data["isFullyBooked"] is False
        assert data["bookingDetailStrings"] == ["Booked 9:30 AM-10:00 AM"]
