"""
Unit tests for conflict detection and slot search.
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from models import Appointment
from services.availability_service import AvailabilityService

DAY = datetime(2026, 3, 10, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def make_session(session_id: int, start: datetime, duration: int = 50, status: str = "pending") -> Appointment:
    return Appointment(
        id=session_id,
        user_id=1,
        patient_id=session_id,
        start_time=start,
        duration_minutes=duration,
        payment_status=status,
    )


class TestFindSessionConflict:
    """Test conflict detection."""

    def test_overlapping_candidate_reports_existing_session(self):
        """Existing 10:00-10:50, candidate 10:30 for 50 minutes conflicts."""
        existing = make_session(1, at(10))

        conflict = AvailabilityService.find_session_conflict([existing], at(10, 30), 50)

        assert conflict is existing

    def test_back_to_back_without_buffer_conflicts(self):
        """Starting exactly at the previous end leaves no buffer."""
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(10, 50), 50) is existing

    def test_start_after_buffer_is_free(self):
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(10, 51), 50) is None

    def test_candidate_ending_a_buffer_before_existing_is_free(self):
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(9), 59) is None

    def test_candidate_ending_exactly_at_existing_start_conflicts(self):
        """The buffer also applies after the candidate when it comes first."""
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(9), 60) is existing

    def test_buffer_override(self):
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(10, 50), 50, buffer_minutes=0) is None

    def test_cancelled_sessions_are_ignored(self):
        cancelled = make_session(1, at(10), status="cancelled")

        assert AvailabilityService.find_session_conflict([cancelled], at(10), 50) is None

    def test_excluded_session_is_ignored(self):
        existing = make_session(1, at(10))

        assert AvailabilityService.find_session_conflict([existing], at(10, 15), 50, exclude_session_id=1) is None

    def test_returns_chronologically_first_conflict(self):
        later = make_session(2, at(11))
        earlier = make_session(1, at(10))

        conflict = AvailabilityService.find_session_conflict([later, earlier], at(10, 30), 60)

        assert conflict is earlier

    def test_naive_stored_instants_are_utc(self):
        existing = make_session(1, datetime(2026, 3, 10, 10, 0))

        assert AvailabilityService.find_session_conflict([existing], at(10, 30), 50) is not None

    def test_conflict_is_symmetric(self):
        """If B starts before A ends plus buffer, probing either against the other conflicts."""
        a = make_session(1, at(10), duration=45)
        b = make_session(2, at(10, 45), duration=30)

        assert AvailabilityService.find_session_conflict([a], b.start_time, b.duration_minutes) is a
        assert AvailabilityService.find_session_conflict([b], a.start_time, a.duration_minutes) is b


class TestGetFirstAvailableStart:
    """Test next-slot search."""

    def test_suggests_end_of_blocking_session_plus_buffer(self):
        """Existing 10:00-10:50, candidate 10:30 → 10:51."""
        existing = make_session(1, at(10))

        assert AvailabilityService.get_first_available_start([existing], at(10, 30), 50) == at(10, 51)

    def test_free_candidate_is_returned_unchanged(self):
        existing = make_session(1, at(10))

        assert AvailabilityService.get_first_available_start([existing], at(14), 50) == at(14)

    def test_skips_gaps_that_are_too_small(self):
        """A 20-minute gap cannot hold a 50-minute session."""
        first = make_session(1, at(10))           # buffered end 10:51
        second = make_session(2, at(11, 11))      # buffered end 12:02

        assert AvailabilityService.get_first_available_start([first, second], at(10), 50) == at(12, 2)

    def test_uses_gap_that_fits(self):
        first = make_session(1, at(10))           # buffered end 10:51
        second = make_session(2, at(12))

        assert AvailabilityService.get_first_available_start([second, first], at(10), 50) == at(10, 51)

    def test_empty_calendar(self):
        assert AvailabilityService.get_first_available_start([], at(8), 50) == at(8)

    @pytest.mark.parametrize("candidate_minute", [0, 15, 30, 45, 59])
    def test_result_never_conflicts_and_never_earlier(self, candidate_minute):
        sessions = [make_session(1, at(10)), make_session(2, at(10, 51), 30), make_session(3, at(12))]
        candidate = at(10, candidate_minute)

        result = AvailabilityService.get_first_available_start(sessions, candidate, 50)

        assert result >= candidate
        assert AvailabilityService.find_session_conflict(sessions, result, 50) is None


class TestAvailableSlotsForDate:
    """Test the hourly availability grid."""

    def test_drops_past_and_conflicting_slots(self):
        day = date(2026, 3, 10)
        # 10:00 local is 13:00 UTC
        busy = make_session(1, datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc))
        now = datetime(2026, 3, 10, 11, 30, tzinfo=timezone.utc)  # 08:30 local

        slots = AvailabilityService.get_available_slots_for_date([busy], day, now=now, duration_minutes=50)
        local_hours = [(slot - timedelta(hours=3)).hour for slot in slots]

        assert 8 not in local_hours
        assert 10 not in local_hours
        assert local_hours[0] == 9
        assert local_hours[-1] == 19
        assert len(slots) == 10
