"""
Availability service for conflict detection and slot search.

Every function here is pure: it works on an already fetched list of
sessions and never touches the database. Two sessions conflict when the
candidate interval intersects an existing session extended by the buffer
(``SESSION_BUFFER_MINUTES``), so back-to-back bookings always keep the gap.
"""

import logging
from datetime import date as date_type, datetime, time, timedelta
from typing import Iterable, List, NamedTuple, Optional

from core.config import DEFAULT_SESSION_DURATION_MINUTES, SESSION_BUFFER_MINUTES
from core.constants import (
    SLOT_INTERVAL_MINUTES,
    WORKDAY_END_HOUR,
    WORKDAY_START_HOUR,
)
from models import Appointment
from utils.datetime_utils import ensure_utc, local_to_instant, utc_now

logger = logging.getLogger(__name__)


class SessionSlot(NamedTuple):
    """Occupied interval of one non-cancelled session."""
    session: Appointment
    start: datetime
    end: datetime
    buffered_end: datetime


class AvailabilityService:
    """
    Service class for availability operations.

    Contains the single implementation of conflict detection and next-slot
    search shared by direct booking, batch validation, rescheduling and the
    public availability grid.
    """

    @staticmethod
    def build_session_slots(
        sessions: Iterable[Appointment],
        exclude_session_id: Optional[int] = None,
        buffer_minutes: Optional[int] = None
    ) -> List[SessionSlot]:
        """
        Build the chronologically sorted occupied intervals.

        Cancelled sessions and ``exclude_session_id`` are skipped.

        Args:
            sessions: Sessions to consider (any order)
            exclude_session_id: Session being edited, ignored in the check
            buffer_minutes: Gap required after each session (defaults to configuration)

        Returns:
            List of SessionSlot sorted by start
        """
        buffer = SESSION_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        slots: List[SessionSlot] = []
        for session in sessions:
            if exclude_session_id is not None and session.id == exclude_session_id:
                continue
            if session.is_cancelled:
                continue
            start = ensure_utc(session.start_time)
            duration = session.duration_minutes or DEFAULT_SESSION_DURATION_MINUTES
            end = start + timedelta(minutes=duration)  # type: ignore[operator]
            slots.append(SessionSlot(session, start, end, end + timedelta(minutes=buffer)))  # type: ignore[arg-type]
        slots.sort(key=lambda slot: slot.start)
        return slots

    @staticmethod
    def find_session_conflict(
        sessions: Iterable[Appointment],
        candidate_start: datetime,
        duration_minutes: Optional[int] = None,
        exclude_session_id: Optional[int] = None,
        buffer_minutes: Optional[int] = None
    ) -> Optional[Appointment]:
        """
        Find the first session whose buffered interval overlaps the candidate.

        The buffer applies after whichever of the two sessions comes first,
        so a candidate ending less than the buffer before an existing
        session also conflicts.

        Args:
            sessions: Existing sessions
            candidate_start: Proposed start instant
            duration_minutes: Proposed duration (defaults to configuration)
            exclude_session_id: Session id to ignore (reschedule/edit flows)
            buffer_minutes: Override of the configured buffer

        Returns:
            The earliest conflicting session, or None if the slot is free
        """
        start = ensure_utc(candidate_start)
        duration = duration_minutes or DEFAULT_SESSION_DURATION_MINUTES
        buffer = timedelta(minutes=SESSION_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes)
        buffered_end = start + timedelta(minutes=duration) + buffer  # type: ignore[operator]

        for slot in AvailabilityService.build_session_slots(sessions, exclude_session_id, buffer_minutes):
            if start < slot.buffered_end and buffered_end > slot.start:  # type: ignore[operator]
                return slot.session
        return None

    @staticmethod
    def get_first_available_start(
        sessions: Iterable[Appointment],
        candidate_start: datetime,
        duration_minutes: Optional[int] = None,
        exclude_session_id: Optional[int] = None,
        buffer_minutes: Optional[int] = None
    ) -> datetime:
        """
        Find the earliest start at or after ``candidate_start`` that does not conflict.

        Walks the occupied intervals in order, pushing the cursor to the
        buffered end of every interval the candidate would overlap.

        Returns:
            UTC instant, never earlier than ``candidate_start``
        """
        cursor = ensure_utc(candidate_start)
        buffer = timedelta(minutes=SESSION_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes)
        needed = timedelta(minutes=duration_minutes or DEFAULT_SESSION_DURATION_MINUTES) + buffer

        for slot in AvailabilityService.build_session_slots(sessions, exclude_session_id, buffer_minutes):
            if slot.buffered_end <= cursor:  # type: ignore[operator]
                continue
            if cursor + needed <= slot.start:  # type: ignore[operator]
                return cursor  # type: ignore[return-value]
            cursor = slot.buffered_end

        return cursor  # type: ignore[return-value]

    @staticmethod
    def get_available_slots_for_date(
        sessions: Iterable[Appointment],
        day: date_type,
        now: Optional[datetime] = None,
        duration_minutes: Optional[int] = None
    ) -> List[datetime]:
        """
        List bookable start instants on a local date for the public booking page.

        Candidate starts run every ``SLOT_INTERVAL_MINUTES`` from
        ``WORKDAY_START_HOUR`` up to (excluding) ``WORKDAY_END_HOUR``; slots
        in the past or in conflict are dropped.

        Args:
            sessions: Existing sessions for the owner
            day: Local date
            now: Reference time (defaults to the current time)
            duration_minutes: Duration of the session to book

        Returns:
            List of available UTC start instants in chronological order
        """
        reference = ensure_utc(now) if now is not None else utc_now()
        session_list = list(sessions)
        available: List[datetime] = []

        minutes = WORKDAY_START_HOUR * 60
        while minutes < WORKDAY_END_HOUR * 60:
            candidate = local_to_instant(day, time(minutes // 60, minutes % 60))
            minutes += SLOT_INTERVAL_MINUTES
            if candidate <= reference:  # type: ignore[operator]
                continue
            if AvailabilityService.find_session_conflict(session_list, candidate, duration_minutes) is None:
                available.append(candidate)

        return available
