"""
Recurrence service for expanding weekly schedule patterns into sessions.

Expansion is a pure function: it returns transient ``Appointment`` objects
that have not been added to any database session. Validation against the
existing calendar and persistence happen in ``BatchValidationService``.
"""

import logging
import math
from datetime import date as date_type, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from core.config import DEFAULT_RENEWAL_WEEKS, DEFAULT_SESSION_DURATION_MINUTES
from core.constants import DEFAULT_SESSION_TYPE, FREQUENCY_INTERVAL_WEEKS
from core.exceptions import ScheduleValidationError
from models import Appointment, Patient, SchedulePattern
from utils.datetime_utils import APP_TZ, ensure_utc, local_to_instant, utc_now, weekday_sunday_first

logger = logging.getLogger(__name__)


class RecurrenceService:
    """Service class for recurrence expansion."""

    @staticmethod
    def get_interval_weeks(frequency: str) -> int:
        """
        Map a session frequency to the number of weeks between occurrences.

        Raises:
            ScheduleValidationError: If the frequency is unknown
        """
        try:
            return FREQUENCY_INTERVAL_WEEKS[frequency]
        except KeyError:
            raise ScheduleValidationError(f"Unknown session frequency: {frequency!r}")

    @staticmethod
    def validate_patterns(patterns: Iterable[Union[SchedulePattern, dict]]) -> List[SchedulePattern]:
        """
        Validate raw or parsed schedule patterns.

        Raises:
            ScheduleValidationError: If the list is empty or any pattern is malformed
        """
        validated: List[SchedulePattern] = []
        for index, pattern in enumerate(patterns):
            if isinstance(pattern, SchedulePattern):
                validated.append(pattern)
                continue
            try:
                validated.append(SchedulePattern.model_validate(pattern))
            except ValidationError as e:
                raise ScheduleValidationError(f"Invalid schedule pattern at position {index}: {e}") from e
        if not validated:
            raise ScheduleValidationError("At least one schedule pattern is required")
        return validated

    @staticmethod
    def first_occurrence_date(pattern: SchedulePattern, now: datetime) -> date_type:
        """
        Local date of the first occurrence of ``pattern`` at or after ``now``.

        The search starts today (or at the pattern's ``start_date`` when that
        is later). When the slot on the matching day has already passed, the
        occurrence rolls to the following week.
        """
        local_now = ensure_utc(now).astimezone(APP_TZ)  # type: ignore[union-attr]
        base = local_now.date()
        if pattern.start_date is not None and pattern.start_date > base:
            base = pattern.start_date

        days_ahead = (pattern.day_of_week - weekday_sunday_first(base)) % 7
        candidate = base + timedelta(days=days_ahead)
        if local_to_instant(candidate, pattern.time) < local_now:
            candidate += timedelta(weeks=1)
        return candidate

    @staticmethod
    def generate_sessions(
        patient: Patient,
        patterns: Sequence[Union[SchedulePattern, dict]],
        frequency: Optional[str] = None,
        weeks: int = DEFAULT_RENEWAL_WEEKS,
        now: Optional[datetime] = None,
        user_id: Optional[int] = None
    ) -> List[Appointment]:
        """
        Expand schedule patterns into candidate sessions.

        For each pattern, ``ceil(weeks / interval)`` occurrences are produced
        ``interval`` weeks apart (same local wall-clock time), or a single
        occurrence for ``as_needed``. Output is grouped by pattern, each group
        in chronological order.

        Args:
            patient: Patient the sessions belong to (supplies default price)
            patterns: Weekly slot definitions
            frequency: Overrides ``patient.session_frequency``
            weeks: Horizon in weeks (ignored for ``as_needed``)
            now: Reference time, no occurrence is generated before it
            user_id: Owner id (defaults to ``patient.user_id``)

        Returns:
            List of unsaved Appointment objects

        Raises:
            ScheduleValidationError: On unknown frequency, bad horizon or malformed patterns
        """
        interval = RecurrenceService.get_interval_weeks(frequency or patient.session_frequency)
        if interval > 0 and weeks <= 0:
            raise ScheduleValidationError(f"Horizon must be a positive number of weeks, got {weeks}")

        validated = RecurrenceService.validate_patterns(patterns)
        reference = ensure_utc(now) if now is not None else utc_now()
        occurrences = 1 if interval == 0 else math.ceil(weeks / interval)
        owner_id = user_id if user_id is not None else patient.user_id

        sessions: List[Appointment] = []
        for pattern in validated:
            first_day = RecurrenceService.first_occurrence_date(pattern, reference)  # type: ignore[arg-type]
            price = pattern.session_price if pattern.session_price is not None else patient.session_price
            for index in range(occurrences):
                day = first_day + timedelta(weeks=index * interval)
                sessions.append(Appointment(
                    user_id=owner_id,
                    patient_id=patient.id,
                    start_time=local_to_instant(day, pattern.time),
                    duration_minutes=pattern.duration_minutes or DEFAULT_SESSION_DURATION_MINUTES,
                    session_type=pattern.session_type or DEFAULT_SESSION_TYPE,
                    price=price,
                    payment_status=pattern.payment_status,
                ))

        logger.debug(
            f"Generated {len(sessions)} candidate sessions for patient {patient.id} "
            f"({len(validated)} patterns, interval {interval} weeks)"
        )
        return sessions
