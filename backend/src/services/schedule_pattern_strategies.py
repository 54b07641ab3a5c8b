"""
Strategies that decide which weekly patterns a patient's schedule renews with.

Auto-renewal asks a ``SchedulePatternStrategy`` for patterns. Patients with
explicit patterns use them; otherwise the history heuristic rebuilds one
pattern per distinct local (weekday, time) pair of their recent sessions.
"""

import logging
from typing import Dict, List, Protocol, Sequence, Tuple

from core.constants import PAYMENT_STATUS_CANCELLED, PAYMENT_STATUS_PENDING
from models import Appointment, Patient, SchedulePattern
from utils.datetime_utils import ensure_utc, instant_to_wall_clock

logger = logging.getLogger(__name__)


class SchedulePatternStrategy(Protocol):
    """Source of schedule patterns for a patient."""

    def get_patterns(self, patient: Patient, sessions: Sequence[Appointment]) -> List[SchedulePattern]:
        ...


class StoredPatternStrategy:
    """Use the patterns stored on the patient record."""

    def get_patterns(self, patient: Patient, sessions: Sequence[Appointment]) -> List[SchedulePattern]:
        return patient.get_schedule_patterns()


class InferredPatternStrategy:
    """
    Rebuild patterns from session history.

    Sessions are scanned newest first; the first (most recent) session seen
    for each local (weekday, HH:MM) pair supplies the type, duration and
    price. Generated patterns always default to ``pending``.
    """

    def get_patterns(self, patient: Patient, sessions: Sequence[Appointment]) -> List[SchedulePattern]:
        history = sorted(
            (s for s in sessions if s.payment_status != PAYMENT_STATUS_CANCELLED),
            key=lambda s: ensure_utc(s.start_time),
            reverse=True,
        )
        seen: Dict[Tuple[int, str], SchedulePattern] = {}
        for session in history:
            wall_clock = instant_to_wall_clock(session.start_time)
            key = (wall_clock.day_of_week, wall_clock.time)
            if key in seen:
                continue
            seen[key] = SchedulePattern(
                day_of_week=wall_clock.day_of_week,
                time=wall_clock.time,
                payment_status=PAYMENT_STATUS_PENDING,
                session_type=session.session_type,
                duration_minutes=session.duration_minutes,
                session_price=session.price,
            )
        patterns = list(seen.values())
        logger.debug(f"Inferred {len(patterns)} schedule patterns for patient {patient.id}")
        return patterns


class StoredOrInferredPatternStrategy:
    """Prefer stored patterns, fall back to inference from history."""

    def __init__(self) -> None:
        self.stored = StoredPatternStrategy()
        self.inferred = InferredPatternStrategy()

    def get_patterns(self, patient: Patient, sessions: Sequence[Appointment]) -> List[SchedulePattern]:
        patterns = self.stored.get_patterns(patient, sessions)
        if patterns:
            return patterns
        return self.inferred.get_patterns(patient, sessions)
